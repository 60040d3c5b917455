from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.orm import aliased

from secret_santa.db.models import (
    Assignment,
    Exclusion,
    Group,
    Organizer,
    Participant,
)


def get_organizer_by_id(session, organizer_id: int) -> Optional[Organizer]:
    return session.scalar(select(Organizer).where(Organizer.id == organizer_id))


def get_organizer_by_email(session, email: str) -> Optional[Organizer]:
    return session.scalar(select(Organizer).where(Organizer.email == email))


def create_organizer(session, email: str, first_name: str, last_name: str) -> Organizer:
    organizer = Organizer(email=email, first_name=first_name, last_name=last_name)
    session.add(organizer)
    session.flush()
    return organizer


def get_group_by_id(session, group_id: int) -> Optional[Group]:
    return session.scalar(select(Group).where(Group.id == group_id))


def get_group_by_code(session, code: str) -> Optional[Group]:
    return session.scalar(select(Group).where(Group.code == code))


def get_group_for_organizer(session, group_id: int, organizer_id: int) -> Optional[Group]:
    return session.scalar(
        select(Group).where(and_(Group.id == group_id, Group.organizer_id == organizer_id))
    )


def list_groups_for_organizer(session, organizer_id: int) -> List[Group]:
    return list(
        session.scalars(
            select(Group)
            .where(Group.organizer_id == organizer_id)
            .order_by(Group.created_at.desc(), Group.id.desc())
        ).all()
    )


def group_code_exists(session, code: str) -> bool:
    return session.scalar(select(func.count()).select_from(Group).where(Group.code == code)) > 0


def create_group(session, organizer_id: int, name: str, code: str) -> Group:
    group = Group(organizer_id=organizer_id, name=name, code=code)
    session.add(group)
    session.flush()
    return group


def _group_participant_ids(group_id: int):
    return select(Participant.id).where(Participant.group_id == group_id)


def delete_group(session, group_id: int) -> None:
    participant_ids = _group_participant_ids(group_id)
    session.execute(delete(Assignment).where(Assignment.group_id == group_id))
    session.execute(
        delete(Exclusion).where(
            or_(Exclusion.giver_id.in_(participant_ids), Exclusion.receiver_id.in_(participant_ids))
        ),
        execution_options={"synchronize_session": "fetch"},
    )
    session.execute(delete(Participant).where(Participant.group_id == group_id))
    session.execute(delete(Group).where(Group.id == group_id))


def list_group_participants(session, group_id: int) -> List[Participant]:
    return list(
        session.scalars(
            select(Participant)
            .where(Participant.group_id == group_id)
            .order_by(Participant.created_at, Participant.id)
        ).all()
    )


def count_group_participants(session, group_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(Participant).where(Participant.group_id == group_id)
    )


def get_participant(session, participant_id: int) -> Optional[Participant]:
    return session.scalar(select(Participant).where(Participant.id == participant_id))


def get_participant_in_group(session, participant_id: int, group_id: int) -> Optional[Participant]:
    return session.scalar(
        select(Participant).where(
            and_(Participant.id == participant_id, Participant.group_id == group_id)
        )
    )


def participant_email_exists(session, group_id: int, email: str) -> bool:
    return session.scalar(
        select(func.count())
        .select_from(Participant)
        .where(and_(Participant.group_id == group_id, Participant.email == email))
    ) > 0


def add_participant(
    session,
    group_id: int,
    first_name: str,
    last_name: str,
    email: str,
    wishes: Iterable[Optional[str]] = (),
) -> Participant:
    wish1, wish2, wish3 = (list(wishes) + [None, None, None])[:3]
    participant = Participant(
        group_id=group_id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        wish1=wish1,
        wish2=wish2,
        wish3=wish3,
    )
    session.add(participant)
    session.flush()
    return participant


def delete_participant(session, participant_id: int) -> None:
    session.execute(delete(Assignment).where(Assignment.giver_id == participant_id))
    session.execute(
        delete(Exclusion).where(
            or_(Exclusion.giver_id == participant_id, Exclusion.receiver_id == participant_id)
        )
    )
    session.execute(delete(Participant).where(Participant.id == participant_id))


def list_exclusions(session, group_id: int) -> List[Exclusion]:
    giver = aliased(Participant)
    return list(
        session.scalars(
            select(Exclusion)
            .join(giver, Exclusion.giver_id == giver.id)
            .where(giver.group_id == group_id)
            .order_by(Exclusion.giver_id, Exclusion.receiver_id)
        ).all()
    )


def list_exclusion_pairs(session, group_id: int) -> List[Tuple[int, int]]:
    return [(item.giver_id, item.receiver_id) for item in list_exclusions(session, group_id)]


def get_exclusion_in_group(session, exclusion_id: int, group_id: int) -> Optional[Exclusion]:
    giver = aliased(Participant)
    return session.scalar(
        select(Exclusion)
        .join(giver, Exclusion.giver_id == giver.id)
        .where(and_(Exclusion.id == exclusion_id, giver.group_id == group_id))
    )


def exclusion_exists(session, giver_id: int, receiver_id: int) -> bool:
    return session.scalar(
        select(func.count())
        .select_from(Exclusion)
        .where(and_(Exclusion.giver_id == giver_id, Exclusion.receiver_id == receiver_id))
    ) > 0


def add_exclusion(session, giver_id: int, receiver_id: int) -> Exclusion:
    exclusion = Exclusion(giver_id=giver_id, receiver_id=receiver_id)
    session.add(exclusion)
    session.flush()
    return exclusion


def delete_exclusion(session, exclusion_id: int) -> int:
    result = session.execute(delete(Exclusion).where(Exclusion.id == exclusion_id))
    return result.rowcount or 0


def create_assignments(session, group_id: int, rows: Iterable[Tuple[int, str, str]]) -> None:
    session.add_all(
        [
            Assignment(
                group_id=group_id,
                giver_id=giver_id,
                receiver_hash=receiver_hash,
                encrypted_receiver=encrypted_receiver,
                email_sent=False,
            )
            for giver_id, receiver_hash, encrypted_receiver in rows
        ]
    )


def list_assignments(session, group_id: int) -> List[Assignment]:
    return list(
        session.scalars(
            select(Assignment).where(Assignment.group_id == group_id).order_by(Assignment.id)
        ).all()
    )


def list_pending_assignments(session, group_id: int) -> List[Assignment]:
    return list(
        session.scalars(
            select(Assignment)
            .where(and_(Assignment.group_id == group_id, Assignment.email_sent.is_(False)))
            .order_by(Assignment.id)
        ).all()
    )


def get_assignment(session, assignment_id: int) -> Optional[Assignment]:
    return session.scalar(select(Assignment).where(Assignment.id == assignment_id))


def clear_assignments(session, group_id: int) -> int:
    result = session.execute(delete(Assignment).where(Assignment.group_id == group_id))
    return result.rowcount or 0


def count_assignments(session, group_id: int, email_sent: Optional[bool] = None) -> int:
    query = select(func.count()).select_from(Assignment).where(Assignment.group_id == group_id)
    if email_sent is not None:
        query = query.where(Assignment.email_sent.is_(email_sent))
    return session.scalar(query)


def mark_assignment_sent(session, assignment_id: int) -> int:
    result = session.execute(
        update(Assignment)
        .where(and_(Assignment.id == assignment_id, Assignment.email_sent.is_(False)))
        .values(email_sent=True)
    )
    return result.rowcount or 0
