from __future__ import annotations

import datetime
import re
import secrets
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

from loguru import logger
from sqlalchemy.exc import IntegrityError

from secret_santa.db import Exclusion, Group, Organizer, Participant, repo
from secret_santa.services.draw import DrawFailure, Feasibility, can_perform_draw, perform_draw
from secret_santa.services.mailer import SendReport, SmtpTransport, send_all_emails
from secret_santa.services.vault import AssignmentVault, DrawSummary, VaultPersistenceError

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6
MAX_WISHES = 3
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class GroupFlowError(RuntimeError):
    pass


@dataclass(frozen=True)
class GroupDrawResult:
    success: bool
    message: str
    count: int = 0
    failure: Optional[DrawFailure] = None


@dataclass(frozen=True)
class DrawStatus:
    participant_count: int
    draw_exists: bool
    sent: int
    pending: int
    can_draw: bool
    reason: Optional[str] = None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _require(value: Optional[str], label: str) -> str:
    cleaned = _clean(value)
    if not cleaned:
        raise GroupFlowError(f"{label} is required.")
    return cleaned


def _normalize_email(email: Optional[str]) -> str:
    cleaned = _require(email, "Email").lower()
    if not EMAIL_RE.match(cleaned):
        raise GroupFlowError(f"Invalid email address: {cleaned}")
    return cleaned


def generate_group_code(session) -> str:
    while True:
        code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
        if not repo.group_code_exists(session, code):
            return code


def format_participant(participant: Participant) -> str:
    return participant.full_name


def create_organizer(session, email: str, first_name: str, last_name: str) -> Organizer:
    email = _normalize_email(email)
    if repo.get_organizer_by_email(session, email):
        raise GroupFlowError("An organizer with this email already exists.")
    return repo.create_organizer(
        session, email, _require(first_name, "First name"), _require(last_name, "Last name")
    )


def create_group(session, organizer: Organizer, name: str) -> Group:
    group = repo.create_group(
        session, organizer.id, _require(name, "Group name"), generate_group_code(session)
    )
    logger.bind(group_id=group.id, organizer_id=organizer.id).info("Group created")
    return group


def get_group_for_organizer(session, group_id: int, organizer_id: int) -> Group:
    group = repo.get_group_for_organizer(session, group_id, organizer_id)
    if group is None:
        raise GroupFlowError("Group not found.")
    return group


def find_group_by_code(session, code: str) -> Optional[Group]:
    cleaned = _clean(code)
    if not cleaned:
        return None
    return repo.get_group_by_code(session, cleaned.upper())


def update_group(
    session,
    group: Group,
    name: Optional[str] = None,
    budget: Optional[str] = None,
    event_date: Optional[datetime.date] = None,
    clear_budget: bool = False,
    clear_event_date: bool = False,
) -> Group:
    if name is not None:
        group.name = _require(name, "Group name")
    if clear_budget:
        group.budget = None
    elif budget is not None:
        group.budget = _clean(budget)
    if clear_event_date:
        group.event_date = None
    elif event_date is not None:
        group.event_date = event_date
    return group


def regenerate_code(session, group: Group) -> str:
    group.code = generate_group_code(session)
    return group.code


def archive_group(session, group: Group) -> bool:
    if group.is_archived:
        return False
    group.archived_at = datetime.datetime.now(datetime.timezone.utc)
    return True


def unarchive_group(session, group: Group) -> bool:
    if not group.is_archived:
        return False
    group.archived_at = None
    return True


def delete_group(session, group: Group) -> None:
    group_id = group.id
    repo.delete_group(session, group_id)
    logger.bind(group_id=group_id).info("Group deleted with its participants, exclusions and draw")


def _require_active(group: Group) -> None:
    if group.is_archived:
        raise GroupFlowError("This group is archived.")


def _require_no_draw(session, group: Group) -> None:
    if repo.count_assignments(session, group.id) > 0:
        raise GroupFlowError("A draw has already been made. Reset it first.")


def register_participant(
    session,
    group: Group,
    first_name: str,
    last_name: str,
    email: str,
    wishes: Sequence[Optional[str]] = (),
) -> Participant:
    _require_active(group)
    _require_no_draw(session, group)

    email = _normalize_email(email)
    if repo.participant_email_exists(session, group.id, email):
        raise GroupFlowError("This email is already registered in the group.")

    cleaned_wishes = [wish for wish in (_clean(item) for item in wishes) if wish]
    if len(cleaned_wishes) > MAX_WISHES:
        raise GroupFlowError(f"At most {MAX_WISHES} wishes are allowed.")

    try:
        participant = repo.add_participant(
            session,
            group.id,
            _require(first_name, "First name"),
            _require(last_name, "Last name"),
            email,
            cleaned_wishes,
        )
    except IntegrityError as exc:
        raise GroupFlowError("This email is already registered in the group.") from exc
    logger.bind(group_id=group.id, participant_id=participant.id).info("Participant registered")
    return participant


def list_participants(session, group: Group) -> List[Participant]:
    return repo.list_group_participants(session, group.id)


def remove_participant(session, group: Group, participant_id: int) -> None:
    _require_active(group)
    _require_no_draw(session, group)
    participant = repo.get_participant_in_group(session, participant_id, group.id)
    if participant is None:
        raise GroupFlowError("Participant not found.")
    repo.delete_participant(session, participant.id)
    logger.bind(group_id=group.id, participant_id=participant_id).info("Participant removed")


def add_exclusion(session, group: Group, giver_id: int, receiver_id: int) -> Exclusion:
    _require_active(group)
    _require_no_draw(session, group)
    if giver_id == receiver_id:
        raise GroupFlowError("A participant cannot be excluded from themselves.")

    giver = repo.get_participant_in_group(session, giver_id, group.id)
    receiver = repo.get_participant_in_group(session, receiver_id, group.id)
    if giver is None or receiver is None:
        raise GroupFlowError("Both participants must belong to this group.")
    if repo.exclusion_exists(session, giver_id, receiver_id):
        raise GroupFlowError("This exclusion rule already exists.")

    exclusion = repo.add_exclusion(session, giver_id, receiver_id)
    logger.bind(group_id=group.id).info("Exclusion added")
    return exclusion


def add_mutual_exclusion(session, group: Group, first_id: int, second_id: int) -> List[Exclusion]:
    created = []
    for giver_id, receiver_id in ((first_id, second_id), (second_id, first_id)):
        if not repo.exclusion_exists(session, giver_id, receiver_id):
            created.append(add_exclusion(session, group, giver_id, receiver_id))
    return created


def remove_exclusion(session, group: Group, exclusion_id: int) -> None:
    _require_active(group)
    _require_no_draw(session, group)
    exclusion = repo.get_exclusion_in_group(session, exclusion_id, group.id)
    if exclusion is None:
        raise GroupFlowError("Exclusion rule not found.")
    repo.delete_exclusion(session, exclusion.id)


def list_exclusions(session, group: Group) -> List[Exclusion]:
    return repo.list_exclusions(session, group.id)


def exclusion_map(session, group: Group) -> Dict[int, Set[int]]:
    result: Dict[int, Set[int]] = {}
    for giver_id, receiver_id in repo.list_exclusion_pairs(session, group.id):
        result.setdefault(giver_id, set()).add(receiver_id)
    return result


def _name_blocked(message: str, blocked_id, participants: List[Participant]) -> str:
    names = {participant.id: format_participant(participant) for participant in participants}
    if blocked_id not in names:
        return message
    return message.replace(str(blocked_id), names[blocked_id], 1)


def _describe(feasibility: Feasibility, participants: List[Participant]) -> Optional[str]:
    if feasibility.possible:
        return None
    return _name_blocked(feasibility.message, feasibility.blocked_participant, participants)


def check_draw(session, group: Group) -> Feasibility:
    participants = repo.list_group_participants(session, group.id)
    return can_perform_draw([p.id for p in participants], exclusion_map(session, group))


def draw_status(session, group: Group, vault: AssignmentVault) -> DrawStatus:
    """Organizer view of the draw: counts only, never who gives to whom."""
    participants = repo.list_group_participants(session, group.id)
    summary: DrawSummary = vault.summary(session, group.id)
    feasibility = can_perform_draw([p.id for p in participants], exclusion_map(session, group))
    return DrawStatus(
        participant_count=len(participants),
        draw_exists=summary.draw_exists,
        sent=summary.sent,
        pending=summary.pending,
        can_draw=feasibility.possible and not summary.draw_exists and not group.is_archived,
        reason=_describe(feasibility, participants),
    )


def perform_group_draw(
    session,
    group: Group,
    vault: AssignmentVault,
    seed: Optional[int] = None,
) -> GroupDrawResult:
    log = logger.bind(group_id=group.id)
    if group.is_archived:
        return GroupDrawResult(False, "This group is archived.")
    if vault.draw_exists(session, group.id):
        return GroupDrawResult(False, "A draw has already been made for this group.")

    participants = repo.list_group_participants(session, group.id)
    result = perform_draw([p.id for p in participants], exclusion_map(session, group), seed=seed)
    if not result.ok:
        log.info("Draw refused: {failure}", failure=result.failure.value)
        message = _name_blocked(result.message, result.blocked_participant, participants)
        return GroupDrawResult(False, message, failure=result.failure)

    try:
        count = vault.replace_all(session, group.id, result.pairs)
    except VaultPersistenceError as exc:
        return GroupDrawResult(False, str(exc))

    log.info("Draw completed after {attempts} attempt(s)", attempts=result.attempts)
    return GroupDrawResult(True, f"Draw completed for {count} participants.", count=count)


def reset_draw(session, group: Group, vault: AssignmentVault) -> int:
    _require_active(group)
    return vault.clear(session, group.id)


def send_draw_emails(
    session,
    group: Group,
    vault: AssignmentVault,
    transport: SmtpTransport,
) -> SendReport:
    _require_active(group)
    if not vault.draw_exists(session, group.id):
        raise GroupFlowError("No draw has been made yet.")
    return send_all_emails(session, group, vault, transport)
