import pytest
from cryptography.fernet import Fernet
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from secret_santa.db import repo
from secret_santa.db.models import Base
from secret_santa.services.vault import (
    AssignmentVault,
    DecryptionError,
    VaultConfigError,
    VaultPersistenceError,
)


def create_session():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)()


def create_vault():
    return AssignmentVault(Fernet.generate_key().decode("utf-8"))


def seed_group(session, code="ABC123", size=4):
    organizer = repo.get_organizer_by_email(session, "org@example.com") or repo.create_organizer(
        session, "org@example.com", "Olga", "Organizer"
    )
    group = repo.create_group(session, organizer.id, f"Group {code}", code)
    participants = [
        repo.add_participant(session, group.id, f"P{index}", "Test", f"p{index}@{code.lower()}.com")
        for index in range(size)
    ]
    session.commit()
    return group, [participant.id for participant in participants]


def cycle_pairs(ids):
    return [(ids[index], ids[(index + 1) % len(ids)]) for index in range(len(ids))]


def snapshot(session, group_id):
    return [
        (row.id, row.giver_id, row.receiver_hash, row.encrypted_receiver, row.email_sent)
        for row in repo.list_assignments(session, group_id)
    ]


def test_encrypt_round_trip():
    vault = create_vault()
    token = vault.encrypt(42)
    assert vault.decrypt(token) == 42


def test_encrypt_is_randomized():
    vault = create_vault()
    assert vault.encrypt(7) != vault.encrypt(7)


def test_hash_is_stable_and_keyed():
    vault = create_vault()
    assert vault.hash(5) == vault.hash(5)
    assert vault.hash(5) != vault.hash(6)
    assert create_vault().hash(5) != vault.hash(5)
    assert len(vault.hash(5)) == 64


@pytest.mark.parametrize("key", [None, "", "   ", "too-short", "x" * 44])
def test_invalid_key_is_rejected(key):
    with pytest.raises(VaultConfigError):
        AssignmentVault(key)


def test_decrypt_garbage_raises():
    vault = create_vault()
    with pytest.raises(DecryptionError):
        vault.decrypt("not-a-token")
    with pytest.raises(DecryptionError):
        vault.decrypt(None)


def test_decrypt_with_other_key_raises_without_leaking():
    token = create_vault().encrypt(1234)
    with pytest.raises(DecryptionError) as excinfo:
        create_vault().decrypt(token)
    assert "1234" not in str(excinfo.value)
    assert excinfo.value.__cause__ is None


def test_replace_all_stores_encrypted_receivers():
    session = create_session()
    vault = create_vault()
    group, ids = seed_group(session)

    assert vault.replace_all(session, group.id, cycle_pairs(ids)) == 4
    session.commit()

    rows = repo.list_assignments(session, group.id)
    assert len(rows) == 4
    by_giver = dict(cycle_pairs(ids))
    for row in rows:
        assert row.encrypted_receiver != str(by_giver[row.giver_id])
        assert vault.decrypt(row.encrypted_receiver) == by_giver[row.giver_id]
        assert vault.matches(row, by_giver[row.giver_id])
        assert row.email_sent is False


def test_replace_all_replaces_previous_draw():
    session = create_session()
    vault = create_vault()
    group, ids = seed_group(session)

    vault.replace_all(session, group.id, cycle_pairs(ids))
    session.commit()
    vault.replace_all(session, group.id, cycle_pairs(list(reversed(ids))))
    session.commit()

    rows = repo.list_assignments(session, group.id)
    assert len(rows) == 4
    expected = dict(cycle_pairs(list(reversed(ids))))
    assert {row.giver_id: vault.decrypt(row.encrypted_receiver) for row in rows} == expected


def test_replace_all_failure_keeps_prior_state():
    session = create_session()
    vault = create_vault()
    group, ids = seed_group(session)
    vault.replace_all(session, group.id, cycle_pairs(ids))
    session.commit()
    before = snapshot(session, group.id)

    # the same giver twice violates the unique constraint after the delete ran
    broken = [(ids[0], ids[1]), (ids[0], ids[2])]
    with pytest.raises(VaultPersistenceError):
        vault.replace_all(session, group.id, broken)

    assert snapshot(session, group.id) == before


def test_replace_all_failure_keeps_unrelated_uncommitted_work():
    session = create_session()
    vault = create_vault()
    group, ids = seed_group(session, size=2)
    repo.add_participant(session, group.id, "Late", "Test", "late@abc123.com")
    assert repo.count_group_participants(session, group.id) == 3

    with pytest.raises(VaultPersistenceError):
        vault.replace_all(session, group.id, [(ids[0], ids[1]), (ids[0], ids[1])])

    assert repo.count_group_participants(session, group.id) == 3
    assert vault.draw_exists(session, group.id) is False
    session.commit()
    assert repo.count_group_participants(session, group.id) == 3


def test_replace_all_interrupted_between_delete_and_insert(monkeypatch):
    session = create_session()
    vault = create_vault()
    group, ids = seed_group(session)
    vault.replace_all(session, group.id, cycle_pairs(ids))
    session.commit()
    before = snapshot(session, group.id)

    def interrupted(*args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(repo, "create_assignments", interrupted)
    with pytest.raises(VaultPersistenceError):
        vault.replace_all(session, group.id, cycle_pairs(list(reversed(ids))))

    assert snapshot(session, group.id) == before


def test_mark_sent_is_idempotent():
    session = create_session()
    vault = create_vault()
    group, ids = seed_group(session)
    vault.replace_all(session, group.id, cycle_pairs(ids))
    session.commit()

    assignment = repo.list_assignments(session, group.id)[0]
    assert vault.mark_sent(session, assignment.id) is True
    assert vault.mark_sent(session, assignment.id) is False
    session.commit()

    assert vault.count_sent(session, group.id) == 1
    assert vault.count_pending(session, group.id) == 3


def test_summary_is_scoped_to_group():
    session = create_session()
    vault = create_vault()
    group, ids = seed_group(session, code="AAA111", size=3)
    other, other_ids = seed_group(session, code="BBB222", size=5)

    assert vault.summary(session, group.id).draw_exists is False
    vault.replace_all(session, group.id, cycle_pairs(ids))
    session.commit()

    summary = vault.summary(session, group.id)
    assert (summary.draw_exists, summary.total, summary.sent, summary.pending) == (True, 3, 0, 3)
    assert vault.draw_exists(session, other.id) is False

    vault.replace_all(session, other.id, cycle_pairs(other_ids))
    vault.clear(session, group.id)
    session.commit()
    assert vault.draw_exists(session, group.id) is False
    assert vault.summary(session, other.id).total == 5


def test_pending_deliveries_decrypts_and_isolates_failures():
    session = create_session()
    vault = create_vault()
    group, ids = seed_group(session)
    vault.replace_all(session, group.id, cycle_pairs(ids))
    session.commit()

    rows = repo.list_assignments(session, group.id)
    rows[0].encrypted_receiver = "corrupted"
    vault.mark_sent(session, rows[1].id)
    session.commit()

    deliveries = list(vault.pending_deliveries(session, group.id))
    assert len(deliveries) == 3

    failed = [delivery for delivery in deliveries if not delivery.ok]
    assert len(failed) == 1
    assert failed[0].assignment.id == rows[0].id
    assert failed[0].error == "Invalid assignment token"

    expected = dict(cycle_pairs(ids))
    for delivery in deliveries:
        if delivery.ok:
            assert delivery.receiver.id == expected[delivery.giver.id]
