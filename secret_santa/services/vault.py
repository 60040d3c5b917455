"""Assignment encryption-at-rest.

Drawn receivers are never stored in plaintext: each assignment row keeps a
Fernet token of the receiver id plus a one-way hash of it. Organizer-facing
code only gets aggregate counts from here; ``pending_deliveries`` is the only
path that decrypts, and it is meant for the mailer.

Anyone holding ENCRYPTION_KEY can still decrypt. The goal is to keep the result
away from the organizer UI and from casual database inspection.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple, Union

from cryptography.fernet import Fernet, InvalidToken
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from secret_santa.db import Assignment, Participant, repo


class VaultConfigError(ValueError):
    pass


class DecryptionError(ValueError):
    pass


class VaultPersistenceError(RuntimeError):
    pass


@dataclass(frozen=True)
class DrawSummary:
    draw_exists: bool
    total: int
    sent: int
    pending: int


@dataclass(frozen=True)
class Delivery:
    """A pending assignment with its receiver resolved, or the reason it could not be."""

    assignment: Assignment
    giver: Participant
    receiver: Optional[Participant] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.receiver is not None


class AssignmentVault:
    def __init__(self, key: Union[str, bytes, None]) -> None:
        if isinstance(key, str):
            key = key.strip().encode("utf-8")
        if not key:
            raise VaultConfigError("An encryption key is required to store assignments.")
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as exc:
            raise VaultConfigError(
                "Encryption key must be a url-safe base64-encoded 32-byte key."
            ) from exc
        self._hash_salt = key.decode("utf-8")

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")

    def encrypt(self, receiver_id: int) -> str:
        """Encrypt receiver_id -> ciphertext token (string)."""
        token = self._fernet.encrypt(str(int(receiver_id)).encode("utf-8"))
        return token.decode("utf-8")

    def decrypt(self, token: str) -> int:
        """Decrypt ciphertext token -> receiver_id (int). Raises DecryptionError on failure."""
        try:
            raw = self._fernet.decrypt(token.encode("utf-8"))
            return int(raw.decode("utf-8"))
        except (InvalidToken, ValueError, TypeError, AttributeError):
            raise DecryptionError("Invalid assignment token") from None

    def hash(self, receiver_id: int) -> str:
        return hashlib.sha256(f"{int(receiver_id)}{self._hash_salt}".encode("utf-8")).hexdigest()

    def matches(self, assignment: Assignment, receiver_id: int) -> bool:
        """Check a candidate receiver against the stored hash without decrypting."""
        return assignment.receiver_hash == self.hash(receiver_id)

    def replace_all(self, session, group_id: int, pairs: Iterable[Tuple[int, int]]) -> int:
        """Swap the group's assignments for ``pairs`` within the session transaction.

        The delete and insert run inside a SAVEPOINT. On failure only that
        savepoint is rolled back: the previous assignments and any other
        uncommitted work of the caller stay in place. Committing is left to
        the caller.
        """
        log = logger.bind(group_id=group_id)
        try:
            rows = [
                (giver_id, self.hash(receiver_id), self.encrypt(receiver_id))
                for giver_id, receiver_id in pairs
            ]
            with session.begin_nested():
                removed = repo.clear_assignments(session, group_id)
                repo.create_assignments(session, group_id, rows)
                session.flush()
        except (SQLAlchemyError, ValueError, TypeError) as exc:
            log.warning("Replacing assignments failed, prior draw kept: {error}", error=type(exc).__name__)
            raise VaultPersistenceError("The draw could not be saved; nothing was changed.") from exc
        log.info("Assignments replaced ({removed} removed, {added} added)", removed=removed, added=len(rows))
        return len(rows)

    def clear(self, session, group_id: int) -> int:
        removed = repo.clear_assignments(session, group_id)
        logger.bind(group_id=group_id).info("Assignments cleared ({removed})", removed=removed)
        return removed

    def mark_sent(self, session, assignment_id: int) -> bool:
        """Flip an assignment to sent. Returns False when it already was."""
        return repo.mark_assignment_sent(session, assignment_id) > 0

    def draw_exists(self, session, group_id: int) -> bool:
        return repo.count_assignments(session, group_id) > 0

    def count_pending(self, session, group_id: int) -> int:
        return repo.count_assignments(session, group_id, email_sent=False)

    def count_sent(self, session, group_id: int) -> int:
        return repo.count_assignments(session, group_id, email_sent=True)

    def summary(self, session, group_id: int) -> DrawSummary:
        sent = self.count_sent(session, group_id)
        pending = self.count_pending(session, group_id)
        total = sent + pending
        return DrawSummary(draw_exists=total > 0, total=total, sent=sent, pending=pending)

    def pending_deliveries(self, session, group_id: int) -> Iterator[Delivery]:
        """Yield each unsent assignment of the group with its receiver decrypted.

        A row that cannot be decrypted, or whose receiver is no longer in the
        group, is yielded with ``error`` set so the caller can skip it.
        """
        for assignment in repo.list_pending_assignments(session, group_id):
            giver = repo.get_participant(session, assignment.giver_id)
            try:
                receiver_id = self.decrypt(assignment.encrypted_receiver)
            except DecryptionError as exc:
                yield Delivery(assignment=assignment, giver=giver, error=str(exc))
                continue

            if not self.matches(assignment, receiver_id):
                yield Delivery(assignment=assignment, giver=giver, error="Assignment hash mismatch")
                continue

            receiver = repo.get_participant_in_group(session, receiver_id, group_id)
            if receiver is None:
                yield Delivery(assignment=assignment, giver=giver, error="Receiver no longer exists")
                continue
            yield Delivery(assignment=assignment, giver=giver, receiver=receiver)
