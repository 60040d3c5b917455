from secret_santa.db.models import (
    Assignment,
    Base,
    Exclusion,
    Group,
    Organizer,
    Participant,
)
from secret_santa.db.session import SessionLocal, get_session, init_engine

__all__ = [
    "Assignment",
    "Base",
    "Exclusion",
    "Group",
    "Organizer",
    "Participant",
    "SessionLocal",
    "get_session",
    "init_engine",
]
