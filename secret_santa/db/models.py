from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Organizer(Base):
    __tablename__ = "organizers"

    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<Organizer(id={self.id}, email={self.email})>"


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True)
    organizer_id = Column(Integer, ForeignKey("organizers.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    code = Column(String(8), unique=True, nullable=False, index=True)
    budget = Column(String, nullable=True)
    event_date = Column(Date, nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    organizer = relationship("Organizer")

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, code={self.code}, archived={self.is_archived})>"


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    wish1 = Column(Text, nullable=True)
    wish2 = Column(Text, nullable=True)
    wish3 = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    group = relationship("Group")

    __table_args__ = (
        UniqueConstraint("group_id", "email", name="uq_participants_group_email"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def wishes(self) -> list[str]:
        return [wish for wish in (self.wish1, self.wish2, self.wish3) if wish]

    def __repr__(self) -> str:
        return f"<Participant(id={self.id}, group_id={self.group_id}, email={self.email})>"


class Exclusion(Base):
    """Directed rule: ``giver`` must not be drawn to give to ``receiver``."""

    __tablename__ = "exclusions"

    id = Column(Integer, primary_key=True)
    giver_id = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False)

    giver = relationship("Participant", foreign_keys=[giver_id])
    receiver = relationship("Participant", foreign_keys=[receiver_id])

    __table_args__ = (
        UniqueConstraint("giver_id", "receiver_id", name="uq_exclusions_giver_receiver"),
    )


class Assignment(Base):
    """One drawn pair. The receiver is only stored encrypted and hashed."""

    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    giver_id = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False)
    receiver_hash = Column(String(64), nullable=False)
    encrypted_receiver = Column(Text, nullable=False)
    email_sent = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    giver = relationship("Participant")

    __table_args__ = (
        UniqueConstraint("giver_id", name="uq_assignments_giver"),
    )

    def __repr__(self) -> str:
        return (
            "<Assignment(id={0}, group_id={1}, giver_id={2}, email_sent={3})>"
        ).format(self.id, self.group_id, self.giver_id, self.email_sent)
