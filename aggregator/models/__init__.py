"""
Database models for tracked characters, groups and kill/loss facts.

Values are stored as decimal text so arbitrary-precision totals survive the
round trip on every backend.
"""
from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.orm import relationship

from ..database import Base


group_members = Table(
    "group_members",
    Base.metadata,
    Column("group_id", String, ForeignKey("character_groups.id", ondelete="CASCADE"), primary_key=True),
    Column("character_id", BigInteger, ForeignKey("characters.id", ondelete="CASCADE"), primary_key=True),
)


class CharacterDB(Base):
    """Tracked player character."""

    __tablename__ = "characters"

    id = Column(BigInteger, primary_key=True, autoincrement=False)  # In-game character id
    name = Column(String, nullable=False)

    groups = relationship("CharacterGroupDB", secondary=group_members, back_populates="members")

    def __repr__(self):
        return f"<Character(id={self.id}, name='{self.name}')>"


class CharacterGroupDB(Base):
    """Named reporting unit of characters; membership may overlap."""

    __tablename__ = "character_groups"

    id = Column(String, primary_key=True)
    display_name = Column(String, nullable=False)
    main_character_id = Column(BigInteger, nullable=True)

    members = relationship(
        "CharacterDB", secondary=group_members, back_populates="groups", lazy="selectin"
    )

    def __repr__(self):
        return f"<CharacterGroup(id='{self.id}', members={len(self.members)})>"


class KillFactDB(Base):
    """Killmail on which a tracked character scored a kill."""

    __tablename__ = "kill_facts"

    killmail_id = Column(BigInteger, primary_key=True, autoincrement=False)
    character_id = Column(BigInteger, nullable=False, index=True)
    kill_time = Column(DateTime, nullable=False, index=True)  # Naive UTC
    total_value = Column(String(64), nullable=False, default="0")
    solo = Column(Boolean, nullable=True)

    participants = relationship(
        "KillParticipantDB", back_populates="kill", cascade="all, delete-orphan",
        lazy="selectin", order_by="KillParticipantDB.id"
    )

    def __repr__(self):
        return f"<KillFact(killmail_id={self.killmail_id}, character_id={self.character_id})>"


class KillParticipantDB(Base):
    """Attacker on a killmail; ``character_id`` is NULL for NPCs."""

    __tablename__ = "kill_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    killmail_id = Column(BigInteger, ForeignKey("kill_facts.killmail_id"), nullable=False, index=True)
    character_id = Column(BigInteger, nullable=True, index=True)

    kill = relationship("KillFactDB", back_populates="participants")


class LossFactDB(Base):
    """Killmail on which a tracked character lost a ship."""

    __tablename__ = "loss_facts"

    killmail_id = Column(BigInteger, primary_key=True, autoincrement=False)
    character_id = Column(BigInteger, nullable=False, index=True)
    kill_time = Column(DateTime, nullable=False, index=True)  # Naive UTC
    total_value = Column(String(64), nullable=False, default="0")
    attacker_count = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<LossFact(killmail_id={self.killmail_id}, character_id={self.character_id})>"
