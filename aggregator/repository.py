"""
Fact and group repository backed by the SQLAlchemy tables.

Queries run on a worker thread so the async HTTP layer never blocks on the
database. Rows are turned into the plain records the report strategies
extract facts from.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from .database import SessionLocal
from .models import CharacterGroupDB, KillFactDB, KillParticipantDB, LossFactDB
from .schemas import FactRecord, GroupDefinition, ensure_utc
from .strategies import get_strategy

logger = logging.getLogger(__name__)


def _naive_utc(value: datetime) -> datetime:
    return ensure_utc(value).replace(tzinfo=None)


def _parse_value(raw: Optional[str]) -> Union[int, str]:
    if not raw:
        return 0
    try:
        return int(raw)
    except ValueError:
        # Left as text so fact validation rejects just this row
        return raw


class FactRepository:
    """Reads facts and group definitions from the database."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def load_kill_records(
        self,
        db: Session,
        character_ids: Iterable[int],
        start_time: datetime,
        end_time: datetime,
    ) -> List[Dict[str, Any]]:
        """
        Kill rows inside [start_time, end_time) where one of the characters is
        the primary character or one of the attackers.
        """
        ids = list(character_ids)
        attacker_kills = (
            select(KillParticipantDB.killmail_id)
            .where(KillParticipantDB.character_id.in_(ids))
        )
        rows = (
            db.query(KillFactDB)
            .filter(or_(
                KillFactDB.character_id.in_(ids),
                KillFactDB.killmail_id.in_(attacker_kills),
            ))
            .filter(KillFactDB.kill_time >= _naive_utc(start_time))
            .filter(KillFactDB.kill_time < _naive_utc(end_time))
            .order_by(KillFactDB.kill_time, KillFactDB.killmail_id)
            .all()
        )
        return [
            {
                "killmail_id": row.killmail_id,
                "kill_time": row.kill_time.replace(tzinfo=timezone.utc),
                "character_id": row.character_id,
                "attackers": [
                    {"character_id": participant.character_id}
                    for participant in row.participants
                ],
                "total_value": _parse_value(row.total_value),
                "solo": row.solo,
            }
            for row in rows
        ]

    def load_loss_records(
        self,
        db: Session,
        character_ids: Iterable[int],
        start_time: datetime,
        end_time: datetime,
    ) -> List[Dict[str, Any]]:
        """Loss rows for the given victims inside [start_time, end_time)."""
        rows = (
            db.query(LossFactDB)
            .filter(LossFactDB.character_id.in_(list(character_ids)))
            .filter(LossFactDB.kill_time >= _naive_utc(start_time))
            .filter(LossFactDB.kill_time < _naive_utc(end_time))
            .order_by(LossFactDB.kill_time, LossFactDB.killmail_id)
            .all()
        )
        return [
            {
                "killmail_id": row.killmail_id,
                "kill_time": row.kill_time.replace(tzinfo=timezone.utc),
                "character_id": row.character_id,
                "total_value": _parse_value(row.total_value),
                "attacker_count": row.attacker_count,
            }
            for row in rows
        ]

    def load_groups(self, db: Session, ids: Optional[List[str]] = None) -> List[GroupDefinition]:
        """
        Group definitions, in the order of ``ids`` when given.

        A stored main character that is not a member is dropped with a warning
        rather than failing the whole load.
        """
        query = db.query(CharacterGroupDB)
        if ids:
            query = query.filter(CharacterGroupDB.id.in_(ids))
        rows = {row.id: row for row in query.order_by(CharacterGroupDB.id).all()}

        ordered = [rows[group_id] for group_id in ids if group_id in rows] if ids else list(rows.values())
        if ids:
            missing = [group_id for group_id in ids if group_id not in rows]
            if missing:
                logger.warning(f"Unknown group ids requested: {', '.join(missing)}")

        groups = []
        for row in ordered:
            member_ids = {member.id for member in row.members}
            main_id = row.main_character_id
            if main_id is not None and main_id not in member_ids:
                logger.warning(f"Group {row.id}: main character {main_id} is not a member, ignoring")
                main_id = None
            groups.append(GroupDefinition(
                id=row.id,
                display_name=row.display_name,
                member_character_ids=frozenset(member_ids),
                main_character_id=main_id,
                character_names={member.id: member.name for member in row.members},
            ))
        return groups

    def _run(self, work):
        db = self.session_factory()
        try:
            return work(db)
        finally:
            db.close()

    async def fetch_facts(
        self,
        character_ids: Iterable[int],
        start_time: datetime,
        end_time: datetime,
        report_type: str = "kills",
    ) -> Tuple[List[FactRecord], List[str]]:
        """
        Facts of one report type for the given characters and range.

        Returns:
            Tuple of extracted facts and warnings for rows that could not be
            turned into facts
        """
        get_strategy(report_type)  # Rejects unknown report types
        ids = sorted(set(character_ids))
        if not ids:
            return [], []

        # Activity reports read kill rows
        if report_type == "losses":
            loader = self.load_loss_records
            extractor = get_strategy("losses")
        else:
            loader = self.load_kill_records
            extractor = get_strategy("kills")

        records = await asyncio.to_thread(
            self._run, lambda db: loader(db, ids, start_time, end_time)
        )
        facts, warnings = extractor.extract_all(records)
        logger.info(f"Fetched {len(facts)} {report_type} facts for {len(ids)} characters")
        return facts, warnings

    async def fetch_groups(self, ids: Optional[List[str]] = None) -> List[GroupDefinition]:
        """Group definitions by id, or every stored group."""
        return await asyncio.to_thread(self._run, lambda db: self.load_groups(db, ids))
