"""
Tests for the database-backed fact repository.

Uses an in-memory SQLite database per test.
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from aggregator.database import Base, build_engine, create_tables
from aggregator.errors import UnknownReportError
from aggregator.models import (
    CharacterDB,
    CharacterGroupDB,
    KillFactDB,
    KillParticipantDB,
    LossFactDB,
)
from aggregator.repository import FactRepository

from conftest import CHAR1, CHAR2, CHAR3, RANGE_END, RANGE_START


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory database."""
    engine = build_engine("sqlite://")
    create_tables(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def seeded(session_factory):
    """Two groups, three characters, kills and losses."""
    db = session_factory()
    one = CharacterDB(id=CHAR1, name="Pilot One")
    two = CharacterDB(id=CHAR2, name="Pilot Two")
    three = CharacterDB(id=CHAR3, name="Pilot Three")
    db.add_all([
        CharacterGroupDB(id="A", display_name="Alpha", main_character_id=CHAR1, members=[one]),
        CharacterGroupDB(id="B", display_name="Bravo", main_character_id=CHAR1, members=[two, three]),
    ])
    db.add_all([
        KillFactDB(
            killmail_id=1, character_id=CHAR1, kill_time=datetime(2024, 3, 4, 12),
            total_value=str(2 ** 70), solo=True,
            participants=[KillParticipantDB(character_id=CHAR1), KillParticipantDB(character_id=None)],
        ),
        KillFactDB(
            killmail_id=2, character_id=CHAR2, kill_time=datetime(2024, 3, 5, 8), total_value="500",
            participants=[KillParticipantDB(character_id=CHAR2), KillParticipantDB(character_id=CHAR3)],
        ),
        KillFactDB(
            killmail_id=3, character_id=CHAR2, kill_time=datetime(2024, 3, 9), total_value="1",
            participants=[KillParticipantDB(character_id=CHAR2)],
        ),
        LossFactDB(killmail_id=10, character_id=CHAR3, kill_time=datetime(2024, 3, 6), total_value="900",
                   attacker_count=4),
    ])
    db.commit()
    db.close()
    return FactRepository(session_factory)


class TestFetchGroups:
    """Test group loading."""

    @pytest.mark.asyncio
    async def test_all_groups(self, seeded):
        """Test every group loads with members and names."""
        groups = await seeded.fetch_groups()
        assert [g.id for g in groups] == ["A", "B"]
        assert groups[0].member_character_ids == frozenset({CHAR1})
        assert groups[0].character_names == {CHAR1: "Pilot One"}
        assert groups[0].main_character_id == CHAR1

    @pytest.mark.asyncio
    async def test_requested_order(self, seeded):
        """Test requested ids keep their order and unknown ids are skipped."""
        groups = await seeded.fetch_groups(["B", "missing", "A"])
        assert [g.id for g in groups] == ["B", "A"]

    @pytest.mark.asyncio
    async def test_non_member_main_dropped(self, seeded):
        """Test a stored main character outside the group is ignored."""
        groups = await seeded.fetch_groups(["B"])
        assert groups[0].main_character_id is None


class TestFetchFacts:
    """Test fact loading."""

    @pytest.mark.asyncio
    async def test_kills_in_range(self, seeded):
        """Test kills are filtered by character and range."""
        facts, warnings = await seeded.fetch_facts({CHAR1, CHAR2, CHAR3}, RANGE_START, RANGE_END, "kills")

        assert [f.key for f in facts] == [1, 2]
        assert facts[0].value == 2 ** 70
        assert facts[0].participant_character_ids == [CHAR1, None]
        assert facts[0].timestamp == datetime(2024, 3, 4, 12, tzinfo=timezone.utc)
        assert warnings == []

    @pytest.mark.asyncio
    async def test_character_filter(self, seeded):
        """Test only facts of the requested characters load."""
        facts, _ = await seeded.fetch_facts({CHAR1}, RANGE_START, RANGE_END)
        assert [f.key for f in facts] == [1]

    @pytest.mark.asyncio
    async def test_losses(self, seeded):
        """Test losses load with the victim as participant."""
        facts, _ = await seeded.fetch_facts({CHAR3}, RANGE_START, RANGE_END, "losses")
        assert len(facts) == 1
        assert facts[0].primary_character_id == CHAR3
        assert facts[0].participant_character_ids == [CHAR3]
        assert facts[0].value == 900

    @pytest.mark.asyncio
    async def test_activity_reads_kills(self, seeded):
        """Test the activity report uses kill rows."""
        facts, _ = await seeded.fetch_facts({CHAR2}, RANGE_START, RANGE_END, "activity")
        assert [f.key for f in facts] == [2]

    @pytest.mark.asyncio
    async def test_no_characters(self, seeded):
        """Test an empty character set skips the query."""
        assert await seeded.fetch_facts(set(), RANGE_START, RANGE_END) == ([], [])

    @pytest.mark.asyncio
    async def test_unknown_report(self, seeded):
        """Test unknown report types raise."""
        with pytest.raises(UnknownReportError):
            await seeded.fetch_facts({CHAR1}, RANGE_START, RANGE_END, "bogus")

    @pytest.mark.asyncio
    async def test_participant_only_member(self, seeded, session_factory):
        """Test a kill is loaded for a character who only appears among the attackers."""
        db = session_factory()
        db.add(KillFactDB(
            killmail_id=4, character_id=CHAR1, kill_time=datetime(2024, 3, 6, 20), total_value="4000",
            participants=[KillParticipantDB(character_id=CHAR1), KillParticipantDB(character_id=CHAR2)],
        ))
        db.commit()
        db.close()

        facts, _ = await seeded.fetch_facts({CHAR2}, RANGE_START, RANGE_END, "kills")

        assert [f.key for f in facts] == [2, 4]
        assert facts[1].primary_character_id == CHAR1
        assert facts[1].participant_character_ids == [CHAR1, CHAR2]

    @pytest.mark.asyncio
    async def test_unparseable_value_skips_row(self, seeded, session_factory):
        """Test a row with a non-numeric value is skipped with a warning."""
        db = session_factory()
        db.add(KillFactDB(
            killmail_id=5, character_id=CHAR1, kill_time=datetime(2024, 3, 5, 9), total_value="lots",
            participants=[KillParticipantDB(character_id=CHAR1)],
        ))
        db.commit()
        db.close()

        facts, warnings = await seeded.fetch_facts({CHAR1}, RANGE_START, RANGE_END, "kills")

        assert [f.key for f in facts] == [1]
        assert len(warnings) == 1
        assert warnings[0].startswith("kills record 1 skipped")
