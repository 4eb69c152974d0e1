"""
Shared fixtures for aggregator tests.
"""
from datetime import datetime, timezone

import pytest

from aggregator.schemas import FactRecord, GroupDefinition


CHAR1, CHAR2, CHAR3 = 1001, 1002, 1003

RANGE_START = datetime(2024, 3, 4, tzinfo=timezone.utc)  # Monday
RANGE_END = datetime(2024, 3, 7, tzinfo=timezone.utc)


def make_fact(key, primary, participants=None, value=0, timestamp=None, solo=None):
    """Build a fact inside the default range."""
    return FactRecord(
        key=key,
        timestamp=timestamp or datetime(2024, 3, 4, 12, tzinfo=timezone.utc),
        primary_character_id=primary,
        participant_character_ids=participants if participants is not None else [primary],
        value=value,
        precomputed_solo_flag=solo,
    )


@pytest.fixture
def scenario_groups():
    """Group A holds char1, group B holds char2 and char3."""
    return [
        GroupDefinition(id="A", display_name="Alpha", member_character_ids={CHAR1}),
        GroupDefinition(id="B", display_name="Bravo", member_character_ids={CHAR2, CHAR3}),
    ]


@pytest.fixture
def scenario_facts():
    """Solo kill by char1, group kill by char2+char3, mixed kill by char1+char2."""
    return [
        make_fact("f1", CHAR1, [CHAR1], value=1_000),
        make_fact("f2", CHAR2, [CHAR2, CHAR3], value=2_000,
                  timestamp=datetime(2024, 3, 5, 8, tzinfo=timezone.utc)),
        make_fact("f3", CHAR1, [CHAR1, CHAR2], value=4_000,
                  timestamp=datetime(2024, 3, 6, 20, tzinfo=timezone.utc)),
    ]
