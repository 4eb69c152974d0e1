"""
Fact attribution to character groups.

A fact belongs to a group when its primary character or any of its player
participants is a member. Each fact is counted at most once per group no matter
how many of its participants are members.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .classifier import player_participants
from .schemas import FactKey, FactRecord, GroupDefinition, normalize_character_id

logger = logging.getLogger(__name__)


def build_character_index(groups: Sequence[GroupDefinition]) -> Dict[int, List[str]]:
    """
    Map each character id to the groups containing it.

    Args:
        groups: Group definitions in caller order

    Returns:
        Dictionary of character id to group ids, in the order groups were supplied
    """
    index: Dict[int, List[str]] = {}
    for group in groups:
        for character_id in group.member_character_ids:
            index.setdefault(character_id, []).append(group.id)
    return index


def dedupe_facts(facts: Iterable[FactRecord], warnings: Optional[List[str]] = None) -> List[FactRecord]:
    """Keep the first fact seen for each key."""
    seen: Set[FactKey] = set()
    unique = []
    for fact in facts:
        if fact.key in seen:
            message = f"Duplicate fact key {fact.key!r} ignored"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
            continue
        seen.add(fact.key)
        unique.append(fact)
    return unique


def attribute(
    facts: Iterable[FactRecord],
    groups: Sequence[GroupDefinition],
    warnings: Optional[List[str]] = None,
) -> Dict[str, Set[FactKey]]:
    """
    Determine the deduplicated set of fact keys attributable to each group.

    Args:
        facts: Fact snapshot
        groups: Group definitions; membership may overlap
        warnings: Optional list collecting messages about skipped identifiers

    Returns:
        Dictionary of group id to fact keys; every group is present, empty
        groups map to an empty set
    """
    index = build_character_index(groups)
    attributed: Dict[str, Set[FactKey]] = {group.id: set() for group in groups}

    for fact in facts:
        skipped: List[object] = []
        characters = player_participants(fact, skipped)

        primary = normalize_character_id(fact.primary_character_id)
        if primary is not None:
            characters.append(primary)

        if skipped:
            message = f"Fact {fact.key!r}: skipped {len(skipped)} non-player participant id(s)"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)

        for character_id in characters:
            for group_id in index.get(character_id, ()):
                attributed[group_id].add(fact.key)

    for group in groups:
        logger.debug(f"Group {group.id}: {len(attributed[group.id])} unique facts")

    return attributed
