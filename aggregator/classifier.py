"""
Participant-structure classification of facts.

Solo status is always recomputed from the participant list; a stored
``precomputed_solo_flag`` on the fact is never consulted.
"""
from typing import AbstractSet, List, Optional

from .schemas import Classification, FactRecord, GroupDefinition, normalize_character_id


def player_participants(fact: FactRecord, skipped: Optional[List[object]] = None) -> List[int]:
    """
    Participants of a fact that carry a valid player character id.

    Args:
        fact: Fact to inspect
        skipped: Optional list collecting the raw entries that were filtered out

    Returns:
        Player character ids in their original order
    """
    players = []
    for raw in fact.participant_character_ids:
        character_id = normalize_character_id(raw)
        if character_id is None:
            if skipped is not None:
                skipped.append(raw)
            continue
        players.append(character_id)
    return players


def classify_players(players: List[int], members: AbstractSet[int]) -> Classification:
    """Classify an already-filtered list of player participants against a member set."""
    if len(players) == 1:
        return Classification.TRUE_SOLO
    if len(players) >= 2 and all(player in members for player in players):
        return Classification.GROUP_SOLO
    return Classification.MULTI_PARTY


def classify(fact: FactRecord, group: GroupDefinition) -> Classification:
    """
    Label a fact's participant structure relative to one group.

    A single player participant is a true solo for every group. Two or more
    player participants that all belong to the group make a group solo.
    Anything else, including facts with no player participants, is multi-party.
    """
    return classify_players(player_participants(fact), group.member_character_ids)


def is_solo(classification: Classification) -> bool:
    """True for both solo flavours."""
    return classification in (Classification.TRUE_SOLO, Classification.GROUP_SOLO)
