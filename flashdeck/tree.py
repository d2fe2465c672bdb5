"""
Deck tree assembly.

Decks are stored flat, each with an optional parent reference. This module
turns such a list into a forest of DeckWithStats nodes in linear time. No
deck is ever dropped: a deck whose parent is missing, is itself, or sits on
a parent cycle becomes a root and is flagged as orphaned.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from flashdeck.models import Deck, DeckWithStats

logger = logging.getLogger("flashdeck")

_VISITING = 1
_DONE = 2


def _fresh_node(deck: Deck) -> DeckWithStats:
    if isinstance(deck, DeckWithStats):
        return replace(deck, sub_decks=[], orphaned=False)
    return DeckWithStats.from_deck(deck)


def _break_cycles(
    order: Sequence[str], parents: Dict[str, Optional[str]], position: Dict[str, int]
) -> List[str]:
    """
    Detach one deck from every parent cycle.

    The member of a cycle that comes first in input order loses its parent.
    ``parents`` is updated in place.

    Returns:
        IDs of the decks that were detached
    """
    state: Dict[str, int] = {}
    detached = []

    for start in order:
        path = []
        current = start
        while current is not None and current not in state:
            state[current] = _VISITING
            path.append(current)
            current = parents[current]

        if current is not None and state[current] == _VISITING:
            cycle = path[path.index(current):]
            breaker = min(cycle, key=position.__getitem__)
            parents[breaker] = None
            detached.append(breaker)

        for deck_id in path:
            state[deck_id] = _DONE

    return detached


def build_tree(decks: Sequence[Deck]) -> List[DeckWithStats]:
    """
    Assemble decks into a forest.

    The input decks are not modified; every node in the result is a copy
    whose ``sub_decks`` holds its direct children. Roots and siblings keep
    their relative input order, so the same input always gives the same
    forest.

    Args:
        decks: Flat list of decks with their statistics

    Returns:
        The top-level decks, each owning its sub-decks
    """
    nodes = [_fresh_node(deck) for deck in decks]

    lookup: Dict[str, DeckWithStats] = {}
    position: Dict[str, int] = {}
    for index, node in enumerate(nodes):
        if node.id in lookup:
            logger.warning(f"Duplicate deck ID {node.id} in tree input")
            continue
        lookup[node.id] = node
        position[node.id] = index

    parents: Dict[str, Optional[str]] = {}
    for deck_id, node in lookup.items():
        parent_id = node.parent_deck_id
        parents[deck_id] = parent_id if parent_id in lookup and parent_id != deck_id else None

    for deck_id in _break_cycles(list(lookup), parents, position):
        logger.warning(f"Deck {deck_id} is part of a parent cycle; shown as a top-level deck")

    roots: List[DeckWithStats] = []
    for node in nodes:
        is_first = lookup[node.id] is node
        parent_id = parents[node.id] if is_first else node.parent_deck_id
        if parent_id is not None and parent_id in lookup and parent_id != node.id:
            lookup[parent_id].sub_decks.append(node)
            continue

        if node.parent_deck_id is not None:
            node.orphaned = True
            logger.warning(
                f"Deck {node.id} references parent {node.parent_deck_id} "
                f"that cannot be used; shown as a top-level deck"
            )
        roots.append(node)

    logger.debug(f"Built deck tree with {len(roots)} roots from {len(nodes)} decks")
    return roots
