"""
Deck statistics.

Per-deck counts are computed from a deck's own cards at a reference instant.
Totals are sums of per-deck counts, so they come out the same whether the
decks are walked as a flat list or as a tree.
"""

import datetime
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from flashdeck.models import Deck, DeckWithStats, Difficulty, Flashcard
from flashdeck.timeutils import to_utc


@dataclass(frozen=True)
class DeckStats:
    """Card counts for a deck or a group of decks."""

    total_cards: int = 0
    cards_to_review: int = 0
    new_cards: int = 0

    def __add__(self, other: "DeckStats") -> "DeckStats":
        return DeckStats(
            total_cards=self.total_cards + other.total_cards,
            cards_to_review=self.cards_to_review + other.cards_to_review,
            new_cards=self.new_cards + other.new_cards,
        )

    def as_dict(self) -> Dict[str, int]:
        return {
            "total_cards": self.total_cards,
            "cards_to_review": self.cards_to_review,
            "new_cards": self.new_cards,
        }


def compute_stats(cards: Iterable[Flashcard], now: datetime.datetime) -> DeckStats:
    """
    Count total, due and new cards.

    Args:
        cards: The cards of a single deck
        now: Reference instant; a card due exactly at it counts as due

    Returns:
        The deck's statistics
    """
    now = to_utc(now)
    total = due = new = 0
    for card in cards:
        total += 1
        if to_utc(card.next_review) <= now:
            due += 1
        if card.difficulty == Difficulty.NEW:
            new += 1
    return DeckStats(total_cards=total, cards_to_review=due, new_cards=new)


def stats_of(deck: DeckWithStats) -> DeckStats:
    """The statistics carried by a single deck, excluding its sub-decks."""
    return DeckStats(deck.total_cards, deck.cards_to_review, deck.new_cards)


def attach_stats(
    decks: Sequence[Deck],
    cards_by_deck: Mapping[str, Sequence[Flashcard]],
    now: datetime.datetime,
) -> List[DeckWithStats]:
    """
    Pair every deck with the statistics of its cards.

    Decks missing from ``cards_by_deck`` are treated as empty.
    """
    result = []
    for deck in decks:
        stats = compute_stats(cards_by_deck.get(deck.id, ()), now)
        result.append(DeckWithStats.from_deck(deck, **stats.as_dict()))
    return result


def iter_tree(forest: Iterable[DeckWithStats]) -> Iterator[DeckWithStats]:
    """Walk a deck forest depth-first, parents before children, in sibling order."""
    stack = list(reversed(list(forest)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.sub_decks))


def summarize(decks: Iterable[DeckWithStats]) -> DeckStats:
    """Dashboard totals over a collection of decks."""
    total = DeckStats()
    for deck in decks:
        total = total + stats_of(deck)
    return total


def first_due_deck(decks: Iterable[DeckWithStats]) -> Optional[DeckWithStats]:
    """The first deck, in the given order, that has cards to review."""
    return next((deck for deck in decks if deck.cards_to_review > 0), None)


def subtree_stats(node: DeckWithStats) -> DeckStats:
    """Statistics of a deck plus all of its descendants."""
    return summarize(iter_tree([node]))
