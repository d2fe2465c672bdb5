"""
Tests for assembling decks into a forest.
"""

import itertools
import logging

import pytest

from flashdeck.models import Deck, DeckWithStats
from flashdeck.stats import iter_tree
from flashdeck.tree import build_tree


def deck(deck_id, parent=None, **stats):
    return DeckWithStats(id=deck_id, name=f"Deck {deck_id}", parent_deck_id=parent, **stats)


def shape(forest):
    """Reduce a forest to nested (id, children) tuples for comparison."""
    return [(node.id, shape(node.sub_decks)) for node in forest]


def test_roots_keep_input_order():
    forest = build_tree([deck("X"), deck("Y"), deck("Z")])

    assert shape(forest) == [("X", []), ("Y", []), ("Z", [])]


def test_siblings_keep_input_order():
    forest = build_tree([deck("P"), deck("c2", "P"), deck("c1", "P"), deck("c3", "P")])

    assert shape(forest) == [("P", [("c2", []), ("c1", []), ("c3", [])])]


@pytest.mark.parametrize("order", list(itertools.permutations(["A", "B", "C"])))
def test_chain_is_independent_of_input_order(order):
    """Test that A -> B -> C is built whatever order the decks arrive in."""
    decks = {"A": deck("A"), "B": deck("B", "A"), "C": deck("C", "B")}

    forest = build_tree([decks[deck_id] for deck_id in order])

    assert shape(forest) == [("A", [("B", [("C", [])])])]


def test_missing_parent_becomes_flagged_root(caplog):
    """Test that a deck whose parent is not present is kept as a root."""
    with caplog.at_level(logging.WARNING, logger="flashdeck"):
        forest = build_tree([deck("A"), deck("B", "ghost")])

    assert shape(forest) == [("A", []), ("B", [])]
    assert forest[0].orphaned is False
    assert forest[1].orphaned is True
    assert "ghost" in caplog.text


def test_self_parent_becomes_root():
    forest = build_tree([deck("A", "A")])

    assert shape(forest) == [("A", [])]
    assert forest[0].orphaned is True


def test_cycle_is_broken_without_losing_decks():
    """Test that a parent cycle still yields a finite forest with every deck."""
    decks = [deck("A", "C"), deck("B", "A"), deck("C", "B"), deck("D")]

    forest = build_tree(decks)

    assert shape(forest) == [("A", [("B", [("C", [])])]), ("D", [])]
    assert forest[0].orphaned is True
    assert sorted(node.id for node in iter_tree(forest)) == ["A", "B", "C", "D"]


def test_two_deck_cycle_with_tail():
    """Test a cycle whose members also have children outside the cycle."""
    decks = [deck("leaf", "B"), deck("B", "A"), deck("A", "B")]

    forest = build_tree(decks)

    # B comes before A in the input, so B is detached from the cycle
    assert shape(forest) == [("B", [("leaf", []), ("A", [])])]


def test_duplicate_ids_are_kept():
    forest = build_tree([deck("A"), deck("A"), deck("B", "A")])

    assert shape(forest) == [("A", [("B", [])]), ("A", [])]


def test_input_is_not_modified():
    """Test that repeated builds do not accumulate children."""
    decks = [deck("A"), deck("B", "A")]

    first = build_tree(decks)
    second = build_tree(decks)

    assert decks[0].sub_decks == []
    assert shape(first) == shape(second) == [("A", [("B", [])])]


def test_stats_are_carried_over():
    forest = build_tree([deck("A", total_cards=4, cards_to_review=1), deck("B", "A", new_cards=2)])

    assert forest[0].total_cards == 4
    assert forest[0].cards_to_review == 1
    assert forest[0].sub_decks[0].new_cards == 2


def test_plain_decks_are_accepted():
    forest = build_tree([Deck(id="A", name="A"), Deck(id="B", name="B", parent_deck_id="A")])

    assert isinstance(forest[0], DeckWithStats)
    assert shape(forest) == [("A", [("B", [])])]


def test_deep_chain():
    """Test a chain deeper than the default recursion limit."""
    decks = [deck("n0")] + [deck(f"n{i}", f"n{i - 1}") for i in range(1, 3000)]

    forest = build_tree(decks)

    assert len(forest) == 1
    assert sum(1 for _ in iter_tree(forest)) == 3000


def test_empty_input():
    assert build_tree([]) == []
