"""
Core data models for the Flashdeck study library.

This module defines the data structures for decks, flashcards, the derived
per-deck statistics, and the typed patches used to update stored records.
"""

import datetime
import uuid
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, Dict, List, Optional, Union

from flashdeck.errors import ValidationError
from flashdeck.timeutils import format_timestamp, to_utc, utc_now


class Difficulty(IntEnum):
    """
    Ordinal difficulty of a flashcard.

    0 - New, never answered correctly
    1 - Easy
    2 - Medium
    3 - Hard
    """

    NEW = 0
    EASY = 1
    MEDIUM = 2
    HARD = 3

    @property
    def label(self) -> str:
        """Human-readable name of the level."""
        return DIFFICULTY_LABELS[self]


DIFFICULTY_LABELS = {
    Difficulty.NEW: "New",
    Difficulty.EASY: "Easy",
    Difficulty.MEDIUM: "Medium",
    Difficulty.HARD: "Hard",
}

DECK_COLORS = [
    "#3b82f6",  # Blue
    "#8b5cf6",  # Purple
    "#10b981",  # Green
    "#f59e0b",  # Orange
    "#ef4444",  # Red
    "#06b6d4",  # Cyan
    "#84cc16",  # Lime
    "#f97316",  # Dark orange
]

DEFAULT_DECK_COLOR = DECK_COLORS[0]


def coerce_difficulty(value: Union[Difficulty, int]) -> Difficulty:
    """Convert a raw value to a Difficulty, rejecting anything outside 0-3."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Difficulty must be an integer in 0-3, got {value!r}")
    try:
        return Difficulty(value)
    except ValueError:
        raise ValidationError(f"Difficulty must be an integer in 0-3, got {value!r}") from None


def _timestamp_or_now(value: Any) -> datetime.datetime:
    return to_utc(value) if value else utc_now()


class _Unset:
    """Marker for patch fields that should be left unchanged."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass
class Deck:
    """
    Represents a named, colored collection of flashcards.

    Attributes:
        id: Unique identifier for the deck
        name: Name of the deck
        description: Optional description of the deck contents
        color: Color token from the deck palette
        parent_deck_id: ID of the parent deck, or None for a top-level deck
        created_at: Timestamp when the deck was created
        updated_at: Timestamp of the last change to the deck
    """

    name: str
    description: Optional[str] = None
    color: str = DEFAULT_DECK_COLOR
    parent_deck_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime.datetime = field(default_factory=utc_now)
    updated_at: datetime.datetime = field(default_factory=utc_now)

    def validate(self) -> None:
        """Raise ValidationError if the deck cannot be stored."""
        if not self.name or not self.name.strip():
            raise ValidationError("Deck name must not be empty")
        if not isinstance(self.color, str):
            raise ValidationError("Deck color must be a string")
        if self.parent_deck_id is not None and self.parent_deck_id == self.id:
            raise ValidationError(f"Deck {self.id} cannot be its own parent")

    def to_dict(self) -> Dict[str, Any]:
        """Convert the deck to a dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "parent_deck_id": self.parent_deck_id,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deck":
        """Create a deck from a dictionary."""
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            name=data["name"],
            description=data.get("description"),
            color=data.get("color") or DEFAULT_DECK_COLOR,
            parent_deck_id=data.get("parent_deck_id"),
            created_at=_timestamp_or_now(data.get("created_at")),
            updated_at=_timestamp_or_now(data.get("updated_at")),
        )


@dataclass
class DeckWithStats(Deck):
    """
    A deck together with statistics derived from its cards.

    None of these fields are persisted; they are recomputed on every read.
    Counts cover only the deck's own cards, not those of its sub-decks.

    Attributes:
        total_cards: Number of cards in the deck
        cards_to_review: Number of cards due at the reference instant
        new_cards: Number of cards with difficulty NEW
        sub_decks: Child decks in the deck tree
        orphaned: True if the declared parent could not be honoured
    """

    total_cards: int = 0
    cards_to_review: int = 0
    new_cards: int = 0
    sub_decks: List["DeckWithStats"] = field(default_factory=list)
    orphaned: bool = False

    @classmethod
    def from_deck(cls, deck: Deck, **stats: Any) -> "DeckWithStats":
        """Wrap a plain deck, copying its stored fields."""
        return cls(
            id=deck.id,
            name=deck.name,
            description=deck.description,
            color=deck.color,
            parent_deck_id=deck.parent_deck_id,
            created_at=deck.created_at,
            updated_at=deck.updated_at,
            **stats,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the deck, its statistics and its sub-decks to a dictionary."""
        data = super().to_dict()
        data.update(
            {
                "total_cards": self.total_cards,
                "cards_to_review": self.cards_to_review,
                "new_cards": self.new_cards,
                "orphaned": self.orphaned,
                "sub_decks": [child.to_dict() for child in self.sub_decks],
            }
        )
        return data


@dataclass
class Flashcard:
    """
    Represents a flashcard with front and back content and scheduling state.

    Attributes:
        deck_id: ID of the deck this card belongs to
        front: Text content for the front of the card
        back: Text content for the back of the card
        difficulty: Current difficulty level
        next_review: Instant from which the card is eligible for study
        review_count: Number of completed reviews
        id: Unique identifier for the flashcard
        created_at: Timestamp when the card was created
        updated_at: Timestamp of the last change to the card
    """

    deck_id: str
    front: str
    back: str
    difficulty: Difficulty = Difficulty.NEW
    next_review: datetime.datetime = field(default_factory=utc_now)
    review_count: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime.datetime = field(default_factory=utc_now)
    updated_at: datetime.datetime = field(default_factory=utc_now)

    def validate(self) -> None:
        """Raise ValidationError if the card cannot be stored."""
        if not self.deck_id:
            raise ValidationError("Flashcard must belong to a deck")
        if not self.front or not self.front.strip():
            raise ValidationError("Flashcard front must not be empty")
        if not self.back or not self.back.strip():
            raise ValidationError("Flashcard back must not be empty")
        coerce_difficulty(self.difficulty)
        if self.review_count < 0:
            raise ValidationError("Review count must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert the flashcard to a dictionary."""
        return {
            "id": self.id,
            "deck_id": self.deck_id,
            "front": self.front,
            "back": self.back,
            "difficulty": int(self.difficulty),
            "next_review": format_timestamp(self.next_review),
            "review_count": self.review_count,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flashcard":
        """Create a flashcard from a dictionary."""
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            deck_id=data["deck_id"],
            front=data["front"],
            back=data["back"],
            difficulty=coerce_difficulty(int(data.get("difficulty", 0))),
            next_review=_timestamp_or_now(data.get("next_review")),
            review_count=int(data.get("review_count", 0)),
            created_at=_timestamp_or_now(data.get("created_at")),
            updated_at=_timestamp_or_now(data.get("updated_at")),
        )


@dataclass(frozen=True)
class CardReviewPatch:
    """The scheduling fields written back after a review, always together."""

    difficulty: Difficulty
    next_review: datetime.datetime
    review_count: int


@dataclass(frozen=True)
class FlashcardPatch:
    """Content edits to a flashcard. None leaves a side unchanged."""

    front: Optional[str] = None
    back: Optional[str] = None

    def apply_to(self, card: Flashcard) -> Flashcard:
        """Return a copy of the card with the edits applied."""
        updated = replace(card)
        if self.front is not None:
            updated.front = self.front.strip()
        if self.back is not None:
            updated.back = self.back.strip()
        return updated


@dataclass(frozen=True)
class DeckPatch:
    """
    Edits to a deck.

    Fields left as UNSET are not changed. Setting parent_deck_id to None
    turns the deck into a top-level deck.
    """

    name: Any = UNSET
    description: Any = UNSET
    color: Any = UNSET
    parent_deck_id: Any = UNSET

    def changed_fields(self) -> Dict[str, Any]:
        """Map of field name to new value for every field that is set."""
        return {
            name: value
            for name, value in (
                ("name", self.name),
                ("description", self.description),
                ("color", self.color),
                ("parent_deck_id", self.parent_deck_id),
            )
            if value is not UNSET
        }

    def apply_to(self, deck: Deck) -> Deck:
        """Return a copy of the deck with the edits applied."""
        changes = self.changed_fields()
        if isinstance(changes.get("name"), str):
            changes["name"] = changes["name"].strip()
        return replace(deck, **changes)
