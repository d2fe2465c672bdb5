"""
Study sessions.

A StudySession walks once through a fixed list of due cards. The user flips
the current card to see its back, then answers; each answer is recorded
through the ReviewScheduler before the session moves on.
"""

import datetime
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from config import settings
from flashdeck.errors import InvariantViolation
from flashdeck.events import ChangeEvent, ChangeKind, EntityType, publish, session_completed
from flashdeck.models import Flashcard
from flashdeck.scheduler import ReviewScheduler
from flashdeck.srs import SRSEngine
from flashdeck.timeutils import to_utc, utc_now

logger = logging.getLogger("flashdeck")


class SessionState(Enum):
    """States of a study session."""

    PRESENTING = "presenting"
    COMPLETED = "completed"


def select_due_cards(
    cards: Iterable[Flashcard],
    now: datetime.datetime,
    limit: int = settings.STUDY_BATCH_SIZE,
) -> List[Flashcard]:
    """
    Pick the cards to study from a deck.

    Args:
        cards: All cards of the deck
        now: Reference instant
        limit: Maximum number of cards in the session

    Returns:
        Due cards, earliest next review first, at most ``limit`` of them
    """
    due_cards = [card for card in cards if SRSEngine.is_due(card, now)]
    due_cards.sort(key=lambda card: to_utc(card.next_review))
    return due_cards[:limit]


class StudySession:
    """
    Finite-state walk through a list of due cards.

    The session starts presenting the first card face down. ``flip`` turns
    the card over; ``answer`` is only accepted face up, records the review
    and moves to the next card face down. After the last card the session is
    completed and accepts no further transitions.
    """

    def __init__(
        self,
        deck_id: str,
        cards: Sequence[Flashcard],
        scheduler: ReviewScheduler,
        started_at: Optional[datetime.datetime] = None,
    ):
        """
        Initialize a study session.

        Args:
            deck_id: The ID of the deck being studied
            cards: The cards to present, in order
            scheduler: Scheduler used to record each answer
            started_at: Start time of the session (defaults to now)
        """
        self.deck_id = deck_id
        self.cards: List[Flashcard] = list(cards)
        self.scheduler = scheduler
        self.started_at = started_at or utc_now()

        self.index = 0
        self.face_up = False
        self.visited: Set[str] = set()
        self.correct_answers = 0
        self.incorrect_answers = 0
        self._answer_in_flight = False

        self.state = SessionState.PRESENTING if self.cards else SessionState.COMPLETED

        logger.info(f"Created study session for deck {deck_id} with {len(self.cards)} cards")

    @property
    def is_completed(self) -> bool:
        return self.state is SessionState.COMPLETED

    @property
    def current_card(self) -> Optional[Flashcard]:
        """The card being presented, or None once the session is completed."""
        if self.is_completed:
            return None
        return self.cards[self.index]

    @property
    def remaining(self) -> int:
        return len(self.cards) - self.index

    @property
    def progress(self) -> float:
        """Fraction of the session reached, counting the card on screen."""
        if not self.cards:
            return 1.0
        return min(self.index + 1, len(self.cards)) / len(self.cards)

    def flip(self) -> bool:
        """
        Turn the current card over.

        Returns:
            Whether the card is now face up

        Raises:
            InvariantViolation: If the session is completed
        """
        if self.is_completed:
            raise InvariantViolation("Cannot flip a card in a completed session")

        self.face_up = not self.face_up
        return self.face_up

    async def answer(self, was_correct: bool) -> Flashcard:
        """
        Record the user's answer for the current card and advance.

        If recording the review fails, the session stays on the same card,
        still face up, and the error is raised to the caller.

        Args:
            was_correct: Whether the user recalled the card

        Returns:
            The card as stored after the review

        Raises:
            InvariantViolation: If the session is completed, the card has not
                been flipped, or another answer is still being recorded
        """
        if self.is_completed:
            raise InvariantViolation("Cannot answer in a completed session")
        if not self.face_up:
            raise InvariantViolation("Flip the card before answering")
        if self._answer_in_flight:
            raise InvariantViolation("An answer for this card is already being recorded")

        card = self.cards[self.index]
        self._answer_in_flight = True
        try:
            updated = await self.scheduler.review(card, was_correct)
        finally:
            self._answer_in_flight = False

        self.visited.add(card.id)
        if was_correct:
            self.correct_answers += 1
        else:
            self.incorrect_answers += 1

        self.index += 1
        self.face_up = False

        if self.index == len(self.cards):
            self._complete()

        return updated

    def _complete(self) -> None:
        self.state = SessionState.COMPLETED
        summary = self.summary()
        logger.info(
            f"Completed study session for deck {self.deck_id}, "
            f"reviewed {summary['cards_reviewed']} cards"
        )
        publish(
            session_completed,
            self,
            event=ChangeEvent(
                EntityType.FLASHCARD,
                ChangeKind.REVIEWED,
                tuple(card.id for card in self.cards if card.id in self.visited),
                deck_id=self.deck_id,
            ),
            summary=summary,
        )

    def summary(self) -> Dict[str, Any]:
        """
        Get summary statistics for the session so far.

        Returns:
            Dictionary with session summary data
        """
        reviewed = self.correct_answers + self.incorrect_answers
        duration = utc_now() - to_utc(self.started_at)

        return {
            "deck_id": self.deck_id,
            "state": self.state.value,
            "started_at": self.started_at,
            "duration_seconds": duration.total_seconds(),
            "total_cards": len(self.cards),
            "cards_reviewed": reviewed,
            "correct_answers": self.correct_answers,
            "incorrect_answers": self.incorrect_answers,
            "accuracy": 0 if reviewed == 0 else self.correct_answers / reviewed,
        }
