"""
Spaced Repetition System (SRS) module.

This module implements the difficulty/interval policy used to schedule
flashcard reviews: a correct answer keeps or promotes the card's difficulty
and pushes the next review out by a fixed number of days for that level, a
wrong answer steps the difficulty down and brings the card back tomorrow.
"""

import datetime
from typing import Dict, NamedTuple, Optional, Tuple, Union

from flashdeck.models import CardReviewPatch, Difficulty, Flashcard, coerce_difficulty
from flashdeck.timeutils import add_calendar_days, to_utc, utc_now


class ReviewOutcome(NamedTuple):
    """Difficulty and interval that follow a single review."""

    difficulty: Difficulty
    interval_days: int


class SRSEngine:
    """
    Difficulty/interval policy for flashcard reviews.

    Correct answers:
        NEW    -> EASY,   1 day
        EASY   -> EASY,   3 days
        MEDIUM -> MEDIUM, 7 days
        HARD   -> HARD,   14 days

    Incorrect answers lower the difficulty by one level (never below NEW)
    and schedule the card for the next day.
    """

    CORRECT_TRANSITIONS: Dict[Difficulty, Tuple[Difficulty, int]] = {
        Difficulty.NEW: (Difficulty.EASY, 1),
        Difficulty.EASY: (Difficulty.EASY, 3),
        Difficulty.MEDIUM: (Difficulty.MEDIUM, 7),
        Difficulty.HARD: (Difficulty.HARD, 14),
    }

    LAPSE_INTERVAL_DAYS = 1

    @staticmethod
    def next_state(
        current_difficulty: Union[Difficulty, int], was_correct: bool
    ) -> ReviewOutcome:
        """
        Compute the difficulty and interval that follow a review.

        Args:
            current_difficulty: The card's difficulty before the review (0-3)
            was_correct: Whether the user recalled the card

        Returns:
            The new difficulty and the interval in days (always >= 1)

        Raises:
            ValidationError: If the difficulty is outside 0-3
        """
        difficulty = coerce_difficulty(current_difficulty)

        if was_correct:
            new_difficulty, interval = SRSEngine.CORRECT_TRANSITIONS[difficulty]
            return ReviewOutcome(new_difficulty, interval)

        return ReviewOutcome(
            Difficulty(max(Difficulty.NEW, difficulty - 1)), SRSEngine.LAPSE_INTERVAL_DAYS
        )

    @staticmethod
    def schedule(
        card: Flashcard,
        was_correct: bool,
        current_time: Optional[datetime.datetime] = None,
        timezone_name: str = "UTC",
    ) -> CardReviewPatch:
        """
        Compute the scheduling fields of a card after a review.

        The card itself is not modified.

        Args:
            card: The flashcard that was reviewed
            was_correct: Whether the user recalled the card
            current_time: The instant of the review (defaults to now)
            timezone_name: Zone whose calendar the interval is counted in

        Returns:
            The patch to write back to the store
        """
        if current_time is None:
            current_time = utc_now()

        outcome = SRSEngine.next_state(card.difficulty, was_correct)

        return CardReviewPatch(
            difficulty=outcome.difficulty,
            next_review=add_calendar_days(current_time, outcome.interval_days, timezone_name),
            review_count=card.review_count + 1,
        )

    @staticmethod
    def is_due(card: Flashcard, current_time: Optional[datetime.datetime] = None) -> bool:
        """
        Check if a card is due for review.

        A card due exactly at the current time counts as due.
        """
        if current_time is None:
            current_time = utc_now()

        return to_utc(card.next_review) <= to_utc(current_time)
