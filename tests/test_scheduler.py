"""
Tests for recording reviews through the ReviewScheduler.
"""

import asyncio
import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from flashdeck.errors import ConcurrentUpdate, NotFound, StoreUnavailable, ValidationError
from flashdeck.events import ChangeKind, card_reviewed
from flashdeck.models import CardReviewPatch, Deck, Difficulty, Flashcard
from flashdeck.scheduler import ReviewScheduler
from flashdeck.session import StudySession


@pytest.fixture
def stored_card(reference_time):
    """A card as the store currently has it."""
    return Flashcard(
        id="card-1",
        deck_id="deck-1",
        front="Front",
        back="Back",
        difficulty=Difficulty.NEW,
        next_review=reference_time,
        review_count=2,
    )


@pytest.fixture
def mock_repo(stored_card):
    """Flashcard repository that echoes the review patch back."""
    repo = MagicMock()
    repo.get = AsyncMock(return_value=stored_card)

    async def apply_review(card_id, patch, expected_review_count=None):
        return Flashcard(
            id=card_id,
            deck_id=stored_card.deck_id,
            front=stored_card.front,
            back=stored_card.back,
            difficulty=patch.difficulty,
            next_review=patch.next_review,
            review_count=patch.review_count,
        )

    repo.apply_review = AsyncMock(side_effect=apply_review)
    return repo


@pytest.fixture
def scheduler(mock_repo, reference_time):
    return ReviewScheduler(mock_repo, now_provider=lambda: reference_time, timezone_name="UTC")


@pytest.mark.asyncio
async def test_review_correct_new_card(scheduler, mock_repo, stored_card, reference_time):
    """Test that a correct answer on a new card schedules it for tomorrow."""
    updated = await scheduler.review(stored_card, True)

    assert updated.difficulty == Difficulty.EASY
    assert updated.next_review == reference_time + datetime.timedelta(days=1)
    assert updated.review_count == 3

    mock_repo.apply_review.assert_awaited_once()
    args, kwargs = mock_repo.apply_review.call_args
    assert args[0] == "card-1"
    assert args[1] == CardReviewPatch(
        Difficulty.EASY, reference_time + datetime.timedelta(days=1), 3
    )
    assert kwargs["expected_review_count"] == 2


@pytest.mark.asyncio
async def test_review_incorrect_medium_card(scheduler, mock_repo, stored_card, reference_time):
    """Test that a lapse resets a medium card to easy with a one-day interval."""
    stored_card.difficulty = Difficulty.MEDIUM
    stored_card.review_count = 5

    updated = await scheduler.review("card-1", False)

    assert updated.difficulty == Difficulty.EASY
    assert updated.next_review == reference_time + datetime.timedelta(days=1)
    assert updated.review_count == 6


@pytest.mark.asyncio
async def test_review_uses_latest_stored_values(scheduler, mock_repo, stored_card, reference_time):
    """Test that the stored card wins over a stale copy held by the caller."""
    stale = Flashcard(
        id="card-1", deck_id="deck-1", front="Front", back="Back", review_count=0
    )
    stored_card.difficulty = Difficulty.HARD
    stored_card.review_count = 9

    updated = await scheduler.review(stale, True)

    assert updated.difficulty == Difficulty.HARD
    assert updated.next_review == reference_time + datetime.timedelta(days=14)
    assert updated.review_count == 10


@pytest.mark.asyncio
async def test_review_explicit_time(scheduler, stored_card):
    review_time = datetime.datetime(2025, 3, 1, 8, 30, tzinfo=datetime.timezone.utc)

    updated = await scheduler.review(stored_card, True, now=review_time)

    assert updated.next_review == review_time + datetime.timedelta(days=1)


@pytest.mark.asyncio
async def test_review_missing_card(scheduler, mock_repo):
    mock_repo.get.return_value = None

    with pytest.raises(NotFound):
        await scheduler.review("missing", True)

    mock_repo.apply_review.assert_not_awaited()


@pytest.mark.asyncio
async def test_review_invalid_difficulty(scheduler, mock_repo, stored_card):
    """Test that an out-of-range difficulty is rejected before touching the store."""
    stored_card.difficulty = 7

    with pytest.raises(ValidationError):
        await scheduler.review(stored_card, True)

    mock_repo.get.assert_not_awaited()
    mock_repo.apply_review.assert_not_awaited()


@pytest.mark.asyncio
async def test_review_store_failure(scheduler, mock_repo, stored_card):
    mock_repo.apply_review.side_effect = StoreUnavailable("disk full")

    with pytest.raises(StoreUnavailable):
        await scheduler.review(stored_card, True)


@pytest.mark.asyncio
async def test_review_store_timeout(mock_repo, stored_card, reference_time):
    """Test that a store call that never returns surfaces as StoreUnavailable."""

    async def hang(card_id):
        await asyncio.sleep(10)

    mock_repo.get = AsyncMock(side_effect=hang)
    scheduler = ReviewScheduler(
        mock_repo, now_provider=lambda: reference_time, store_timeout=0.01
    )

    with pytest.raises(StoreUnavailable):
        await scheduler.review(stored_card, True)


@pytest.mark.asyncio
async def test_review_emits_event(scheduler, stored_card):
    received = []

    def on_review(sender, event, was_correct, **kwargs):
        received.append((event, was_correct))

    with card_reviewed.connected_to(on_review):
        await scheduler.review(stored_card, False)

    assert len(received) == 1
    event, was_correct = received[0]
    assert event.kind is ChangeKind.REVIEWED
    assert event.ids == ("card-1",)
    assert event.deck_id == "deck-1"
    assert was_correct is False


@pytest.mark.asyncio
async def test_review_no_event_on_failure(scheduler, mock_repo, stored_card):
    received = []
    mock_repo.apply_review.side_effect = StoreUnavailable("gone")

    with card_reviewed.connected_to(lambda sender, **kwargs: received.append(kwargs)):
        with pytest.raises(StoreUnavailable):
            await scheduler.review(stored_card, True)

    assert received == []


class TestSQLiteScheduling:
    """Review scheduling against a real SQLite store."""

    @pytest.mark.asyncio
    async def test_review_persists(self, deck_repo, card_repo, reference_time):
        await deck_repo.create(Deck(id="deck-1", name="Spanish"))
        card = await card_repo.create(
            Flashcard(deck_id="deck-1", front="hola", back="hello", next_review=reference_time)
        )
        scheduler = ReviewScheduler(card_repo, now_provider=lambda: reference_time)

        await scheduler.review(card, True)
        await scheduler.review(card.id, True)

        stored = await card_repo.get(card.id)
        assert stored.difficulty == Difficulty.EASY
        assert stored.review_count == 2
        assert stored.next_review == reference_time + datetime.timedelta(days=3)

    @pytest.mark.asyncio
    async def test_concurrent_review_detected(self, deck_repo, card_repo, reference_time):
        """Test that a review based on an outdated count is refused."""
        await deck_repo.create(Deck(id="deck-1", name="Spanish"))
        card = await card_repo.create(Flashcard(deck_id="deck-1", front="uno", back="one"))
        patch = CardReviewPatch(Difficulty.EASY, reference_time, 1)

        await card_repo.apply_review(card.id, patch, expected_review_count=0)

        with pytest.raises(ConcurrentUpdate):
            await card_repo.apply_review(card.id, patch, expected_review_count=0)

        assert issubclass(ConcurrentUpdate, StoreUnavailable)

    @pytest.mark.asyncio
    async def test_failing_receiver_counts_review_once(self, deck_repo, card_repo, reference_time):
        """Test that a subscriber error after the write does not lead to a second review."""
        await deck_repo.create(Deck(id="deck-1", name="Spanish"))
        card = await card_repo.create(
            Flashcard(deck_id="deck-1", front="hola", back="hello", next_review=reference_time)
        )
        scheduler = ReviewScheduler(card_repo, now_provider=lambda: reference_time)
        session = StudySession("deck-1", [card], scheduler)

        def broken(sender, **kwargs):
            raise RuntimeError("subscriber bug")

        with card_reviewed.connected_to(broken):
            session.flip()
            await session.answer(True)

        assert session.is_completed
        stored = await card_repo.get(card.id)
        assert stored.review_count == 1
        assert stored.difficulty == Difficulty.EASY


@pytest.mark.asyncio
async def test_failing_receiver_does_not_fail_review(scheduler, mock_repo, stored_card, caplog):
    """Test that a broken subscriber neither raises nor blocks other subscribers."""
    received = []

    def broken(sender, **kwargs):
        raise RuntimeError("subscriber bug")

    def healthy(sender, event, **kwargs):
        received.append(event)

    with card_reviewed.connected_to(broken), card_reviewed.connected_to(healthy):
        updated = await scheduler.review(stored_card, True)

    assert updated.review_count == 3
    mock_repo.apply_review.assert_awaited_once()
    assert [event.ids for event in received] == [("card-1",)]
    assert "subscriber bug" in caplog.text
