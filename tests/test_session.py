"""
Tests for study sessions.
"""

import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from flashdeck.errors import InvariantViolation, StoreUnavailable
from flashdeck.events import session_completed
from flashdeck.models import Deck, Difficulty, Flashcard
from flashdeck.scheduler import ReviewScheduler
from flashdeck.session import SessionState, StudySession, select_due_cards


@pytest.fixture
def cards(reference_time):
    """Three due cards in a deck."""
    return [
        Flashcard(
            id=f"card-{i}",
            deck_id="deck-1",
            front=f"Card {i} Front",
            back=f"Card {i} Back",
            next_review=reference_time,
        )
        for i in range(1, 4)
    ]


@pytest.fixture
def mock_scheduler():
    scheduler = MagicMock()
    scheduler.review = AsyncMock(side_effect=lambda card, was_correct: card)
    return scheduler


@pytest.fixture
def session(cards, mock_scheduler, reference_time):
    return StudySession("deck-1", cards, mock_scheduler, started_at=reference_time)


class TestStudySession:
    """Tests for the StudySession state machine."""

    def test_initial_state(self, session, cards):
        assert session.state is SessionState.PRESENTING
        assert session.current_card is cards[0]
        assert session.face_up is False
        assert session.remaining == 3
        assert session.progress == pytest.approx(1 / 3)

    def test_flip_toggles(self, session):
        assert session.flip() is True
        assert session.flip() is False
        assert session.face_up is False

    @pytest.mark.asyncio
    async def test_full_walk(self, session, cards, mock_scheduler):
        """Test flipping and answering every card completes the session."""
        for card in cards:
            assert session.current_card is card
            session.flip()
            await session.answer(True)

        assert mock_scheduler.review.await_count == 3
        assert [call.args[0] for call in mock_scheduler.review.await_args_list] == cards
        assert session.is_completed
        assert session.current_card is None
        assert session.visited == {"card-1", "card-2", "card-3"}
        assert session.remaining == 0
        assert session.progress == 1.0

    @pytest.mark.asyncio
    async def test_answer_advances_face_down(self, session, cards):
        session.flip()
        await session.answer(False)

        assert session.index == 1
        assert session.face_up is False
        assert session.current_card is cards[1]
        assert session.incorrect_answers == 1

    @pytest.mark.asyncio
    async def test_answer_requires_flip(self, session, mock_scheduler):
        with pytest.raises(InvariantViolation):
            await session.answer(True)

        mock_scheduler.review.assert_not_awaited()
        assert session.index == 0

    @pytest.mark.asyncio
    async def test_failed_review_keeps_card(self, session, cards, mock_scheduler):
        """Test that a store failure leaves the session on the same card, face up."""
        mock_scheduler.review.side_effect = StoreUnavailable("offline")
        session.flip()

        with pytest.raises(StoreUnavailable):
            await session.answer(True)

        assert session.index == 0
        assert session.face_up is True
        assert session.visited == set()
        assert session.correct_answers == 0

        # The user can retry once the store is back
        mock_scheduler.review.side_effect = lambda card, was_correct: card
        await session.answer(True)
        assert session.index == 1

    @pytest.mark.asyncio
    async def test_answer_while_in_flight(self, session):
        session.flip()
        session._answer_in_flight = True

        with pytest.raises(InvariantViolation):
            await session.answer(True)

    @pytest.mark.asyncio
    async def test_completed_session_rejects_transitions(self, cards, mock_scheduler):
        session = StudySession("deck-1", cards[:1], mock_scheduler)
        session.flip()
        await session.answer(True)

        with pytest.raises(InvariantViolation):
            session.flip()
        with pytest.raises(InvariantViolation):
            await session.answer(True)

    def test_empty_session_is_completed(self, mock_scheduler):
        session = StudySession("deck-1", [], mock_scheduler)

        assert session.is_completed
        assert session.current_card is None
        assert session.progress == 1.0
        with pytest.raises(InvariantViolation):
            session.flip()

    @pytest.mark.asyncio
    async def test_summary(self, session):
        for was_correct in (True, False, True):
            session.flip()
            await session.answer(was_correct)

        summary = session.summary()

        assert summary["deck_id"] == "deck-1"
        assert summary["state"] == "completed"
        assert summary["total_cards"] == 3
        assert summary["cards_reviewed"] == 3
        assert summary["correct_answers"] == 2
        assert summary["incorrect_answers"] == 1
        assert summary["accuracy"] == pytest.approx(2 / 3)

    def test_summary_before_any_answer(self, session):
        summary = session.summary()

        assert summary["cards_reviewed"] == 0
        assert summary["accuracy"] == 0

    @pytest.mark.asyncio
    async def test_completion_event(self, session):
        received = []

        def on_complete(sender, event, summary, **kwargs):
            received.append((sender, event, summary))

        with session_completed.connected_to(on_complete):
            for _ in range(3):
                session.flip()
                await session.answer(True)

        assert len(received) == 1
        sender, event, summary = received[0]
        assert sender is session
        assert event.ids == ("card-1", "card-2", "card-3")
        assert event.deck_id == "deck-1"
        assert summary["correct_answers"] == 3


def test_select_due_cards(reference_time):
    """Test that only due cards are picked, earliest first, up to the limit."""
    cards = [
        Flashcard(
            deck_id="d",
            front=str(i),
            back=str(i),
            next_review=reference_time - datetime.timedelta(hours=i),
        )
        for i in range(5)
    ]
    cards.append(
        Flashcard(
            deck_id="d",
            front="later",
            back="later",
            next_review=reference_time + datetime.timedelta(seconds=1),
        )
    )

    selected = select_due_cards(cards, reference_time, limit=3)

    assert [card.front for card in selected] == ["4", "3", "2"]


def test_select_due_cards_default_limit(reference_time):
    cards = [
        Flashcard(deck_id="d", front="f", back="b", next_review=reference_time) for _ in range(25)
    ]

    assert len(select_due_cards(cards, reference_time)) == 20


@pytest.mark.asyncio
async def test_session_against_sqlite(deck_repo, card_repo, reference_time):
    """Test a full session updating the stored cards."""
    await deck_repo.create(Deck(id="deck-1", name="Capitals"))
    for front, back in [("France", "Paris"), ("Spain", "Madrid")]:
        await card_repo.create(
            Flashcard(deck_id="deck-1", front=front, back=back, next_review=reference_time)
        )
    scheduler = ReviewScheduler(card_repo, now_provider=lambda: reference_time)
    due = await card_repo.get_due("deck-1", reference_time)
    session = StudySession("deck-1", due, scheduler)

    session.flip()
    await session.answer(True)
    session.flip()
    await session.answer(False)

    assert session.is_completed
    stored = await card_repo.get_by_deck("deck-1")
    assert {card.review_count for card in stored} == {1}
    assert {card.difficulty for card in stored} == {Difficulty.EASY, Difficulty.NEW}
    assert await card_repo.get_due("deck-1", reference_time) == []
