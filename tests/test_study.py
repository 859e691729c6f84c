"""
Tests for the flip-card study session.
"""

import pytest

from flipdeck.core.study import StudySession
from flipdeck.exceptions import NotStudyableError
from flipdeck.models.flashcards import FlashcardSet


def test_empty_set_cannot_be_studied(set_factory):
    with pytest.raises(NotStudyableError):
        StudySession(set_factory(n_cards=0))


def test_starts_on_first_question(set_factory):
    session = StudySession(set_factory(n_cards=3))
    assert session.index == 0
    assert not session.is_flipped
    assert session.is_first
    assert session.progress == pytest.approx(100 / 3)


def test_flip_toggles_sides(set_factory):
    session = StudySession(set_factory())
    session.flip()
    assert session.is_flipped
    session.flip()
    assert not session.is_flipped


def test_navigation_shows_question_side(set_factory):
    session = StudySession(set_factory(n_cards=2))
    session.flip()

    assert session.next()
    assert session.index == 1
    assert not session.is_flipped
    assert session.is_last
    assert not session.next()

    session.flip()
    assert session.previous()
    assert not session.is_flipped
    assert not session.previous()


def test_reset_and_seen_cards(set_factory):
    s = set_factory(n_cards=3)
    session = StudySession(s)
    session.next()
    session.next()
    session.reset()

    assert session.index == 0
    assert session.progress == pytest.approx(100 / 3)
    assert session.cards_seen == {c.id for c in s.cards}


def test_single_card_is_first_and_last():
    session = StudySession(
        FlashcardSet.model_validate(
            {"title": "One", "cards": [{"question": "q", "answer": "a"}]}
        )
    )
    assert session.is_first and session.is_last
    assert session.progress == 100
