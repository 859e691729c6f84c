"""
Translation between remote table rows and the in-memory domain models.

Remote rows use snake_case columns and ISO-8601 timestamps; the domain uses
epoch milliseconds.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from flipdeck.models.flashcards import Card, FlashcardSet

SETS_TABLE = "flashcard_sets"
CARDS_TABLE = "flashcards"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def ms_to_datetime(timestamp_ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=timestamp_ms)


def ms_to_iso(timestamp_ms: int) -> str:
    return ms_to_datetime(timestamp_ms).isoformat()


def iso_to_ms(value: str | None) -> int:
    """Parses a PostgREST timestamp (with or without offset) into epoch ms."""
    if not value:
        return 0
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (parsed - EPOCH) // timedelta(milliseconds=1)


def card_from_row(row: dict[str, Any]) -> Card:
    return Card(
        id=str(row["id"]),
        question=row.get("question") or "",
        question_image=row.get("question_image"),
        answer=row.get("answer") or "",
        answer_image=row.get("answer_image"),
    )


def set_from_row(row: dict[str, Any], card_rows: list[dict[str, Any]]) -> FlashcardSet:
    """Assembles a full set from its row and its (already ordered) card rows."""
    created_at = iso_to_ms(row.get("created_at"))
    updated_at = max(iso_to_ms(row.get("updated_at")), created_at)
    return FlashcardSet(
        id=str(row["id"]),
        title=row.get("title") or "",
        description=row.get("description") or "",
        cards=[card_from_row(r) for r in card_rows],
        created_at=created_at,
        updated_at=updated_at,
    )


def set_to_row(flashcard_set: FlashcardSet) -> dict[str, Any]:
    return {
        "id": flashcard_set.id,
        "title": flashcard_set.title,
        "description": flashcard_set.description or None,
        "created_at": ms_to_iso(flashcard_set.created_at),
        "updated_at": ms_to_iso(flashcard_set.updated_at),
    }


def cards_to_rows(flashcard_set: FlashcardSet) -> list[dict[str, Any]]:
    """
    Builds insert rows for every card of the set. Each row is stamped one
    millisecond after the previous, so ordering by created_at returns the
    cards in their list order.
    """
    base = ms_to_datetime(flashcard_set.updated_at)
    return [
        {
            "id": card.id,
            "set_id": flashcard_set.id,
            "question": card.question,
            "question_image": card.question_image,
            "answer": card.answer,
            "answer_image": card.answer_image,
            "created_at": (base + timedelta(milliseconds=i)).isoformat(),
        }
        for i, card in enumerate(flashcard_set.cards)
    ]
