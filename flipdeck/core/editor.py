"""
Assembles a set from user input before it is handed to the sync layer.
"""

from flipdeck.exceptions import SetValidationError
from flipdeck.models.flashcards import Card, FlashcardSet, new_id, now_ms


def new_card(
    question: str,
    answer: str,
    question_image: str | None = None,
    answer_image: str | None = None,
) -> Card:
    return Card(
        id=new_id(),
        question=question,
        answer=answer,
        question_image=question_image,
        answer_image=answer_image,
    )


def prepare_set(
    title: str,
    description: str,
    cards: list[Card],
    existing: FlashcardSet | None = None,
) -> FlashcardSet:
    """
    Validates editor input and builds the set to save.

    Blank cards (no question and no answer) are dropped. When editing, the
    existing set's id and creation time are kept.

    Raises:
        SetValidationError: If the title is blank or no card has content.
    """
    title = title.strip()
    if not title:
        raise SetValidationError("Please enter a title for your study set.")

    valid_cards = [c for c in cards if not c.is_blank]
    if not valid_cards:
        raise SetValidationError("Please add at least one card with content.")

    if existing is not None:
        return FlashcardSet(
            id=existing.id,
            title=title,
            description=description,
            cards=valid_cards,
            created_at=existing.created_at,
            updated_at=existing.updated_at,
        )

    created_at = now_ms()
    return FlashcardSet(
        title=title,
        description=description,
        cards=valid_cards,
        created_at=created_at,
        updated_at=created_at,
    )


def find_card(flashcard_set: FlashcardSet, card_ref: str) -> Card:
    """
    Finds a card by full id, or by a unique id prefix as shown by `show`.

    Raises:
        SetValidationError: If no card, or more than one, matches.
    """
    matches = [c for c in flashcard_set.cards if c.id == card_ref]
    if not matches:
        matches = [c for c in flashcard_set.cards if c.id.startswith(card_ref)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise SetValidationError(
            f"'{card_ref}' matches {len(matches)} cards; use more characters."
        )
    raise SetValidationError(f"No card '{card_ref}' in set '{flashcard_set.title}'.")


def edit_details(
    existing: FlashcardSet,
    title: str | None = None,
    description: str | None = None,
) -> FlashcardSet:
    """Changes the title and/or description; fields left as None are kept."""
    return prepare_set(
        existing.title if title is None else title,
        existing.description if description is None else description,
        existing.cards,
        existing=existing,
    )


def update_card(existing: FlashcardSet, card_ref: str, **changes) -> FlashcardSet:
    """
    Replaces one card's fields in place, keeping its id and position.

    `changes` takes any of question, answer, question_image and answer_image;
    None values are ignored and an empty image string removes the image.
    """
    target = find_card(existing, card_ref)
    updates = {k: v for k, v in changes.items() if v is not None}
    replaced = Card(**{**target.model_dump(), **updates})
    cards = [replaced if c.id == target.id else c for c in existing.cards]
    return prepare_set(existing.title, existing.description, cards, existing=existing)


def remove_card(existing: FlashcardSet, card_ref: str) -> FlashcardSet:
    """
    Drops one card from the set.

    Raises:
        SetValidationError: If the card is unknown or it is the last one with content.
    """
    target = find_card(existing, card_ref)
    cards = [c for c in existing.cards if c.id != target.id]
    return prepare_set(existing.title, existing.description, cards, existing=existing)
