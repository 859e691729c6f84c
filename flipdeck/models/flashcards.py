"""
Pydantic models for flashcard sets and their cards.
"""

import time
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


class Card(BaseModel):
    """A single question/answer pair, optionally illustrated with images."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    id: str = Field(default_factory=new_id)
    question: str = ""
    question_image: str | None = None
    answer: str = ""
    answer_image: str | None = None

    @field_validator("question_image", "answer_image")
    @classmethod
    def empty_image_is_none(cls, v: str | None) -> str | None:
        """Stored rows use empty strings and nulls interchangeably."""
        return v or None

    @property
    def is_blank(self) -> bool:
        return not self.question.strip() and not self.answer.strip()


class FlashcardSet(BaseModel):
    """
    A named, ordered collection of cards.

    Timestamps are epoch milliseconds. Card order is insertion order and card
    identifiers must be unique within the set.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=new_id)
    title: str = ""
    description: str = ""
    cards: list[Card] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = 0

    @field_validator("description", mode="before")
    @classmethod
    def none_description_is_empty(cls, v: str | None) -> str:
        return v or ""

    @model_validator(mode="after")
    def check_invariants(self) -> "FlashcardSet":
        """Fills a missing update time and enforces the set invariants."""
        if not self.updated_at:
            self.updated_at = self.created_at
        if self.updated_at < self.created_at:
            raise ValueError(
                f"updatedAt ({self.updated_at}) precedes createdAt ({self.created_at})."
            )
        seen: set[str] = set()
        for card in self.cards:
            if card.id in seen:
                raise ValueError(f"Duplicate card id '{card.id}' in set '{self.id}'.")
            seen.add(card.id)
        return self

    @property
    def is_studyable(self) -> bool:
        return len(self.cards) > 0

    def with_cards(self, cards: list[Card]) -> "FlashcardSet":
        """Returns a copy of this set whose card list is replaced by `cards`."""
        return FlashcardSet(
            id=self.id,
            title=self.title,
            description=self.description,
            cards=list(cards),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def stamped(self, timestamp_ms: int | None = None) -> "FlashcardSet":
        """Returns a copy with `updated_at` bumped, never below `created_at`."""
        stamp = max(timestamp_ms or now_ms(), self.created_at, self.updated_at)
        return self.model_copy(update={"updated_at": stamp})

    def to_cache_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
