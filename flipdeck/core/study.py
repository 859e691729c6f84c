"""
Flip-card study session state.
"""

from dataclasses import dataclass, field

from flipdeck.exceptions import NotStudyableError
from flipdeck.models.flashcards import Card, FlashcardSet


@dataclass
class StudySession:
    """Walks through a set's cards one at a time, question side first."""

    flashcard_set: FlashcardSet
    index: int = 0
    is_flipped: bool = False
    cards_seen: set[str] = field(default_factory=set, repr=False)

    def __post_init__(self):
        if not self.flashcard_set.is_studyable:
            raise NotStudyableError(
                f"Set '{self.flashcard_set.title}' has no cards to study."
            )
        self.cards_seen.add(self.current_card.id)

    @property
    def total(self) -> int:
        return len(self.flashcard_set.cards)

    @property
    def current_card(self) -> Card:
        return self.flashcard_set.cards[self.index]

    @property
    def progress(self) -> float:
        """Percentage of the way through the set, counting the current card."""
        return (self.index + 1) / self.total * 100

    @property
    def is_first(self) -> bool:
        return self.index == 0

    @property
    def is_last(self) -> bool:
        return self.index == self.total - 1

    def flip(self) -> None:
        self.is_flipped = not self.is_flipped

    def next(self) -> bool:
        """Moves to the next card, question side up. Returns False at the end."""
        if self.is_last:
            return False
        self.index += 1
        self.is_flipped = False
        self.cards_seen.add(self.current_card.id)
        return True

    def previous(self) -> bool:
        if self.is_first:
            return False
        self.index -= 1
        self.is_flipped = False
        return True

    def reset(self) -> None:
        self.index = 0
        self.is_flipped = False
