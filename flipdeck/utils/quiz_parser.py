"""
Parses "speed quiz" text, e.g. pasted chatbot output, into cards.

The format alternates questions and answers separated by lines of `---`:

    Capital of Sweden?
    ---
    Stockholm
    ---
    Largest city in Sweden?
    ---
    Stockholm
"""

from flipdeck.exceptions import QuizParseError
from flipdeck.models.flashcards import Card, new_id

SEPARATOR = "---"


def parse_quiz_text(text: str) -> list[Card]:
    """
    Pairs consecutive non-empty sections into question/answer cards.
    A trailing question without an answer is ignored.

    Raises:
        QuizParseError: If the input is blank or yields no complete pair.
    """
    if not text.strip():
        raise QuizParseError("No input. Paste the quiz text first.")

    sections = [s.strip() for s in text.split(SEPARATOR)]
    sections = [s for s in sections if s]

    cards = [
        Card(id=new_id(), question=sections[i], answer=sections[i + 1])
        for i in range(0, len(sections) - 1, 2)
    ]

    if not cards:
        raise QuizParseError(
            f"Could not parse any question-answer pairs. "
            f"Make sure to use '{SEPARATOR}' as separator."
        )
    return cards
