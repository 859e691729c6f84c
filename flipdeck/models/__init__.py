"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application, such as flashcard sets and configuration.
"""

from .config import AppConfig
from .flashcards import Card, FlashcardSet

__all__ = ["AppConfig", "Card", "FlashcardSet"]
