"""
Flipdeck: flashcard study sets shared through a remote store, with an offline cache.
"""

__version__ = "0.1.0"
