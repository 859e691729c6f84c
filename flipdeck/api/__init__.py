"""
Remote Store Layer.

This package handles all communication with the shared remote flashcard store.
"""

from .client import RemoteStoreClient

__all__ = ["RemoteStoreClient"]
