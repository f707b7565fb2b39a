"""
Exception hierarchy shared by the ingestion core and its collaborators.
"""

from typing import Optional


class ChatGraphError(Exception):
    """Base exception for the chat knowledge graph."""
    pass


class ConfigurationError(ChatGraphError):
    """Missing or invalid configuration detected at startup."""
    pass


class ConnectivityError(ChatGraphError):
    """The graph store could not be reached."""
    pass


class CollaboratorError(ChatGraphError):
    """An external service (embedding, label extraction, chat completion) failed."""
    pass


class PersistenceError(ChatGraphError):
    """A graph store operation failed.

    Structural failures abort the unit of work; auxiliary failures are
    logged and skipped by the unit of work itself.
    """

    def __init__(self, message: str, structural: bool = True):
        super().__init__(message)
        self.structural = structural


class IngestionError(PersistenceError):
    """A message could not be recorded; its unit of work was rolled back."""

    def __init__(self, message: str, message_id: Optional[str] = None):
        super().__init__(message, structural=True)
        self.message_id = message_id
