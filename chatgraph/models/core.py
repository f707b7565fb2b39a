"""
Core data models for the chat knowledge graph.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

SENDER_HUMAN = 'human'
SENDER_AI = 'ai'
SENDERS = (SENDER_HUMAN, SENDER_AI)


class CandidateScope(str, Enum):
    """Which prior messages are compared against a new one."""
    OWNER = 'owner'
    GLOBAL = 'global'


class EdgeMode(str, Enum):
    """How CONTEXTUAL_LINK edges are written.

    APPEND adds a new edge on every ingestion, so re-ingesting the same pair
    yields parallel edges. MERGE keys the edge on the unordered message pair
    and updates similarity and timestamp in place.
    """
    APPEND = 'append'
    MERGE = 'merge'


@dataclass
class UserPreferences:
    """How the assistant should address a user."""
    language: str = 'vi'  # vi | en
    tone: str = 'friendly'  # friendly | formal | casual
    addressing_style: str = 'mình'  # tôi | mình | em
    interests: List[str] = field(default_factory=list)  # Canonical topic names


@dataclass
class User:
    """A conversation participant owning messages."""
    id: str
    name: str
    created_at: int
    last_active: int
    preferences: UserPreferences = field(default_factory=UserPreferences)

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError('User ID is required')


@dataclass(frozen=True)
class Message:
    """A single chat turn. Immutable once created."""
    id: str
    timestamp: int  # Unix seconds
    sender: str  # human | ai
    content: str
    embedding: Tuple[float, ...] = ()  # Empty when the embedding service failed
    topics: Tuple[str, ...] = ()  # Canonical topic names
    owner_id: Optional[str] = None  # None in the global-scope deployment

    def __post_init__(self):
        if not self.id:
            raise ValueError('Message ID is required')
        if self.sender not in SENDERS:
            raise ValueError(f'Sender must be one of {SENDERS}, got {self.sender!r}')
        # Normalize lists coming from JSON or collaborators
        object.__setattr__(self, 'embedding', tuple(float(v) for v in self.embedding))
        object.__setattr__(self, 'topics', tuple(self.topics))


@dataclass
class Topic:
    """A canonical tag from the fixed vocabulary. Deduplicated by name."""
    id: str
    name: str
    created_at: int


@dataclass
class SimilarityCandidate:
    """A prior message considered for a CONTEXTUAL_LINK."""
    message_id: str
    embedding: List[float]
    content: str


@dataclass
class ContextualLink:
    """An undirected, weighted link between two similar messages."""
    message_id_1: str
    message_id_2: str
    similarity: float
    timestamp: int

    def __post_init__(self):
        if not self.message_id_1 or not self.message_id_2:
            raise ValueError('Both message IDs are required for a contextual link')
        if self.message_id_1 == self.message_id_2:
            raise ValueError('A message cannot be linked to itself')
        if not math.isfinite(self.similarity):
            raise ValueError(f'Similarity must be finite, got {self.similarity}')

    @property
    def pair(self) -> frozenset:
        """Unordered key of the two linked messages."""
        return frozenset((self.message_id_1, self.message_id_2))


@dataclass
class IngestResult:
    """Advisory counts reported after a message has been committed."""
    message_id: str
    edges_created: int
    candidates_scanned: int
    topics: List[str] = field(default_factory=list)
