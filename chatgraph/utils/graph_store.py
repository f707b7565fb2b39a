"""
GraphStore contract: an atomic unit of work per ingested message.

Operations are split in two classes. Structural operations (message node,
ownership link, last-active update, candidate scan, commit) raise
PersistenceError and the caller must roll back. Auxiliary operations (topic
upsert, topic link, similarity edge) log and skip on failure so the rest of
the unit of work still commits.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

from ..models.core import (CandidateScope, ContextualLink, EdgeMode, Message, SimilarityCandidate, Topic, User)
from .errors import PersistenceError
from .identity import IdentityGenerator
from .logging_config import get_logger
from .timestamp_utils import now_seconds

logger = get_logger(__name__)

_OPEN = 'open'
_COMMITTED = 'committed'
_ROLLED_BACK = 'rolled_back'


class UnitOfWork(ABC):
    """One transaction against the graph store.

    Use as a context manager; leaving the block without commit() rolls back.
    """

    def __init__(self, id_generator: Optional[IdentityGenerator] = None):
        self.id_generator = id_generator or IdentityGenerator()
        self._state = _OPEN

    def __enter__(self) -> 'UnitOfWork':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._state == _OPEN:
            self.rollback()
        return False

    @property
    def is_open(self) -> bool:
        return self._state == _OPEN

    # Structural operations

    def create_message_node(self, message: Message) -> None:
        self._structural('create_message_node', self._create_message_node, message)

    def link_ownership(self, owner_id: str, message_id: str) -> None:
        _require(owner_id, 'owner_id')
        _require(message_id, 'message_id')
        self._structural('link_ownership', self._link_ownership, owner_id, message_id)

    def update_last_active(self, owner_id: str, timestamp: int) -> None:
        _require(owner_id, 'owner_id')
        self._structural('update_last_active', self._update_last_active, owner_id, int(timestamp))

    def fetch_similarity_candidates(self,
                                    message_id: str,
                                    scope: CandidateScope,
                                    owner_id: Optional[str] = None) -> List[SimilarityCandidate]:
        """All other messages in scope, never including message_id itself."""
        _require(message_id, 'message_id')
        scope = CandidateScope(scope)
        if scope is CandidateScope.OWNER:
            _require(owner_id, 'owner_id')

        candidates = self._structural('fetch_similarity_candidates', self._fetch_similarity_candidates, message_id, scope,
                                      owner_id)
        return [c for c in candidates if c.message_id != message_id]

    # Auxiliary operations

    def upsert_topic(self, name: str) -> Optional[Topic]:
        """Return the topic named name, creating it with a fresh id if absent. None on failure."""
        _require(name, 'name')
        return self._auxiliary('upsert_topic', self._upsert_topic, None, name, self.id_generator.new_id(), now_seconds())

    def link_message_topic(self, message_id: str, topic_name: str) -> bool:
        _require(message_id, 'message_id')
        _require(topic_name, 'topic_name')
        return self._auxiliary('link_message_topic', self._link_message_topic, False, message_id, topic_name)

    def create_similarity_edge(self,
                               message_id_1: str,
                               message_id_2: str,
                               similarity: float,
                               timestamp: int,
                               mode: EdgeMode = EdgeMode.APPEND) -> bool:
        link = ContextualLink(message_id_1=message_id_1,
                              message_id_2=message_id_2,
                              similarity=float(similarity),
                              timestamp=int(timestamp))
        return self._auxiliary('create_similarity_edge', self._create_similarity_edge, False, link, EdgeMode(mode))

    # Lifecycle

    def commit(self) -> None:
        self._ensure_open('commit')
        try:
            self._commit()
        except Exception as e:
            logger.error(f'Commit failed: {e}')
            self.rollback()
            raise PersistenceError(f'Failed to commit: {e}') from e
        self._state = _COMMITTED

    def rollback(self) -> None:
        if self._state != _OPEN:
            return
        self._state = _ROLLED_BACK
        try:
            self._rollback()
        except Exception as e:
            logger.error(f'Rollback failed: {e}')

    def _ensure_open(self, operation: str) -> None:
        if self._state != _OPEN:
            raise PersistenceError(f'Cannot {operation}: unit of work is {self._state}')

    def _structural(self, operation: str, func: Callable, *args) -> Any:
        self._ensure_open(operation)
        try:
            return func(*args)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f'Error in {operation}: {e}')
            raise PersistenceError(f'Failed to {operation}: {e}') from e

    def _auxiliary(self, operation: str, func: Callable, default: Any, *args) -> Any:
        self._ensure_open(operation)
        try:
            result = func(*args)
        except Exception as e:
            logger.warning(f'{operation} failed, skipping: {e}')
            return default
        # Writes that return nothing report success
        return True if result is None else result

    # Backend primitives

    @abstractmethod
    def _create_message_node(self, message: Message) -> None:
        ...

    @abstractmethod
    def _link_ownership(self, owner_id: str, message_id: str) -> None:
        ...

    @abstractmethod
    def _update_last_active(self, owner_id: str, timestamp: int) -> None:
        ...

    @abstractmethod
    def _upsert_topic(self, name: str, new_id: str, created_at: int) -> Topic:
        ...

    @abstractmethod
    def _link_message_topic(self, message_id: str, topic_name: str) -> None:
        ...

    @abstractmethod
    def _fetch_similarity_candidates(self, message_id: str, scope: CandidateScope,
                                     owner_id: Optional[str]) -> List[SimilarityCandidate]:
        ...

    @abstractmethod
    def _create_similarity_edge(self, link: ContextualLink, mode: EdgeMode) -> None:
        ...

    @abstractmethod
    def _commit(self) -> None:
        ...

    @abstractmethod
    def _rollback(self) -> None:
        ...


class GraphStore(ABC):
    """Persistence boundary for users, messages, topics and their relationships."""

    def __init__(self, id_generator: Optional[IdentityGenerator] = None):
        self.id_generator = id_generator or IdentityGenerator()

    @abstractmethod
    def begin(self) -> UnitOfWork:
        """Open a unit of work."""

    @abstractmethod
    def ensure_user(self, user: User) -> User:
        """Create the user if absent and return the stored record."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    def get_message(self, message_id: str) -> Optional[Message]:
        ...

    @abstractmethod
    def get_links(self, message_id: str) -> List[ContextualLink]:
        """CONTEXTUAL_LINK edges touching message_id, one entry per edge."""

    @abstractmethod
    def get_message_topics(self, message_id: str) -> List[str]:
        """Names of the topics the message BELONGS_TO, sorted."""

    @abstractmethod
    def health_check(self) -> bool:
        ...

    def close(self) -> None:
        pass


def _require(value: Optional[str], name: str) -> None:
    if not value or not str(value).strip():
        raise ValueError(f'{name} is required')
