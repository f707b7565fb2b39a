"""
In-process graph store for development sessions and tests.

Each unit of work holds the store lock from begin to commit or rollback and
works on a private copy of the graph that replaces the shared one on commit.
"""

import threading
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set, Tuple

from ..models.core import (CandidateScope, ContextualLink, EdgeMode, Message, SimilarityCandidate, Topic, User)
from .errors import PersistenceError
from .graph_store import GraphStore, UnitOfWork
from .identity import IdentityGenerator
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class GraphState:
    users: Dict[str, User] = field(default_factory=dict)
    messages: Dict[str, Message] = field(default_factory=dict)
    topics: Dict[str, Topic] = field(default_factory=dict)  # keyed by canonical name
    owns: Dict[str, str] = field(default_factory=dict)  # message_id -> user_id
    belongs_to: Set[Tuple[str, str]] = field(default_factory=set)  # (message_id, topic name)
    links: List[ContextualLink] = field(default_factory=list)

    def copy(self) -> 'GraphState':
        # Users are replaced rather than mutated, so shallow copies are enough
        return GraphState(users=dict(self.users),
                          messages=dict(self.messages),
                          topics=dict(self.topics),
                          owns=dict(self.owns),
                          belongs_to=set(self.belongs_to),
                          links=list(self.links))


class InMemoryUnitOfWork(UnitOfWork):

    def __init__(self, store: 'InMemoryGraphStore'):
        super().__init__(store.id_generator)
        self.store = store
        self.state = store.state.copy()

    def _create_message_node(self, message: Message) -> None:
        if message.id in self.state.messages:
            raise PersistenceError(f'Message {message.id} already exists')
        self.state.messages[message.id] = message

    def _link_ownership(self, owner_id: str, message_id: str) -> None:
        if owner_id not in self.state.users:
            raise PersistenceError(f'User {owner_id} not found')
        if message_id not in self.state.messages:
            raise PersistenceError(f'Message {message_id} not found')
        self.state.owns[message_id] = owner_id

    def _update_last_active(self, owner_id: str, timestamp: int) -> None:
        user = self.state.users.get(owner_id)
        if user is None:
            raise PersistenceError(f'User {owner_id} not found')
        self.state.users[owner_id] = replace(user, last_active=timestamp)

    def _upsert_topic(self, name: str, new_id: str, created_at: int) -> Topic:
        topic = self.state.topics.get(name)
        if topic is None:
            topic = Topic(id=new_id, name=name, created_at=created_at)
            self.state.topics[name] = topic
        return topic

    def _link_message_topic(self, message_id: str, topic_name: str) -> None:
        if message_id not in self.state.messages:
            raise PersistenceError(f'Message {message_id} not found')
        if topic_name not in self.state.topics:
            raise PersistenceError(f'Topic {topic_name} not found')
        self.state.belongs_to.add((message_id, topic_name))

    def _fetch_similarity_candidates(self, message_id: str, scope: CandidateScope,
                                     owner_id: Optional[str]) -> List[SimilarityCandidate]:
        candidates = []
        for message in self.state.messages.values():
            if message.id == message_id:
                continue
            if scope is CandidateScope.OWNER and self.state.owns.get(message.id) != owner_id:
                continue
            candidates.append(
                SimilarityCandidate(message_id=message.id, embedding=list(message.embedding), content=message.content))
        return candidates

    def _create_similarity_edge(self, link: ContextualLink, mode: EdgeMode) -> None:
        for message_id in (link.message_id_1, link.message_id_2):
            if message_id not in self.state.messages:
                raise PersistenceError(f'Message {message_id} not found')

        if mode is EdgeMode.MERGE:
            for i, existing in enumerate(self.state.links):
                if existing.pair == link.pair:
                    self.state.links[i] = replace(existing, similarity=link.similarity, timestamp=link.timestamp)
                    return

        self.state.links.append(link)

    def _commit(self) -> None:
        self.store.state = self.state
        self.store.lock.release()

    def _rollback(self) -> None:
        self.store.lock.release()


class InMemoryGraphStore(GraphStore):
    """Dict-backed GraphStore; units of work are serialized by a single lock."""

    def __init__(self, id_generator: Optional[IdentityGenerator] = None):
        super().__init__(id_generator)
        self.state = GraphState()
        self.lock = threading.Lock()
        logger.info('Initialized in-memory graph store')

    def begin(self) -> InMemoryUnitOfWork:
        self.lock.acquire()
        try:
            return InMemoryUnitOfWork(self)
        except Exception:
            self.lock.release()
            raise

    def ensure_user(self, user: User) -> User:
        with self.lock:
            existing = self.state.users.get(user.id)
            if existing is not None:
                return existing
            self.state.users[user.id] = user
            logger.debug(f'Created user: {user.id}')
            return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.state.users.get(user_id)

    def get_message(self, message_id: str) -> Optional[Message]:
        return self.state.messages.get(message_id)

    def get_links(self, message_id: str) -> List[ContextualLink]:
        links = []
        for link in self.state.links:
            if link.message_id_1 == message_id:
                links.append(link)
            elif link.message_id_2 == message_id:
                links.append(replace(link, message_id_1=message_id, message_id_2=link.message_id_1))
        return links

    def get_message_topics(self, message_id: str) -> List[str]:
        return sorted(name for mid, name in self.state.belongs_to if mid == message_id)

    def health_check(self) -> bool:
        return True
