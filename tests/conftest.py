"""Shared fixtures for all test modules."""
import itertools

import pytest

from chatgraph.models.core import User
from chatgraph.services.ingestion import IngestionPipeline
from chatgraph.services.topic_normalizer import TopicNormalizer
from chatgraph.utils.config import IngestionConfig
from chatgraph.utils.memory_store import InMemoryGraphStore

VOCABULARY = ['Áo', 'Quần', 'Giày', 'Túi xách', 'Khuyến mãi']


class FakeClock:
    """Returns 1000, 1001, 1002, ... so every call yields a distinct timestamp."""

    def __init__(self, start: int = 1000):
        self._counter = itertools.count(start)
        self.last = None

    def __call__(self) -> int:
        self.last = next(self._counter)
        return self.last


@pytest.fixture
def vocabulary():
    return list(VOCABULARY)


@pytest.fixture
def normalizer(vocabulary):
    return TopicNormalizer(vocabulary)


@pytest.fixture
def store():
    return InMemoryGraphStore()


@pytest.fixture
def user(store):
    return store.ensure_user(User(id='user-1', name='Lan', created_at=1, last_active=1))


@pytest.fixture
def make_pipeline(store, normalizer):
    """Build a pipeline over the shared in-memory store with overridable settings."""

    def _make(scope='owner', threshold=0.5, edge_mode='append', clock=None):
        settings = IngestionConfig(scope=scope, similarity_threshold=threshold, edge_mode=edge_mode)
        return IngestionPipeline(store, normalizer, settings, clock=clock or FakeClock())

    return _make


@pytest.fixture
def pipeline(make_pipeline, user):
    return make_pipeline()
