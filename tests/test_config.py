from dataclasses import replace

import pytest

from chatgraph.utils.config import DEFAULT_TOPIC_VOCABULARY, _parse_vocabulary, load_config, validate_config
from chatgraph.utils.errors import ConfigurationError


@pytest.fixture
def app_config(monkeypatch):
    for name in ('GRAPH_BACKEND', 'INGEST_SCOPE', 'INGEST_SIMILARITY_THRESHOLD', 'INGEST_EDGE_MODE', 'TOPIC_VOCABULARY'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('GRAPH_BACKEND', 'memory')
    return load_config()


def test_defaults(app_config):
    assert app_config.ingestion.scope == 'owner'
    assert app_config.ingestion.similarity_threshold == 0.5
    assert app_config.ingestion.edge_mode == 'append'
    assert app_config.ingestion.vocabulary == DEFAULT_TOPIC_VOCABULARY
    validate_config(app_config)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv('GRAPH_BACKEND', 'jsonl')
    monkeypatch.setenv('INGEST_SCOPE', 'global')
    monkeypatch.setenv('INGEST_SIMILARITY_THRESHOLD', '0.8')
    monkeypatch.setenv('INGEST_EDGE_MODE', 'merge')
    monkeypatch.setenv('TOPIC_VOCABULARY', 'Áo, Giày,,Áo')

    app_config = load_config()

    assert app_config.graph_backend == 'jsonl'
    assert app_config.ingestion.scope == 'global'
    assert app_config.ingestion.similarity_threshold == 0.8
    assert app_config.ingestion.edge_mode == 'merge'
    assert app_config.ingestion.vocabulary == ['Áo', 'Giày']
    validate_config(app_config)


def test_parse_vocabulary_drops_blanks_and_duplicates():
    assert _parse_vocabulary(' Áo ,Quần, ,Áo') == ['Áo', 'Quần']
    assert _parse_vocabulary('') == []


def test_neptune_requires_endpoint(app_config):
    app_config = replace(app_config, graph_backend='neptune', neptune=replace(app_config.neptune, endpoint=''))
    with pytest.raises(ConfigurationError):
        validate_config(app_config)


@pytest.mark.parametrize('ingestion_changes', [
    {'scope': 'team'},
    {'edge_mode': 'upsert'},
    {'vocabulary': []},
    {'similarity_threshold': 1.5},
    {'similarity_threshold': -2.0},
])
def test_invalid_ingestion_settings(app_config, ingestion_changes):
    app_config = replace(app_config, ingestion=replace(app_config.ingestion, **ingestion_changes))
    with pytest.raises(ConfigurationError):
        validate_config(app_config)


def test_unknown_backend(app_config):
    with pytest.raises(ConfigurationError):
        validate_config(replace(app_config, graph_backend='neo4j'))


def test_global_scope_defaults_to_stricter_threshold(monkeypatch):
    monkeypatch.delenv('INGEST_SIMILARITY_THRESHOLD', raising=False)
    monkeypatch.setenv('INGEST_SCOPE', 'global')
    assert load_config().ingestion.similarity_threshold == 0.7

    monkeypatch.setenv('INGEST_SIMILARITY_THRESHOLD', '0.4')
    assert load_config().ingestion.similarity_threshold == 0.4
