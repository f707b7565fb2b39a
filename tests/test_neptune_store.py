from unittest.mock import MagicMock

import pytest

from chatgraph.models.core import Message
from chatgraph.utils.errors import PersistenceError
from chatgraph.utils.neptune_store import NeptuneGraphStore, NeptuneUnitOfWork, _decode_embedding, _first


class FakeTraversal:
    """Records traversal steps and answers terminal steps with canned results."""

    def __init__(self, results=None, next_result=None):
        self.steps = []
        self.results = results if results is not None else [object()]
        self.next_result = next_result

    def __getattr__(self, name):

        def step(*args, **kwargs):
            self.steps.append((name, args))
            return self

        return step

    def to_list(self):
        self.steps.append(('to_list', ()))
        return self.results

    def iterate(self):
        self.steps.append(('iterate', ()))

    def next(self):
        self.steps.append(('next', ()))
        return self.next_result

    def step_names(self):
        return [name for name, _ in self.steps]


def _unit_of_work(gtx):
    tx = MagicMock()
    tx.begin.return_value = gtx
    g = MagicMock()
    g.tx.return_value = tx
    return NeptuneUnitOfWork(g, id_generator=None), tx


def test_decode_embedding_accepts_json_and_lists():
    assert _decode_embedding('[0.5, 1]') == [0.5, 1.0]
    assert _decode_embedding([1, 2]) == [1.0, 2.0]
    assert _decode_embedding('') == []
    assert _decode_embedding(None) == []
    assert _decode_embedding('not json') == []


def test_first_unwraps_value_map_lists():
    data = {'name': ['Lan'], 'empty': []}
    assert _first(data, 'name') == 'Lan'
    assert _first(data, 'empty', 'x') == 'x'
    assert _first(data, 'missing', 3) == 3


def test_commit_and_rollback_delegate_to_transaction():
    uow, tx = _unit_of_work(FakeTraversal())
    uow.commit()
    tx.commit.assert_called_once()

    uow, tx = _unit_of_work(FakeTraversal())
    with uow:
        pass
    tx.rollback.assert_called_once()
    tx.commit.assert_not_called()


def test_message_vertex_stores_embedding_as_json():
    gtx = FakeTraversal()
    uow, _ = _unit_of_work(gtx)
    uow.create_message_node(
        Message(id='m1', timestamp=5, sender='human', content='Áo', embedding=[0.5, 0.25], owner_id='u1'))

    properties = dict(args for name, args in gtx.steps if name == 'property')
    assert properties['message_id'] == 'm1'
    assert properties['embedding'] == '[0.5, 0.25]'
    assert properties['topics'] == '[]'
    assert properties['user_id'] == 'u1'
    assert gtx.step_names()[-1] == 'iterate'


def test_candidates_are_decoded():
    gtx = FakeTraversal(results=[
        {'message_id': 'm1', 'embedding': '[1.0, 0.0]', 'content': 'a'},
        {'message_id': 'm2', 'embedding': '[]', 'content': 'b'},
    ])
    uow, _ = _unit_of_work(gtx)

    candidates = uow.fetch_similarity_candidates('m3', 'owner', 'u1')

    assert [(c.message_id, c.embedding) for c in candidates] == [('m1', [1.0, 0.0]), ('m2', [])]
    assert ('out', ('OWNS', )) in gtx.steps


def test_global_scope_scans_all_messages():
    gtx = FakeTraversal(results=[])
    uow, _ = _unit_of_work(gtx)
    assert uow.fetch_similarity_candidates('m3', 'global') == []
    assert ('has_label', ('Message', )) in gtx.steps
    assert 'out' not in gtx.step_names()


def test_missing_endpoints_skip_similarity_edge():
    uow, _ = _unit_of_work(FakeTraversal(results=[]))
    assert uow.create_similarity_edge('m1', 'm2', 0.9, 10) is False


def test_merge_mode_uses_coalesce():
    gtx = FakeTraversal()
    uow, _ = _unit_of_work(gtx)
    assert uow.create_similarity_edge('m1', 'm2', 0.9, 10, 'merge') is True
    assert 'coalesce' in gtx.step_names()


def test_missing_owner_is_structural():
    uow, _ = _unit_of_work(FakeTraversal(results=[]))
    with pytest.raises(PersistenceError):
        uow.link_ownership('ghost', 'm1')


def test_upsert_topic_reads_projection():
    gtx = FakeTraversal(next_result={'topic_id': 't1', 'name': 'Áo', 'created_at': 7})
    uow, _ = _unit_of_work(gtx)
    topic = uow.upsert_topic('Áo')
    assert (topic.id, topic.name, topic.created_at) == ('t1', 'Áo', 7)


def test_user_vertex_decodes_preferences():
    user = NeptuneGraphStore._to_user({
        'user_id': ['u1'],
        'name': ['Lan'],
        'created_at': [1],
        'last_active': [2],
        'tone': ['casual'],
        'interests': ['["Áo", "Giày"]'],
    })
    assert user.preferences.tone == 'casual'
    assert user.preferences.language == 'vi'
    assert user.preferences.interests == ['Áo', 'Giày']

    assert NeptuneGraphStore._to_user({'user_id': ['u2']}).preferences.interests == []
