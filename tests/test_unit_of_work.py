import threading

import pytest

from chatgraph.models.core import CandidateScope, Message, User
from chatgraph.utils.errors import PersistenceError
from chatgraph.utils.memory_store import InMemoryGraphStore, InMemoryUnitOfWork


def _message(message_id, embedding=(1.0, 0.0), sender='human'):
    return Message(id=message_id, timestamp=1, sender=sender, content=f'content {message_id}', embedding=embedding)


def test_leaving_block_without_commit_rolls_back(store):
    with store.begin() as uow:
        uow.create_message_node(_message('m1'))

    assert store.get_message('m1') is None
    assert not store.lock.locked()


def test_exception_in_block_rolls_back_and_propagates(store):
    with pytest.raises(RuntimeError):
        with store.begin() as uow:
            uow.create_message_node(_message('m1'))
            raise RuntimeError('boom')

    assert store.get_message('m1') is None
    assert not store.lock.locked()


def test_commit_publishes_writes(store):
    with store.begin() as uow:
        uow.create_message_node(_message('m1'))
        uow.commit()

    assert store.get_message('m1').content == 'content m1'


def test_operations_after_commit_are_refused(store):
    with store.begin() as uow:
        uow.commit()
        with pytest.raises(PersistenceError):
            uow.create_message_node(_message('m1'))
        with pytest.raises(PersistenceError):
            uow.commit()


def test_duplicate_message_id_is_structural_failure(store):
    with store.begin() as uow:
        uow.create_message_node(_message('m1'))
        uow.commit()

    with store.begin() as uow:
        with pytest.raises(PersistenceError) as excinfo:
            uow.create_message_node(_message('m1'))
        assert excinfo.value.structural


def test_upsert_topic_keeps_first_id(store):
    with store.begin() as uow:
        first = uow.upsert_topic('Áo')
        second = uow.upsert_topic('Áo')
        uow.commit()

    assert first.id == second.id
    assert len(store.state.topics) == 1

    with store.begin() as uow:
        third = uow.upsert_topic('Áo')
        uow.commit()
    assert third.id == first.id


def test_link_message_topic_is_idempotent(store):
    with store.begin() as uow:
        uow.create_message_node(_message('m1'))
        uow.upsert_topic('Giày')
        assert uow.link_message_topic('m1', 'Giày')
        assert uow.link_message_topic('m1', 'Giày')
        uow.commit()

    assert store.state.belongs_to == {('m1', 'Giày')}


def test_auxiliary_failure_returns_default(store):
    with store.begin() as uow:
        assert uow.link_message_topic('missing', 'Giày') is False
        assert uow.create_similarity_edge('a', 'b', 0.9, 1) is False
        assert uow.is_open


def test_candidates_exclude_the_message_itself(store):
    store.ensure_user(User(id='u1', name='A', created_at=1, last_active=1))
    with store.begin() as uow:
        for message_id in ('m1', 'm2', 'm3'):
            uow.create_message_node(_message(message_id))
            uow.link_ownership('u1', message_id)
        candidates = uow.fetch_similarity_candidates('m3', CandidateScope.OWNER, 'u1')
        uow.commit()

    assert sorted(c.message_id for c in candidates) == ['m1', 'm2']
    assert candidates[0].embedding == [1.0, 0.0]


def test_owner_scope_requires_owner(store):
    with store.begin() as uow:
        with pytest.raises(ValueError):
            uow.fetch_similarity_candidates('m1', 'owner')


def test_similarity_edge_arguments_are_validated(store):
    with store.begin() as uow:
        with pytest.raises(ValueError):
            uow.create_similarity_edge('m1', 'm1', 0.9, 1)
        with pytest.raises(ValueError):
            uow.create_similarity_edge('m1', 'm2', float('nan'), 1)


def test_failed_commit_rolls_back(store, monkeypatch):
    def fail(self):
        raise RuntimeError('disk full')

    monkeypatch.setattr(InMemoryUnitOfWork, '_commit', fail)

    with store.begin() as uow:
        uow.create_message_node(_message('m1'))
        with pytest.raises(PersistenceError):
            uow.commit()

    assert store.get_message('m1') is None
    assert not store.lock.locked()


def test_units_of_work_are_serialized_across_threads():
    store = InMemoryGraphStore()
    errors = []

    def writer(prefix):
        try:
            for i in range(20):
                with store.begin() as uow:
                    uow.create_message_node(_message(f'{prefix}-{i}'))
                    uow.commit()
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(f't{n}', )) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(store.state.messages) == 80


def test_ensure_user_returns_existing_record(store):
    first = store.ensure_user(User(id='u1', name='Lan', created_at=1, last_active=1))
    second = store.ensure_user(User(id='u1', name='Other', created_at=5, last_active=5))
    assert second is first
    assert store.get_user('u1').name == 'Lan'


def test_get_links_reports_other_message_second(store):
    with store.begin() as uow:
        uow.create_message_node(_message('m1'))
        uow.create_message_node(_message('m2'))
        uow.create_similarity_edge('m1', 'm2', 0.75, 3)
        uow.commit()

    [link] = store.get_links('m2')
    assert (link.message_id_1, link.message_id_2) == ('m2', 'm1')
    assert link.similarity == 0.75


def test_auxiliary_writes_report_success(store):
    with store.begin() as uow:
        uow.create_message_node(_message('m1'))
        uow.create_message_node(_message('m2'))
        topic = uow.upsert_topic('Áo')

        assert topic.name == 'Áo'
        assert uow.link_message_topic('m1', 'Áo') is True
        assert uow.create_similarity_edge('m1', 'm2', 0.9, 1) is True
        assert uow.create_similarity_edge('m2', 'm1', 0.8, 2, 'merge') is True
        uow.commit()
