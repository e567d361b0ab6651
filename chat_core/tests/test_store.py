from chat_core.domain.conversation import MessageStore
from chat_core.domain.models import Message


def _m(mid, role="user", content="x"):
    return Message(id=mid, role=role, content=content)


def test_store_read_returns_copy():
    store = MessageStore([_m("1")])
    snapshot = store.read()
    snapshot.append(_m("2"))
    assert [m.id for m in store.read()] == ["1"]


def test_store_replace_notifies_synchronously():
    store = MessageStore()
    seen = []
    store.subscribe(lambda msgs, optimistic: seen.append(([m.id for m in msgs], optimistic)))
    store.replace([_m("1")], optimistic=True)
    assert seen == [(["1"], True)]
    store.replace([_m("1"), _m("2", "assistant")])
    assert seen[-1] == (["1", "2"], False)
    assert store.last().id == "2"
    assert len(store) == 2


def test_store_rollback_is_single_replace():
    store = MessageStore([_m("1")])
    previous = store.read()
    store.replace([*previous, _m("2")], optimistic=True)
    store.replace(previous)
    assert store.read() == previous


def test_store_unsubscribe_and_failing_subscriber():
    store = MessageStore()
    seen = []

    def broken(msgs, optimistic):
        raise RuntimeError("boom")

    store.subscribe(broken)
    unsubscribe = store.subscribe(lambda msgs, optimistic: seen.append(len(msgs)))
    store.replace([_m("1")])
    assert seen == [1]
    assert store.ids() == {"1"}
    unsubscribe()
    store.replace([])
    assert seen == [1]
