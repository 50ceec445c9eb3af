"""OfflineMessageStore: dedup, ordering and roster pruning."""

from deaddrop.models import MessageRecord
from deaddrop.store import OfflineMessageStore


def msg(sender: str, message_id, payload: str = "") -> MessageRecord:
    return MessageRecord(id=message_id, from_=sender, to="me", payload=payload)


def test_add_is_idempotent():
    store = OfflineMessageStore()
    first = msg("alice", 1, "hello")
    assert store.add(first) is True
    before = store.list_all()

    assert store.add(msg("alice", 1, "a different body")) is False
    assert store.list_all() == before
    assert store.list_all()[0].payload == "hello"
    assert len(store) == 1


def test_same_id_from_different_senders_is_not_a_duplicate():
    store = OfflineMessageStore()
    assert store.add(msg("alice", 7))
    assert store.add(msg("bob", 7))
    assert len(store) == 2


def test_ids_compare_numerically_for_dedup():
    store = OfflineMessageStore()
    assert store.add(msg("alice", "05"))
    assert store.add(msg("alice", 5)) is False
    assert store.has("alice", "5")
    assert store.has("alice", 5)


def test_list_all_is_sorted_by_numeric_id_across_senders():
    store = OfflineMessageStore()
    for sender, message_id in [("bob", "100"), ("alice", "9"), ("carol", "10"), ("alice", "2")]:
        store.add(msg(sender, message_id))

    assert [m.id for m in store.list_all()] == ["2", "9", "10", "100"]


def test_list_for_contact():
    store = OfflineMessageStore()
    store.add(msg("alice", "30"))
    store.add(msg("bob", "20"))
    store.add(msg("alice", "4"))

    assert [m.id for m in store.list_for_contact("alice")] == ["4", "30"]
    assert store.list_for_contact("nobody") == []


def test_remove_and_has():
    store = OfflineMessageStore()
    store.add(msg("alice", 1))
    store.add(msg("alice", 2))

    store.remove("alice", "1")
    store.remove("alice", "99")
    store.remove("nobody", "1")

    assert not store.has("alice", "1")
    assert store.has("alice", "2")
    assert ("alice", "2") in store
    assert store.message_ids("alice") == ["2"]


def test_prune_except_drops_only_untracked_contacts():
    store = OfflineMessageStore()
    for sender in ("A", "B", "C"):
        store.add(msg(sender, 1))
        store.add(msg(sender, 2))

    store.prune_except({"A", "C"})

    assert store.list_for_contact("B") == []
    assert [m.id for m in store.list_for_contact("A")] == ["1", "2"]
    assert [m.id for m in store.list_for_contact("C")] == ["1", "2"]
    assert len(store) == 4
