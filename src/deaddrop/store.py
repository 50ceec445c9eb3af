"""
Deduplicating store of messages received through offline delivery.
"""

from typing import Iterable

from deaddrop.models.message import MessageRecord, id_sort_key


def _key(message_id: object) -> str:
    # "05" and 5 name the same message
    try:
        return str(int(str(message_id)))
    except ValueError:
        return str(message_id)


class OfflineMessageStore:
    """Messages keyed by sender id, then message id. Inserts are idempotent."""

    def __init__(self) -> None:
        self._messages: dict[str, dict[str, MessageRecord]] = {}

    def add(self, record: MessageRecord) -> bool:
        """Insert a message. Returns False if (sender, id) is already held."""
        bucket = self._messages.setdefault(record.from_, {})
        key = _key(record.id)
        if key in bucket:
            return False
        bucket[key] = record
        return True

    def remove(self, contact_id: str, message_id: str) -> None:
        bucket = self._messages.get(contact_id)
        if bucket is not None:
            bucket.pop(_key(message_id), None)

    def has(self, contact_id: str, message_id: str) -> bool:
        return _key(message_id) in self._messages.get(contact_id, {})

    def message_ids(self, contact_id: str) -> list[str]:
        return list(self._messages.get(contact_id, {}))

    def list_for_contact(self, contact_id: str) -> list[MessageRecord]:
        messages = self._messages.get(contact_id, {}).values()
        return sorted(messages, key=lambda m: id_sort_key(m.id))

    def list_all(self) -> list[MessageRecord]:
        """All messages from every contact, in global id order."""
        messages = [m for bucket in self._messages.values() for m in bucket.values()]
        return sorted(messages, key=lambda m: id_sort_key(m.id))

    def prune_except(self, keep_contact_ids: Iterable[str]) -> None:
        keep = set(keep_contact_ids)
        for contact_id in list(self._messages):
            if contact_id not in keep:
                del self._messages[contact_id]

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._messages.values())

    def __contains__(self, key: tuple[str, str]) -> bool:
        contact_id, message_id = key
        return self.has(contact_id, message_id)
