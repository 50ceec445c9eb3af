"""
Chat message records and the outbound write queue entry.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageState:
    CREATED = "created"
    SENDING = "sending"
    SENT_OFFLINE = "sent_offline"
    SENT_REALTIME = "sent_realtime"
    RECEIVED = "received"
    READ = "read"


def id_sort_key(message_id: str) -> tuple[int, int, str]:
    """Numeric ids first, ordered by value; anything else after, lexicographically."""
    try:
        return (0, int(message_id), "")
    except (TypeError, ValueError):
        return (1, 0, str(message_id))


class MessageRecord(BaseModel):
    """One chat message. Wire form: {id, from, to, payload, time, deliveryState}."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    from_: str = Field(default="", alias="from")
    to: str = ""
    payload: Optional[Any] = None
    time: Optional[int] = None
    delivery_state: str = Field(default=MessageState.CREATED, alias="deliveryState")

    @property
    def sort_key(self) -> tuple[int, int, str]:
        return id_sort_key(self.id)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class WriteQueueEntry(BaseModel):
    """Pending outbound write. Shares the MessageRecord by reference with the caller."""

    path: str
    message: MessageRecord
    public_key: str
