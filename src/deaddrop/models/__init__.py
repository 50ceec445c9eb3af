from deaddrop.models.contact import Contact
from deaddrop.models.events import Notification
from deaddrop.models.index import RemoteIndex
from deaddrop.models.message import MessageRecord, MessageState, WriteQueueEntry
from deaddrop.models.presence import HeartbeatRecord

__all__ = [
    "Contact",
    "Notification",
    "RemoteIndex",
    "MessageRecord",
    "MessageState",
    "WriteQueueEntry",
    "HeartbeatRecord",
]
