"""
deaddrop — store-and-forward chat delivery over a shared blob store.

Offline messages and presence heartbeats are left in per-user namespaces
and picked up by polling, for peers without a live connection.
"""

from deaddrop.client import AsyncDeadDrop
from deaddrop.config import ClientConfig, load_config, save_config
from deaddrop.crypto import SealedBoxCodec
from deaddrop.errors import (
    ConstructionError,
    DeadDropError,
    DecryptionError,
    MissingKeyError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from deaddrop.heartbeat import HeartbeatService
from deaddrop.models import Contact, HeartbeatRecord, MessageRecord, MessageState, Notification
from deaddrop.offline import OfflineMessagingService
from deaddrop.store import OfflineMessageStore
from deaddrop.transport.http import HttpStorageDriver

__version__ = "0.1.0"
__all__ = [
    "AsyncDeadDrop",
    "ClientConfig",
    "load_config",
    "save_config",
    "SealedBoxCodec",
    "DeadDropError",
    "ValidationError",
    "MissingKeyError",
    "ConstructionError",
    "NotFoundError",
    "StorageError",
    "DecryptionError",
    "HeartbeatService",
    "OfflineMessagingService",
    "OfflineMessageStore",
    "HttpStorageDriver",
    "Contact",
    "HeartbeatRecord",
    "MessageRecord",
    "MessageState",
    "Notification",
]
