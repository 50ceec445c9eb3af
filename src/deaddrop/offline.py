"""
Offline store-and-forward messaging.

Outgoing messages are queued and drained by the send loop into the local
user's namespace, one file per message under
`<contactId>/conversations/offline/`. The receive loop polls every contact's
namespace for the directory addressed to the local user, fetches files it has
not seen yet, and feeds them to the dedup store.
"""

import asyncio
import logging
from typing import Any, Iterable, Optional

import pydantic

from deaddrop.crypto import CryptoCodec, SealedBoxCodec
from deaddrop.errors import ConstructionError, DecryptionError, MissingKeyError, NotFoundError, ValidationError
from deaddrop.models.contact import Contact
from deaddrop.models.events import Notification
from deaddrop.models.index import RemoteIndex
from deaddrop.models.message import MessageRecord, MessageState, WriteQueueEntry
from deaddrop.notify import NotificationChannel
from deaddrop.scheduler import BackgroundTasks, PeriodicTask
from deaddrop.store import OfflineMessageStore
from deaddrop.transport.base import StorageDriver

logger = logging.getLogger(__name__)

SEND_INTERVAL_S = 10.0
RECV_INTERVAL_S = 15.0

OFFLINE_DIR = "conversations/offline"
OFFLINE_MSG_EXT = "cm"
EXT_SEP = "."
# For backends that reject "." in keys.
EXT_SEP_NO_DOTS = "_"


def _ext_sep(forbids_dots: bool) -> str:
    return EXT_SEP_NO_DOTS if forbids_dots else EXT_SEP


def offline_dir(user_id: str) -> str:
    return f"{user_id}/{OFFLINE_DIR}"


def message_file_name(message_id: str, forbids_dots: bool = False) -> str:
    return f"{message_id}{_ext_sep(forbids_dots)}{OFFLINE_MSG_EXT}"


def message_id_from_file_name(file_name: str, forbids_dots: bool = False) -> str:
    name, sep, _ext = file_name.rpartition(_ext_sep(forbids_dots))
    return name if sep else file_name


class OfflineMessagingService:
    def __init__(
        self,
        user_id: str,
        driver: StorageDriver,
        contacts: Optional[Iterable[Contact]] = None,
        codec: Optional[CryptoCodec] = None,
        private_key: Optional[str] = None,
        encryption: bool = True,
        send_interval_s: float = SEND_INTERVAL_S,
        receive_interval_s: float = RECV_INTERVAL_S,
    ):
        if not user_id:
            raise ConstructionError("user_id")
        if driver is None:
            raise ConstructionError("driver")
        if encryption and not private_key:
            raise ConstructionError("private_key")

        self._user_id = user_id
        self._driver = driver
        self._codec: CryptoCodec = codec or SealedBoxCodec()
        self._private_key = private_key
        self._encryption = encryption

        self._contacts: list[Contact] = list(contacts or [])
        self._store = OfflineMessageStore()
        self._write_queue: list[WriteQueueEntry] = []
        self._skip_send = False
        self._in_flight: Optional[WriteQueueEntry] = None
        self._in_flight_cancelled = False

        self.sent: NotificationChannel[None] = NotificationChannel(Notification.OFFLINE_MESSAGES_SENT)
        self.new_messages: NotificationChannel[list[MessageRecord]] = NotificationChannel(Notification.NEW_MESSAGES)

        self._send_loop = PeriodicTask("offline-send", self.drain_once, send_interval_s)
        self._recv_loop = PeriodicTask("offline-receive", self.poll_once, receive_interval_s)
        self._background = BackgroundTasks("offline messaging")

    # -- state ---------------------------------------------------------------

    @property
    def store(self) -> OfflineMessageStore:
        return self._store

    @property
    def queue(self) -> list[WriteQueueEntry]:
        """Snapshot of pending writes, oldest first."""
        return list(self._write_queue)

    @property
    def contacts(self) -> list[Contact]:
        return list(self._contacts)

    @property
    def sending(self) -> bool:
        return self._send_loop.running

    @property
    def receiving(self) -> bool:
        return self._recv_loop.running

    def set_contacts(self, contacts: Iterable[Contact]) -> None:
        self._contacts = list(contacts)
        self._store.prune_except(c.id for c in self._contacts)

    # -- outgoing ------------------------------------------------------------

    def _forbids_dots(self) -> bool:
        return bool(getattr(self._driver, "forbids_dots", False))

    def send_message(self, contact: Contact, message: MessageRecord) -> None:
        """Queue a message for the send loop. Raises MissingKeyError if the contact has no key."""
        if not contact.public_key:
            raise MissingKeyError(contact.id)

        file_name = message_file_name(message.id, self._forbids_dots())
        self._write_queue.append(WriteQueueEntry(
            path=f"{offline_dir(contact.id)}/{file_name}",
            message=message,
            public_key=contact.public_key,
        ))

    def suspend_send(self, suspend: bool = True) -> None:
        self._skip_send = suspend

    def remove_messages(self, contact: Contact) -> "asyncio.Task[Any]":
        """Drop queued messages for a contact, then delete its outbox from storage.

        Draining is suspended while the queue is stripped, but new sends are
        still accepted, including sends to this contact. A write to the contact
        that is already in flight is not retried, and is deleted again if it lands.
        Must be called from the event loop.
        """
        # Fail before touching the queue when there is no running loop.
        asyncio.get_running_loop()
        previous = self._skip_send
        self._skip_send = True
        try:
            for index in reversed(range(len(self._write_queue))):
                if self._write_queue[index].message.to == contact.id:
                    del self._write_queue[index]
            if self._in_flight is not None and self._in_flight.message.to == contact.id:
                self._in_flight_cancelled = True
        finally:
            self._skip_send = previous

        return self._background.spawn(
            self._delete_outbox(contact.id),
            f"deleting offline messages for {contact.id}",
        )

    def delete_messages_from_storage(self, contact: Contact, message_ids: Iterable[str]) -> "asyncio.Task[Any]":
        forbids_dots = self._forbids_dots()
        file_names = [message_file_name(str(message_id), forbids_dots) for message_id in message_ids]
        return self._background.spawn(
            self._delete_files(offline_dir(contact.id), file_names),
            f"deleting {len(file_names)} offline messages for {contact.id}",
        )

    async def _delete_outbox(self, contact_id: str) -> int:
        dir_path = offline_dir(contact_id)
        index = await self._list_index(self._user_id, dir_path)
        return await self._delete_files(dir_path, index.file_names())

    async def _delete_files(self, dir_path: str, file_names: list[str]) -> int:
        results = await asyncio.gather(
            *(self._driver.delete(self._user_id, f"{dir_path}/{name}") for name in file_names),
            return_exceptions=True,
        )
        deleted = 0
        for name, result in zip(file_names, results):
            if isinstance(result, NotFoundError):
                continue
            if isinstance(result, Exception):
                logger.warning(f"Failed to delete {dir_path}/{name}: {result}")
                continue
            deleted += 1
        return deleted

    async def drain_once(self) -> int:
        """Write queued messages to storage, oldest first, one at a time."""
        logger.debug("Offline messaging send cycle")
        count = 0
        while self._write_queue and not self._skip_send:
            entry = self._write_queue.pop(0)
            message = entry.message
            previous_state = message.delivery_state
            message.delivery_state = MessageState.SENT_OFFLINE
            logger.debug(f"Sending message offline to {message.to} ({entry.path})")
            self._in_flight, self._in_flight_cancelled = entry, False
            try:
                data = self._seal(entry.public_key, message.to_wire())
                await self._driver.write(self._user_id, entry.path, data)
            except ValidationError as e:
                message.delivery_state = previous_state
                logger.error(f"Dropping offline message {message.id} to {message.to}: {e}")
                continue
            except Exception as e:
                message.delivery_state = previous_state
                if self._in_flight_cancelled:
                    logger.warning(f"Offline write to {entry.path} failed, not retrying for removed contact: {e}")
                    continue
                self._write_queue.insert(0, entry)
                logger.warning(f"Offline write to {entry.path} failed, retrying next cycle: {e}")
                break
            finally:
                self._in_flight = None
            if self._in_flight_cancelled:
                # The contact's outbox was cleared while this write was in flight.
                dir_path, _, file_name = entry.path.rpartition("/")
                self._background.spawn(
                    self._delete_files(dir_path, [file_name]),
                    f"deleting late offline message {message.id} for {message.to}",
                )
                continue
            count += 1

        if count > 0:
            logger.info(f"Sent {count} offline messages")
            self.sent.publish(None)
        return count

    def _seal(self, public_key: str, obj: dict[str, Any]) -> Any:
        if self._encryption:
            return self._codec.encrypt(public_key, obj)
        return obj

    # -- incoming ------------------------------------------------------------

    async def poll_once(self) -> int:
        """Fetch unseen messages from every contact. Returns the number newly stored."""
        logger.debug("Offline messaging receive cycle")
        contact_ids = [c.id for c in self._contacts]
        batches = await asyncio.gather(*(self._poll_contact(cid) for cid in contact_ids))

        count = 0
        for records in batches:
            for record in records:
                if self._store.add(record):
                    count += 1

        if count:
            logger.info(f"Received {count} offline messages")
            self.new_messages.publish(self._store.list_all())
        return count

    async def _poll_contact(self, contact_id: str) -> list[MessageRecord]:
        inbox = offline_dir(self._user_id)
        try:
            index = await self._list_index(contact_id, inbox)
        except Exception as e:
            logger.warning(f"Failed to read offline index of {contact_id}: {e}")
            return []

        forbids_dots = self._forbids_dots()
        unseen = [
            name for name in index.file_names()
            if not self._store.has(contact_id, message_id_from_file_name(name, forbids_dots))
        ]
        if not unseen:
            return []

        logger.debug(f"Fetching {len(unseen)} offline messages from {contact_id}")
        fetched = await asyncio.gather(*(self._fetch(contact_id, f"{inbox}/{name}") for name in unseen))

        records = []
        for record in fetched:
            if record is None:
                continue
            # The namespace a file was read from decides its sender.
            if record.from_ != contact_id:
                if record.from_:
                    logger.warning(f"Offline message {record.id} in {contact_id}'s namespace claims sender {record.from_}")
                record.from_ = contact_id
            records.append(record)
        return records

    async def _list_index(self, user: str, dir_path: str) -> RemoteIndex:
        try:
            raw = await self._driver.list_index(user, dir_path)
        except NotFoundError:
            # Contact has never written to this directory.
            raw = None
        if not raw:
            return RemoteIndex()
        return RemoteIndex.model_validate(raw)

    async def _fetch(self, contact_id: str, path: str) -> Optional[MessageRecord]:
        try:
            raw = await self._driver.read(contact_id, path)
        except NotFoundError:
            return None
        except Exception as e:
            logger.warning(f"Failed to read offline message {path} from {contact_id}: {e}")
            return None
        if not raw:
            return None

        try:
            return MessageRecord.model_validate(self._open(raw))
        except (DecryptionError, pydantic.ValidationError) as e:
            logger.warning(f"Discarding unreadable offline message {path} from {contact_id}: {e}")
            return None

    def _open(self, obj: Any) -> Any:
        if self._encryption and self._codec.is_encrypted(obj):
            return self._codec.decrypt(self._private_key, obj)  # type: ignore[arg-type]
        return obj

    # -- loop control --------------------------------------------------------

    def start_send(self) -> None:
        self._send_loop.start()

    def stop_send(self) -> None:
        self._send_loop.stop()

    def start_receive(self) -> None:
        self._recv_loop.start()

    def stop_receive(self) -> None:
        self._recv_loop.stop()

    async def close(self) -> None:
        """Stop both loops, let in-flight cycles and pending deletes finish."""
        self.stop_send()
        self.stop_receive()
        await self._send_loop.wait_stopped()
        await self._recv_loop.wait_stopped()
        await self._background.join()
