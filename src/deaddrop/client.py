"""
AsyncDeadDrop — wires the storage driver, codec and delivery services together.
"""

import asyncio
import time
from typing import Any, Iterable, Optional

from deaddrop.config import ClientConfig
from deaddrop.crypto import CryptoCodec, SealedBoxCodec
from deaddrop.errors import ConstructionError, ValidationError
from deaddrop.heartbeat import HeartbeatService, PresenceTable
from deaddrop.models.contact import Contact
from deaddrop.models.message import MessageRecord, MessageState
from deaddrop.notify import NotificationChannel
from deaddrop.offline import OfflineMessagingService
from deaddrop.transport.base import StorageDriver
from deaddrop.transport.http import HttpStorageDriver


class AsyncDeadDrop:
    """Async deaddrop client (primary)."""

    def __init__(
        self,
        config: ClientConfig,
        driver: Optional[StorageDriver] = None,
        codec: Optional[CryptoCodec] = None,
    ):
        if not config.user_id:
            raise ConstructionError("user_id")
        self.config = config
        self._owns_driver = driver is None
        self.driver: StorageDriver = driver or HttpStorageDriver(
            base_url=config.base_url,
            app_name=config.app_name,
            token=config.token,
            forbids_dots=config.forbids_dots,
        )
        self.codec: CryptoCodec = codec or SealedBoxCodec()
        self._contacts: dict[str, Contact] = {c.id: c for c in config.contacts}
        self._last_message_id = 0

        self.messaging = OfflineMessagingService(
            config.user_id,
            self.driver,
            contacts=self._contacts.values(),
            codec=self.codec,
            private_key=config.private_key,
            encryption=config.encryption,
            send_interval_s=config.send_interval,
            receive_interval_s=config.receive_interval,
        )
        self.heartbeat = HeartbeatService(
            config.user_id,
            self.driver,
            self._contacts.values(),
            private_key=config.private_key,
            codec=self.codec,
            encryption=config.encryption,
            beat_interval_s=config.beat_interval,
            monitor_interval_s=config.monitor_interval,
        )

    @property
    def user_id(self) -> str:
        return self.config.user_id  # type: ignore[return-value]

    @property
    def sent(self) -> NotificationChannel[None]:
        return self.messaging.sent

    @property
    def new_messages(self) -> NotificationChannel[list[MessageRecord]]:
        return self.messaging.new_messages

    @property
    def presence_updated(self) -> NotificationChannel[PresenceTable]:
        return self.heartbeat.presence_updated

    # -- roster --------------------------------------------------------------

    @property
    def contacts(self) -> list[Contact]:
        return list(self._contacts.values())

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        return self._contacts.get(contact_id)

    def set_contacts(self, contacts: Iterable[Contact]) -> None:
        """Replace the roster, keeping presence for contacts whose key is unchanged."""
        new = {c.id: c for c in contacts}
        for contact_id in list(self._contacts):
            if contact_id not in new:
                self.heartbeat.remove_contact(contact_id)
        for contact in new.values():
            old = self._contacts.get(contact.id)
            if not contact.public_key:
                self.heartbeat.remove_contact(contact.id)
            elif old is None or old.public_key != contact.public_key:
                self.heartbeat.add_contact(contact.id, contact.public_key)
        self._contacts = new
        self.messaging.set_contacts(new.values())

    def add_contact(self, contact: Contact) -> None:
        self.set_contacts([*(c for c in self._contacts.values() if c.id != contact.id), contact])

    def remove_contact(self, contact_id: str) -> list["asyncio.Task[Any]"]:
        """Drop a contact and clean up what we stored for them. Returns the cleanup tasks.

        Must be called from the event loop.
        """
        asyncio.get_running_loop()
        contact = self._contacts.pop(contact_id, None)
        if contact is None:
            return []
        tasks = []
        hb_task = self.heartbeat.delete_contact(contact_id)
        if hb_task is not None:
            tasks.append(hb_task)
        self.messaging.set_contacts(self._contacts.values())
        tasks.append(self.messaging.remove_messages(contact))
        return tasks

    # -- messaging -----------------------------------------------------------

    def _next_message_id(self) -> int:
        # Millisecond timestamps, strictly increasing within this client.
        self._last_message_id = max(int(time.time() * 1000), self._last_message_id + 1)
        return self._last_message_id

    def send_text(self, contact_id: str, text: str) -> MessageRecord:
        contact = self._contacts.get(contact_id)
        if contact is None:
            raise ValidationError(f"Unknown contact {contact_id}", code="unknown_contact")
        message_id = self._next_message_id()
        message = MessageRecord(
            id=str(message_id),
            from_=self.user_id,
            to=contact_id,
            payload=text,
            time=message_id,
            delivery_state=MessageState.CREATED,
        )
        self.messaging.send_message(contact, message)
        return message

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Start send, receive and beat loops. Monitoring follows the first beat."""
        self.messaging.start_send()
        self.messaging.start_receive()
        self.heartbeat.start_beat()

    def stop(self) -> None:
        self.messaging.stop_send()
        self.messaging.stop_receive()
        self.heartbeat.stop_beat()
        self.heartbeat.stop_monitor()

    async def close(self) -> None:
        await self.messaging.close()
        await self.heartbeat.close()
        if self._owns_driver and isinstance(self.driver, HttpStorageDriver):
            await self.driver.close()

    async def __aenter__(self) -> "AsyncDeadDrop":
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.close()
