"""
Presence heartbeat.

Beat: every interval, write `{userId, timestamp}` sealed to each contact's
public key into the local namespace at `<contactId>/hb.sesj`.

Monitor: every interval, read `<localUserId>/hb.sesj` from each contact's
namespace, open it with the local private key and record it under the
payload's declared userId. The monitor starts itself once the first beat
has been published.
"""

import asyncio
import logging
import time
from typing import Any, Iterable, Optional

import pydantic

from deaddrop.crypto import CryptoCodec, SealedBoxCodec
from deaddrop.errors import ConstructionError, DecryptionError, NotFoundError
from deaddrop.models.contact import Contact
from deaddrop.models.events import Notification
from deaddrop.models.presence import HeartbeatRecord
from deaddrop.notify import NotificationChannel
from deaddrop.scheduler import BackgroundTasks, PeriodicTask
from deaddrop.transport.base import StorageDriver

logger = logging.getLogger(__name__)

HB_INTERVAL_S = 30.0
HB_MONITOR_INTERVAL_S = 30.0
HB_FILE_NAME = "hb.sesj"

PresenceTable = dict[str, Optional[HeartbeatRecord]]


class HeartbeatService:
    def __init__(
        self,
        user_id: str,
        driver: StorageDriver,
        contacts: Iterable[Contact],
        private_key: Optional[str] = None,
        codec: Optional[CryptoCodec] = None,
        encryption: bool = True,
        beat_interval_s: float = HB_INTERVAL_S,
        monitor_interval_s: float = HB_MONITOR_INTERVAL_S,
    ):
        if not user_id:
            raise ConstructionError("user_id")
        if driver is None:
            raise ConstructionError("driver")
        if contacts is None:
            raise ConstructionError("contacts")
        if encryption and not private_key:
            raise ConstructionError("private_key")

        self._user_id = user_id
        self._driver = driver
        self._private_key = private_key
        self._codec: CryptoCodec = codec or SealedBoxCodec()
        self._encryption = encryption

        self._contact_keys: dict[str, str] = {}
        self._heartbeats: PresenceTable = {}
        for contact in contacts:
            if contact is not None:
                self.add_contact(contact.id, contact.public_key)

        self.presence_updated: NotificationChannel[PresenceTable] = NotificationChannel(Notification.PRESENCE_UPDATED)

        self._beat_loop = PeriodicTask("heartbeat", self.beat_once, beat_interval_s, on_first_cycle=self.start_monitor)
        self._monitor_loop = PeriodicTask("heartbeat-monitor", self.monitor_once, monitor_interval_s)
        self._background = BackgroundTasks("heartbeat")

    # -- contacts ------------------------------------------------------------

    @property
    def contact_ids(self) -> list[str]:
        return list(self._contact_keys)

    def add_contact(self, contact_id: Optional[str], public_key: Optional[str]) -> None:
        if not contact_id or not public_key:
            return
        self._contact_keys[contact_id] = public_key
        self._heartbeats[contact_id] = None

    def remove_contact(self, contact_id: Optional[str]) -> None:
        if not contact_id:
            return
        self._contact_keys.pop(contact_id, None)
        self._heartbeats.pop(contact_id, None)

    def delete_contact(self, contact_id: Optional[str]) -> Optional["asyncio.Task[Any]"]:
        """Untrack a contact and delete the heartbeat we left for them.

        Must be called from the event loop.
        """
        if not contact_id:
            return None
        asyncio.get_running_loop()
        self.remove_contact(contact_id)
        return self._background.spawn(
            self._driver.delete(self._user_id, f"{contact_id}/{HB_FILE_NAME}"),
            f"deleting heartbeat file for {contact_id}",
        )

    def get_heartbeat(self, contact_id: Optional[str]) -> Optional[HeartbeatRecord]:
        if not contact_id:
            return None
        return self._heartbeats.get(contact_id)

    def get_all_heartbeats(self) -> PresenceTable:
        return dict(self._heartbeats)

    # -- beat ----------------------------------------------------------------

    async def beat_once(self) -> int:
        """Publish our presence to every tracked contact. Returns successful writes."""
        logger.debug("Writing heartbeat files")
        beat = HeartbeatRecord(user_id=self._user_id, timestamp=int(time.time() * 1000)).to_wire()
        targets = list(self._contact_keys.items())
        results = await asyncio.gather(*(self._write_beat(cid, key, beat) for cid, key in targets))

        written = sum(1 for ok in results if ok)
        if written == len(targets):
            logger.info(f"HeartBeat successful ({written} contacts)")
        else:
            logger.warning(f"HeartBeat wrote {written} of {len(targets)} heartbeat files")
        return written

    async def _write_beat(self, contact_id: str, public_key: str, beat: dict[str, Any]) -> bool:
        path = f"{contact_id}/{HB_FILE_NAME}"
        try:
            data = self._codec.encrypt(public_key, beat) if self._encryption else beat
            await self._driver.write(self._user_id, path, data)
        except Exception as e:
            logger.warning(f"Error writing heartbeat file {path}: {e}")
            return False
        return True

    # -- monitor -------------------------------------------------------------

    async def monitor_once(self) -> PresenceTable:
        """Read every contact's heartbeat for us and publish the updated table."""
        logger.debug("Reading heartbeat files")
        contact_ids = list(self._contact_keys)
        values = await asyncio.gather(*(self._read_beat(cid) for cid in contact_ids))

        for contact_id, value in zip(contact_ids, values):
            if not value:
                # Contact has not beaten yet, or has dropped us.
                continue
            try:
                record = HeartbeatRecord.model_validate(self._open(value))
            except (DecryptionError, pydantic.ValidationError) as e:
                logger.warning(f"Discarding unreadable heartbeat from {contact_id}: {e}")
                continue
            self._heartbeats[record.user_id] = record

        heartbeats = self.get_all_heartbeats()
        self.presence_updated.publish(heartbeats)
        return heartbeats

    async def _read_beat(self, contact_id: str) -> Optional[Any]:
        path = f"{self._user_id}/{HB_FILE_NAME}"
        try:
            return await self._driver.read(contact_id, path)
        except NotFoundError:
            logger.debug(f"No heartbeat from {contact_id} yet")
        except Exception as e:
            logger.warning(f"Error reading heartbeat file {path} from {contact_id}: {e}")
        return None

    def _open(self, obj: Any) -> Any:
        if self._encryption and self._codec.is_encrypted(obj):
            return self._codec.decrypt(self._private_key, obj)  # type: ignore[arg-type]
        return obj

    # -- loop control --------------------------------------------------------

    @property
    def beating(self) -> bool:
        return self._beat_loop.running

    @property
    def monitoring(self) -> bool:
        return self._monitor_loop.running

    def start_beat(self) -> None:
        self._beat_loop.start()

    def stop_beat(self) -> None:
        self._beat_loop.stop()

    def start_monitor(self) -> None:
        logger.debug("Starting heartbeat monitor")
        self._monitor_loop.start()

    def stop_monitor(self) -> None:
        self._monitor_loop.stop()

    async def close(self) -> None:
        # A finishing first beat would start the monitor, so stop beating first.
        self.stop_beat()
        await self._beat_loop.wait_stopped()
        self.stop_monitor()
        await self._monitor_loop.wait_stopped()
        await self._background.join()
