"""
Client configuration, persisted as JSON in ~/.deaddrop/config.json.

Set DEADDROP_HOME to keep the file somewhere else.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

from deaddrop.heartbeat import HB_INTERVAL_S, HB_MONITOR_INTERVAL_S
from deaddrop.models.contact import Contact
from deaddrop.offline import RECV_INTERVAL_S, SEND_INTERVAL_S
from deaddrop.transport.http import DEFAULT_APP_NAME, DEFAULT_BASE_URL

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"


class ClientConfig(BaseModel):
    user_id: Optional[str] = None
    private_key: Optional[str] = None
    public_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    app_name: str = DEFAULT_APP_NAME
    token: Optional[str] = None
    forbids_dots: bool = False
    encryption: bool = True
    send_interval: float = SEND_INTERVAL_S
    receive_interval: float = RECV_INTERVAL_S
    beat_interval: float = HB_INTERVAL_S
    monitor_interval: float = HB_MONITOR_INTERVAL_S
    contacts: list[Contact] = []

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        for contact in self.contacts:
            if contact.id == contact_id:
                return contact
        return None


def config_dir() -> Path:
    home = os.environ.get("DEADDROP_HOME")
    return Path(home) if home else Path.home() / ".deaddrop"


def config_path() -> Path:
    return config_dir() / CONFIG_FILE_NAME


def load_config(path: Optional[Path] = None) -> ClientConfig:
    path = path or config_path()
    try:
        return ClientConfig.model_validate(json.loads(path.read_text()))
    except FileNotFoundError:
        return ClientConfig()
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Ignoring unreadable config {path}: {e}")
        return ClientConfig()


def save_config(cfg: ClientConfig, path: Optional[Path] = None) -> Path:
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg.model_dump(mode="json", by_alias=True), indent=2))
    # Holds the private key.
    os.chmod(path, 0o600)
    return path
