"""
HTTP blob-store driver.

Layout: {base_url}/{user}/{app_name}/{path}, JSON bodies, optional bearer
token. Every directory written through this driver carries a shared index
file listing its active and deleted entries so that peers can discover
new files without a listing endpoint.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from deaddrop.errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8008"
DEFAULT_APP_NAME = "deaddrop"
INDEX_FILE_NAME = "sharedIndex.json"


def clean_path(path: str) -> str:
    """Replace dots for backends that reject them in keys."""
    return path.replace(".", "_")


class HttpStorageDriver:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        app_name: str = DEFAULT_APP_NAME,
        token: Optional[str] = None,
        forbids_dots: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._app_name = app_name
        self._token = token
        self.forbids_dots = forbids_dots
        # Index updates are read-modify-write; one at a time per driver.
        self._index_lock = asyncio.Lock()
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": "deaddrop/0.1.0", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def set_token(self, token: str) -> None:
        self._token = token

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _url(self, user: str, path: str) -> str:
        url = f"/{user}/{self._app_name}/{path.lstrip('/')}"
        return clean_path(url) if self.forbids_dots else url

    async def _request(self, method: str, user: str, path: str, body: Any = None) -> httpx.Response:
        url = self._url(user, path)
        try:
            return await self._client.request(method, url, json=body, headers=self._auth_headers())
        except httpx.HTTPError as e:
            raise StorageError(f"{method} {url} failed: {e}", {"path": url})

    @staticmethod
    def _check(resp: httpx.Response, method: str) -> None:
        if resp.status_code >= 400:
            raise StorageError(
                f"{method} {resp.request.url.path} -> HTTP {resp.status_code}: {resp.text[:200]}",
                {"status_code": resp.status_code},
            )

    async def read(self, user: str, path: str) -> Optional[Any]:
        resp = await self._request("GET", user, path)
        if resp.status_code == 404:
            logger.debug(f"Nothing at {user}:{path}")
            return None
        self._check(resp, "GET")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StorageError(f"Invalid JSON at {user}:{path}: {e}")

    async def write(self, user: str, path: str, data: Any) -> None:
        resp = await self._request("PUT", user, path, data)
        self._check(resp, "PUT")
        logger.debug(f"Wrote {user}:{path}")
        await self._update_index(user, path, removed=False)

    async def delete(self, user: str, path: str) -> None:
        resp = await self._request("DELETE", user, path)
        if resp.status_code != 404:
            self._check(resp, "DELETE")
        logger.debug(f"Deleted {user}:{path}")
        await self._update_index(user, path, removed=True)

    async def list_index(self, remote_user: str, dir_path: str) -> Optional[dict[str, Any]]:
        return await self.read(remote_user, f"{dir_path.rstrip('/')}/{INDEX_FILE_NAME}")

    async def _update_index(self, user: str, path: str, removed: bool) -> None:
        dir_path, _, file_name = path.rpartition("/")
        if file_name == INDEX_FILE_NAME:
            return
        if self.forbids_dots:
            file_name = clean_path(file_name)
        index_path = f"{dir_path}/{INDEX_FILE_NAME}" if dir_path else INDEX_FILE_NAME

        async with self._index_lock:
            index = await self.read(user, index_path) or {}
            active = dict(index.get("active") or {})
            deleted = dict(index.get("deleted") or {})
            marker = {"time": int(time.time() * 1000)}
            if removed:
                active.pop(file_name, None)
                deleted[file_name] = marker
            else:
                deleted.pop(file_name, None)
                active[file_name] = marker

            resp = await self._request("PUT", user, index_path, {"active": active, "deleted": deleted})
            self._check(resp, "PUT")

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpStorageDriver":
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.close()
