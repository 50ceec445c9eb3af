"""Shared fixtures: an in-memory storage driver that records every call."""

import asyncio
import copy
from typing import Any, Optional

import pytest

from deaddrop.crypto import SealedBoxCodec
from deaddrop.errors import NotFoundError


class MemoryDriver:
    """Blob store keyed by (user, path), keeping a per-directory index like the HTTP driver."""

    def __init__(self, forbids_dots: bool = False, missing_raises: bool = False):
        self.forbids_dots = forbids_dots
        # Raise NotFoundError for absent artifacts instead of returning None.
        self.missing_raises = missing_raises
        self.blobs: dict[tuple[str, str], Any] = {}
        self.indexes: dict[tuple[str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.writes: list[tuple[str, str, Any]] = []
        self.failures: dict[tuple[str, str, str], Exception] = {}

    def fail(self, op: str, user: str, path: str, exc: Optional[Exception] = None) -> None:
        self.failures[(op, user, path)] = exc or OSError(f"{op} {user}:{path} unavailable")

    def heal(self) -> None:
        self.failures.clear()

    async def _enter(self, op: str, user: str, path: str) -> None:
        self.calls.append((op, user, path))
        await asyncio.sleep(0)
        exc = self.failures.get((op, user, path))
        if exc is not None:
            raise exc

    def _absent(self, what: str) -> None:
        if self.missing_raises:
            raise NotFoundError(f"{what} does not exist", what)
        return None

    def calls_for(self, op: str) -> list[tuple[str, str]]:
        return [(user, path) for o, user, path in self.calls if o == op]

    async def write(self, user: str, path: str, data: Any) -> None:
        await self._enter("write", user, path)
        self.blobs[(user, path)] = copy.deepcopy(data)
        self.writes.append((user, path, data))
        dir_path, _, name = path.rpartition("/")
        index = self.indexes.setdefault((user, dir_path), {"active": {}})
        index["active"][name] = {"time": len(self.writes)}

    async def read(self, user: str, path: str) -> Optional[Any]:
        await self._enter("read", user, path)
        if (user, path) not in self.blobs:
            return self._absent(f"{user}:{path}")
        return copy.deepcopy(self.blobs[(user, path)])

    async def delete(self, user: str, path: str) -> None:
        await self._enter("delete", user, path)
        self.blobs.pop((user, path), None)
        dir_path, _, name = path.rpartition("/")
        index = self.indexes.get((user, dir_path))
        if index is not None:
            index["active"].pop(name, None)

    async def list_index(self, remote_user: str, dir_path: str) -> Optional[dict[str, Any]]:
        await self._enter("list_index", remote_user, dir_path)
        index = self.indexes.get((remote_user, dir_path))
        if index is None:
            return self._absent(f"{remote_user}:{dir_path}")
        return copy.deepcopy(index)


class KeyPair:
    def __init__(self) -> None:
        self.private, self.public = SealedBoxCodec.generate_keypair()


@pytest.fixture
def driver() -> MemoryDriver:
    return MemoryDriver()


@pytest.fixture
def codec() -> SealedBoxCodec:
    return SealedBoxCodec()


@pytest.fixture
def keys() -> dict[str, KeyPair]:
    return {name: KeyPair() for name in ("alice", "bob", "carol", "dave")}


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Poll a condition while letting background loops run."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until():
    return wait_for


@pytest.fixture
def make_driver():
    return MemoryDriver
