"""HttpStorageDriver against an in-memory httpx transport."""

import json

import httpx
import pytest

from deaddrop.errors import StorageError
from deaddrop.transport.http import INDEX_FILE_NAME, HttpStorageDriver


class BlobServer:
    def __init__(self):
        self.blobs: dict[str, object] = {}
        self.requests: list[httpx.Request] = []
        self.fail_status: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status:
            return httpx.Response(self.fail_status, text="unavailable")
        path = request.url.path
        if request.method == "PUT":
            self.blobs[path] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})
        if request.method == "GET":
            if path not in self.blobs:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, json=self.blobs[path])
        if request.method == "DELETE":
            if self.blobs.pop(path, None) is None:
                return httpx.Response(404, text="not found")
            return httpx.Response(204)
        return httpx.Response(405)


def make(server: BlobServer, **kwargs) -> HttpStorageDriver:
    return HttpStorageDriver(base_url="https://store.test", transport=httpx.MockTransport(server), **kwargs)


@pytest.mark.asyncio
async def test_write_read_and_index():
    server = BlobServer()
    async with make(server, token="t0k") as driver:
        await driver.write("alice", "bob/conversations/offline/5.cm", {"id": "5"})

        assert await driver.read("alice", "bob/conversations/offline/5.cm") == {"id": "5"}
        index = await driver.list_index("alice", "bob/conversations/offline")

    assert list(index["active"]) == ["5.cm"]
    assert server.requests[0].url.path == "/alice/deaddrop/bob/conversations/offline/5.cm"
    assert server.requests[0].headers["Authorization"] == "Bearer t0k"
    assert f"/alice/deaddrop/bob/conversations/offline/{INDEX_FILE_NAME}" in server.blobs


@pytest.mark.asyncio
async def test_missing_artifacts_read_as_none():
    async with make(BlobServer()) as driver:
        assert await driver.read("bob", "alice/hb.sesj") is None
        assert await driver.list_index("bob", "alice/conversations/offline") is None


@pytest.mark.asyncio
async def test_delete_moves_entry_to_deleted():
    server = BlobServer()
    async with make(server) as driver:
        await driver.write("alice", "bob/conversations/offline/1.cm", {"id": "1"})
        await driver.write("alice", "bob/conversations/offline/2.cm", {"id": "2"})
        await driver.delete("alice", "bob/conversations/offline/1.cm")
        # Already gone is not an error.
        await driver.delete("alice", "bob/conversations/offline/1.cm")
        index = await driver.list_index("alice", "bob/conversations/offline")

    assert list(index["active"]) == ["2.cm"]
    assert list(index["deleted"]) == ["1.cm"]


@pytest.mark.asyncio
async def test_dots_are_replaced_for_backends_that_forbid_them():
    server = BlobServer()
    async with make(server, forbids_dots=True) as driver:
        assert driver.forbids_dots
        await driver.write("alice", "bob/hb.sesj", {"userId": "alice", "timestamp": 1})
        index = await driver.list_index("alice", "bob")

    assert "/alice/deaddrop/bob/hb_sesj" in server.blobs
    assert list(index["active"]) == ["hb_sesj"]


@pytest.mark.asyncio
async def test_server_errors_raise_storage_error():
    server = BlobServer()
    server.fail_status = 503
    async with make(server) as driver:
        with pytest.raises(StorageError) as exc:
            await driver.read("bob", "alice/hb.sesj")
        with pytest.raises(StorageError):
            await driver.write("alice", "bob/hb.sesj", {})

    assert exc.value.code == "storage_error"
    assert exc.value.details == {"status_code": 503}


@pytest.mark.asyncio
async def test_transport_errors_raise_storage_error():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    driver = HttpStorageDriver(base_url="https://store.test", transport=httpx.MockTransport(refuse))
    with pytest.raises(StorageError):
        await driver.read("bob", "alice/hb.sesj")
    await driver.close()
