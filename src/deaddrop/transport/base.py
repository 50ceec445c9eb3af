"""
Remote storage driver interface.

A driver reads and writes JSON blobs at logical paths inside a per-user
namespace. Absent artifacts come back as None (drivers may also raise
NotFoundError); any other failure raises.
"""

from typing import Any, Optional, Protocol


class StorageDriver(Protocol):
    # Backends whose keys cannot contain a literal "."
    forbids_dots: bool

    async def write(self, user: str, path: str, data: Any) -> None: ...

    async def read(self, user: str, path: str) -> Optional[Any]: ...

    async def delete(self, user: str, path: str) -> None: ...

    async def list_index(self, remote_user: str, dir_path: str) -> Optional[dict[str, Any]]: ...
