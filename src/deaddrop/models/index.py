"""
Directory index — `{active: {<fileName>: <marker>}}` as kept by the storage driver.
"""

from typing import Any, Optional

from pydantic import BaseModel


class RemoteIndex(BaseModel):
    active: Optional[dict[str, Any]] = None
    deleted: Optional[dict[str, Any]] = None

    def file_names(self) -> list[str]:
        return list(self.active or {})
