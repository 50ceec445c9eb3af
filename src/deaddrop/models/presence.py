"""
Presence heartbeat record — the payload each peer republishes for its contacts.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class HeartbeatRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    user_id: str = Field(alias="userId")
    # Older clients wrote the timestamp under "time".
    timestamp: int = Field(
        alias="timestamp",
        validation_alias=AliasChoices("timestamp", "time"),
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
