"""
Roster entry — consumed by the services, owned by the host application.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Contact(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    public_key: Optional[str] = Field(default=None, alias="publicKey")
    title: str = ""

    @property
    def has_public_key(self) -> bool:
        return bool(self.public_key)
