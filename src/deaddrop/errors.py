"""
deaddrop error types.

Validation and construction errors surface synchronously to the caller.
NotFound and storage errors are raised by drivers and absorbed by the
polling services, which log them and move on to the next contact.
"""

from typing import Any, Optional


class DeadDropError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class ValidationError(DeadDropError):
    def __init__(self, message: str, code: str = "validation_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class MissingKeyError(ValidationError):
    def __init__(self, contact_id: str):
        super().__init__(
            f"Unable to send message to {contact_id}. No public key available.",
            code="missing_key",
            details={"contact_id": contact_id},
        )
        self.contact_id = contact_id


class ConstructionError(DeadDropError):
    def __init__(self, name: str):
        super().__init__("construction_error", f"{name} is undefined", {"argument": name})


class NotFoundError(DeadDropError):
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__("not_found", message, {"path": path} if path else None)


class StorageError(DeadDropError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("storage_error", message, details)


class DecryptionError(DeadDropError):
    def __init__(self, message: str):
        super().__init__("decryption_error", message)
