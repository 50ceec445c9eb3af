from deaddrop.transport.base import StorageDriver
from deaddrop.transport.http import HttpStorageDriver

__all__ = ["StorageDriver", "HttpStorageDriver"]
