"""Common exceptions for key-value store backends."""
from __future__ import annotations

from replica.errors import ReplicaError


class StorageError(ReplicaError):
    """Raised when the key-value backend rejects a read, write or delete."""
