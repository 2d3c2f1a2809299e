"""Exception hierarchy shared by the sync pipeline and storage layers."""
from __future__ import annotations


class ReplicaError(RuntimeError):
    """Base class for all errors raised by the replica service."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class DecodeError(ReplicaError):
    """A transport-encoded category field is not valid base64/gzip XML."""


class ParseError(ReplicaError):
    """An XML document or block could not be tokenised."""


class InvalidInputError(ReplicaError):
    """The push request itself is malformed and must be rejected."""


class ReconstructionError(ReplicaError):
    """A stored document could not be reassembled from its chunks."""
