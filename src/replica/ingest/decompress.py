"""Decoding of transport-encoded category fields into XML text."""
from __future__ import annotations

import base64
import binascii
import logging
import re
import zlib

from replica.errors import DecodeError

LOGGER = logging.getLogger(__name__)

ENVELOPE_MARKER = "<ENVELOPE"

_ENVELOPE_RE = re.compile(r"<ENVELOPE[\s>/]", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
# Auto-detect gzip or zlib headers.
_GZIP_WBITS = 32 + zlib.MAX_WBITS
_READ_SIZE = 64 * 1024


def has_envelope(text: str) -> bool:
    """Return ``True`` when *text* contains the Tally ``<ENVELOPE>`` root."""

    return bool(text) and _ENVELOPE_RE.search(text) is not None


def _b64decode(value: str) -> bytes:
    compact = _WHITESPACE_RE.sub("", value)
    compact += "=" * (-len(compact) % 4)
    try:
        if "-" in compact or "_" in compact:
            return base64.urlsafe_b64decode(compact)
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("Field is not valid base64", cause=exc) from exc


def _gunzip(data: bytes) -> bytes:
    decompressor = zlib.decompressobj(_GZIP_WBITS)
    output = bytearray()
    try:
        for offset in range(0, len(data), _READ_SIZE):
            output += decompressor.decompress(data[offset : offset + _READ_SIZE])
        output += decompressor.flush()
    except zlib.error as exc:
        raise DecodeError("Field is not valid gzip data", cause=exc) from exc
    if not decompressor.eof:
        raise DecodeError("Gzip stream is truncated")
    return bytes(output)


def decode_field(value: object) -> str:
    """Decode a category field, raising :class:`DecodeError` on failure.

    Plain XML passes through unchanged. Otherwise the value is treated as
    base64 of gzip-compressed XML; when the decompressed text does not carry
    the envelope marker the raw base64 payload is tried as plain text.
    """

    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"Expected a string field, got {type(value).__name__}")
    if not value.strip():
        return ""
    if has_envelope(value):
        return value

    raw = _b64decode(value)
    candidates: list[str] = []
    try:
        candidates.append(_gunzip(raw).decode("utf-8"))
    except DecodeError as error:
        LOGGER.debug("Gzip decoding failed, trying raw payload: %s", error)
    except UnicodeDecodeError as error:
        LOGGER.debug("Decompressed payload is not UTF-8, trying raw payload: %s", error)
    candidates.append(raw.decode("utf-8", errors="replace"))

    for text in candidates:
        if has_envelope(text):
            return text
    raise DecodeError("Decoded field does not contain an <ENVELOPE> document")


def decompress_field(value: object, *, category: str | None = None) -> str:
    """Return the XML text held in *value*, or ``""`` when it cannot be decoded."""

    try:
        return decode_field(value)
    except DecodeError as error:
        LOGGER.warning(
            "Discarding undecodable field%s: %s",
            f" for {category}" if category else "",
            error,
        )
        return ""


__all__ = ["ENVELOPE_MARKER", "decode_field", "decompress_field", "has_envelope"]
