"""Tests for decoding of transport-encoded category fields."""
from __future__ import annotations

import base64

import pytest

from replica.errors import DecodeError
from replica.ingest.decompress import decode_field, decompress_field, has_envelope


def test_plain_xml_passes_through_unchanged(sales_xml: str) -> None:
    assert decompress_field(sales_xml) == sales_xml


def test_gzip_base64_field_is_decoded(sales_xml: str, encode) -> None:
    assert decompress_field(encode(sales_xml)) == sales_xml


def test_wrapped_base64_with_whitespace_is_decoded(sales_xml: str, encode) -> None:
    encoded = encode(sales_xml)
    wrapped = "\n".join(encoded[i : i + 40] for i in range(0, len(encoded), 40))

    assert decompress_field(wrapped) == sales_xml


def test_base64_of_plain_xml_falls_back_to_raw_payload(sales_xml: str) -> None:
    encoded = base64.b64encode(sales_xml.encode("utf-8")).decode("ascii")

    assert decompress_field(encoded) == sales_xml


@pytest.mark.parametrize("value", [None, "", "   "])
def test_empty_values_decode_to_empty_string(value: object) -> None:
    assert decompress_field(value) == ""


def test_garbage_is_discarded_without_raising() -> None:
    assert decompress_field("this is not base64 !!!", category="sales") == ""


def test_strict_decoder_reports_missing_envelope() -> None:
    encoded = base64.b64encode(b"<REPORT>nothing here</REPORT>").decode("ascii")

    with pytest.raises(DecodeError):
        decode_field(encoded)


def test_strict_decoder_rejects_non_string_values() -> None:
    with pytest.raises(DecodeError):
        decode_field(123)


def test_envelope_marker_is_case_insensitive() -> None:
    assert has_envelope("<envelope>")
    assert has_envelope("<ENVELOPE xmlns='x'>")
    assert not has_envelope("<ENVELOPES>")
    assert not has_envelope("")
