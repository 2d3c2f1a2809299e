"""Shared fixtures for the sync pipeline and storage tests."""
from __future__ import annotations

import base64
import gzip
from typing import Callable, Iterator

import pytest

from replica.config import SyncSettings
from replica.kvstore import InMemoryKeyValueStore, reset_kv_store_cache
from replica.services.sync import SyncService, reset_sync_service_cache
from replica.storage import ChunkedDocumentStore, LargeObjectStore

SALES_XML = (
    "<ENVELOPE><VOUCHER><VOUCHERTYPENAME>Sales</VOUCHERTYPENAME><DATE>20240101</DATE>"
    "<PARTYNAME>Acme</PARTYNAME><AMOUNT>1000</AMOUNT><ISDEEMEDPOSITIVE>Yes</ISDEEMEDPOSITIVE>"
    "</VOUCHER></ENVELOPE>"
)


def encode_field(xml: str) -> str:
    """Gzip and base64 encode *xml* the way the desktop pusher does."""

    return base64.b64encode(gzip.compress(xml.encode("utf-8"))).decode("ascii")


@pytest.fixture(autouse=True)
def _reset_caches() -> Iterator[None]:
    reset_kv_store_cache()
    reset_sync_service_cache()
    yield
    reset_kv_store_cache()
    reset_sync_service_cache()


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def large_store(kv_store: InMemoryKeyValueStore) -> LargeObjectStore:
    return LargeObjectStore(kv_store, namespace="test", chunk_size=64)


@pytest.fixture
def sync_service(large_store: LargeObjectStore) -> SyncService:
    return SyncService(settings=SyncSettings(), document_store=ChunkedDocumentStore(large_store))


@pytest.fixture
def sales_xml() -> str:
    return SALES_XML


@pytest.fixture
def encode() -> Callable[[str], str]:
    return encode_field
