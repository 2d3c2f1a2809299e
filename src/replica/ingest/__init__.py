"""Normalisation pipeline turning Tally XML exports into category buckets."""

from .aggregation import CATEGORY_ORDER, Category, NormalizedDocument, RenderPolicy, build_document
from .decompress import decompress_field
from .extractors import extract_blocks, get_any, get_field, parse_xml
from .pipeline import SyncPipeline, SyncPipelineConfig

__all__ = [
    "CATEGORY_ORDER",
    "Category",
    "NormalizedDocument",
    "RenderPolicy",
    "SyncPipeline",
    "SyncPipelineConfig",
    "build_document",
    "decompress_field",
    "extract_blocks",
    "get_any",
    "get_field",
    "parse_xml",
]
