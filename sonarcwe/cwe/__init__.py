"""CWE identifiers and reference catalog."""

from .catalog import COMMON_CWES, CweCatalog, CweEntry, default_catalog, url_for
from .identifiers import (
    cwe_ids_from_tags,
    cwe_sort_key,
    is_cwe_id,
    normalize_cwe_id,
    normalize_cwe_ids,
)

__all__ = [
    "COMMON_CWES",
    "CweCatalog",
    "CweEntry",
    "default_catalog",
    "url_for",
    "cwe_ids_from_tags",
    "cwe_sort_key",
    "is_cwe_id",
    "normalize_cwe_id",
    "normalize_cwe_ids",
]
