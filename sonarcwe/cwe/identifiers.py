"""Normalization of CWE identifiers.

Every weakness id leaving this module has the form ``CWE-<digits>``:
uppercase prefix, ASCII digits only, no leading zeros.
"""

import re
from collections.abc import Iterable
from typing import Any

CWE_PREFIX = "CWE-"

# "79", "CWE-79", "cwe_79", "CWE 79", "cwe79"
_CWE_VALUE_RE = re.compile(r"^\s*(?:cwe[-_: ]?)?0*([0-9]+)\s*$", re.IGNORECASE | re.ASCII)

# Issue/rule tags only count when the cwe prefix is present
_CWE_TAG_RE = re.compile(r"^cwe[-_: ]?([0-9]+)$", re.IGNORECASE | re.ASCII)


def _format(digits: str) -> str:
    return f"{CWE_PREFIX}{int(digits)}"


def normalize_cwe_id(value: Any) -> str | None:
    """Normalize a declared weakness identifier.

    Accepts bare numbers ("89", 89) and prefixed forms ("CWE-89",
    "cwe_89"). Returns None for anything that does not carry a CWE number,
    such as the "unknown" placeholder SonarCloud uses.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _format(str(value)) if value >= 0 else None

    match = _CWE_VALUE_RE.match(str(value))
    if not match:
        return None
    return _format(match.group(1))


def normalize_cwe_ids(values: Iterable[Any] | None) -> tuple[str, ...]:
    """Normalize many identifiers, dropping invalid ones and duplicates.

    First-seen order is kept.
    """
    if not values:
        return ()
    if isinstance(values, (str, int)):
        values = [values]

    seen: dict[str, None] = {}
    for value in values:
        cwe_id = normalize_cwe_id(value)
        if cwe_id is not None:
            seen.setdefault(cwe_id, None)
    return tuple(seen)


def cwe_ids_from_tags(tags: Iterable[str] | None) -> tuple[str, ...]:
    """Extract CWE ids from free-text tags such as ``cwe-89`` or ``CWE79``."""
    if not tags:
        return ()

    seen: dict[str, None] = {}
    for tag in tags:
        if not isinstance(tag, str):
            continue
        match = _CWE_TAG_RE.match(tag.strip())
        if match:
            seen.setdefault(_format(match.group(1)), None)
    return tuple(seen)


def is_cwe_id(value: str) -> bool:
    """True if value is already in normalized ``CWE-<digits>`` form."""
    return normalize_cwe_id(value) == value


def cwe_number(cwe_id: str) -> int:
    """Numeric part of a normalized id; -1 if it has none."""
    match = _CWE_VALUE_RE.match(cwe_id)
    return int(match.group(1)) if match else -1


def cwe_sort_key(cwe_id: str) -> tuple[int, str]:
    """Sort key ordering ids numerically (CWE-22 before CWE-200)."""
    return cwe_number(cwe_id), cwe_id
