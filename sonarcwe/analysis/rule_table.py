"""Static rule -> CWE fallback table.

SonarCloud does not always return security standards for a rule, so the
classifier falls back to a hand-curated mapping keyed on the rule key.
The table is a seed built from observed rule keys, not an authoritative
catalog: extend it (or load a replacement) through RuleTable rather than
touching the classifier.
"""

import re
from collections.abc import Mapping
from types import MappingProxyType

from ..cwe.identifiers import normalize_cwe_id

# Full rule keys whose suffix is not a numbered S-rule
KNOWN_RULE_KEYS: Mapping[str, str] = MappingProxyType(
    {
        "Web:DoctypePresenceCheck": "CWE-693",
        "Web:PageWithoutTitleCheck": "CWE-693",
        "Web:S5254": "CWE-693",
    }
)

# Rule-local number -> CWE, shared across language plugins
RULE_NUMBER_CWES: Mapping[str, str] = MappingProxyType(
    {
        # SQL injection
        "3649": "CWE-89",
        # Time-of-check time-of-use
        "2083": "CWE-367",
        # Cross-site scripting
        "2486": "CWE-79",
        "6853": "CWE-79",
        "6774": "CWE-79",
        "1481": "CWE-79",
        "1854": "CWE-79",
        "1874": "CWE-79",
        "6479": "CWE-79",
        "6819": "CWE-79",
        "6551": "CWE-79",
        "6582": "CWE-79",
        "5131": "CWE-79",
        "2076": "CWE-79",
        # Path traversal
        "6096": "CWE-22",
        # OS command injection
        "106": "CWE-78",
        "1075": "CWE-78",
        "112": "CWE-78",
        "1220": "CWE-78",
        "1172": "CWE-78",
        "5786": "CWE-78",
        "1989": "CWE-78",
        "1135": "CWE-78",
        "1128": "CWE-78",
        "1161": "CWE-78",
        "1130": "CWE-78",
        "1118": "CWE-78",
        # Protection mechanism failure
        "5254": "CWE-693",
    }
)

# "<repository>:<letter><3-4 digits>", e.g. java:S3649, javasecurity:S5131
_RULE_NUMBER_RE = re.compile(r"^[^:\s]+:[A-Za-z]([0-9]{3,4})$", re.ASCII)


def extract_rule_number(rule_key: str) -> str | None:
    """Rule-local number from a rule key, or None if the key has no such part."""
    if not rule_key:
        return None
    match = _RULE_NUMBER_RE.match(rule_key.strip())
    return match.group(1) if match else None


class RuleTable:
    """Immutable lookup from rule keys to a single CWE id."""

    def __init__(
        self,
        rule_keys: Mapping[str, str] = KNOWN_RULE_KEYS,
        rule_numbers: Mapping[str, str] = RULE_NUMBER_CWES,
    ) -> None:
        self._rule_keys = MappingProxyType(self._normalized(rule_keys))
        self._rule_numbers = MappingProxyType(self._normalized(rule_numbers))

    @staticmethod
    def _normalized(table: Mapping[str, str]) -> dict[str, str]:
        normalized = {}
        for key, value in table.items():
            cwe_id = normalize_cwe_id(value)
            if cwe_id is None:
                raise ValueError(f"Invalid CWE id {value!r} for rule {key!r}")
            normalized[key] = cwe_id
        return normalized

    def resolve(self, rule_key: str) -> str | None:
        """CWE id for a rule key: exact key first, then its rule number."""
        if not rule_key:
            return None
        exact = self._rule_keys.get(rule_key)
        if exact:
            return exact

        number = extract_rule_number(rule_key)
        if number is None:
            return None
        return self._rule_numbers.get(number)

    def extended(
        self,
        rule_keys: Mapping[str, str] | None = None,
        rule_numbers: Mapping[str, str] | None = None,
    ) -> "RuleTable":
        """New table with extra entries layered over this one."""
        return RuleTable(
            {**self._rule_keys, **(rule_keys or {})},
            {**self._rule_numbers, **(rule_numbers or {})},
        )

    def __len__(self) -> int:
        return len(self._rule_keys) + len(self._rule_numbers)


DEFAULT_RULE_TABLE = RuleTable()


def resolve_rule_key(rule_key: str, table: RuleTable = DEFAULT_RULE_TABLE) -> str | None:
    return table.resolve(rule_key)
