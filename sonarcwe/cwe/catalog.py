"""Reference data for the CWE categories the dashboard reports on."""

from collections import Counter

from pydantic import BaseModel

from .identifiers import cwe_number, cwe_sort_key, normalize_cwe_id

MITRE_DEFINITION_URL = "https://cwe.mitre.org/data/definitions"


class CweEntry(BaseModel):
    id: str
    name: str
    description: str
    url: str
    category: str | None = None
    severity: str | None = None


def url_for(cwe_id: str) -> str | None:
    """MITRE definition page for a CWE id, or None if the id is invalid."""
    normalized = normalize_cwe_id(cwe_id)
    if normalized is None:
        return None
    return f"{MITRE_DEFINITION_URL}/{cwe_number(normalized)}.html"


def _entry(number: int, name: str, description: str, category: str, severity: str) -> CweEntry:
    cwe_id = f"CWE-{number}"
    return CweEntry(
        id=cwe_id,
        name=name,
        description=description,
        url=f"{MITRE_DEFINITION_URL}/{number}.html",
        category=category,
        severity=severity,
    )


COMMON_CWES: tuple[CweEntry, ...] = (
    _entry(
        79,
        "Cross-site Scripting (XSS)",
        "The software does not neutralize or incorrectly neutralizes user-controllable "
        "input before it is placed in output that is used as a web page that is served "
        "to other users.",
        "Injection",
        "High",
    ),
    _entry(
        89,
        "SQL Injection",
        "The software constructs all or part of an SQL command using externally-influenced "
        "input from an upstream component, but it does not neutralize or incorrectly "
        "neutralizes special elements that could modify the intended SQL command.",
        "Injection",
        "Critical",
    ),
    _entry(
        78,
        "OS Command Injection",
        "The software constructs all or part of an OS command using externally-influenced "
        "input from an upstream component, but it does not neutralize or incorrectly "
        "neutralizes special elements that could modify the intended OS command.",
        "Injection",
        "Critical",
    ),
    _entry(
        367,
        "Time-of-check Time-of-use (TOCTOU) Race Condition",
        "The software checks the state of a resource before using that resource, but the "
        "resource's state can change between the check and the use in a way that "
        "invalidates the results of the check.",
        "Race Condition",
        "Medium",
    ),
    _entry(
        693,
        "Protection Mechanism Failure",
        "The product does not use or incorrectly uses a protection mechanism that provides "
        "sufficient defense against directed attacks against the product.",
        "Protection Mechanism",
        "Medium",
    ),
    _entry(
        22,
        "Path Traversal",
        "The software uses external input to construct a pathname that is intended to "
        "identify a file or directory located underneath a restricted parent directory, "
        "but does not properly neutralize special elements that can cause the pathname "
        "to resolve outside of the restricted directory.",
        "Path Traversal",
        "High",
    ),
    _entry(
        352,
        "Cross-Site Request Forgery (CSRF)",
        "The web application does not, or can not, sufficiently verify that a "
        "well-formed, valid, consistent request was intentionally provided by the user "
        "who submitted the request.",
        "CSRF",
        "Medium",
    ),
    _entry(
        434,
        "Unrestricted Upload of File with Dangerous Type",
        "The software allows the attacker to upload or transfer files of dangerous types "
        "that can be automatically processed within the product's environment.",
        "File Upload",
        "High",
    ),
    _entry(
        798,
        "Use of Hard-coded Credentials",
        "The software contains hard-coded credentials, such as a password or "
        "cryptographic key, which it uses for its own inbound authentication, outbound "
        "communication to external components, or encryption of internal data.",
        "Authentication",
        "Critical",
    ),
    _entry(
        311,
        "Missing Encryption of Sensitive Data",
        "The software does not encrypt sensitive or critical information before storage "
        "or transmission.",
        "Cryptography",
        "High",
    ),
)


class CweCatalog:
    """In-memory CWE lookup keyed by normalized id."""

    def __init__(self, entries: tuple[CweEntry, ...] | list[CweEntry] = COMMON_CWES) -> None:
        self._entries: dict[str, CweEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: CweEntry) -> None:
        normalized = normalize_cwe_id(entry.id)
        if normalized is None:
            raise ValueError(f"Invalid CWE id: {entry.id!r}")
        if normalized != entry.id:
            entry = entry.model_copy(update={"id": normalized})
        self._entries[normalized] = entry

    def get(self, cwe_id: str) -> CweEntry | None:
        normalized = normalize_cwe_id(cwe_id)
        if normalized is None:
            return None
        return self._entries.get(normalized)

    def __contains__(self, cwe_id: object) -> bool:
        return isinstance(cwe_id, str) and self.get(cwe_id) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def all(self) -> list[CweEntry]:
        return [self._entries[k] for k in sorted(self._entries, key=cwe_sort_key)]

    def search(self, query: str) -> list[CweEntry]:
        """Case-insensitive match against id, name and description."""
        needle = query.strip().lower()
        if not needle:
            return self.all()
        return [
            entry
            for entry in self.all()
            if needle in entry.id.lower()
            or needle in entry.name.lower()
            or needle in entry.description.lower()
        ]

    def statistics(self) -> dict[str, object]:
        entries = self.all()
        by_category = Counter(e.category for e in entries if e.category)
        by_severity = Counter(e.severity for e in entries if e.severity)
        return {
            "total": len(entries),
            "byCategory": dict(sorted(by_category.items())),
            "bySeverity": dict(sorted(by_severity.items())),
        }

    def name_of(self, cwe_id: str) -> str | None:
        entry = self.get(cwe_id)
        return entry.name if entry else None


default_catalog = CweCatalog()
