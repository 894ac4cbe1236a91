"""Aggregate statistics over classified issues.

Every mapping produced here is built in a fixed key order (CWE ids
ascending, severities by rank, types by declaration order), so the same
input always serializes to the same bytes regardless of issue order.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal

from ..clients.sonarcloud_client import Issue
from ..constants import (
    DEFAULT_COVERAGE_PRECISION,
    DEFAULT_SHARE_PRECISION,
    ISSUE_TYPES,
    SEVERITY_ORDER,
    TOP_CATEGORY_LIMIT,
)
from .models import CategoryShare, ClassifiedIssue, Coverage, CweStatistics

UNKNOWN = "UNKNOWN"


def percentage(part: int, whole: int, precision: int = 0) -> float:
    """part / whole * 100 rounded half up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    value = (Decimal(part) * 100 / Decimal(whole)).quantize(
        Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP
    )
    return int(value) if precision == 0 else float(value)


def _ordered_counts(counter: Counter, known: Sequence[str], zero_fill: bool) -> dict[str, int]:
    ordered: dict[str, int] = {}
    for name in known:
        if zero_fill or counter.get(name):
            ordered[name] = counter.get(name, 0)
    for name in sorted(k for k in counter if k not in known):
        ordered[name] = counter[name]
    return ordered


def severity_breakdown(issues: Iterable[Issue]) -> dict[str, int]:
    """Issue count per severity, all five levels present, highest first."""
    counter = Counter(issue.severity or UNKNOWN for issue in issues)
    return _ordered_counts(counter, SEVERITY_ORDER, zero_fill=True)


def type_breakdown(issues: Iterable[Issue]) -> dict[str, int]:
    """Issue count per type, all four types present."""
    counter = Counter(issue.type or UNKNOWN for issue in issues)
    return _ordered_counts(counter, ISSUE_TYPES, zero_fill=True)


def compute_coverage(
    classified: Sequence[ClassifiedIssue], precision: int = DEFAULT_COVERAGE_PRECISION
) -> Coverage:
    total = len(classified)
    with_weakness = sum(1 for item in classified if item.cwe_ids)
    return Coverage(
        classified_count=with_weakness,
        total_count=total,
        percentage=percentage(with_weakness, total, precision),
    )


def rank_categories(
    counts: dict[str, int],
    top_n: int = TOP_CATEGORY_LIMIT,
    precision: int = DEFAULT_SHARE_PRECISION,
) -> list[CategoryShare]:
    """Top CWE categories by count desc, then id asc.

    Percentages are shares of all (issue, weakness) pairs, so an issue
    mapped to two CWEs counts towards both.
    """
    total = sum(counts.values())
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [
        CategoryShare(id=cwe_id, count=count, percentage=percentage(count, total, precision))
        for cwe_id, count in ranked[:top_n]
    ]


def compute_statistics(
    classified: Sequence[ClassifiedIssue],
    precision: int = DEFAULT_COVERAGE_PRECISION,
    share_precision: int = DEFAULT_SHARE_PRECISION,
    top_n: int = TOP_CATEGORY_LIMIT,
) -> CweStatistics:
    counts: Counter = Counter()
    by_severity: dict[str, Counter] = {}
    by_type: dict[str, Counter] = {}

    for item in classified:
        severity = item.issue.severity or UNKNOWN
        issue_type = item.issue.type or UNKNOWN
        for cwe_id in item.cwe_ids:
            counts[cwe_id] += 1
            by_severity.setdefault(cwe_id, Counter())[severity] += 1
            by_type.setdefault(cwe_id, Counter())[issue_type] += 1

    cwe_order = sorted(counts)
    issues = [item.issue for item in classified]

    return CweStatistics(
        total_classified_occurrences=sum(counts.values()),
        per_weakness_counts={cwe_id: counts[cwe_id] for cwe_id in cwe_order},
        per_weakness_severity={
            cwe_id: _ordered_counts(by_severity[cwe_id], SEVERITY_ORDER, zero_fill=False)
            for cwe_id in cwe_order
        },
        per_weakness_type={
            cwe_id: _ordered_counts(by_type[cwe_id], ISSUE_TYPES, zero_fill=False)
            for cwe_id in cwe_order
        },
        top_categories=rank_categories(dict(counts), top_n, share_precision),
        severity_breakdown=severity_breakdown(issues),
        type_breakdown=type_breakdown(issues),
        coverage=compute_coverage(classified, precision),
    )
