"""Weakness inference for SonarCloud issues.

Each issue gets exactly one classification. The evidence chain is tried
in order and the first step that yields an id wins:

1. the rule's declared "cwe" security standard (high confidence)
2. ``cwe-<n>`` tags on the issue itself (medium)
3. the static rule table, by full key or rule number (medium, one id)
4. nothing (low, no ids)

Missing rule records and missing tags are "no evidence", never errors.
"""

import logging
from collections.abc import Callable, Iterable, Mapping

from ..clients.sonarcloud_client import Issue
from ..cwe.identifiers import cwe_ids_from_tags, normalize_cwe_ids
from .models import (
    ClassificationSource,
    ClassifiedIssue,
    Confidence,
    RuleRecord,
    WeaknessClassification,
)
from .rule_table import DEFAULT_RULE_TABLE, RuleTable

logger = logging.getLogger(__name__)

RuleLookup = Mapping[str, RuleRecord]


class WeaknessClassifier:
    def __init__(self, rule_table: RuleTable = DEFAULT_RULE_TABLE) -> None:
        self.rule_table = rule_table
        self._steps: tuple[
            tuple[ClassificationSource, Confidence, Callable[[Issue, RuleLookup], tuple[str, ...]]],
            ...,
        ] = (
            (ClassificationSource.DECLARED_STANDARD, Confidence.HIGH, self._from_declared_standard),
            (ClassificationSource.ISSUE_TAG, Confidence.MEDIUM, self._from_issue_tags),
            (ClassificationSource.RULE_KEY, Confidence.MEDIUM, self._from_rule_key),
        )

    def _from_declared_standard(self, issue: Issue, lookup: RuleLookup) -> tuple[str, ...]:
        record = lookup.get(issue.rule)
        if record is None:
            return ()
        return normalize_cwe_ids(record.declared_cwe_ids)

    def _from_issue_tags(self, issue: Issue, lookup: RuleLookup) -> tuple[str, ...]:
        return cwe_ids_from_tags(issue.tags)

    def _from_rule_key(self, issue: Issue, lookup: RuleLookup) -> tuple[str, ...]:
        cwe_id = self.rule_table.resolve(issue.rule)
        return (cwe_id,) if cwe_id else ()

    def classify(self, issue: Issue, lookup: RuleLookup) -> WeaknessClassification:
        for source, confidence, step in self._steps:
            try:
                cwe_ids = step(issue, lookup)
            except Exception as e:
                logger.debug(f"{source.value} step failed for issue {issue.key}: {e}")
                continue
            if cwe_ids:
                return WeaknessClassification(
                    cwe_ids=cwe_ids, confidence=confidence, source=source
                )

        return WeaknessClassification.unclassified()

    def classify_all(
        self, issues: Iterable[Issue], lookup: RuleLookup
    ) -> list[ClassifiedIssue]:
        return [
            ClassifiedIssue(issue=issue, classification=self.classify(issue, lookup))
            for issue in issues
        ]
