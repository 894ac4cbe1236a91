"""Derived records produced by the classification pipeline."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..clients.sonarcloud_client import Issue


class Confidence(str, Enum):
    """How directly a weakness id was evidenced for an issue."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ClassificationSource(str, Enum):
    """Which heuristic produced a classification."""

    DECLARED_STANDARD = "declared_standard"
    ISSUE_TAG = "issue_tag"
    RULE_KEY = "rule_key"
    NONE = "none"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RuleRecord(_CamelModel):
    """What the rule catalog says about one rule."""

    key: str
    declared_cwe_ids: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()

    @classmethod
    def empty(cls, key: str) -> "RuleRecord":
        return cls(key=key)

    @property
    def is_empty(self) -> bool:
        return not self.declared_cwe_ids and not self.tags


class WeaknessClassification(_CamelModel):
    cwe_ids: tuple[str, ...] = ()
    confidence: Confidence = Confidence.LOW
    source: ClassificationSource = ClassificationSource.NONE

    @classmethod
    def unclassified(cls) -> "WeaknessClassification":
        return cls()

    @property
    def has_weakness(self) -> bool:
        return bool(self.cwe_ids)


class ClassifiedIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue: Issue
    classification: WeaknessClassification

    @property
    def cwe_ids(self) -> tuple[str, ...]:
        return self.classification.cwe_ids

    @property
    def tags(self) -> tuple[str, ...]:
        """Issue tags followed by any inferred CWE ids not already present."""
        return tuple(dict.fromkeys(self.issue.tags + self.classification.cwe_ids))

    def to_dict(self) -> dict[str, Any]:
        data = self.issue.model_dump(mode="json", by_alias=True)
        data["tags"] = list(self.tags)
        data["weaknessIds"] = list(self.cwe_ids)
        data["confidence"] = self.classification.confidence.value
        data["source"] = self.classification.source.value
        return data


class CategoryShare(_CamelModel):
    id: str
    count: int
    percentage: float


class Coverage(_CamelModel):
    classified_count: int = 0
    total_count: int = 0
    percentage: float = 0


class CweStatistics(_CamelModel):
    total_classified_occurrences: int = 0
    per_weakness_counts: dict[str, int] = Field(default_factory=dict)
    per_weakness_severity: dict[str, dict[str, int]] = Field(default_factory=dict)
    per_weakness_type: dict[str, dict[str, int]] = Field(default_factory=dict)
    top_categories: list[CategoryShare] = Field(default_factory=list)
    severity_breakdown: dict[str, int] = Field(default_factory=dict)
    type_breakdown: dict[str, int] = Field(default_factory=dict)
    coverage: Coverage = Field(default_factory=Coverage)


class AuxiliarySignal(_CamelModel):
    """A best-effort number that may have fallen back to its default."""

    value: Any
    status: Literal["estimated", "default"]
    error: str | None = None

    @classmethod
    def estimated(cls, value: Any) -> "AuxiliarySignal":
        return cls(value=value, status="estimated")

    @classmethod
    def fallback(cls, value: Any, error: str) -> "AuxiliarySignal":
        return cls(value=value, status="default", error=error)

    @property
    def is_default(self) -> bool:
        return self.status == "default"

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CweAnalysisReport(BaseModel):
    issues: list[ClassifiedIssue] = Field(default_factory=list)
    statistics: CweStatistics = Field(default_factory=CweStatistics)
    total_issues: int = 0
    issues_with_weakness: int = 0
    project_key: str | None = None
    security_hotspots: AuxiliarySignal = Field(
        default_factory=lambda: AuxiliarySignal.fallback(0, "not requested")
    )
    security_rules: AuxiliarySignal = Field(
        default_factory=lambda: AuxiliarySignal.fallback(0, "not requested")
    )
    project_metrics: AuxiliarySignal = Field(
        default_factory=lambda: AuxiliarySignal.fallback({}, "not requested")
    )
    cwe_facet: AuxiliarySignal = Field(
        default_factory=lambda: AuxiliarySignal.fallback({}, "not requested")
    )
    generated_at: datetime = Field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "statistics": self.statistics.to_dict(),
            "totalIssues": self.total_issues,
            "issuesWithWeakness": self.issues_with_weakness,
            "projectKey": self.project_key,
            "securityHotspots": self.security_hotspots.to_dict(),
            "securityRules": self.security_rules.to_dict(),
            "projectMetrics": self.project_metrics.to_dict(),
            "cweFacet": self.cwe_facet.to_dict(),
            "generatedAt": self.generated_at.isoformat(),
        }
