"""CWE classification, statistics and report assembly."""

from .classifier import WeaknessClassifier
from .models import (
    AuxiliarySignal,
    CategoryShare,
    ClassificationSource,
    ClassifiedIssue,
    Confidence,
    Coverage,
    CweAnalysisReport,
    CweStatistics,
    RuleRecord,
    WeaknessClassification,
)
from .report import CweAnalysisService, analyze_project
from .rule_resolver import RuleCatalogResolver
from .rule_table import DEFAULT_RULE_TABLE, RuleTable, resolve_rule_key
from .statistics import compute_statistics

__all__ = [
    "WeaknessClassifier",
    "AuxiliarySignal",
    "CategoryShare",
    "ClassificationSource",
    "ClassifiedIssue",
    "Confidence",
    "Coverage",
    "CweAnalysisReport",
    "CweStatistics",
    "RuleRecord",
    "WeaknessClassification",
    "CweAnalysisService",
    "analyze_project",
    "RuleCatalogResolver",
    "DEFAULT_RULE_TABLE",
    "RuleTable",
    "resolve_rule_key",
    "compute_statistics",
]
