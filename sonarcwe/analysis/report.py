"""Assemble the consolidated CWE analysis report.

Primary data (issues and rules) is required: if it cannot be fetched the
report is aborted with PrimaryFetchError. Auxiliary signals (hotspot
count, security-rule estimate, project measures, server-side CWE facet)
are best-effort: each runs under its own timeout and falls back to a
documented default, marked as such, when it fails.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from functools import partial
from typing import Any

from ..clients.sonarcloud_client import Issue, SonarCloudClient
from ..config import SonarCloudConfig
from ..constants import (
    PROJECT_SECURITY_METRICS,
    SECURITY_HOTSPOTS_METRIC,
    SECURITY_RULE_SAMPLE_SIZE,
)
from ..core.cache import RuleCache
from ..core.exceptions import ClientError, PrimaryFetchError
from ..core.logging_config import get_events_logger
from ..core.retry import call_with_retry
from .classifier import WeaknessClassifier
from .models import AuxiliarySignal, CweAnalysisReport, CweStatistics
from .rule_resolver import RuleCatalogResolver
from .statistics import compute_statistics

logger = logging.getLogger(__name__)
events = get_events_logger()


class CweAnalysisService:
    def __init__(
        self,
        client: Any,
        config: SonarCloudConfig | None = None,
        resolver: RuleCatalogResolver | None = None,
        classifier: WeaknessClassifier | None = None,
        cache: RuleCache | None = None,
    ) -> None:
        self.client = client
        self.config = config or SonarCloudConfig()
        self.resolver = resolver or RuleCatalogResolver(
            client, cache=cache, batch_size=self.config.rule_batch_size
        )
        self.classifier = classifier or WeaknessClassifier()

    async def fetch_issues(self, project_key: str | None = None) -> list[Issue]:
        """All issue pages up to the configured page limit."""
        issues: list[Issue] = []
        for page in range(1, self.config.max_issue_pages + 1):
            try:
                result = await call_with_retry(
                    partial(
                        self.client.search_issues,
                        project_key,
                        page=page,
                        page_size=self.config.issue_page_size,
                    ),
                    f"issues/search page {page}",
                )
            except ClientError as e:
                raise PrimaryFetchError(f"Could not fetch issues: {e}", "issues") from e

            issues.extend(result.issues)
            if not result.issues or not result.paging.has_more:
                break
        else:
            logger.info(
                f"Stopped after {self.config.max_issue_pages} issue pages; "
                "remaining issues are not analysed"
            )
        return issues

    async def analyze(self, project_key: str | None = None) -> CweAnalysisReport:
        started = time.monotonic()
        events.info(
            "CWE analysis started",
            extra={"event": "analysis_started", "project_key": project_key},
        )

        issues = await self.fetch_issues(project_key)
        try:
            lookup = await self.resolver.resolve(issue.rule for issue in issues)
        except ClientError as e:
            raise PrimaryFetchError(f"Could not fetch rule catalog: {e}", "rules") from e

        classified = self.classifier.classify_all(issues, lookup)
        statistics = compute_statistics(classified, precision=self.config.percent_precision)

        # Measures need a concrete component; fall back to the first issue's project
        target = project_key or (issues[0].project if issues else None)

        hotspots, security_rules, project_metrics, cwe_facet = await asyncio.gather(
            self._auxiliary("security_hotspots", self._security_hotspots(target), 0, target),
            self._auxiliary("security_rules", self._security_rules(project_key), 0, target),
            self._auxiliary("project_metrics", self._project_metrics(target), {}, target),
            self._auxiliary("cwe_facet", self.client.get_cwe_facet(project_key), {}, target),
        )

        report = CweAnalysisReport(
            issues=classified,
            statistics=statistics,
            total_issues=len(classified),
            issues_with_weakness=statistics.coverage.classified_count,
            project_key=project_key,
            security_hotspots=hotspots,
            security_rules=security_rules,
            project_metrics=project_metrics,
            cwe_facet=cwe_facet,
        )

        events.info(
            "CWE analysis complete",
            extra={
                "event": "analysis_complete",
                "project_key": project_key,
                "total_issues": report.total_issues,
                "issues_with_weakness": report.issues_with_weakness,
                "rule_count": len(lookup),
                "duration_ms": round((time.monotonic() - started) * 1000),
            },
        )
        return report

    async def statistics(self, project_key: str | None = None) -> CweStatistics:
        """Statistics only, without auxiliary signals."""
        issues = await self.fetch_issues(project_key)
        try:
            lookup = await self.resolver.resolve(issue.rule for issue in issues)
        except ClientError as e:
            raise PrimaryFetchError(f"Could not fetch rule catalog: {e}", "rules") from e
        classified = self.classifier.classify_all(issues, lookup)
        return compute_statistics(classified, precision=self.config.percent_precision)

    async def _auxiliary(
        self, name: str, fetch: Awaitable[Any], default: Any, project_key: str | None
    ) -> AuxiliarySignal:
        try:
            value = await asyncio.wait_for(fetch, timeout=self.config.aux_timeout)
        except asyncio.TimeoutError:
            error = f"timed out after {self.config.aux_timeout}s"
        except Exception as e:
            error = str(e) or type(e).__name__
        else:
            return AuxiliarySignal.estimated(value)

        events.warning(
            f"Auxiliary signal {name} unavailable, using default",
            extra={
                "event": "auxiliary_signal_degraded",
                "signal": name,
                "project_key": project_key,
                "status": "default",
                "error": error,
            },
        )
        return AuxiliarySignal.fallback(default, error)

    async def _security_hotspots(self, target: str | None) -> int:
        """Hotspot count from the project's security_hotspots measure."""
        if not target:
            raise ValueError("no project to measure")
        measures = await self.client.get_measures(target, [SECURITY_HOTSPOTS_METRIC])
        for measure in measures:
            if measure.metric == SECURITY_HOTSPOTS_METRIC:
                return measure.int_value
        return 0

    async def _security_rules(self, project_key: str | None) -> int:
        """Distinct rules behind a small sample of vulnerability issues.

        The rules API does not expose security tagging reliably, so this is
        a lower-bound estimate.
        """
        result = await self.client.search_issues(
            project_key, page_size=SECURITY_RULE_SAMPLE_SIZE, types=["VULNERABILITY"]
        )
        return len(
            {issue.rule for issue in result.issues if issue.type == "VULNERABILITY" and issue.rule}
        )

    async def _project_metrics(self, target: str | None) -> dict[str, dict[str, Any]]:
        if not target:
            raise ValueError("no project to measure")
        measures = await self.client.get_measures(target, list(PROJECT_SECURITY_METRICS))
        return {
            m.metric: {"value": m.value, "bestValue": m.best_value}
            for m in sorted(measures, key=lambda m: m.metric)
        }


async def analyze_project(
    project_key: str | None = None,
    config: SonarCloudConfig | None = None,
    cache: RuleCache | None = None,
) -> CweAnalysisReport:
    """One-shot analysis with a pooled client opened for the duration."""
    config = config or SonarCloudConfig.from_env()
    async with SonarCloudClient(config) as client:
        service = CweAnalysisService(client, config=config, cache=cache)
        return await service.analyze(project_key)
