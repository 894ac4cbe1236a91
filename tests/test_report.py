import asyncio
import json
import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from sonarcwe.analysis.report import CweAnalysisService, analyze_project
from sonarcwe.clients.sonarcloud_client import (
    Issue,
    IssueSearchResult,
    Measure,
    Paging,
    Rule,
    SonarCloudClient,
)
from sonarcwe.config import SonarCloudConfig
from sonarcwe.core.exceptions import (
    APIError,
    AuthenticationError,
    NetworkError,
    PrimaryFetchError,
)


def issue_page(issues, page=1, page_size=100, total=None):
    return IssueSearchResult(
        issues=issues,
        paging=Paging(pageIndex=page, pageSize=page_size, total=len(issues) if total is None else total),
    )


SCENARIO_ISSUES = [
    Issue(key="A", rule="javascript:S5247", severity="CRITICAL", type="VULNERABILITY", project="demo"),
    Issue(key="B", rule="java:S9999", tags=["cwe-89"], severity="MAJOR", type="VULNERABILITY", project="demo"),
    Issue(key="C", rule="java:S3649", severity="BLOCKER", type="VULNERABILITY", project="demo"),
]

SCENARIO_RULES = [
    Rule(key="javascript:S5247", securityStandards=["cwe:79"]),
    Rule(key="java:S9999"),
    Rule(key="java:S3649"),
]


def make_client(issues=SCENARIO_ISSUES, rules=SCENARIO_RULES):
    async def search_issues(project_key=None, page=1, page_size=100, types=None, facets=None):
        if types == ["VULNERABILITY"]:
            return issue_page([i for i in issues if i.type == "VULNERABILITY"][:page_size])
        return issue_page(issues)

    async def get_measures(component, metric_keys):
        if metric_keys == ["security_hotspots"]:
            return [Measure(metric="security_hotspots", value="4")]
        return [
            Measure(metric="vulnerabilities", value="3", bestValue=False),
            Measure(metric="bugs", value="0", bestValue=True),
        ]

    client = AsyncMock()
    client.search_issues = AsyncMock(side_effect=search_issues)
    client.search_rules_by_keys = AsyncMock(return_value=list(rules))
    client.get_rule = AsyncMock(return_value=None)
    client.get_measures = AsyncMock(side_effect=get_measures)
    client.get_cwe_facet = AsyncMock(return_value={"CWE-79": 1, "CWE-89": 2})
    return client


@pytest.fixture
def config():
    return SonarCloudConfig(aux_timeout=1.0)


class TestCweAnalysisService:
    @pytest.mark.asyncio
    async def test_full_report(self, config):
        client = make_client()
        report = await CweAnalysisService(client, config).analyze("demo")

        assert report.total_issues == 3
        assert report.issues_with_weakness == 3
        assert report.statistics.per_weakness_counts == {"CWE-79": 1, "CWE-89": 2}
        assert report.statistics.coverage.percentage == 100
        assert report.security_hotspots.value == 4
        assert report.security_hotspots.status == "estimated"
        assert report.security_rules.value == 3
        assert report.project_metrics.value == {
            "bugs": {"value": "0", "bestValue": True},
            "vulnerabilities": {"value": "3", "bestValue": False},
        }
        assert report.cwe_facet.value == {"CWE-79": 1, "CWE-89": 2}

    @pytest.mark.asyncio
    async def test_report_serialization(self, config):
        report = await CweAnalysisService(make_client(), config).analyze("demo")
        data = report.to_dict()

        assert list(data) == [
            "issues",
            "statistics",
            "totalIssues",
            "issuesWithWeakness",
            "projectKey",
            "securityHotspots",
            "securityRules",
            "projectMetrics",
            "cweFacet",
            "generatedAt",
        ]
        assert data["issues"][0]["weaknessIds"] == ["CWE-79"]
        assert data["issues"][0]["confidence"] == "high"
        assert data["securityHotspots"] == {"value": 4, "status": "estimated"}
        json.dumps(data)

    @pytest.mark.asyncio
    async def test_empty_issue_list(self, config):
        client = make_client(issues=[], rules=[])
        report = await CweAnalysisService(client, config).analyze()

        assert report.total_issues == 0
        assert report.issues_with_weakness == 0
        assert report.statistics.coverage.percentage == 0
        assert report.statistics.top_categories == []
        client.search_rules_by_keys.assert_not_awaited()
        # No project key and no issues: nothing to measure
        assert report.security_hotspots.is_default
        assert report.security_hotspots.value == 0
        assert report.project_metrics.value == {}

    @pytest.mark.asyncio
    async def test_hotspot_failure_degrades(self, config, caplog):
        client = make_client()
        client.get_measures = AsyncMock(side_effect=NetworkError("connection reset"))

        with caplog.at_level(logging.WARNING, logger="sonarcwe.events"):
            report = await CweAnalysisService(client, config).analyze("demo")

        assert report.security_hotspots.is_default
        assert report.security_hotspots.value == 0
        assert report.security_hotspots.error == "connection reset"
        assert report.project_metrics.is_default
        assert report.statistics.per_weakness_counts == {"CWE-79": 1, "CWE-89": 2}
        assert report.total_issues == 3

        degraded = [r for r in caplog.records if getattr(r, "event", None) == "auxiliary_signal_degraded"]
        assert {r.signal for r in degraded} == {"security_hotspots", "project_metrics"}

    @pytest.mark.asyncio
    async def test_slow_auxiliary_signal_times_out(self):
        client = make_client()

        async def slow_facet(project_key=None):
            await asyncio.sleep(5)
            return {}

        client.get_cwe_facet = AsyncMock(side_effect=slow_facet)
        config = SonarCloudConfig(aux_timeout=0.05)

        report = await CweAnalysisService(client, config).analyze("demo")

        assert report.cwe_facet.is_default
        assert "timed out" in report.cwe_facet.error
        assert report.security_hotspots.status == "estimated"

    @pytest.mark.asyncio
    async def test_target_falls_back_to_first_issue_project(self, config):
        client = make_client()
        await CweAnalysisService(client, config).analyze()
        components = {call.args[0] for call in client.get_measures.await_args_list}
        assert components == {"demo"}

    @pytest.mark.asyncio
    async def test_primary_fetch_failure_is_fatal(self, config):
        client = make_client()
        client.search_issues = AsyncMock(side_effect=APIError("forbidden", status_code=400))

        with pytest.raises(PrimaryFetchError) as exc_info:
            await CweAnalysisService(client, config).analyze("demo")

        assert exc_info.value.resource == "issues"
        client.search_rules_by_keys.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_primary_fetch_retried_once(self, config):
        client = make_client()
        client.search_issues = AsyncMock(
            side_effect=[NetworkError("reset"), issue_page(SCENARIO_ISSUES)]
        )

        with patch("sonarcwe.core.retry.asyncio.sleep", AsyncMock()):
            issues = await CweAnalysisService(client, config).fetch_issues("demo")

        assert [i.key for i in issues] == ["A", "B", "C"]
        assert client.search_issues.await_count == 2

    @pytest.mark.asyncio
    async def test_primary_fetch_gives_up_after_retry(self, config):
        client = make_client()
        client.search_issues = AsyncMock(side_effect=NetworkError("down"))

        with patch("sonarcwe.core.retry.asyncio.sleep", AsyncMock()):
            with pytest.raises(PrimaryFetchError):
                await CweAnalysisService(client, config).fetch_issues("demo")

        assert client.search_issues.await_count == 2

    @pytest.mark.asyncio
    async def test_pagination(self):
        pages = [
            issue_page([Issue(key=f"P1-{i}") for i in range(2)], page=1, page_size=2, total=5),
            issue_page([Issue(key=f"P2-{i}") for i in range(2)], page=2, page_size=2, total=5),
            issue_page([Issue(key="P3-0")], page=3, page_size=2, total=5),
        ]
        client = make_client()
        client.search_issues = AsyncMock(side_effect=pages)
        config = SonarCloudConfig(issue_page_size=2)

        issues = await CweAnalysisService(client, config).fetch_issues()

        assert len(issues) == 5
        assert [call.kwargs["page"] for call in client.search_issues.await_args_list] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_page_limit(self):
        client = make_client()
        client.search_issues = AsyncMock(
            side_effect=lambda *args, page=1, **kwargs: issue_page(
                [Issue(key=f"K{page}")], page=page, page_size=1, total=100
            )
        )
        config = SonarCloudConfig(issue_page_size=1, max_issue_pages=3)

        issues = await CweAnalysisService(client, config).fetch_issues()

        assert [i.key for i in issues] == ["K1", "K2", "K3"]

    @pytest.mark.asyncio
    async def test_statistics_are_idempotent(self, config):
        first = await CweAnalysisService(make_client(), config).analyze("demo")
        second = await CweAnalysisService(make_client(), config).analyze("demo")

        assert json.dumps(first.statistics.to_dict()) == json.dumps(second.statistics.to_dict())

    @pytest.mark.asyncio
    async def test_statistics_only(self, config):
        client = make_client()
        stats = await CweAnalysisService(client, config).statistics("demo")

        assert stats.per_weakness_counts == {"CWE-79": 1, "CWE-89": 2}
        client.get_measures.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_token_keeps_its_cause(self, config):
        client = make_client()
        client.search_issues = AsyncMock(side_effect=AuthenticationError("bad token", status_code=401))

        with pytest.raises(PrimaryFetchError) as exc_info:
            await CweAnalysisService(client, config).analyze("demo")

        assert isinstance(exc_info.value.__cause__, AuthenticationError)
        assert client.search_issues.await_count == 1

    @pytest.mark.asyncio
    async def test_started_event(self, config, caplog):
        with caplog.at_level(logging.INFO, logger="sonarcwe.events"):
            await CweAnalysisService(make_client(), config).analyze("demo")

        names = [getattr(r, "event", None) for r in caplog.records if r.name == "sonarcwe.events"]
        assert names[0] == "analysis_started"
        assert names[-1] == "analysis_complete"


def sonarcloud_route(rules_body="<html>gateway</html>", issues_body=None):
    """Fake SonarCloud endpoints answering with real httpx responses."""

    def route(url, params=None):
        request = httpx.Request("GET", url)
        if url.endswith("/rules/search"):
            return httpx.Response(200, text=rules_body, request=request)
        if url.endswith("/rules/show"):
            return httpx.Response(404, request=request)
        if url.endswith("/measures/component"):
            return httpx.Response(200, json={"component": {"measures": []}}, request=request)
        if issues_body is not None:
            return httpx.Response(200, text=issues_body, request=request)
        return httpx.Response(
            200,
            json={
                "issues": [
                    {
                        "key": "A",
                        "rule": "java:S3649",
                        "tags": ["cwe-89"],
                        "project": "demo",
                        "type": "VULNERABILITY",
                        "severity": "BLOCKER",
                    }
                ],
                "paging": {"pageIndex": 1, "pageSize": 100, "total": 1},
                "facets": [],
            },
            request=request,
        )

    return route


class TestUnusableResponses:
    @pytest.fixture
    def client(self):
        return SonarCloudClient(SonarCloudConfig(organization="acme"))

    @pytest.mark.asyncio
    async def test_html_rule_catalog_still_produces_report(self, client, config):
        with patch("httpx.AsyncClient.get", side_effect=sonarcloud_route()):
            report = await CweAnalysisService(client, config).analyze("demo")

        assert report.total_issues == 1
        assert report.statistics.per_weakness_counts == {"CWE-89": 1}
        assert report.issues[0].classification.source.value == "issue_tag"

    @pytest.mark.asyncio
    async def test_html_issue_page_is_primary_failure(self, client, config):
        with patch("httpx.AsyncClient.get", side_effect=sonarcloud_route(issues_body="<html></html>")):
            with pytest.raises(PrimaryFetchError) as exc_info:
                await CweAnalysisService(client, config).analyze("demo")

        assert exc_info.value.resource == "issues"

class TestAnalyzeProject:
    @pytest.mark.asyncio
    async def test_uses_pooled_client(self, config):
        client = make_client()
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=None)

        with patch("sonarcwe.analysis.report.SonarCloudClient", return_value=client):
            report = await analyze_project("demo", config=config)

        assert report.total_issues == 3
        client.__aexit__.assert_awaited_once()
