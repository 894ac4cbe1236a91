from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from sonarcwe.clients.sonarcloud_client import (
    Issue,
    Measure,
    Paging,
    Rule,
    SonarCloudClient,
    issue_url,
)
from sonarcwe.config import SonarCloudConfig
from sonarcwe.core.exceptions import (
    APIError,
    AuthenticationError,
    MissingConfigError,
    NetworkError,
    RateLimitError,
    TimeoutError,
)


def json_response(payload, status_code=200, headers=None):
    mock = Mock(spec=httpx.Response)
    mock.status_code = status_code
    mock.headers = headers or {}
    mock.json.return_value = payload
    mock.raise_for_status = Mock()
    return mock


def error_response(status_code, headers=None):
    mock = json_response({}, status_code=status_code, headers=headers)
    mock.raise_for_status.side_effect = httpx.HTTPStatusError(
        "error", request=Mock(), response=Mock(status_code=status_code, text="server said no")
    )
    return mock


class TestIssueModel:
    def test_parses_api_payload(self):
        issue = Issue(
            **{
                "key": "AYx1",
                "rule": "java:S3649",
                "severity": "critical",
                "type": "VULNERABILITY",
                "message": "Fix this SQL",
                "tags": ["cwe-89", "sql"],
                "project": "demo",
                "component": "demo:src/Main.java",
                "line": 42,
                "status": "OPEN",
                "creationDate": "2024-03-01T10:00:00+0000",
                "updateDate": "2024-03-02T10:00:00+0000",
                "flows": [],
                "effort": "5min",
            }
        )

        assert issue.severity == "CRITICAL"
        assert issue.tags == ("cwe-89", "sql")
        assert issue.creation_date == "2024-03-01T10:00:00+0000"
        assert issue.line == 42

    def test_missing_fields_default(self):
        issue = Issue(key="AYx1", severity=None, tags=None, message=None)
        assert issue.severity == ""
        assert issue.tags == ()
        assert issue.message == ""
        assert issue.line is None

    def test_unknown_severity_kept(self):
        assert Issue(key="k", severity="weird").severity == "WEIRD"

    def test_frozen(self):
        issue = Issue(key="k")
        with pytest.raises(Exception):
            issue.key = "other"


class TestRuleModel:
    def test_flat_security_standards(self):
        rule = Rule(key="java:S3649", securityStandards=["cwe:89", "cwe:564", "owaspTop10:a1"])
        assert rule.security_standards["cwe"] == ("89", "564")
        assert rule.security_standards["owasptop10"] == ("a1",)
        assert rule.declared_cwe_ids == ["CWE-89", "CWE-564"]

    def test_mapping_security_standards(self):
        rule = Rule(key="x:S1", securityStandards={"CWE": ["79", "unknown"], "sans": None})
        assert rule.declared_cwe_ids == ["CWE-79"]

    def test_no_security_standards(self):
        rule = Rule(key="x:S1", securityStandards=None)
        assert rule.declared_cwe_ids == []

    def test_all_tags(self):
        rule = Rule(key="x:S1", tags=["a", "b"], sysTags=["b", "security"])
        assert rule.all_tags == ("a", "b", "security")


class TestSmallModels:
    def test_measure_int_value(self):
        assert Measure(metric="security_hotspots", value="7").int_value == 7
        assert Measure(metric="security_rating", value="1.0").int_value == 1
        assert Measure(metric="x", value="n/a").int_value == 0
        assert Measure(metric="x").int_value == 0

    def test_paging_has_more(self):
        assert Paging(pageIndex=1, pageSize=100, total=250).has_more
        assert not Paging(pageIndex=3, pageSize=100, total=250).has_more
        assert not Paging().has_more

    def test_issue_url(self):
        assert (
            issue_url("my project", "AYx1")
            == "https://sonarcloud.io/project/issues?id=my+project&open=AYx1"
        )
        assert issue_url("p", "k", "https://example.test/") == "https://example.test/project/issues?id=p&open=k"


class TestSonarCloudClient:
    @pytest.fixture
    def client(self):
        return SonarCloudClient(SonarCloudConfig(organization="acme", token="secret"))

    def test_init(self, client):
        assert client.base_url == "https://sonarcloud.io/api"
        assert client.headers["Authorization"] == "Bearer secret"

    def test_init_without_token(self):
        client = SonarCloudClient(SonarCloudConfig())
        assert "Authorization" not in client.headers

    @pytest.mark.asyncio
    async def test_search_issues(self, client):
        mock_response = json_response(
            {
                "issues": [{"key": "A", "rule": "java:S3649", "tags": ["cwe-89"]}],
                "paging": {"pageIndex": 1, "pageSize": 100, "total": 1},
                "facets": [],
            }
        )

        with patch("httpx.AsyncClient.get", return_value=mock_response) as mock_get:
            result = await client.search_issues("demo", page=2, page_size=50, types=["VULNERABILITY"])

        assert len(result.issues) == 1
        assert result.issues[0].rule == "java:S3649"
        assert result.paging.total == 1

        url = mock_get.call_args.args[0]
        params = mock_get.call_args.kwargs["params"]
        assert url == "https://sonarcloud.io/api/issues/search"
        assert params == {
            "p": 2,
            "ps": 50,
            "organization": "acme",
            "componentKeys": "demo",
            "types": "VULNERABILITY",
        }

    @pytest.mark.asyncio
    async def test_search_issues_page_size_capped(self, client):
        mock_response = json_response({"issues": [], "total": 0})

        with patch("httpx.AsyncClient.get", return_value=mock_response) as mock_get:
            result = await client.search_issues(page_size=10_000)

        assert mock_get.call_args.kwargs["params"]["ps"] == 500
        assert result.issues == []
        assert not result.paging.has_more

    @pytest.mark.asyncio
    async def test_search_rules_by_keys(self, client):
        mock_response = json_response(
            {
                "rules": [
                    {"key": "java:S3649", "securityStandards": ["cwe:89"]},
                    {"name": "no key"},
                ]
            }
        )

        with patch("httpx.AsyncClient.get", return_value=mock_response) as mock_get:
            rules = await client.search_rules_by_keys(["java:S3649", "java:S2076"])

        assert [r.key for r in rules] == ["java:S3649"]
        params = mock_get.call_args.kwargs["params"]
        assert params["rule_keys"] == "java:S3649,java:S2076"
        assert "securityStandards" in params["f"]

    @pytest.mark.asyncio
    async def test_search_rules_without_keys_skips_request(self, client):
        with patch("httpx.AsyncClient.get") as mock_get:
            assert await client.search_rules_by_keys([]) == []
        mock_get.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_rule(self, client):
        mock_response = json_response({"rule": {"key": "java:S3649", "securityStandards": ["cwe:89"]}})

        with patch("httpx.AsyncClient.get", return_value=mock_response):
            rule = await client.get_rule("java:S3649")

        assert rule is not None
        assert rule.declared_cwe_ids == ["CWE-89"]

    @pytest.mark.asyncio
    async def test_get_rule_not_found(self, client):
        with patch("httpx.AsyncClient.get", return_value=json_response({}, status_code=404)):
            assert await client.get_rule("java:S0") is None

    @pytest.mark.asyncio
    async def test_get_measures(self, client):
        mock_response = json_response(
            {
                "component": {
                    "key": "demo",
                    "measures": [
                        {"metric": "security_hotspots", "value": "3"},
                        {"metric": "bugs", "value": "0", "bestValue": True},
                    ],
                }
            }
        )

        with patch("httpx.AsyncClient.get", return_value=mock_response) as mock_get:
            measures = await client.get_measures("demo", ["security_hotspots", "bugs"])

        assert [m.metric for m in measures] == ["security_hotspots", "bugs"]
        assert measures[1].best_value is True
        assert mock_get.call_args.kwargs["params"]["metricKeys"] == "security_hotspots,bugs"

    @pytest.mark.asyncio
    async def test_get_cwe_facet(self, client):
        mock_response = json_response(
            {
                "issues": [],
                "paging": {"pageIndex": 1, "pageSize": 1, "total": 9},
                "facets": [
                    {
                        "property": "cwe",
                        "values": [
                            {"val": "89", "count": 5},
                            {"val": "79", "count": 3},
                            {"val": "unknown", "count": 1},
                        ],
                    },
                    {"property": "types", "values": [{"val": "BUG", "count": 2}]},
                ],
            }
        )

        with patch("httpx.AsyncClient.get", return_value=mock_response) as mock_get:
            counts = await client.get_cwe_facet("demo")

        assert counts == {"CWE-89": 5, "CWE-79": 3}
        assert mock_get.call_args.kwargs["params"]["facets"] == "cwe"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_authentication_error(self, client, status):
        with patch("httpx.AsyncClient.get", return_value=json_response({}, status_code=status)):
            with pytest.raises(AuthenticationError) as exc_info:
                await client.search_issues("demo")
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_rate_limit_error(self, client):
        response = json_response({}, status_code=429, headers={"Retry-After": "2"})

        with patch("httpx.AsyncClient.get", return_value=response):
            with pytest.raises(RateLimitError) as exc_info:
                await client.search_issues("demo")

        assert exc_info.value.retry_after == 2.0

    @pytest.mark.asyncio
    async def test_server_error(self, client):
        with patch("httpx.AsyncClient.get", return_value=error_response(503)):
            with pytest.raises(APIError) as exc_info:
                await client.get_measures("demo", ["bugs"])

        assert exc_info.value.status_code == 503
        assert exc_info.value.response_body == "server said no"

    @pytest.mark.asyncio
    async def test_timeout_error(self, client):
        with patch("httpx.AsyncClient.get", side_effect=httpx.ReadTimeout("slow")):
            with pytest.raises(TimeoutError):
                await client.search_issues("demo")

    @pytest.mark.asyncio
    async def test_network_error(self, client):
        with patch("httpx.AsyncClient.get", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(NetworkError):
                await client.search_issues("demo")

    @pytest.mark.asyncio
    async def test_shared_client_in_context(self):
        async with SonarCloudClient(SonarCloudConfig()) as client:
            assert client._client is not None
            client._client.get = AsyncMock(return_value=json_response({"issues": []}))
            await client.search_issues("demo")
            client._client.get.assert_awaited_once()
        assert client._client is None

    @pytest.mark.asyncio
    async def test_search_issues_needs_scope(self):
        client = SonarCloudClient(SonarCloudConfig())

        with patch("httpx.AsyncClient.get") as mock_get:
            with pytest.raises(MissingConfigError):
                await client.search_issues()

        mock_get.assert_not_called()


def html_response(path, status_code=200):
    request = httpx.Request("GET", f"https://sonarcloud.io/api{path}")
    return httpx.Response(status_code, text="<html>gateway</html>", request=request)


class TestUnusableResponses:
    @pytest.fixture
    def client(self):
        return SonarCloudClient(SonarCloudConfig(organization="acme"))

    @pytest.mark.asyncio
    async def test_html_rules_search_is_api_error(self, client):
        with patch("httpx.AsyncClient.get", return_value=html_response("/rules/search")):
            with pytest.raises(APIError) as exc_info:
                await client.search_rules_by_keys(["java:S3649"])

        assert "invalid JSON" in str(exc_info.value)
        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_html_rule_show_is_api_error(self, client):
        with patch("httpx.AsyncClient.get", return_value=html_response("/rules/show")):
            with pytest.raises(APIError):
                await client.get_rule("java:S3649")

    @pytest.mark.asyncio
    async def test_non_object_body_is_api_error(self, client):
        with patch("httpx.AsyncClient.get", return_value=json_response(["not", "an", "object"])):
            with pytest.raises(APIError) as exc_info:
                await client.get_rule("java:S3649")

        assert "unexpected payload" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_issue_is_api_error(self, client):
        mock_response = json_response({"issues": [{"rule": "java:S3649"}]})

        with patch("httpx.AsyncClient.get", return_value=mock_response):
            with pytest.raises(APIError) as exc_info:
                await client.search_issues("demo")

        assert "malformed issues" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_measures_are_api_error(self, client):
        mock_response = json_response(
            {"component": {"measures": [{"metric": "bugs", "bestValue": "sometimes"}]}}
        )

        with patch("httpx.AsyncClient.get", return_value=mock_response):
            with pytest.raises(APIError):
                await client.get_measures("demo", ["bugs"])
