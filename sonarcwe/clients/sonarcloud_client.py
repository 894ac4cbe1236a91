import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..config import SonarCloudConfig
from ..constants import MAX_ISSUE_PAGE_SIZE, RULE_SEARCH_FIELDS, SONARCLOUD_WEB_URL
from ..core.exceptions import (
    APIError,
    AuthenticationError,
    MissingConfigError,
    NetworkError,
    RateLimitError,
    TimeoutError,
)
from ..cwe.identifiers import normalize_cwe_id

logger = logging.getLogger(__name__)


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


class Issue(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    key: str
    rule: str = ""
    severity: str = ""
    type: str = ""
    message: str = ""
    tags: tuple[str, ...] = ()
    project: str = ""
    component: str = ""
    line: int | None = None
    status: str = ""
    creation_date: str | None = Field(default=None, alias="creationDate")
    update_date: str | None = Field(default=None, alias="updateDate")

    @field_validator("severity", "type", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> str:
        return str(_none_to_empty(value)).strip().upper()

    @field_validator("rule", "message", "project", "component", "status", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value


def _group_security_standards(value: Any) -> dict[str, tuple[str, ...]]:
    """Accept both shapes SonarCloud returns for securityStandards.

    rules/search returns a flat list such as ["cwe:89", "owaspTop10:a1"];
    some callers already hold a mapping {"cwe": ["89"]}.
    """
    grouped: dict[str, list[str]] = {}

    if isinstance(value, dict):
        for standard, ids in value.items():
            if ids is None:
                continue
            if isinstance(ids, (str, int)):
                ids = [ids]
            grouped.setdefault(str(standard).lower(), []).extend(str(i) for i in ids)
    elif isinstance(value, (list, tuple)):
        for item in value:
            standard, sep, ident = str(item).partition(":")
            if not sep:
                continue
            grouped.setdefault(standard.lower(), []).append(ident)

    return {k: tuple(v) for k, v in grouped.items()}


class Rule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    key: str
    name: str = ""
    lang: str = ""
    lang_name: str = Field(default="", alias="langName")
    severity: str = ""
    type: str = ""
    status: str = ""
    tags: tuple[str, ...] = ()
    sys_tags: tuple[str, ...] = Field(default=(), alias="sysTags")
    security_standards: dict[str, tuple[str, ...]] = Field(
        default_factory=dict, alias="securityStandards"
    )

    @field_validator("name", "lang", "lang_name", "severity", "type", "status", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("tags", "sys_tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> Any:
        return () if value is None else value

    @field_validator("security_standards", mode="before")
    @classmethod
    def _standards(cls, value: Any) -> dict[str, tuple[str, ...]]:
        return _group_security_standards(value)

    @property
    def all_tags(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(self.tags + self.sys_tags))

    @property
    def declared_cwe_ids(self) -> list[str]:
        """CWE ids listed under the rule's "cwe" security standard."""
        cwe_ids = []
        for value in self.security_standards.get("cwe", ()):
            cwe_id = normalize_cwe_id(value)
            if cwe_id and cwe_id not in cwe_ids:
                cwe_ids.append(cwe_id)
        return cwe_ids


class Measure(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    metric: str
    value: str | None = None
    best_value: bool | None = Field(default=None, alias="bestValue")

    @property
    def int_value(self) -> int:
        """Value as an integer; 0 when absent or not numeric."""
        if self.value is None:
            return 0
        try:
            return int(float(self.value))
        except ValueError:
            return 0


class Paging(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    page_index: int = Field(default=1, alias="pageIndex")
    page_size: int = Field(default=0, alias="pageSize")
    total: int = 0

    @property
    def has_more(self) -> bool:
        return self.page_index * self.page_size < self.total


class IssueSearchResult(BaseModel):
    issues: list[Issue] = Field(default_factory=list)
    paging: Paging = Field(default_factory=Paging)
    facets: list[dict[str, Any]] = Field(default_factory=list)


def issue_url(project_key: str, issue_key: str, base_url: str = SONARCLOUD_WEB_URL) -> str:
    """Browser link to one issue in the SonarCloud UI."""
    query = urlencode({"id": project_key, "open": issue_key})
    return f"{base_url.rstrip('/')}/project/issues?{query}"


class SonarCloudClient:
    """Async client for the parts of the SonarCloud Web API the analysis uses.

    Can be used directly (one short-lived connection per call) or as an
    async context manager to share a connection pool across calls.
    """

    def __init__(self, config: SonarCloudConfig | None = None) -> None:
        self.config = config or SonarCloudConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.headers = {"Accept": "application/json", **self.config.auth_headers}
        self.timeout = httpx.Timeout(self.config.timeout)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "SonarCloudClient":
        self._client = httpx.AsyncClient(timeout=self.timeout, headers=self.headers)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _scoped(self, params: dict[str, Any]) -> dict[str, Any]:
        if self.config.organization:
            params.setdefault("organization", self.config.organization)
        return params

    async def _get(self, path: str, params: dict[str, Any]) -> httpx.Response:
        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url} params={params}")
        try:
            if self._client is not None:
                return await self._client.get(url, params=params)
            async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
                return await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Request to {path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Request to {path} failed: {e}") from e

    def _check_response(self, response: httpx.Response, path: str) -> None:
        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(
                f"SonarCloud rejected credentials for {path}", status_code=status
            )
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"SonarCloud rate limit hit on {path}",
                retry_after=float(retry_after) if retry_after else None,
            )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise APIError(
                f"SonarCloud returned {status} for {path}",
                status_code=status,
                response_body=e.response.text,
            ) from e

    def _decode(self, response: httpx.Response, path: str) -> dict[str, Any]:
        """Response body as a JSON object; anything else is an APIError."""
        try:
            data = response.json()
        except ValueError as e:
            raise APIError(
                f"SonarCloud returned invalid JSON for {path}",
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise APIError(
                f"SonarCloud returned an unexpected payload for {path}",
                status_code=response.status_code,
            )
        return data

    async def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        response = await self._get(path, params)
        self._check_response(response, path)
        return self._decode(response, path)

    async def search_issues(
        self,
        project_key: str | None = None,
        page: int = 1,
        page_size: int = 100,
        types: list[str] | None = None,
        facets: list[str] | None = None,
    ) -> IssueSearchResult:
        if not project_key and not self.config.organization:
            raise MissingConfigError(
                "SONAR_ORGANIZATION or a project key is required to search issues"
            )

        params: dict[str, Any] = self._scoped(
            {"p": page, "ps": min(page_size, MAX_ISSUE_PAGE_SIZE)}
        )
        if project_key:
            params["componentKeys"] = project_key
        if types:
            params["types"] = ",".join(types)
        if facets:
            params["facets"] = ",".join(facets)

        path = "/issues/search"
        data = await self._get_json(path, params)

        try:
            issues = [Issue(**issue_data) for issue_data in data.get("issues", [])]
            paging = data.get("paging") or {
                "pageIndex": page,
                "pageSize": page_size,
                "total": data.get("total", len(issues)),
            }
            return IssueSearchResult(
                issues=issues, paging=Paging(**paging), facets=data.get("facets", [])
            )
        except (PydanticValidationError, TypeError) as e:
            raise APIError(f"SonarCloud returned malformed issues for {path}: {e}") from e

    async def search_rules_by_keys(self, keys: list[str]) -> list[Rule]:
        if not keys:
            return []

        params = self._scoped(
            {
                "rule_keys": ",".join(keys),
                "f": RULE_SEARCH_FIELDS,
                "ps": min(len(keys), MAX_ISSUE_PAGE_SIZE),
            }
        )
        path = "/rules/search"
        data = await self._get_json(path, params)

        try:
            return [
                Rule(**rule_data)
                for rule_data in data.get("rules", [])
                if isinstance(rule_data, dict) and rule_data.get("key")
            ]
        except (PydanticValidationError, TypeError) as e:
            raise APIError(f"SonarCloud returned malformed rules for {path}: {e}") from e

    async def get_rule(self, key: str) -> Rule | None:
        path = "/rules/show"
        response = await self._get(path, self._scoped({"key": key}))
        if response.status_code == 404:
            return None
        self._check_response(response, path)

        rule_data = self._decode(response, path).get("rule")
        if not rule_data:
            return None
        try:
            return Rule(**rule_data)
        except (PydanticValidationError, TypeError) as e:
            raise APIError(f"SonarCloud returned a malformed rule for {key}: {e}") from e

    async def get_measures(self, component: str, metric_keys: list[str]) -> list[Measure]:
        data = await self._get_json(
            "/measures/component",
            {"component": component, "metricKeys": ",".join(metric_keys)},
        )
        measures = (data.get("component") or {}).get("measures", [])
        try:
            return [Measure(**m) for m in measures if isinstance(m, dict) and m.get("metric")]
        except PydanticValidationError as e:
            raise APIError(f"SonarCloud returned malformed measures for {component}: {e}") from e

    async def get_cwe_facet(self, project_key: str | None = None) -> dict[str, int]:
        """CWE distribution as counted server-side by the issues/search facet."""
        result = await self.search_issues(project_key, page_size=1, facets=["cwe"])

        counts: dict[str, int] = {}
        for facet in result.facets:
            if facet.get("property") != "cwe":
                continue
            for value in facet.get("values", []):
                cwe_id = normalize_cwe_id(value.get("val"))
                if cwe_id:
                    counts[cwe_id] = counts.get(cwe_id, 0) + int(value.get("count", 0))
        return counts
