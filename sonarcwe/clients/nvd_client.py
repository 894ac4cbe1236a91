from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel, Field

from ..constants import NVD_API_URL, NVD_DETAIL_URL, NVD_RESULTS_PER_PAGE
from ..core.exceptions import APIError, InvalidInputError, NetworkError, TimeoutError
from ..core.rate_limiter import get_nvd_rate_limiter
from ..cwe.identifiers import normalize_cwe_id


class CVSSData(BaseModel):
    version: str
    vectorString: str = ""
    baseScore: float
    baseSeverity: str | None = None  # CVSS v2 data has no baseSeverity


class CVEDescription(BaseModel):
    lang: str
    value: str


class CVEDetail(BaseModel):
    id: str
    published: datetime | None = None
    lastModified: datetime | None = None
    descriptions: list[CVEDescription] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)
    weaknesses: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def description(self) -> str:
        for desc in self.descriptions:
            if desc.lang == "en":
                return desc.value
        return self.descriptions[0].value if self.descriptions else "No description available"

    def _first_cvss(self, *metric_names: str) -> CVSSData | None:
        for name in metric_names:
            entries = self.metrics.get(name) or []
            if entries and "cvssData" in entries[0]:
                return CVSSData(**entries[0]["cvssData"])
        return None

    @property
    def severity(self) -> str:
        cvss_v3 = self._first_cvss("cvssMetricV31", "cvssMetricV30")
        if cvss_v3 and cvss_v3.baseSeverity:
            return cvss_v3.baseSeverity

        # v2 keeps its severity next to cvssData rather than inside it
        v2_entries = self.metrics.get("cvssMetricV2") or []
        if v2_entries and v2_entries[0].get("baseSeverity"):
            return str(v2_entries[0]["baseSeverity"])
        return "UNKNOWN"

    @property
    def cwe_ids(self) -> list[str]:
        """CWE ids from the weaknesses block, in NVD's "CWE-XXX" form."""
        cwe_ids: list[str] = []
        for weakness in self.weaknesses:
            for desc in weakness.get("description", []):
                if desc.get("lang") != "en":
                    continue
                cwe_id = normalize_cwe_id(desc.get("value"))
                if cwe_id and cwe_id not in cwe_ids:
                    cwe_ids.append(cwe_id)
        return cwe_ids

    @property
    def url(self) -> str:
        return f"{NVD_DETAIL_URL}/{self.id}"

    def to_summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "severity": self.severity,
            "publishedDate": self.published.isoformat() if self.published else None,
            "lastModifiedDate": self.lastModified.isoformat() if self.lastModified else None,
            "cweIds": self.cwe_ids,
            "url": self.url,
        }


class NVDClient:
    BASE_URL = NVD_API_URL

    def __init__(self, api_key: str | None = None, timeout: int = 30):
        self.api_key = api_key
        self.headers = {"User-Agent": "sonarcwe/0.1"}
        if api_key:
            self.headers["apiKey"] = api_key
        self.timeout = httpx.Timeout(timeout)
        self.rate_limiter = get_nvd_rate_limiter(has_api_key=bool(api_key))

    async def _query(self, params: dict[str, Any]) -> list[CVEDetail]:
        await self.rate_limiter.acquire()

        async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
            try:
                response = await client.get(self.BASE_URL, params=params)
            except httpx.TimeoutException as e:
                raise TimeoutError("NVD request timed out") from e
            except httpx.TransportError as e:
                raise NetworkError(f"NVD request failed: {e}") from e

        if response.status_code == 404:
            return []
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise APIError(
                f"NVD returned {response.status_code}",
                status_code=response.status_code,
                response_body=e.response.text,
            ) from e

        cves = []
        for vuln in response.json().get("vulnerabilities", []):
            cve_data = vuln.get("cve")
            if cve_data:
                cves.append(CVEDetail(**cve_data))
        return cves

    async def get_cve_async(self, cve_id: str) -> CVEDetail | None:
        cves = await self._query({"cveId": cve_id})
        return cves[0] if cves else None

    async def get_cves_by_cwe_async(
        self,
        cwe_id: str,
        results_per_page: int = NVD_RESULTS_PER_PAGE,
        start_index: int = 0,
    ) -> list[CVEDetail]:
        """CVEs NVD attributes to the given weakness."""
        normalized = normalize_cwe_id(cwe_id)
        if normalized is None:
            raise InvalidInputError(f"Invalid CWE id: {cwe_id!r}")

        return await self._query(
            {
                "cweId": normalized,
                "resultsPerPage": results_per_page,
                "startIndex": start_index,
            }
        )
