"""Clients for the SonarCloud Web API and the NVD CVE API."""

from .nvd_client import CVEDetail, NVDClient
from .sonarcloud_client import (
    Issue,
    IssueSearchResult,
    Measure,
    Paging,
    Rule,
    SonarCloudClient,
    issue_url,
)

__all__ = [
    "SonarCloudClient",
    "NVDClient",
    "CVEDetail",
    "Issue",
    "IssueSearchResult",
    "Measure",
    "Paging",
    "Rule",
    "issue_url",
]
