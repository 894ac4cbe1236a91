"""Constants and configuration values for SonarCWE.

This module centralizes magic numbers and configuration defaults
that are used across the codebase for easier maintenance.
"""

import os

# =============================================================================
# SonarCloud API
# =============================================================================

SONARCLOUD_API_URL = "https://sonarcloud.io/api"
SONARCLOUD_WEB_URL = "https://sonarcloud.io"

# Fields requested from rules/search; securityStandards carries the CWE list
RULE_SEARCH_FIELDS = "key,name,lang,langName,severity,type,status,tags,sysTags,securityStandards"

# Largest number of rule keys sent in one rules/search call
MAX_RULE_BATCH_SIZE = 200

# issues/search page size limits
DEFAULT_ISSUE_PAGE_SIZE = 100
MAX_ISSUE_PAGE_SIZE = 500
DEFAULT_MAX_ISSUE_PAGES = 10

# Small page used by the security-rule estimate
SECURITY_RULE_SAMPLE_SIZE = 10


# =============================================================================
# Request Configuration
# =============================================================================

# Default HTTP request timeout in seconds
DEFAULT_REQUEST_TIMEOUT = int(os.environ.get("REQUEST_TIMEOUT", 30))

# Timeout applied to each auxiliary signal as a whole
DEFAULT_AUX_TIMEOUT = 10.0

# One retry on transient failure for issue and rule fetches
PRIMARY_FETCH_RETRIES = 1
RETRY_BACKOFF_SECONDS = 0.5

# MCP server port
MCP_DEFAULT_PORT = int(os.environ.get("MCP_PORT", 3000))


# =============================================================================
# Cache Configuration
# =============================================================================

# Rule metadata changes rarely; 15 min matches the issue refresh cadence
DEFAULT_CACHE_TTL_SECONDS = int(os.environ.get("CACHE_TTL", 900))
RULE_CACHE_MAX_SIZE = 5000


# =============================================================================
# Statistics
# =============================================================================

TOP_CATEGORY_LIMIT = 10
DEFAULT_COVERAGE_PRECISION = 0
DEFAULT_SHARE_PRECISION = 1

SEVERITY_ORDER = ("BLOCKER", "CRITICAL", "MAJOR", "MINOR", "INFO")
ISSUE_TYPES = ("BUG", "VULNERABILITY", "CODE_SMELL", "SECURITY_HOTSPOT")


# =============================================================================
# Auxiliary Signals
# =============================================================================

SECURITY_HOTSPOTS_METRIC = "security_hotspots"

PROJECT_SECURITY_METRICS = (
    "security_hotspots",
    "security_rating",
    "security_remediation_effort",
    "new_security_hotspots",
    "security_hotspots_reviewed",
    "new_security_hotspots_reviewed",
    "vulnerabilities",
    "new_vulnerabilities",
    "bugs",
    "new_bugs",
    "reliability_rating",
    "reliability_remediation_effort",
    "new_reliability_remediation_effort",
)


# =============================================================================
# NVD
# =============================================================================

NVD_API_URL = "https://services.nvd.nist.gov/rest/json/cves/2.0"
NVD_DETAIL_URL = "https://nvd.nist.gov/vuln/detail"

# NVD API rate limits
NVD_RATE_LIMIT_CALLS = 5  # Calls per period without API key
NVD_RATE_LIMIT_PERIOD = 30.0  # Period in seconds
NVD_RATE_LIMIT_WITH_KEY_CALLS = 50  # Calls per period with API key

NVD_RESULTS_PER_PAGE = 20
