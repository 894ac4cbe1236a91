import json
import logging
import os
import sys
from typing import Annotated, Any

from fastmcp import FastMCP
from pydantic import Field

from .analysis import CweAnalysisService
from .clients import NVDClient, SonarCloudClient
from .config import SonarCloudConfig
from .constants import MCP_DEFAULT_PORT, NVD_RESULTS_PER_PAGE, RULE_CACHE_MAX_SIZE
from .core import RuleCache
from .core.exceptions import AuthenticationError, ConfigurationError, PrimaryFetchError
from .core.logging_config import configure_logging
from .cwe import default_catalog, normalize_cwe_id, url_for

# Configure logging to stderr to avoid interfering with JSON-RPC on stdout
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(name)s %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stderr,
)
logger = logging.getLogger("sonarcwe")

mcp: FastMCP = FastMCP("sonarcwe-mcp")

# Initialized lazily so a bad environment does not stop the server from starting
config: SonarCloudConfig | None = None
sonar_client: SonarCloudClient | None = None
nvd_client: NVDClient | None = None
rule_cache: RuleCache | None = None


def _ensure_clients_initialized() -> None:
    """Ensure clients are initialized when needed."""
    global config, sonar_client, nvd_client, rule_cache

    if sonar_client is None:
        config = SonarCloudConfig.from_env()
        sonar_client = SonarCloudClient(config)
        nvd_client = NVDClient(api_key=os.environ.get("NVD_API_KEY"), timeout=int(config.timeout))
        rule_cache = RuleCache(maxsize=RULE_CACHE_MAX_SIZE, ttl_seconds=config.cache_ttl_seconds)


def _service() -> CweAnalysisService:
    _ensure_clients_initialized()
    assert sonar_client is not None and config is not None
    return CweAnalysisService(sonar_client, config=config, cache=rule_cache)


def _error(message: str, retryable: bool) -> str:
    return json.dumps({"error": message, "retryable": retryable})


def _dumps(data: Any) -> str:
    return json.dumps(data, indent=2)


def _fetch_error(e: PrimaryFetchError) -> str:
    # Authentication failures are never retryable
    return _error(str(e), retryable=not isinstance(e.__cause__, AuthenticationError))


def _configure_event_logging() -> None:
    """Send analysis events to SONARCWE_LOG_FILE and/or stderr as JSON lines."""
    configure_logging(
        log_file=os.environ.get("SONARCWE_LOG_FILE") or None,
        log_level=os.environ.get("SONARCWE_LOG_LEVEL", "INFO"),
        enable_console=os.environ.get("SONARCWE_LOG_CONSOLE", "false").lower() == "true",
    )


@mcp.tool
async def analyze_cwe(
    project_key: Annotated[
        str | None,
        Field(
            description="SonarQube Cloud project key. If not provided, all projects of the organization are analysed",
            default=None,
        ),
    ] = None,
) -> str:
    """Classify a project's SonarQube Cloud issues by CWE weakness.

    USE THIS TOOL WHEN:
    - You need the CWE ids behind the issues of a SonarQube Cloud project
    - You want the full report: classified issues, statistics and security signals

    DO NOT USE THIS TOOL FOR:
    - Only the aggregate numbers (use cwe_statistics instead)
    - Describing a single CWE (use lookup_cwe instead)

    Returns JSON with issues, statistics, totalIssues, issuesWithWeakness and
    the best-effort securityHotspots, securityRules, projectMetrics and
    cweFacet signals. A signal whose status is "default" could not be fetched.
    """
    logger.info(f"Analysing CWE weaknesses{f' for {project_key}' if project_key else ''}")

    try:
        report = await _service().analyze(project_key)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return _error(str(e), retryable=False)
    except PrimaryFetchError as e:
        logger.error(f"CWE analysis failed: {e}")
        return _fetch_error(e)

    return _dumps(report.to_dict())


@mcp.tool
async def cwe_statistics(
    project_key: Annotated[
        str | None,
        Field(description="SonarQube Cloud project key", default=None),
    ] = None,
) -> str:
    """Aggregate CWE statistics for a project without the per-issue list.

    Returns per-weakness counts, severity and type breakdowns, the top 10
    categories and classification coverage.
    """
    try:
        statistics = await _service().statistics(project_key)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return _error(str(e), retryable=False)
    except PrimaryFetchError as e:
        logger.error(f"CWE statistics failed: {e}")
        return _fetch_error(e)

    return _dumps(statistics.to_dict())


@mcp.tool
async def lookup_cwe(
    cwe_id: Annotated[str, Field(description="CWE identifier (e.g., 'CWE-79', '79')")],
) -> str:
    """Describe a CWE weakness from the bundled catalog."""
    normalized = normalize_cwe_id(cwe_id)
    if normalized is None:
        return _error(f"Invalid CWE id: {cwe_id}", retryable=False)

    entry = default_catalog.get(normalized)
    if entry is None:
        return _dumps({"id": normalized, "found": False, "url": url_for(normalized)})

    return _dumps({**entry.model_dump(mode="json"), "found": True})


@mcp.tool
async def search_cwe(
    query: Annotated[str, Field(description="Text to match against CWE ids, names and descriptions")],
) -> str:
    """Search the bundled CWE catalog."""
    entries = default_catalog.search(query)
    return _dumps(
        {
            "query": query,
            "count": len(entries),
            "results": [entry.model_dump(mode="json") for entry in entries],
        }
    )


@mcp.tool
async def cves_for_cwe(
    cwe_id: Annotated[str, Field(description="CWE identifier (e.g., 'CWE-89')")],
    limit: Annotated[
        int,
        Field(description="Maximum number of CVEs to return", ge=1, le=100),
    ] = NVD_RESULTS_PER_PAGE,
) -> str:
    """List CVEs that NVD attributes to a CWE weakness.

    Lookup failures are reported as an empty list with an error message.
    """
    normalized = normalize_cwe_id(cwe_id)
    if normalized is None:
        return _error(f"Invalid CWE id: {cwe_id}", retryable=False)

    try:
        _ensure_clients_initialized()
    except ConfigurationError as e:
        return _error(str(e), retryable=False)
    assert nvd_client is not None

    try:
        cves = await nvd_client.get_cves_by_cwe_async(normalized, results_per_page=limit)
    except Exception as e:
        logger.warning(f"NVD lookup for {normalized} failed: {e}")
        return _dumps({"cweId": normalized, "count": 0, "cves": [], "error": str(e)})

    return _dumps(
        {
            "cweId": normalized,
            "count": len(cves),
            "cves": [cve.to_summary() for cve in cves],
        }
    )


def main() -> None:
    """Run the MCP server with HTTP streaming transport."""
    print("SonarCWE MCP Server v0.1.0 (HTTP Streaming)", file=sys.stderr)
    print("=" * 50, file=sys.stderr)

    if os.environ.get("SONAR_TOKEN"):
        print("SonarQube Cloud token found", file=sys.stderr)
    else:
        print("No SONAR_TOKEN (only public projects are visible)", file=sys.stderr)

    if os.environ.get("NVD_API_KEY"):
        print("NVD API key found", file=sys.stderr)
    else:
        print("No NVD API key (rate limits apply)", file=sys.stderr)

    _configure_event_logging()

    port = MCP_DEFAULT_PORT

    print("=" * 50, file=sys.stderr)
    print(f"Starting HTTP streaming server on port {port}...", file=sys.stderr)
    print(f"HTTP endpoint will be available at: http://localhost:{port}/mcp", file=sys.stderr)

    try:
        import asyncio

        asyncio.run(mcp.run_http_async(transport="streamable-http", host="0.0.0.0", port=port))
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        sys.exit(0)
    except Exception as e:
        print(f"MCP server error: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
