"""Configuration model for SonarCloud access and analysis tuning."""

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .constants import (
    DEFAULT_AUX_TIMEOUT,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_COVERAGE_PRECISION,
    DEFAULT_ISSUE_PAGE_SIZE,
    DEFAULT_MAX_ISSUE_PAGES,
    DEFAULT_REQUEST_TIMEOUT,
    MAX_ISSUE_PAGE_SIZE,
    MAX_RULE_BATCH_SIZE,
    SONARCLOUD_API_URL,
    SONARCLOUD_WEB_URL,
)
from .core.exceptions import InvalidConfigError

# Environment variable -> field name
ENV_FIELDS = {
    "SONAR_BASE_URL": "base_url",
    "SONAR_WEB_URL": "web_url",
    "SONAR_ORGANIZATION": "organization",
    "SONAR_TOKEN": "token",
    "REQUEST_TIMEOUT": "timeout",
    "SONAR_AUX_TIMEOUT": "aux_timeout",
    "SONAR_ISSUE_PAGE_SIZE": "issue_page_size",
    "SONAR_MAX_ISSUE_PAGES": "max_issue_pages",
    "SONAR_RULE_BATCH_SIZE": "rule_batch_size",
    "SONAR_PERCENT_PRECISION": "percent_precision",
    "CACHE_TTL": "cache_ttl_seconds",
}


class SonarCloudConfig(BaseModel):
    """Settings for talking to SonarCloud and shaping the analysis."""

    base_url: str = Field(default=SONARCLOUD_API_URL, description="Web API root")
    web_url: str = Field(
        default=SONARCLOUD_WEB_URL, description="Browser URL used for issue links"
    )
    organization: str | None = Field(
        default=None, description="Organization key used to scope searches"
    )
    token: str | None = Field(default=None, description="User token sent as Bearer")
    timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    aux_timeout: float = Field(default=DEFAULT_AUX_TIMEOUT, gt=0)
    issue_page_size: int = Field(
        default=DEFAULT_ISSUE_PAGE_SIZE, ge=1, le=MAX_ISSUE_PAGE_SIZE
    )
    max_issue_pages: int = Field(default=DEFAULT_MAX_ISSUE_PAGES, ge=1)
    rule_batch_size: int = Field(default=MAX_RULE_BATCH_SIZE, ge=1, le=MAX_RULE_BATCH_SIZE)
    percent_precision: int = Field(default=DEFAULT_COVERAGE_PRECISION, ge=0, le=6)
    cache_ttl_seconds: int = Field(default=DEFAULT_CACHE_TTL_SECONDS, ge=0)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SonarCloudConfig":
        """Build a config from environment variables.

        Unset or empty variables keep their defaults.

        Raises:
            InvalidConfigError: If a variable holds an unusable value
        """
        env = os.environ if environ is None else environ
        values = {
            field: env[name] for name, field in ENV_FIELDS.items() if env.get(name)
        }
        try:
            return cls(**values)
        except PydanticValidationError as e:
            raise InvalidConfigError(f"Invalid SonarCloud configuration: {e}") from e

    @property
    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
