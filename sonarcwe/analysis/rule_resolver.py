"""Resolve rule keys to their declared CWE ids and tags."""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from ..clients.sonarcloud_client import Rule
from ..constants import MAX_RULE_BATCH_SIZE
from ..core.cache import RuleCache
from ..core.exceptions import AuthenticationError, ClientError, PrimaryFetchError
from ..core.logging_config import get_events_logger
from ..core.retry import call_with_retry
from ..cwe.identifiers import normalize_cwe_ids
from .models import RuleRecord

logger = logging.getLogger(__name__)
events = get_events_logger()


def build_rule_record(rule: Rule) -> RuleRecord:
    return RuleRecord(
        key=rule.key,
        declared_cwe_ids=normalize_cwe_ids(rule.security_standards.get("cwe", ())),
        tags=rule.all_tags,
    )


def unique_keys(rule_keys: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    return list(dict.fromkeys(k for k in rule_keys if k))


def chunked(keys: list[str], size: int) -> list[list[str]]:
    return [keys[i : i + size] for i in range(0, len(keys), size)]


class RuleCatalogResolver:
    """Builds the rule-key -> RuleRecord lookup the classifier reads.

    Rules are fetched in batches through rules/search. Keys a batch could
    not deliver are retried one by one through rules/show; keys that still
    fail map to an empty record.
    """

    def __init__(
        self,
        client: Any,
        cache: RuleCache | None = None,
        batch_size: int = MAX_RULE_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.client = client
        self.cache = cache
        self.batch_size = min(batch_size, MAX_RULE_BATCH_SIZE)

    async def resolve(self, rule_keys: Iterable[str]) -> dict[str, RuleRecord]:
        keys = unique_keys(rule_keys)
        if not keys:
            return {}

        if self.cache is not None:
            records, missing = self.cache.get_many(keys)
        else:
            records, missing = {}, keys

        if missing:
            fetched = await self._fetch_batches(missing)
            leftovers = [k for k in missing if k not in fetched]
            if leftovers:
                events.info(
                    f"Falling back to per-rule lookup for {len(leftovers)} of {len(keys)} rules",
                    extra={
                        "event": "rule_fallback_used",
                        "rule_count": len(keys),
                        "fallback_count": len(leftovers),
                    },
                )
                fetched.update(await self._fetch_individually(leftovers))

            if self.cache is not None:
                self.cache.set_many(fetched)
            records.update(fetched)

        return {key: records.get(key, RuleRecord.empty(key)) for key in keys}

    async def _fetch_batches(self, keys: list[str]) -> dict[str, RuleRecord]:
        results = await asyncio.gather(
            *(self._fetch_batch(chunk) for chunk in chunked(keys, self.batch_size))
        )
        merged: dict[str, RuleRecord] = {}
        for batch in results:
            merged.update(batch)
        return merged

    async def _fetch_batch(self, keys: list[str]) -> dict[str, RuleRecord]:
        try:
            rules = await call_with_retry(
                lambda: self.client.search_rules_by_keys(keys),
                f"rules/search for {len(keys)} rules",
            )
        except AuthenticationError as e:
            raise PrimaryFetchError(f"Rule catalog fetch rejected: {e}", "rules") from e
        except ClientError as e:
            # Covers unusable bodies too; the keys go to the per-rule fallback
            logger.warning(f"Could not fetch rule details for {len(keys)} rules: {e}")
            return {}

        requested = set(keys)
        return {
            rule.key: build_rule_record(rule) for rule in rules if rule.key in requested
        }

    async def _fetch_individually(self, keys: list[str]) -> dict[str, RuleRecord]:
        """Per-rule lookups; keys whose fetch failed are left out."""
        records = await asyncio.gather(*(self._fetch_one(key) for key in keys))
        return {key: record for key, record in zip(keys, records, strict=True) if record is not None}

    async def _fetch_one(self, key: str) -> RuleRecord | None:
        try:
            rule = await self.client.get_rule(key)
        except AuthenticationError as e:
            raise PrimaryFetchError(f"Rule catalog fetch rejected: {e}", "rules") from e
        except ClientError as e:
            logger.warning(f"Could not fetch rule details for {key}: {e}")
            return None

        if rule is None:
            logger.debug(f"Rule {key} not found")
            return RuleRecord.empty(key)
        return build_rule_record(rule)
