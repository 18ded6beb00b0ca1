"""
Optional Verdict Enrichment

EnrichingClassifier decorates the rule-based classifier: it only ever
upgrades an `unknown` verdict using the external collaborator, with
bounded concurrency, a per-call timeout, a circuit breaker and a TTL
cache. Any failure returns the rule-based verdict unchanged.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from jenkins2gitlab.integrations.enrichment_client import EnrichmentError
from jenkins2gitlab.models.schemas import (
    CompatibilityStatus,
    CompatibilityVerdict,
    EnrichmentRequest,
    EnrichmentResponse,
    PluginUsage,
    VerdictSource,
)
from jenkins2gitlab.services.pipeline.classifier import PluginCompatibilityClassifier
from jenkins2gitlab.services.pipeline.resilience import CircuitBreaker, TTLCache

logger = logging.getLogger(__name__)

ENRICHED_CONFIDENCE = 0.75


def cache_key(usage: PluginUsage) -> str:
    """Identifier plus whitespace- and case-normalised usage context."""
    context = " ".join(usage.usage_context.lower().split())
    return f"{usage.identifier}|{context}"


def verdict_from_response(usage: PluginUsage, response: EnrichmentResponse) -> CompatibilityVerdict:
    if response.is_blocking and response.compatibility_status == CompatibilityStatus.COMPATIBLE:
        raise EnrichmentError(f"Contradictory enrichment for {usage.identifier}: blocking but compatible")
    notes = list(response.migration_notes) or ["Classified by external enrichment"]
    return CompatibilityVerdict(
        usage=usage,
        status=response.compatibility_status,
        target_equivalent=response.target_equivalent,
        is_blocking=response.is_blocking,
        workaround_available=response.workaround_available,
        confidence=ENRICHED_CONFIDENCE,
        migration_notes=notes,
        documentation_url=response.documentation_url,
        source=VerdictSource.ENRICHMENT,
    )


class EnrichingClassifier:
    """
    Async classifier that upgrades unknown verdicts.

    The collaborator is any object with `async enrich(EnrichmentRequest)`
    returning an EnrichmentResponse. Cache, breaker and semaphore are owned
    by the caller and may be shared across conversions.
    """

    def __init__(
        self,
        classifier: PluginCompatibilityClassifier,
        collaborator=None,
        cache: Optional[TTLCache] = None,
        breaker: Optional[CircuitBreaker] = None,
        max_concurrency: int = 5,
        timeout: float = 20.0,
        project_context: Optional[Dict[str, Any]] = None,
        semaphore: Optional[asyncio.Semaphore] = None,
    ):
        self.classifier = classifier
        self.collaborator = collaborator
        self.cache = cache if cache is not None else TTLCache()
        self.breaker = breaker if breaker is not None else CircuitBreaker()
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self.project_context = project_context or {}
        self._semaphore = semaphore if semaphore is not None else asyncio.Semaphore(max_concurrency)

    async def classify(self, usage: PluginUsage) -> CompatibilityVerdict:
        verdict = self.classifier.classify(usage)
        if verdict.status != CompatibilityStatus.UNKNOWN or self.collaborator is None:
            return verdict

        key = cache_key(usage)
        cached = self.cache.get(key)
        if cached is not None:
            return self._upgrade(verdict, usage, cached)

        if not self.breaker.allow_request():
            logger.debug(f"Circuit open, skipping enrichment for {usage.identifier}")
            return verdict

        request = EnrichmentRequest(
            identifier=usage.identifier,
            usage_context=usage.usage_context,
            project_context=self.project_context,
        )
        async with self._semaphore:
            try:
                response = await asyncio.wait_for(self.collaborator.enrich(request), timeout=self.timeout)
                enriched = verdict_from_response(usage, response)
            except asyncio.TimeoutError:
                logger.warning(f"Enrichment timed out for {usage.identifier} after {self.timeout}s")
                self.breaker.record_failure()
                return verdict
            except Exception as e:
                logger.warning(f"Enrichment failed for {usage.identifier}: {e}")
                self.breaker.record_failure()
                return verdict

        self.breaker.record_success()
        self.cache.set(key, response)
        return enriched if enriched.status != CompatibilityStatus.UNKNOWN else verdict

    async def classify_all(self, usages: List[PluginUsage]) -> List[CompatibilityVerdict]:
        return list(await asyncio.gather(*(self.classify(usage) for usage in usages)))

    def _upgrade(self, verdict: CompatibilityVerdict, usage: PluginUsage,
                 response: EnrichmentResponse) -> CompatibilityVerdict:
        enriched = verdict_from_response(usage, response)
        return enriched if enriched.status != CompatibilityStatus.UNKNOWN else verdict
