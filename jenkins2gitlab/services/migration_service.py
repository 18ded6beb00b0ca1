"""
Jenkins to GitLab Migration Service - Facade Class.

Main orchestration class that delegates to the pipeline modules:
extract -> analyze -> classify -> score -> generate -> serialize -> validate.

A conversion never raises for any input text: unexpected failures are
logged and answered with the placeholder skeleton plus a warning.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from jenkins2gitlab.config import Settings, settings as default_settings
from jenkins2gitlab.integrations.enrichment_client import EnrichmentClient
from jenkins2gitlab.models.schemas import (
    CompatibilityVerdict,
    ComplexityScore,
    CredentialVariableSpec,
    FeatureSet,
    GenerationOptions,
    PipelineStructure,
    TargetDocument,
)
from jenkins2gitlab.services.pipeline.analyzer import analyze
from jenkins2gitlab.services.pipeline.classifier import PluginCompatibilityClassifier
from jenkins2gitlab.services.pipeline.enrichment import EnrichingClassifier
from jenkins2gitlab.services.pipeline.extractor import extract
from jenkins2gitlab.services.pipeline.generator import generate
from jenkins2gitlab.services.pipeline.knowledge_base import PluginKnowledgeBase, load_knowledge_base
from jenkins2gitlab.services.pipeline.reporting import (
    migration_checklist,
    plugin_summary,
    recommendations,
)
from jenkins2gitlab.services.pipeline.resilience import CircuitBreaker, TTLCache
from jenkins2gitlab.services.pipeline.scorer import ScoringPolicy, DEFAULT_POLICY, score
from jenkins2gitlab.services.pipeline.serializer import serialize
from jenkins2gitlab.services.pipeline.validator import ValidationReport, validate

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """Everything one conversion produced"""
    features: FeatureSet
    structure: PipelineStructure
    verdicts: List[CompatibilityVerdict]
    score: ComplexityScore
    document: TargetDocument
    yaml: str
    validation: ValidationReport
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    plugin_summary: Dict[str, Any] = field(default_factory=dict)
    credential_specs: List[CredentialVariableSpec] = field(default_factory=list)

    @property
    def checklist(self) -> str:
        return migration_checklist(self.verdicts, self.credential_specs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "yaml": self.yaml,
            "valid": self.validation.valid,
            "validation": self.validation.to_dict(),
            "warnings": self.warnings,
            "recommendations": self.recommendations,
            "plugin_summary": self.plugin_summary,
            "credential_variables": [spec.model_dump(mode="json") for spec in self.credential_specs],
            "score": self.score.model_dump(mode="json"),
            "verdicts": [v.model_dump(mode="json") for v in self.verdicts],
            "stages": [s.model_dump(mode="json") for s in self.structure.stages],
        }


def build_enricher(config: Optional[Settings] = None) -> Optional[EnrichmentClient]:
    """Enrichment collaborator from settings, or None when disabled."""
    config = config or default_settings
    if not config.enrichment_enabled:
        return None
    if not config.enrichment_api_key:
        logger.warning("Enrichment enabled but no API key configured; continuing without it")
        return None
    return EnrichmentClient(
        api_key=config.enrichment_api_key,
        base_url=config.enrichment_base_url,
        model=config.enrichment_model,
        timeout=config.enrichment_timeout,
    )


class PipelineMigrationService:
    """
    Converts Jenkinsfiles to GitLab CI configuration.

    The knowledge base is read-only and shared. The enrichment cache and
    circuit breaker belong to this instance and are shared by every
    async conversion it runs.
    """

    def __init__(
        self,
        knowledge_base: Optional[PluginKnowledgeBase] = None,
        collaborator=None,
        cache: Optional[TTLCache] = None,
        breaker: Optional[CircuitBreaker] = None,
        policy: ScoringPolicy = DEFAULT_POLICY,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.knowledge_base = knowledge_base if knowledge_base is not None else load_knowledge_base(
            self.config.knowledge_base_path
        )
        self.classifier = PluginCompatibilityClassifier(self.knowledge_base)
        self.collaborator = collaborator
        self.cache = cache if cache is not None else TTLCache(
            ttl=self.config.enrichment_cache_ttl,
            max_entries=self.config.enrichment_cache_max_entries,
        )
        self.breaker = breaker if breaker is not None else CircuitBreaker(
            failure_threshold=self.config.circuit_failure_threshold,
            recovery_timeout=self.config.circuit_recovery_timeout,
        )
        self.policy = policy
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop = None

    # ------------------------------------------------------------------
    # Synchronous core
    # ------------------------------------------------------------------
    def convert(self, source_text: str, options: Optional[GenerationOptions] = None) -> ConversionResult:
        """Run the full pipeline without enrichment."""
        try:
            features = extract(source_text)
            verdicts = self.classifier.classify_all(features.usages)
            return self._finish(source_text, features, verdicts, options)
        except Exception as e:
            logger.exception(f"Conversion failed, returning skeleton: {e}")
            return self._fallback(options, e)

    # ------------------------------------------------------------------
    # Async with optional enrichment
    # ------------------------------------------------------------------
    async def convert_async(
        self,
        source_text: str,
        options: Optional[GenerationOptions] = None,
        project_context: Optional[Dict[str, Any]] = None,
    ) -> ConversionResult:
        """Run the pipeline, upgrading unknown verdicts through the collaborator."""
        try:
            features = extract(source_text)
            if self.collaborator is None:
                verdicts = self.classifier.classify_all(features.usages)
            else:
                enricher = EnrichingClassifier(
                    self.classifier,
                    collaborator=self.collaborator,
                    cache=self.cache,
                    breaker=self.breaker,
                    max_concurrency=self.config.enrichment_max_concurrency,
                    timeout=self.config.enrichment_timeout,
                    project_context=project_context,
                    semaphore=self._enrichment_semaphore(),
                )
                verdicts = await enricher.classify_all(features.usages)
            return self._finish(source_text, features, verdicts, options)
        except Exception as e:
            logger.exception(f"Conversion failed, returning skeleton: {e}")
            return self._fallback(options, e)

    async def convert_batch(
        self,
        sources: List[str],
        options: Optional[GenerationOptions] = None,
    ) -> List[ConversionResult]:
        """Convert independent pipelines concurrently, in input order."""
        logger.info(f"Converting batch of {len(sources)} pipelines")
        return list(await asyncio.gather(*(self.convert_async(text, options) for text in sources)))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _enrichment_semaphore(self) -> asyncio.Semaphore:
        """One fan-out bound per event loop, shared by every conversion on it."""
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.config.enrichment_max_concurrency)
            self._semaphore_loop = loop
        return self._semaphore

    def _finish(
        self,
        source_text: str,
        features: FeatureSet,
        verdicts: List[CompatibilityVerdict],
        options: Optional[GenerationOptions],
    ) -> ConversionResult:
        structure = analyze(source_text, features)
        complexity = score(structure, verdicts, self.policy)
        options = (options or GenerationOptions()).model_copy(update={"score": complexity})

        document = generate(structure, verdicts, features.parameters, features.environment, options)
        text = serialize(document)
        report = validate(text)
        if not report.valid:
            logger.warning(f"Generated configuration failed validation: {report.errors}")

        logger.info(
            f"Converted {structure.style.value} pipeline: {len(structure.stages)} stages, "
            f"{len(verdicts)} plugin usages, tier {complexity.tier.value}"
        )
        return ConversionResult(
            features=features,
            structure=structure,
            verdicts=verdicts,
            score=complexity,
            document=document,
            yaml=text,
            validation=report,
            warnings=list(document.warnings),
            recommendations=recommendations(structure, verdicts, complexity),
            plugin_summary=plugin_summary(verdicts),
            credential_specs=list(document.credential_variables),
        )

    def _fallback(self, options: Optional[GenerationOptions], error: Exception) -> ConversionResult:
        structure = PipelineStructure()
        complexity = score(structure, [], self.policy)
        options = (options or GenerationOptions()).model_copy(update={"score": complexity})
        document = generate(structure, [], options=options)
        document.warnings.append(f"Conversion failed: {error}")
        text = serialize(document)
        return ConversionResult(
            features=FeatureSet(),
            structure=structure,
            verdicts=[],
            score=complexity,
            document=document,
            yaml=text,
            validation=validate(text),
            warnings=list(document.warnings),
            recommendations=recommendations(structure, [], complexity),
            plugin_summary=plugin_summary([]),
        )
