"""Tests for the rule-based plugin compatibility classifier."""
import pytest
from pydantic import ValidationError

from jenkins2gitlab.models.schemas import (
    CompatibilityStatus,
    CompatibilityVerdict,
    PluginUsage,
    SupportLevel,
    VerdictSource,
)
from jenkins2gitlab.services.pipeline.classifier import (
    PluginCompatibilityClassifier,
    band_confidence,
    classify,
)
from jenkins2gitlab.services.pipeline.extractor import extract


def usage(identifier, context="", version=None):
    return PluginUsage(identifier=identifier, usage_context=context, declared_version=version)


class TestKnowledgeBaseVerdicts:
    def test_critical_but_compatible_is_not_blocking(self, knowledge_base):
        verdict = classify(usage("git"), knowledge_base)
        assert verdict.status == CompatibilityStatus.COMPATIBLE
        assert verdict.support_level == SupportLevel.ACTIVE
        assert verdict.confidence == 0.95
        assert not verdict.is_blocking
        assert verdict.source == VerdictSource.KNOWLEDGE_BASE

    def test_critical_unsupported_is_blocking(self, knowledge_base):
        verdict = classify(usage("subversion"), knowledge_base)
        assert verdict.status == CompatibilityStatus.UNSUPPORTED
        assert verdict.support_level == SupportLevel.ABANDONED
        assert verdict.is_blocking
        assert verdict.workaround_available
        assert any("manual review" in note for note in verdict.migration_notes)

    def test_maintenance_band_adds_caveat_and_review_comment(self, knowledge_base):
        verdict = classify(usage("credentials-binding"), knowledge_base)
        assert verdict.status == CompatibilityStatus.COMPATIBLE
        assert verdict.support_level == SupportLevel.MAINTENANCE
        assert "Compatible with caveats; review the generated job" in verdict.migration_notes
        assert "Credential values are not migrated automatically" in verdict.migration_notes

    def test_deprecated_band_is_partial(self, knowledge_base):
        verdict = classify(usage("cobertura"), knowledge_base)
        assert verdict.status == CompatibilityStatus.PARTIAL
        assert verdict.support_level == SupportLevel.DEPRECATED
        assert not verdict.is_blocking


class TestFallbacks:
    def test_category_rule(self, knowledge_base):
        verdict = classify(usage("my-vault-thing"), knowledge_base)
        assert verdict.status == CompatibilityStatus.PARTIAL
        assert verdict.confidence == 0.65
        assert verdict.source == VerdictSource.RULE
        assert verdict.migration_notes[-1] == "Classified by credentials category rule"

    def test_container_rule_is_compatible(self, knowledge_base):
        verdict = classify(usage("kaniko-builder"), knowledge_base)
        assert verdict.status == CompatibilityStatus.COMPATIBLE
        assert not verdict.is_blocking

    def test_unrecognised_is_unknown(self, knowledge_base):
        verdict = classify(usage("acme-widget"), knowledge_base)
        assert verdict.status == CompatibilityStatus.UNKNOWN
        assert verdict.confidence == 0.2
        assert not verdict.is_blocking
        assert verdict.source == VerdictSource.FALLBACK

    def test_unrecognised_critical_identifier_is_blocking(self, knowledge_base):
        verdict = classify(usage("pipeline-stage-step"), knowledge_base)
        assert verdict.status == CompatibilityStatus.UNKNOWN
        assert verdict.is_blocking


class TestInvariants:
    def test_blocking_never_compatible(self, knowledge_base, maven_jenkinsfile):
        classifier = PluginCompatibilityClassifier(knowledge_base)
        identifiers = knowledge_base.identifiers() + ["acme-widget", "pipeline-stage-step", "my-vault-thing"]
        for verdict in classifier.classify_all([usage(i) for i in identifiers]):
            assert not (verdict.is_blocking and verdict.status == CompatibilityStatus.COMPATIBLE)

    def test_blocking_compatible_verdict_cannot_be_built(self):
        with pytest.raises(ValidationError):
            CompatibilityVerdict(
                usage=usage("git"),
                status=CompatibilityStatus.COMPATIBLE,
                is_blocking=True,
                confidence=0.9,
            )

    def test_classification_is_deterministic(self, knowledge_base, maven_jenkinsfile):
        usages = extract(maven_jenkinsfile).usages
        classifier = PluginCompatibilityClassifier(knowledge_base)
        assert classifier.classify_all(usages) == classifier.classify_all(usages)

    def test_one_verdict_per_usage_in_order(self, knowledge_base, maven_jenkinsfile):
        usages = extract(maven_jenkinsfile).usages
        verdicts = PluginCompatibilityClassifier(knowledge_base).classify_all(usages)
        assert [v.usage for v in verdicts] == usages


@pytest.mark.parametrize("confidence,status,level", [
    (0.95, CompatibilityStatus.COMPATIBLE, SupportLevel.ACTIVE),
    (0.9, CompatibilityStatus.COMPATIBLE, SupportLevel.ACTIVE),
    (0.7, CompatibilityStatus.COMPATIBLE, SupportLevel.MAINTENANCE),
    (0.5, CompatibilityStatus.PARTIAL, SupportLevel.DEPRECATED),
    (0.49, CompatibilityStatus.UNSUPPORTED, SupportLevel.ABANDONED),
    (0.0, CompatibilityStatus.UNSUPPORTED, SupportLevel.ABANDONED),
])
def test_band_confidence(confidence, status, level):
    assert band_confidence(confidence) == (status, level)
