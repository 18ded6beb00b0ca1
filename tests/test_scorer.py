"""Tests for migration complexity scoring."""
import pytest

from jenkins2gitlab.models.schemas import (
    CompatibilityStatus,
    CompatibilityVerdict,
    PipelineStructure,
    PipelineStyle,
    PluginUsage,
    StageNode,
    Tier,
)
from jenkins2gitlab.services.pipeline.analyzer import analyze
from jenkins2gitlab.services.pipeline.classifier import PluginCompatibilityClassifier
from jenkins2gitlab.services.pipeline.extractor import extract
from jenkins2gitlab.services.pipeline.scorer import DEFAULT_POLICY, ScoringPolicy, score


def verdict(identifier, status=CompatibilityStatus.COMPATIBLE):
    return CompatibilityVerdict(
        usage=PluginUsage(identifier=identifier),
        status=status,
        confidence=0.9 if status != CompatibilityStatus.UNKNOWN else 0.2,
    )


def structure_with(stages=0, steps=0, **kwargs):
    return PipelineStructure(
        stages=[StageNode(name=f"stage-{i}") for i in range(stages)],
        step_count=steps,
        **kwargs,
    )


class TestScore:
    def test_empty_pipeline(self):
        result = score(PipelineStructure(), [])
        assert result.raw == 0
        assert result.tier == Tier.SIMPLE
        assert result.estimated_hours == 8.0
        assert result.confidence == 1.0

    def test_factor_breakdown(self):
        structure = structure_with(stages=2, steps=3, credential_usage_count=1, integrations=["chat", "chat"])
        result = score(structure, [verdict("git"), verdict("git"), verdict("junit")])
        assert result.factor_breakdown == {
            "plugins": 4.0,
            "custom_plugins": 0.0,
            "structure": 16.0,
            "credentials": 5.0,
            "integrations": 8.0,
        }
        assert result.raw == 33.0
        assert result.tier == Tier.MODERATE

    def test_unknown_plugins_raise_effort(self):
        result = score(PipelineStructure(), [verdict("acme", CompatibilityStatus.UNKNOWN)])
        assert result.raw == 12.0
        assert result.estimated_hours == 14.4

    def test_raw_is_clamped(self):
        structure = structure_with(stages=40, credential_usage_count=20,
                                   integrations=["a", "b", "c", "d", "e", "f"])
        result = score(structure, [verdict(f"p{i}") for i in range(40)])
        assert result.raw == 100.0
        assert result.tier == Tier.ENTERPRISE
        assert result.confidence == 0.6

    def test_scripted_style_is_riskier(self):
        structure = structure_with(stages=4, style=PipelineStyle.SCRIPTED)
        result = score(structure, [])
        assert result.risk_multiplier == 1.5
        assert result.risk_adjusted_hours == round(result.estimated_hours * 1.5, 1)

    def test_adding_plugins_never_lowers_score(self):
        structure = structure_with(stages=3, steps=4)
        verdicts = []
        previous = score(structure, verdicts).raw
        for i in range(30):
            verdicts.append(verdict(f"plugin-{i}"))
            current = score(structure, verdicts).raw
            assert current >= previous
            previous = current

    def test_custom_policy(self):
        policy = ScoringPolicy(stage_weight=20, simple_max=10)
        result = score(structure_with(stages=1), [], policy)
        assert result.raw == 20.0
        assert result.tier == Tier.MODERATE

    def test_maven_pipeline_is_complex(self, knowledge_base, maven_jenkinsfile):
        features = extract(maven_jenkinsfile)
        verdicts = PluginCompatibilityClassifier(knowledge_base).classify_all(features.usages)
        result = score(analyze(maven_jenkinsfile, features), verdicts)
        assert result.factor_breakdown["plugins"] == 18.0
        assert result.factor_breakdown["structure"] == 34.0
        assert result.raw == 70.0
        assert result.tier == Tier.COMPLEX


@pytest.mark.parametrize("raw,tier", [
    (0, Tier.SIMPLE),
    (25, Tier.SIMPLE),
    (25.5, Tier.MODERATE),
    (50, Tier.MODERATE),
    (75, Tier.COMPLEX),
    (75.1, Tier.ENTERPRISE),
])
def test_tier_boundaries(raw, tier):
    assert DEFAULT_POLICY.tier_for(raw) == tier
