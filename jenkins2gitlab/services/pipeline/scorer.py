"""
Migration Complexity Scorer

Weighted sum of plugin, structural, credential and integration signals,
clamped to 0-100 and mapped to a tier. All weights live in ScoringPolicy
so callers can substitute their own heuristics.
"""
from dataclasses import dataclass
from typing import List

from jenkins2gitlab.models.schemas import (
    CompatibilityStatus,
    CompatibilityVerdict,
    ComplexityScore,
    PipelineStructure,
    Tier,
)
from jenkins2gitlab.services.pipeline.constants import STYLE_RISK_MULTIPLIERS


@dataclass(frozen=True)
class ScoringPolicy:
    plugin_weight: float = 2
    plugin_cap: float = 50
    custom_plugin_weight: float = 10
    stage_weight: float = 5
    step_weight: float = 2
    conditional_weight: float = 8
    structural_cap: float = 100
    credential_weight: float = 5
    credential_cap: float = 30
    integration_weight: float = 8
    integration_cap: float = 40

    simple_max: float = 25
    moderate_max: float = 50
    complex_max: float = 75

    min_hours: float = 8
    hours_per_point: float = 0.8
    custom_plugin_hours_factor: float = 1.5
    min_confidence: float = 0.6

    def tier_for(self, raw: float) -> Tier:
        if raw <= self.simple_max:
            return Tier.SIMPLE
        if raw <= self.moderate_max:
            return Tier.MODERATE
        if raw <= self.complex_max:
            return Tier.COMPLEX
        return Tier.ENTERPRISE


DEFAULT_POLICY = ScoringPolicy()


def score(structure: PipelineStructure, verdicts: List[CompatibilityVerdict],
          policy: ScoringPolicy = DEFAULT_POLICY) -> ComplexityScore:
    distinct_plugins = len({v.usage.identifier for v in verdicts})
    unknown_count = sum(1 for v in verdicts if v.status == CompatibilityStatus.UNKNOWN)

    factors = {
        "plugins": min(policy.plugin_weight * distinct_plugins, policy.plugin_cap),
        "custom_plugins": policy.custom_plugin_weight * unknown_count,
        "structure": min(
            policy.stage_weight * len(structure.stages)
            + policy.step_weight * structure.step_count
            + policy.conditional_weight * structure.conditional_count,
            policy.structural_cap,
        ),
        "credentials": min(policy.credential_weight * structure.credential_usage_count, policy.credential_cap),
        "integrations": min(policy.integration_weight * len(set(structure.integrations)), policy.integration_cap),
    }
    raw = max(0.0, min(float(sum(factors.values())), 100.0))

    hours = max(policy.min_hours, policy.hours_per_point * raw)
    if factors["custom_plugins"] > 0:
        hours *= policy.custom_plugin_hours_factor
    risk = STYLE_RISK_MULTIPLIERS.get(structure.style.value, 1.0)

    return ComplexityScore(
        raw=raw,
        tier=policy.tier_for(raw),
        factor_breakdown={name: float(value) for name, value in factors.items()},
        estimated_hours=round(hours, 1),
        confidence=round(max(policy.min_confidence, 1 - raw / 200), 2),
        risk_multiplier=risk,
        risk_adjusted_hours=round(hours * risk, 1),
    )
