"""
Plugin Compatibility Classifier

Resolves a CompatibilityVerdict for every plugin usage:
1. Knowledge base entry, banded by confidence
2. Coarse category rule table
3. Explicit unknown verdict (blocking for critical identifiers)

Pure and deterministic for a fixed knowledge base. Optional enrichment of
unknown verdicts lives in enrichment.py.
"""
import re
from typing import List, Optional, Tuple

from jenkins2gitlab.models.schemas import (
    CompatibilityStatus,
    CompatibilityVerdict,
    Criticality,
    KnowledgeEntry,
    PluginUsage,
    SupportLevel,
    VerdictSource,
)
from jenkins2gitlab.services.pipeline.constants import (
    CONFIDENCE_BANDS,
    CRITICAL_IDENTIFIERS,
    RULE_TABLE,
    UNKNOWN_CONFIDENCE,
)
from jenkins2gitlab.services.pipeline.knowledge_base import PluginKnowledgeBase

_COMPILED_RULES = [(re.compile(rule["pattern"], re.IGNORECASE), rule) for rule in RULE_TABLE]


def band_confidence(confidence: float) -> Tuple[CompatibilityStatus, SupportLevel]:
    """Map a knowledge-base confidence to (status, support level)."""
    for lower_bound, status, support_level in CONFIDENCE_BANDS:
        if confidence >= lower_bound:
            return CompatibilityStatus(status), SupportLevel(support_level)
    return CompatibilityStatus.UNSUPPORTED, SupportLevel.ABANDONED


def is_critical(identifier: str) -> bool:
    return identifier in CRITICAL_IDENTIFIERS


def knowledge_base_verdict(usage: PluginUsage, entry: KnowledgeEntry) -> CompatibilityVerdict:
    status, support_level = band_confidence(entry.confidence)
    notes = list(entry.migration_notes)
    if support_level == SupportLevel.MAINTENANCE:
        notes.append("Compatible with caveats; review the generated job")
    elif support_level == SupportLevel.ABANDONED:
        notes.append("Needs manual review: no reliable GitLab equivalent")
    if entry.review_comment:
        notes.append(entry.review_comment)

    blocking = status != CompatibilityStatus.COMPATIBLE and (
        entry.criticality == Criticality.CRITICAL
        or (is_critical(usage.identifier) and status == CompatibilityStatus.UNSUPPORTED)
    )
    return CompatibilityVerdict(
        usage=usage,
        status=status,
        support_level=support_level,
        target_equivalent=entry.target_equivalent,
        is_blocking=blocking,
        workaround_available=entry.workaround_required or status != CompatibilityStatus.UNSUPPORTED,
        confidence=entry.confidence,
        migration_notes=notes,
        documentation_url=entry.documentation_url,
        source=VerdictSource.KNOWLEDGE_BASE,
    )


def rule_verdict(usage: PluginUsage) -> Optional[CompatibilityVerdict]:
    """Category default for identifiers missing from the knowledge base."""
    for pattern, rule in _COMPILED_RULES:
        if pattern.search(usage.identifier):
            status = CompatibilityStatus(rule["status"])
            return CompatibilityVerdict(
                usage=usage,
                status=status,
                target_equivalent=rule["target_equivalent"],
                is_blocking=is_critical(usage.identifier) and status == CompatibilityStatus.UNSUPPORTED,
                workaround_available=rule["workaround_available"],
                confidence=rule["confidence"],
                migration_notes=list(rule["notes"]) + [f"Classified by {rule['category']} category rule"],
                source=VerdictSource.RULE,
            )
    return None


def unknown_verdict(usage: PluginUsage) -> CompatibilityVerdict:
    return CompatibilityVerdict(
        usage=usage,
        status=CompatibilityStatus.UNKNOWN,
        is_blocking=is_critical(usage.identifier),
        workaround_available=False,
        confidence=UNKNOWN_CONFIDENCE,
        migration_notes=[f"Plugin {usage.identifier} is not recognised; review manually"],
        source=VerdictSource.FALLBACK,
    )


def classify(usage: PluginUsage, knowledge_base: PluginKnowledgeBase) -> CompatibilityVerdict:
    """Resolve one usage: knowledge base, then rule table, then unknown."""
    entry = knowledge_base.lookup(usage.identifier, usage.declared_version)
    if entry is not None:
        return knowledge_base_verdict(usage, entry)
    return rule_verdict(usage) or unknown_verdict(usage)


class PluginCompatibilityClassifier:
    """Rule-based resolver bound to one knowledge base."""

    def __init__(self, knowledge_base: PluginKnowledgeBase):
        self.knowledge_base = knowledge_base

    def classify(self, usage: PluginUsage) -> CompatibilityVerdict:
        return classify(usage, self.knowledge_base)

    def classify_all(self, usages: List[PluginUsage]) -> List[CompatibilityVerdict]:
        return [classify(usage, self.knowledge_base) for usage in usages]
