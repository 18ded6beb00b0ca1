"""
Migration reporting: plugin summary, markdown checklist and recommendations.
"""
from typing import Any, Dict, List, Optional

from jenkins2gitlab.models.schemas import (
    CompatibilityStatus,
    CompatibilityVerdict,
    ComplexityScore,
    CredentialVariableSpec,
    PipelineStructure,
    PipelineStyle,
    Tier,
)

STATUS_POINTS = {
    CompatibilityStatus.COMPATIBLE: 100,
    CompatibilityStatus.PARTIAL: 60,
    CompatibilityStatus.UNSUPPORTED: 0,
    CompatibilityStatus.UNKNOWN: 0,
}

CHECKLIST_SECTIONS = [
    (CompatibilityStatus.COMPATIBLE, "Compatible (easy migration)"),
    (CompatibilityStatus.PARTIAL, "Partial support (needs adaptation)"),
    (CompatibilityStatus.UNSUPPORTED, "Unsupported (custom implementation)"),
    (CompatibilityStatus.UNKNOWN, "Unknown (manual review)"),
]

GENERAL_ADVICE = [
    "Validate the generated configuration with GitLab CI Lint before committing",
    "Run the pipeline on a feature branch before merging to the default branch",
    "Monitor the first pipeline runs and tune caching and job parallelism",
]


def distinct_verdicts(verdicts: List[CompatibilityVerdict]) -> List[CompatibilityVerdict]:
    """First verdict per plugin identifier, in input order."""
    seen = set()
    result = []
    for verdict in verdicts:
        if verdict.usage.identifier in seen:
            continue
        seen.add(verdict.usage.identifier)
        result.append(verdict)
    return result


def plugin_summary(verdicts: List[CompatibilityVerdict]) -> Dict[str, Any]:
    """Counts per status and a 0-100 migration score (higher is easier)."""
    plugins = distinct_verdicts(verdicts)
    counts = {status.value: 0 for status in CompatibilityStatus}
    for verdict in plugins:
        counts[verdict.status.value] += 1

    total = len(plugins)
    points = sum(STATUS_POINTS[v.status] for v in plugins)
    migration_score = round(points / total) if total else 100

    return {
        "total_plugins": total,
        "compatible": counts["compatible"],
        "partial": counts["partial"],
        "unsupported": counts["unsupported"],
        "unknown": counts["unknown"],
        "blocking": sum(1 for v in plugins if v.is_blocking),
        "migration_score": migration_score,
    }


def migration_checklist(
    verdicts: List[CompatibilityVerdict],
    credentials: Optional[List[CredentialVariableSpec]] = None,
) -> str:
    """Markdown checklist grouped by compatibility status, then the credential variables to create."""
    summary = plugin_summary(verdicts)
    plugins = distinct_verdicts(verdicts)

    lines = [
        "# Jenkins to GitLab CI Migration Checklist",
        "",
        "## Summary",
        "",
        f"- **Total Plugins:** {summary['total_plugins']}",
        f"- **Migration Score:** {summary['migration_score']}/100",
        f"- **Compatible:** {summary['compatible']}",
        f"- **Partial:** {summary['partial']}",
        f"- **Unsupported:** {summary['unsupported']}",
        f"- **Unknown:** {summary['unknown']}",
        "",
    ]

    for status, title in CHECKLIST_SECTIONS:
        group = [v for v in plugins if v.status == status]
        if not group:
            continue
        lines.append(f"## {title}")
        lines.append("")
        for verdict in group:
            blocking = " (BLOCKING)" if verdict.is_blocking else ""
            target = f" -> {verdict.target_equivalent}" if verdict.target_equivalent else ""
            lines.append(f"- [ ] **{verdict.usage.identifier}**{target}{blocking}")
            for note in verdict.migration_notes:
                lines.append(f"  - {note}")
            if verdict.documentation_url:
                lines.append(f"  - [Documentation]({verdict.documentation_url})")
        lines.append("")

    if credentials:
        lines.append("## Credentials")
        lines.append("")
        for spec in credentials:
            flags = ", ".join(
                [spec.variable_type.value]
                + [flag for flag, on in (("masked", spec.masked), ("protected", spec.protected)) if on]
            )
            lines.append(f"- [ ] **{spec.key}** ({flags}) from Jenkins credential `{spec.credentials_id}`")
            lines.append("")
            lines.append("  ```bash")
            lines.extend(f"  {line}" for line in spec.snippet.splitlines())
            lines.append("  ```")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def recommendations(
    structure: PipelineStructure,
    verdicts: List[CompatibilityVerdict],
    score: ComplexityScore,
) -> List[str]:
    """Ordered, human-readable next steps for the migration."""
    plugins = distinct_verdicts(verdicts)
    advice: List[str] = []

    blocking = [v.usage.identifier for v in plugins if v.is_blocking]
    if blocking:
        advice.append(f"Resolve blocking plugins before migrating: {', '.join(blocking)}")

    unknown = [v.usage.identifier for v in plugins if v.status == CompatibilityStatus.UNKNOWN]
    if unknown:
        advice.append(f"Review {len(unknown)} plugins marked for manual analysis: {', '.join(unknown)}")

    if structure.credentials:
        advice.append("Migrate Jenkins credentials to masked and protected GitLab CI/CD variables")
    if any(a.action.endswith("_notification") for a in structure.post_actions):
        advice.append("Configure Slack webhook or email integrations for pipeline notifications")
    if structure.shared_libraries:
        advice.append("Port shared library steps to GitLab CI include templates")
    if "orchestration" in structure.integrations:
        advice.append("Configure Kubernetes cluster access for deployment jobs")

    if structure.style == PipelineStyle.SCRIPTED:
        advice.append("Rewrite scripted Groovy logic as shell scripts or rules; it is not converted automatically")
    elif structure.style == PipelineStyle.MIXED:
        advice.append("Review script blocks inside the declarative pipeline; they are not converted automatically")

    if score.tier in (Tier.COMPLEX, Tier.ENTERPRISE):
        advice.append(
            f"Plan a phased migration: {score.tier.value} pipeline, "
            f"about {score.risk_adjusted_hours:g} hours of risk-adjusted effort"
        )
    elif score.tier == Tier.MODERATE:
        advice.append("Migrate stage by stage and compare results with the Jenkins build")

    advice.extend(GENERAL_ADVICE)
    return advice
