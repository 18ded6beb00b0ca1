"""Tests for plugin summaries, checklists and recommendations."""
from jenkins2gitlab.models.schemas import (
    CompatibilityStatus,
    CompatibilityVerdict,
    ComplexityScore,
    CredentialBinding,
    PipelineStructure,
    PipelineStyle,
    PluginUsage,
    PostAction,
    Tier,
)
from jenkins2gitlab.services.pipeline.credentials import map_credentials
from jenkins2gitlab.services.pipeline.reporting import (
    GENERAL_ADVICE,
    migration_checklist,
    plugin_summary,
    recommendations,
)


def verdict(identifier, status, blocking=False, target=None, notes=None, line=1):
    return CompatibilityVerdict(
        usage=PluginUsage(identifier=identifier, line_number=line),
        status=status,
        is_blocking=blocking,
        target_equivalent=target,
        confidence=0.9,
        migration_notes=notes or [],
    )


VERDICTS = [
    verdict("git", CompatibilityStatus.COMPATIBLE, target="built-in checkout"),
    verdict("cobertura", CompatibilityStatus.PARTIAL, notes=["Use coverage_report"]),
    verdict("subversion", CompatibilityStatus.UNSUPPORTED, blocking=True, target="Git"),
    verdict("acme-widget", CompatibilityStatus.UNKNOWN),
    verdict("git", CompatibilityStatus.COMPATIBLE, line=9),
]


class TestPluginSummary:
    def test_counts_distinct_plugins(self):
        assert plugin_summary(VERDICTS) == {
            "total_plugins": 4,
            "compatible": 1,
            "partial": 1,
            "unsupported": 1,
            "unknown": 1,
            "blocking": 1,
            "migration_score": 40,
        }

    def test_empty(self):
        summary = plugin_summary([])
        assert summary["total_plugins"] == 0
        assert summary["migration_score"] == 100


class TestChecklist:
    def test_markdown_sections(self):
        text = migration_checklist(VERDICTS)
        lines = text.splitlines()
        assert lines[0] == "# Jenkins to GitLab CI Migration Checklist"
        assert "- **Migration Score:** 40/100" in lines
        assert "- [ ] **git** -> built-in checkout" in lines
        assert "  - Use coverage_report" in lines
        assert "- [ ] **subversion** -> Git (BLOCKING)" in lines
        assert lines.index("## Compatible (easy migration)") < lines.index("## Unknown (manual review)")
        assert text.count("**git**") == 1
        assert text.endswith("\n")

    def test_empty_groups_are_skipped(self):
        text = migration_checklist(VERDICTS[:1])
        assert "## Partial support (needs adaptation)" not in text
        assert "## Credentials" not in text

    def test_credentials_section(self):
        specs = map_credentials([CredentialBinding(credentials_id="kubeconfig", kind="secret_file",
                                                   variables=["KUBECONFIG"], roles={"KUBECONFIG": "variable"})])
        lines = migration_checklist(VERDICTS[:1], specs).splitlines()
        start = lines.index("## Credentials")
        assert lines[start + 2] == "- [ ] **KUBECONFIG** (file, protected) from Jenkins credential `kubeconfig`"
        assert lines[start + 4] == "  ```bash"
        assert "    --form \"variable_type=file\" \\" in lines
        assert lines[-1] == "  ```"


class TestRecommendations:
    def test_ordered_advice(self):
        structure = PipelineStructure(
            style=PipelineStyle.SCRIPTED,
            credentials=[CredentialBinding(credentials_id="deploy-key", kind="ssh")],
            post_actions=[PostAction(condition="failure", action="slack_notification")],
        )
        complexity = ComplexityScore(raw=80, tier=Tier.ENTERPRISE, risk_adjusted_hours=60.0)
        advice = recommendations(structure, VERDICTS, complexity)
        assert advice == [
            "Resolve blocking plugins before migrating: subversion",
            "Review 1 plugins marked for manual analysis: acme-widget",
            "Migrate Jenkins credentials to masked and protected GitLab CI/CD variables",
            "Configure Slack webhook or email integrations for pipeline notifications",
            "Rewrite scripted Groovy logic as shell scripts or rules; it is not converted automatically",
            "Plan a phased migration: enterprise pipeline, about 60 hours of risk-adjusted effort",
        ] + GENERAL_ADVICE

    def test_simple_pipeline_gets_general_advice_only(self):
        advice = recommendations(PipelineStructure(style=PipelineStyle.DECLARATIVE), [],
                                 ComplexityScore(raw=5, tier=Tier.SIMPLE))
        assert advice == GENERAL_ADVICE
