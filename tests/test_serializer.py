"""Tests for rendering TargetDocuments as YAML text."""
import yaml

from jenkins2gitlab.models.schemas import (
    DefaultSection,
    JobArtifacts,
    Rule,
    TargetDocument,
    TargetJob,
    TargetVariable,
)
from jenkins2gitlab.services.pipeline.serializer import quote, scalar, serialize


def sample_document():
    return TargetDocument(
        header_comments=["Converted pipeline", "Complexity: simple"],
        warnings=["Check the deploy job"],
        variables=[
            TargetVariable(name="ENV", value="a", comments=["Options: a, b"]),
            TargetVariable(name="RUN_E2E", value="true"),
            TargetVariable(name="TOKEN", value=""),
        ],
        workflow_rules=[Rule(condition='$CI_PIPELINE_SOURCE == "web"'), Rule(when="always")],
        default=DefaultSection(image="node:20-alpine", timeout="60m", cache_paths=[".npm"]),
        stages=["build", "test"],
        jobs=[
            TargetJob(
                name="build:app",
                stage="build",
                script=["npm ci", 'echo "Stage: build"', "case $X in\n  a) make ;;\nesac"],
                comments=["REVIEW: check the build"],
                artifacts=JobArtifacts(paths=["dist/"], expire_in="1 week"),
            ),
            TargetJob(
                name="test:matrix",
                stage="test",
                needs=["build:app"],
                parallel_matrix=[{"NODE": ["18", "20"], "OS": ["linux"]}],
                script=["npm test"],
                rules=[Rule(condition='$CI_COMMIT_BRANCH == "main"', when="manual")],
                timeout="20m",
                retry=2,
                allow_failure=True,
                variables={"X": "yes"},
                artifacts=JobArtifacts(junit=["junit.xml"], when="always"),
            ),
        ],
        footer_notes=["Recreate credentials"],
    )


class TestScalars:
    def test_plain_scalars(self):
        assert scalar("build") == "build"
        assert scalar("build:app") == "build:app"
        assert scalar(True) == "true"
        assert scalar(3) == "3"

    def test_ambiguous_scalars_are_quoted(self):
        assert scalar("true") == '"true"'
        assert scalar("1.0") == '"1.0"'
        assert scalar("a: b") == '"a: b"'
        assert scalar("") == '""'
        assert scalar(" padded") == '" padded"'
        assert scalar("run #1") == '"run #1"'

    def test_quote_is_json(self):
        assert quote('say "hi"') == '"say \\"hi\\""'


class TestSerialize:
    def test_round_trips_through_yaml(self):
        document = sample_document()
        loaded = yaml.safe_load(serialize(document))

        assert loaded["stages"] == ["build", "test"]
        assert loaded["variables"] == {"ENV": "a", "RUN_E2E": "true", "TOKEN": ""}
        assert loaded["workflow"]["rules"] == [{"if": '$CI_PIPELINE_SOURCE == "web"'}, {"when": "always"}]
        assert loaded["default"]["image"] == "node:20-alpine"
        assert loaded["default"]["cache"] == {"key": "$CI_COMMIT_REF_SLUG", "paths": [".npm"]}

        build = loaded["build:app"]
        assert build["script"][:2] == ["npm ci", 'echo "Stage: build"']
        assert build["script"][2].rstrip("\n") == "case $X in\n  a) make ;;\nesac"
        assert build["artifacts"] == {"paths": ["dist/"], "expire_in": "1 week"}

        matrix = loaded["test:matrix"]
        assert matrix["needs"] == ["build:app"]
        assert matrix["parallel"]["matrix"] == [{"NODE": ["18", "20"], "OS": ["linux"]}]
        assert matrix["rules"] == [{"if": '$CI_COMMIT_BRANCH == "main"', "when": "manual"}]
        assert matrix["timeout"] == "20m"
        assert matrix["retry"] == 2
        assert matrix["allow_failure"] is True
        assert matrix["variables"] == {"X": "yes"}
        assert matrix["artifacts"]["reports"] == {"junit": ["junit.xml"]}

    def test_comments_are_placed(self):
        text = serialize(sample_document())
        lines = text.splitlines()
        assert lines[0] == "# Converted pipeline"
        assert "# WARNINGS:" in lines
        assert "#   - Check the deploy job" in lines
        assert "  # Options: a, b" in lines
        assert lines[lines.index("build:app:") - 1] == "# REVIEW: check the build"
        assert lines[-2:] == ["# MIGRATION NOTES:", "#   - Recreate credentials"]

    def test_output_is_stable(self):
        document = sample_document()
        text = serialize(document)
        assert text == serialize(document)
        assert text.endswith("\n") and not text.endswith("\n\n")

    def test_empty_default_is_omitted(self):
        document = TargetDocument(stages=["build"], jobs=[TargetJob(name="job", stage="build", script=["make"])])
        loaded = yaml.safe_load(serialize(document))
        assert set(loaded) == {"stages", "job"}
