"""Tests for pipeline structure analysis."""
import re

from jenkins2gitlab.models.schemas import ComplexityClass, PipelineStyle, StageKind
from jenkins2gitlab.services.pipeline.analyzer import (
    analyze,
    classify_stage_kind,
    complexity_class,
    detect_integrations,
    find_stage_spans,
)


def _stage_declarations(text):
    return len(re.findall(r"\bstage\s*\(\s*'", text))


class TestStageDiscovery:
    def test_stage_count_matches_declarations(self, simple_jenkinsfile, maven_jenkinsfile,
                                              matrix_jenkinsfile, parallel_jenkinsfile,
                                              scripted_jenkinsfile):
        for text in (simple_jenkinsfile, maven_jenkinsfile, matrix_jenkinsfile,
                     parallel_jenkinsfile, scripted_jenkinsfile):
            structure = analyze(text)
            assert len(structure.stages) == _stage_declarations(text)

    def test_stages_keep_source_order(self, maven_jenkinsfile):
        structure = analyze(maven_jenkinsfile)
        assert [s.name for s in structure.stages] == ["Checkout", "Build", "Unit Tests", "Deploy Staging"]

    def test_commented_and_quoted_stages_are_ignored(self):
        text = """\
pipeline {
    stages {
        // stage('Ghost') { steps { sh 'x' } }
        stage('Real') {
            steps {
                echo "stage('Fake') { }"
                sh 'echo "}"'
            }
        }
    }
}
"""
        structure = analyze(text)
        assert [s.name for s in structure.stages] == ["Real"]
        real = structure.stages[0]
        assert [c.kind for c in real.commands] == ["echo", "sh"]
        assert real.line_end == 9

    def test_nested_stages_record_parent(self, matrix_jenkinsfile):
        spans = find_stage_spans(matrix_jenkinsfile)
        assert [s.name for s in spans] == ["Matrix Tests", "Run Tests"]
        assert spans[1].parent is spans[0]

        structure = analyze(matrix_jenkinsfile)
        outer = structure.get_stage("Matrix Tests")
        inner = structure.get_stage("Run Tests")
        assert outer.has_children and outer.parent is None
        assert inner.parent == "Matrix Tests"
        assert inner.kind == StageKind.TEST

    def test_parallel_branches_are_marked(self, parallel_jenkinsfile):
        structure = analyze(parallel_jenkinsfile)
        assert structure.get_stage("Lint").in_parallel
        assert structure.get_stage("Unit").in_parallel
        assert not structure.get_stage("Build").in_parallel
        assert structure.get_stage("Lint").kind == StageKind.QUALITY
        assert structure.parallelism_level == 1


class TestStageDetails:
    def test_maven_stage_attributes(self, maven_jenkinsfile):
        structure = analyze(maven_jenkinsfile)
        checkout = structure.get_stage("Checkout")
        build = structure.get_stage("Build")
        tests = structure.get_stage("Unit Tests")
        deploy = structure.get_stage("Deploy Staging")

        assert checkout.kind == StageKind.CUSTOM
        assert build.kind == StageKind.BUILD
        assert tests.kind == StageKind.TEST
        assert deploy.kind == StageKind.DEPLOY

        assert build.stashes == ["jar"]
        assert build.stash_paths == ["target/*.jar"]
        assert tests.timeout.minutes == 20
        assert tests.retry == 3
        assert tests.junit_reports == ["target/surefire-reports/*.xml"]
        assert [c.text for c in tests.commands] == ["mvn -B test"]
        assert deploy.unstashes == ["jar"]
        assert [w.value for w in deploy.when] == ["main"]

    def test_stash_dependencies(self, maven_jenkinsfile):
        structure = analyze(maven_jenkinsfile)
        deploy = structure.get_stage("Deploy Staging")
        assert deploy.depends_on == {"Build"}
        assert not deploy.parallelizable
        assert structure.get_stage("Build").parallelizable
        assert structure.dependency_edge_count == 1
        assert structure.unresolved_artifacts == []

    def test_positional_stash_arguments(self):
        text = (
            "node {\n"
            "  stage('Build') {\n    sh 'make'\n    stash 'bin'\n  }\n"
            "  stage('Ship') {\n    unstash 'bin'\n    sh './ship.sh'\n  }\n"
            "  stage('Audit') {\n    unstash('bin')\n    sh 'make audit'\n  }\n"
            "}\n"
        )
        structure = analyze(text)
        assert structure.get_stage("Build").stashes == ["bin"]
        assert structure.get_stage("Ship").depends_on == {"Build"}
        assert structure.get_stage("Audit").depends_on == {"Build"}
        assert structure.dependency_edge_count == 2

    def test_unresolved_unstash(self):
        text = "node {\n  stage('Ship') {\n    unstash 'missing'\n    sh 'make'\n  }\n}\n"
        structure = analyze(text)
        assert structure.unresolved_artifacts == ["missing"]
        assert structure.stages[0].depends_on == set()

    def test_multiline_shell_is_dedented(self):
        text = "node {\n  stage('Build') {\n    sh '''\n      make\n      make check\n    '''\n  }\n}\n"
        command = analyze(text).stages[0].commands[0]
        assert command.text == "make\nmake check"
        assert command.kind == "sh"


class TestPipelineSignals:
    def test_pipeline_level_directives(self, maven_jenkinsfile):
        structure = analyze(maven_jenkinsfile)
        assert structure.style == PipelineStyle.DECLARATIVE
        assert structure.agent_image == "maven:3.9-eclipse-temurin-17"
        assert structure.pipeline_timeout.minutes == 60
        assert structure.pipeline_retry is None
        assert structure.credential_usage_count == 2
        assert {(a.condition, a.action) for a in structure.post_actions} == {
            ("failure", "slack_notification"),
            ("always", "cleanup_workspace"),
        }
        assert [(b.kind, b.stage) for b in structure.conditional_blocks] == [("when", "Deploy Staging")]

    def test_error_handling_coverage(self, scripted_jenkinsfile, maven_jenkinsfile, simple_jenkinsfile):
        scripted = analyze(scripted_jenkinsfile)
        assert scripted.style == PipelineStyle.SCRIPTED
        assert scripted.error_handling.has_try_catch
        assert scripted.error_handling.has_finally
        assert scripted.error_handling.coverage == 0.67

        assert analyze(maven_jenkinsfile).error_handling.coverage == 0.33
        assert analyze(simple_jenkinsfile).error_handling.coverage == 0.0

    def test_scripted_commands(self, scripted_jenkinsfile):
        test_stage = analyze(scripted_jenkinsfile).get_stage("Test")
        assert [c.kind for c in test_stage.commands] == ["sh", "echo"]
        assert test_stage.junit_reports == ["build/test-results/**/*.xml"]

    def test_detect_integrations(self):
        code = "sh 'kubectl apply -f k8s/'\nslackSend(channel: '#ops')"
        assert detect_integrations(code) == ["orchestration", "chat"]

    def test_empty_text(self):
        structure = analyze("")
        assert structure.stages == []
        assert structure.style == PipelineStyle.UNKNOWN


class TestClassification:
    def test_kind_from_name_before_body(self):
        assert classify_stage_kind("Deploy", "sh 'make'") == StageKind.DEPLOY
        assert classify_stage_kind("Run Stuff", "sh 'kubectl apply -f x'") == StageKind.DEPLOY
        assert classify_stage_kind("Stuff", "sh 'make'") == StageKind.BUILD
        assert classify_stage_kind("Stuff", "echo 'hi'") == StageKind.CUSTOM

    def test_name_keywords_match_whole_words(self):
        assert classify_stage_kind("Deploy Latest") == StageKind.DEPLOY
        assert classify_stage_kind("Inspect", "sh 'make'") == StageKind.BUILD
        assert classify_stage_kind("Integration Tests") == StageKind.TEST

    def test_earliest_name_keyword_wins(self):
        assert classify_stage_kind("Publish Test Report") == StageKind.DEPLOY
        assert classify_stage_kind("Test and Publish") == StageKind.TEST

    def test_complexity_class_thresholds(self):
        assert complexity_class(10) == ComplexityClass.SIMPLE
        assert complexity_class(11) == ComplexityClass.MODERATE
        assert complexity_class(25) == ComplexityClass.MODERATE
        assert complexity_class(26) == ComplexityClass.COMPLEX
