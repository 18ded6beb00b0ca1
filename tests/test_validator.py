"""Tests for static validation of GitLab CI text."""
from jenkins2gitlab.services.pipeline.validator import (
    ValidationReport,
    categorize_errors,
    extract_line_number,
    is_builtin_variable,
    validate,
)

VALID = """\
stages:
  - build
  - test

variables:
  APP: "demo"

default:
  image: alpine:3.19

build:app:
  stage: build
  script:
    - echo "$APP $CI_COMMIT_SHA"

test:unit:
  stage: test
  needs:
    - build:app
  parallel:
    matrix:
      - SUITE:
          - "a"
          - "b"
  script:
    - make test-$SUITE
"""


class TestValidDocuments:
    def test_valid_document(self):
        report = validate(VALID)
        assert report == ValidationReport(valid=True, errors=[], warnings=[])

    def test_validation_is_idempotent(self):
        assert validate(VALID).to_dict() == validate(VALID).to_dict()

    def test_comment_references_are_ignored(self):
        text = VALID + "# uses $ONLY_IN_COMMENT\n"
        assert validate(text).valid


class TestErrors:
    def test_undefined_variable(self):
        text = "stages:\n  - build\nbuild:job:\n  stage: build\n  script:\n    - echo $UNDEFINED_VAR\n"
        report = validate(text)
        assert not report.valid
        assert report.errors == ["Variable $UNDEFINED_VAR used but not defined"]
        assert report.warnings == ["Job 'build:job' missing 'image' definition"]

    def test_empty_document(self):
        report = validate("   \n")
        assert not report.valid
        assert report.errors == [
            "Pipeline content is empty",
            "Missing 'stages' definition",
            "No jobs defined in pipeline",
        ]

    def test_structural_errors_are_all_reported(self):
        text = """\
image: alpine
job:
  stage: deploy
  needs: [missing]
  script: [make]
"""
        report = validate(text)
        assert report.errors == [
            "Missing 'stages' definition",
            "Job 'job' uses undefined stage 'deploy'",
            "Job 'job' needs non-existent job 'missing'",
        ]

    def test_no_jobs(self):
        report = validate("stages: [build]\nvariables:\n  A: \"1\"\n.template:\n  script: [x]\n")
        assert report.errors == ["No jobs defined in pipeline"]

    def test_dind_without_docker_host(self):
        text = """\
stages: [build]
image:
  name: docker:24
build:
  stage: build
  services:
    - docker:24-dind
  script:
    - docker build .
"""
        report = validate(text)
        assert report.errors == ["Job 'build' uses docker:dind service without DOCKER_HOST variable"]

    def test_dind_with_job_docker_host(self):
        text = """\
stages: [build]
build:
  stage: build
  image: docker:24
  services:
    - name: docker:24-dind
  variables:
    DOCKER_HOST: "tcp://docker:2376"
  script:
    - docker build .
"""
        assert validate(text).valid

    def test_yaml_syntax_error(self):
        text = "stages:\n  - build\njob:\n  script: [unclosed\n"
        report = validate(text)
        assert not report.valid
        assert len(report.errors) == 1
        assert report.errors[0].startswith("YAML syntax error")

    def test_non_mapping_root(self):
        report = validate("- a\n- b\n")
        assert report.errors[0] == "YAML root must be a dictionary/mapping"


class TestHelpers:
    def test_builtin_variables(self):
        assert is_builtin_variable("CI_COMMIT_SHA")
        assert is_builtin_variable("GITLAB_USER_LOGIN")
        assert is_builtin_variable("HOME")
        assert not is_builtin_variable("DEPLOY_TOKEN")

    def test_categorize_errors(self):
        errors = [
            "YAML syntax error: mapping values are not allowed",
            "Job 'a' uses undefined stage 'b'",
            "Variable $X used but not defined",
        ]
        assert categorize_errors(errors) == {
            "syntax": [errors[0]],
            "configuration": [errors[1]],
            "other": [errors[2]],
        }

    def test_extract_line_number(self):
        assert extract_line_number("while parsing at line 12, column 3") == 12
        assert extract_line_number("no position") is None
