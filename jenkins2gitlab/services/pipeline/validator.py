"""
GitLab CI Configuration Validator

Static checks over serialized .gitlab-ci.yml text:
1. YAML syntax
2. Stage declaration and at least one job
3. Jobs pointing at undeclared stages, `needs` naming missing jobs
4. Variable references that are neither defined nor predefined
5. docker:dind services declared without DOCKER_HOST

All checks run in one pass; the input is never modified.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import yaml

from jenkins2gitlab.services.pipeline.constants import (
    BUILTIN_VARIABLE_NAMES,
    BUILTIN_VARIABLE_PREFIXES,
    RESERVED_TOP_LEVEL_KEYS,
)
from jenkins2gitlab.services.pipeline.scanner import find_variable_references

_COMMENT_LINE = re.compile(r"^\s*#.*$", re.MULTILINE)
_TOP_LEVEL_KEY = re.compile(r"^([^\s#][^:\n]*?)\s*:", re.MULTILINE)
_INDENTED_NAME = re.compile(r"^\s+([A-Z_][A-Z0-9_]*)\s*:", re.MULTILINE)


@dataclass
class ValidationReport:
    """Result of validating one document"""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": self.errors,
            "warnings": self.warnings
        }


def is_builtin_variable(name: str) -> bool:
    """True for GitLab predefined variables and common shell variables."""
    return name.startswith(BUILTIN_VARIABLE_PREFIXES) or name in BUILTIN_VARIABLE_NAMES


class _Findings:
    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def error(self, message: str):
        if message not in self.errors:
            self.errors.append(message)

    def warn(self, message: str):
        if message not in self.warnings:
            self.warnings.append(message)


def validate(document: str) -> ValidationReport:
    """Validate serialized GitLab CI text and report every finding."""
    findings = _Findings()

    if not document or not document.strip():
        findings.error("Pipeline content is empty")
        findings.error("Missing 'stages' definition")
        findings.error("No jobs defined in pipeline")
        return ValidationReport(valid=False, errors=findings.errors, warnings=findings.warnings)

    parsed: Optional[dict] = None
    try:
        loaded = yaml.safe_load(document)
        if isinstance(loaded, dict):
            parsed = loaded
        else:
            findings.error("YAML root must be a dictionary/mapping")
    except yaml.YAMLError as e:
        findings.error(f"YAML syntax error: {str(e)}")

    if parsed is not None:
        defined = _check_structure(parsed, findings)
    else:
        defined = _check_structure_text(document, findings)

    _check_variable_references(document, defined, findings)

    return ValidationReport(
        valid=len(findings.errors) == 0,
        errors=findings.errors,
        warnings=findings.warnings
    )


# ============================================================================
# Structural checks
# ============================================================================

def _jobs(parsed: dict) -> Dict[str, dict]:
    return {
        str(name): body for name, body in parsed.items()
        if str(name) not in RESERVED_TOP_LEVEL_KEYS
        and not str(name).startswith(".")
        and isinstance(body, dict)
    }


def _check_structure(parsed: dict, findings: _Findings) -> Set[str]:
    stages = parsed.get("stages") or []
    if not stages:
        findings.error("Missing 'stages' definition")
    elif not isinstance(stages, list):
        findings.error("'stages' must be a list")
        stages = []

    global_vars = _variable_names(parsed.get("variables"))
    default = parsed.get("default") if isinstance(parsed.get("default"), dict) else {}
    has_default_image = bool(parsed.get("image") or default.get("image"))
    global_services = list(_as_list(parsed.get("services"))) + list(_as_list(default.get("services")))

    jobs = _jobs(parsed)
    if not jobs:
        findings.error("No jobs defined in pipeline")

    defined = set(global_vars)
    for job_name, job in jobs.items():
        job_vars = _variable_names(job.get("variables"))
        defined |= job_vars
        defined |= _matrix_names(job)

        job_stage = job.get("stage")
        if job_stage is not None and job_stage not in stages:
            findings.error(f"Job '{job_name}' uses undefined stage '{job_stage}'")

        for need in _as_list(job.get("needs")):
            need_job = need if isinstance(need, str) else need.get("job") if isinstance(need, dict) else None
            if need_job and need_job not in jobs:
                findings.error(f"Job '{job_name}' needs non-existent job '{need_job}'")

        if "image" not in job and not has_default_image:
            findings.warn(f"Job '{job_name}' missing 'image' definition")

        services = global_services + list(_as_list(job.get("services")))
        if _has_dind(services) and "DOCKER_HOST" not in (global_vars | job_vars):
            findings.error(f"Job '{job_name}' uses docker:dind service without DOCKER_HOST variable")
    return defined


def _check_structure_text(document: str, findings: _Findings) -> Set[str]:
    """Regex fallback when the document does not parse."""
    code = _COMMENT_LINE.sub("", document)
    keys = [key.strip().strip("'\"") for key in _TOP_LEVEL_KEY.findall(code)]
    if "stages" not in keys:
        findings.error("Missing 'stages' definition")
    jobs = [key for key in keys if key not in RESERVED_TOP_LEVEL_KEYS and not key.startswith(".")]
    if not jobs:
        findings.error("No jobs defined in pipeline")
    if "dind" in code and not re.search(r"^\s+DOCKER_HOST\s*:", code, re.MULTILINE):
        findings.error("docker:dind service declared without DOCKER_HOST variable")
    return set(_INDENTED_NAME.findall(code))


def _check_variable_references(document: str, defined: Set[str], findings: _Findings):
    code = _COMMENT_LINE.sub("", document)
    for name in find_variable_references(code):
        if name in defined or is_builtin_variable(name):
            continue
        findings.error(f"Variable ${name} used but not defined")


# ============================================================================
# Helpers
# ============================================================================

def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _variable_names(variables) -> Set[str]:
    if isinstance(variables, dict):
        return {str(name) for name in variables}
    return set()


def _matrix_names(job: dict) -> Set[str]:
    names = set()
    parallel = job.get("parallel")
    if isinstance(parallel, dict):
        for cell in _as_list(parallel.get("matrix")):
            if isinstance(cell, dict):
                names |= {str(key) for key in cell}
    return names


def _has_dind(services: list) -> bool:
    for service in services:
        name = service.get("name") if isinstance(service, dict) else service
        if isinstance(name, str) and "dind" in name:
            return True
    return False


# ============================================================================
# Error categorisation
# ============================================================================

def categorize_errors(errors: List[str]) -> Dict[str, List[str]]:
    """Split lint or validation errors into syntax, configuration and other."""
    categories: Dict[str, List[str]] = {"syntax": [], "configuration": [], "other": []}
    for error in errors:
        lowered = error.lower()
        if "yaml" in lowered or "syntax" in lowered or "character" in lowered:
            categories["syntax"].append(error)
        elif "job" in lowered or "stage" in lowered or "script" in lowered:
            categories["configuration"].append(error)
        else:
            categories["other"].append(error)
    return categories


def extract_line_number(error: str) -> Optional[int]:
    match = re.search(r"line (\d+)", error)
    return int(match.group(1)) if match else None
