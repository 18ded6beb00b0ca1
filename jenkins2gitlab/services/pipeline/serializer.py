"""
TargetDocument -> .gitlab-ci.yml text.

Emitted by hand rather than with yaml.dump so that comments (metadata,
warnings, review markers, migration notes) land next to the keys they
describe. Every scalar is either a plain YAML scalar that loads back to
the same string, or a JSON-quoted string; variable values are always
quoted.
"""
import json
from typing import List

import yaml

from jenkins2gitlab.models.schemas import JobArtifacts, Rule, TargetDocument, TargetJob

INDENT = "  "


def quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def scalar(value) -> str:
    """Render a scalar, quoting only when a plain scalar would not round-trip."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value)
    if not text or text != text.strip() or "\n" in text or " #" in text:
        return quote(text)
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError:
        return quote(text)
    return text if loaded == text else quote(text)


def _comments(lines: List[str], prefix: str = "") -> List[str]:
    out = []
    for comment in lines:
        for part in str(comment).splitlines() or [""]:
            out.append(f"{prefix}# {part}".rstrip())
    return out


def _list_item(value: str, prefix: str) -> List[str]:
    """One sequence entry; multi-line strings become literal blocks."""
    text = str(value)
    if "\n" not in text:
        return [f"{prefix}- {scalar(text)}"]
    lines = text.rstrip("\n").split("\n")
    if lines[0][:1] in (" ", "\t"):
        return [f"{prefix}- {quote(text)}"]
    block = [f"{prefix}- |"]
    for line in lines:
        block.append(f"{prefix}{INDENT}{line}" if line.strip() else "")
    return block


def _string_list(key: str, values: List[str], prefix: str) -> List[str]:
    lines = [f"{prefix}{key}:"]
    for value in values:
        lines.extend(_list_item(value, prefix + INDENT))
    return lines


def _rules(rules: List[Rule], prefix: str) -> List[str]:
    lines = [f"{prefix}rules:"]
    for rule in rules:
        first = True
        for key, value in (("if", rule.condition), ("when", rule.when)):
            if value is None:
                continue
            lead = "- " if first else INDENT
            lines.append(f"{prefix}{INDENT}{lead}{key}: {scalar(value)}")
            first = False
    return lines


def _artifacts(artifacts: JobArtifacts, prefix: str) -> List[str]:
    inner = prefix + INDENT
    lines = [f"{prefix}artifacts:"]
    if artifacts.paths:
        lines.extend(_string_list("paths", artifacts.paths, inner))
    if artifacts.junit:
        lines.append(f"{inner}reports:")
        lines.extend(_string_list("junit", artifacts.junit, inner + INDENT))
    if artifacts.expire_in:
        lines.append(f"{inner}expire_in: {scalar(artifacts.expire_in)}")
    if artifacts.when:
        lines.append(f"{inner}when: {artifacts.when}")
    return lines


def _job(job: TargetJob) -> List[str]:
    p = INDENT
    lines = _comments(job.comments)
    lines.append(f"{scalar(job.name)}:")
    lines.append(f"{p}stage: {scalar(job.stage)}")
    if job.image:
        lines.append(f"{p}image: {scalar(job.image)}")
    if job.services:
        lines.extend(_string_list("services", job.services, p))
    if job.variables:
        lines.append(f"{p}variables:")
        for name, value in job.variables.items():
            lines.append(f"{p}{INDENT}{scalar(name)}: {quote(value)}")
    if job.needs:
        lines.extend(_string_list("needs", job.needs, p))
    if job.parallel_matrix:
        lines.append(f"{p}parallel:")
        lines.append(f"{p}{INDENT}matrix:")
        for cell in job.parallel_matrix:
            first = True
            for axis, values in cell.items():
                lead = "- " if first else INDENT
                lines.append(f"{p}{INDENT}{INDENT}{lead}{scalar(axis)}:")
                for value in values:
                    lines.append(f"{p}{INDENT * 4}- {quote(str(value))}")
                first = False
    if job.before_script:
        lines.extend(_string_list("before_script", job.before_script, p))
    lines.extend(_string_list("script", job.script, p))
    if job.rules:
        lines.extend(_rules(job.rules, p))
    if job.when:
        lines.append(f"{p}when: {job.when}")
    if job.environment:
        lines.append(f"{p}environment:")
        lines.append(f"{p}{INDENT}name: {scalar(job.environment)}")
    if job.timeout:
        lines.append(f"{p}timeout: {scalar(job.timeout)}")
    if job.retry is not None:
        lines.append(f"{p}retry: {job.retry}")
    if job.allow_failure:
        lines.append(f"{p}allow_failure: true")
    if job.artifacts:
        lines.extend(_artifacts(job.artifacts, p))
    return lines


def serialize(document: TargetDocument) -> str:
    """Render the document; identical documents give identical text."""
    out: List[str] = _comments(document.header_comments)

    if document.warnings:
        out.append("#")
        out.append("# WARNINGS:")
        out.extend(_comments([f"  - {w}" for w in document.warnings]))
    out.append("")

    out.extend(_string_list("stages", document.stages, ""))
    out.append("")

    if document.variables:
        out.append("variables:")
        for variable in document.variables:
            out.extend(_comments(variable.comments, INDENT))
            out.append(f"{INDENT}{scalar(variable.name)}: {quote(variable.value)}")
        out.append("")

    if document.workflow_rules:
        out.append("workflow:")
        out.extend(_rules(document.workflow_rules, INDENT))
        out.append("")

    default = document.default
    if not default.is_empty:
        out.append("default:")
        if default.image:
            out.append(f"{INDENT}image: {scalar(default.image)}")
        if default.services:
            out.extend(_string_list("services", default.services, INDENT))
        if default.timeout:
            out.append(f"{INDENT}timeout: {scalar(default.timeout)}")
        if default.retry is not None:
            out.append(f"{INDENT}retry: {default.retry}")
        if default.cache_paths:
            out.append(f"{INDENT}cache:")
            out.append(f"{INDENT * 2}key: {quote('$CI_COMMIT_REF_SLUG')}")
            out.extend(_string_list("paths", default.cache_paths, INDENT * 2))
        out.append("")

    for job in document.jobs:
        out.extend(_job(job))
        out.append("")

    if document.footer_notes:
        out.append("# MIGRATION NOTES:")
        out.extend(_comments([f"  - {note}" for note in document.footer_notes]))

    while out and out[-1] == "":
        out.pop()
    return "\n".join(out) + "\n"
