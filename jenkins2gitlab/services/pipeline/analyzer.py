"""
Pipeline Structure Analyzer

Builds the structural model of a Jenkinsfile: ordered stages with kind,
complexity class and stash/unstash dependencies, plus pipeline-wide
parallelism, conditional and error-handling signals. Stage bodies are
found with a brace-depth scan, so nested blocks never confuse the
boundaries.
"""
import logging
import re
from typing import Dict, List, Optional, Tuple

from jenkins2gitlab.models.schemas import (
    ComplexityClass,
    ConditionalBlock,
    ErrorHandling,
    FeatureSet,
    PipelineStructure,
    StageCommand,
    StageKind,
    StageNode,
    TimeoutSpec,
)
from jenkins2gitlab.services.pipeline.constants import (
    INTEGRATION_SIGNATURES,
    SHARED_RESOURCE_PATTERN,
    STAGE_BODY_KEYWORDS,
    STAGE_COMMAND_WEIGHT,
    STAGE_CONDITIONAL_WEIGHT,
    STAGE_LINE_WEIGHT,
    STAGE_MODERATE_MAX,
    STAGE_NAME_KEYWORDS,
    STAGE_SIMPLE_MAX,
)
from jenkins2gitlab.services.pipeline.extractor import (
    extract,
    first_path_argument,
    parse_timeout_args,
    parse_when_body,
)
from jenkins2gitlab.services.pipeline.scanner import (
    STAGE_DECLARATION,
    blank_ranges,
    find_closing,
    iter_blocks,
    iter_calls,
    line_number,
    mask_literals,
    parse_named_args,
    read_string_literal,
    strip_comments,
    unquote,
)

logger = logging.getLogger(__name__)

_SHELL_STEP = re.compile(r"\b(sh|bat|powershell|pwsh)\s*(?:\(\s*)?(?:script\s*:\s*)?(?=['\"])")
_ECHO_STEP = re.compile(r"\becho\s*(?:\(\s*)?(?=['\"])")
_SCRIPT_BLOCK = re.compile(r"\bscript\s*\{")
_IF_STATEMENT = re.compile(r"\bif\s*\(")
_WHEN_BLOCK = re.compile(r"\bwhen\s*\{")
_PARALLEL = re.compile(r"\bparallel\b(?!\s*[=.:])")
_AGENT_DOCKER = re.compile(
    r"\bagent\s*\{\s*docker\s*(?:\{[^}]*?\bimage\s+|\s+|\(\s*(?:image\s*:\s*)?)(['\"])([^'\"]+)\1"
)
_DOCKER_INSIDE = re.compile(r"\bdocker\.image\s*\(\s*(['\"])([^'\"]+)\1\s*\)\s*\.inside\b")
_INPUT_STEP = re.compile(r"\binput\s*(?:\(|\{|\s+['\"]|\s+message\s*:)")
_SHARED_RESOURCE = re.compile(SHARED_RESOURCE_PATTERN, re.IGNORECASE)


class _StageSpan:
    """Offsets of one stage declaration within the source text."""

    def __init__(self, name: str, start: int, open_index: int, close_index: int):
        self.name = name
        self.start = start
        self.open_index = open_index
        self.close_index = close_index
        self.parent: Optional["_StageSpan"] = None
        self.children: List["_StageSpan"] = []

    def contains(self, offset: int) -> bool:
        return self.open_index < offset < self.close_index


# ============================================================================
# Entry point
# ============================================================================

def analyze(source_text: str, feature_set: Optional[FeatureSet] = None) -> PipelineStructure:
    """Build a PipelineStructure from Jenkinsfile text."""
    text = source_text or ""
    features = feature_set if feature_set is not None else extract(text)
    if not text.strip():
        return PipelineStructure(style=features.style)

    code = strip_comments(text)
    masked = mask_literals(text)

    spans = find_stage_spans(text, code, masked)
    parallel_ranges = _parallel_ranges(text, masked)
    stages = [_build_stage(span, text, code, masked, parallel_ranges) for span in spans]
    unresolved = _resolve_dependencies(stages)

    for stage in stages:
        stage.parallelizable = not stage.depends_on and not _mutates_shared_resource(stage)

    edge_count = sum(len(stage.depends_on) for stage in stages)
    outside = _outside_stages(text, spans)

    structure = PipelineStructure(
        stages=stages,
        style=features.style,
        parallelism_level=len(_PARALLEL.findall(masked)),
        potential_parallelism=max(1, (len(stages) - edge_count) // 2),
        conditional_blocks=_conditional_blocks(text, masked, spans),
        error_handling=_error_handling(masked),
        step_count=len(_shell_steps(code, masked)),
        dependency_edge_count=edge_count,
        credential_usage_count=len(features.credentials),
        integrations=detect_integrations(code),
        unresolved_artifacts=unresolved,
        agent_image=_agent_image(strip_comments(outside)),
        pipeline_timeout=_pipeline_timeout(features, spans, text),
        pipeline_retry=_pipeline_retry(features, spans, text),
        matrices=features.matrices,
        parallel_blocks=features.parallel_blocks,
        credentials=features.credentials,
        post_actions=[a for a in features.post_actions if not _in_any_stage(a.line_number, spans, text)],
        triggers=features.triggers,
        build_discarder=features.build_discarder,
        shared_libraries=features.shared_libraries,
    )
    logger.debug(
        f"Analyzed pipeline: {len(stages)} stages, {structure.step_count} steps, "
        f"style={structure.style.value}"
    )
    return structure


# ============================================================================
# Stage discovery
# ============================================================================

def find_stage_spans(text: str, code: Optional[str] = None, masked: Optional[str] = None) -> List[_StageSpan]:
    """Every `stage('name') {` declaration in source order, with nesting."""
    code = code if code is not None else strip_comments(text)
    masked = masked if masked is not None else mask_literals(text)
    spans: List[_StageSpan] = []
    for match in STAGE_DECLARATION.finditer(code):
        if masked[match.start():match.start() + 5] != "stage":
            continue
        open_index = match.end() - 1
        close_index = find_closing(text, open_index)
        if close_index == -1:
            close_index = len(text)
        span = _StageSpan(match.group(2), match.start(), open_index, close_index)
        for candidate in reversed(spans):
            if candidate.contains(match.start()):
                span.parent = candidate
                candidate.children.append(span)
                break
        spans.append(span)
    return spans


def _own_body(source: str, span: _StageSpan) -> str:
    """Stage body with nested stage declarations blanked out."""
    body = source[span.open_index + 1:span.close_index]
    base = span.open_index + 1
    nested = [(child.start - base, min(child.close_index + 1, span.close_index) - base) for child in span.children]
    return blank_ranges(body, nested)


def _build_stage(span: _StageSpan, text: str, code: str, masked: str,
                 parallel_ranges: List[Tuple[int, int]]) -> StageNode:
    body_code = _own_body(code, span)
    body_masked = _own_body(masked, span)
    body_text = _own_body(text, span)
    first_line = line_number(text, span.open_index)

    commands = _commands(body_code, body_masked, first_line)
    shell_count = sum(1 for c in commands if c.kind != "echo") + len(_SCRIPT_BLOCK.findall(body_masked))
    conditional_count = len(_IF_STATEMENT.findall(body_masked)) + len(_WHEN_BLOCK.findall(body_masked))
    body_lines = sum(1 for line in body_code.split("\n") if line.strip())
    units = (STAGE_LINE_WEIGHT * body_lines
             + STAGE_COMMAND_WEIGHT * shell_count
             + STAGE_CONDITIONAL_WEIGHT * conditional_count)

    when = []
    for _, when_start, when_end in iter_blocks(body_text, "when", body_masked):
        when.extend(parse_when_body(body_text[when_start:when_end], first_line + body_text.count("\n", 0, when_start)))

    stashes, stash_paths = _stash_calls(body_text, body_masked)

    return StageNode(
        name=span.name,
        kind=classify_stage_kind(span.name, body_code),
        complexity_class=complexity_class(units),
        line_start=line_number(text, span.start),
        line_end=line_number(text, min(span.close_index, len(text))),
        parent=span.parent.name if span.parent else None,
        in_parallel=any(start < span.start < end for start, end in parallel_ranges),
        has_children=bool(span.children),
        complexity_units=units,
        commands=commands,
        agent_image=_agent_image(body_code),
        timeout=_first_timeout(body_text, body_masked),
        retry=_first_retry(body_text, body_masked),
        when=when,
        manual_input=bool(_INPUT_STEP.search(body_masked)),
        stashes=stashes,
        stash_paths=stash_paths,
        unstashes=_unstash_calls(body_text, body_masked),
        junit_reports=_path_calls(body_text, body_masked, "junit"),
        archived_artifacts=_path_calls(body_text, body_masked, "archiveArtifacts"),
        has_script_logic=bool(_SCRIPT_BLOCK.search(body_masked)),
    )


def classify_stage_kind(name: str, body: str = "") -> StageKind:
    """Stage kind from its name first, then from its body."""
    lowered = name.lower()
    earliest = None
    for kind, keywords in STAGE_NAME_KEYWORDS:
        match = re.search(r"\b(?:%s)" % "|".join(keywords), lowered)
        if match and (earliest is None or match.start() < earliest[0]):
            earliest = (match.start(), kind)
    if earliest:
        return StageKind(earliest[1])
    for kind, pattern in STAGE_BODY_KEYWORDS:
        if re.search(pattern, body, re.IGNORECASE):
            return StageKind(kind)
    return StageKind.CUSTOM


def complexity_class(units: int) -> ComplexityClass:
    if units <= STAGE_SIMPLE_MAX:
        return ComplexityClass.SIMPLE
    if units <= STAGE_MODERATE_MAX:
        return ComplexityClass.MODERATE
    return ComplexityClass.COMPLEX


# ============================================================================
# Steps inside a stage
# ============================================================================

def _shell_steps(code: str, masked: str):
    return [m for m in _SHELL_STEP.finditer(code) if not masked[m.start()].isspace()]


def _commands(body_code: str, body_masked: str, first_line: int) -> List[StageCommand]:
    found = []
    for pattern in (_SHELL_STEP, _ECHO_STEP):
        for match in pattern.finditer(body_code):
            if body_masked[match.start()].isspace():
                continue
            content, _ = read_string_literal(body_code, match.end())
            if content is None:
                continue
            kind = match.group(1) if pattern is _SHELL_STEP else "echo"
            found.append((match.start(), StageCommand(
                kind=kind,
                text=_dedent(content),
                line_number=first_line + body_code.count("\n", 0, match.start()),
            )))
    found.sort(key=lambda item: item[0])
    return [command for _, command in found]


def _dedent(content: str) -> str:
    lines = content.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    indents = [len(line) - len(line.lstrip()) for line in lines if line.strip()]
    margin = min(indents) if indents else 0
    return "\n".join(line[margin:].rstrip() for line in lines)


def _stash_calls(body: str, masked: str) -> Tuple[List[str], List[str]]:
    names, paths = [], []
    for match in re.finditer(r"\bstash\b", masked):
        args = _step_args(body, masked, match.end())
        name = unquote(args.get("name", args.get("_0", ""))) or ""
        if name:
            names.append(name)
            includes = args.get("includes")
            if includes:
                paths.append(unquote(includes))
    return names, paths


def _unstash_calls(body: str, masked: str) -> List[str]:
    names = []
    for match in re.finditer(r"\bunstash\b", masked):
        args = _step_args(body, masked, match.end())
        name = unquote(args.get("name", args.get("_0", ""))) or ""
        if name and name not in names:
            names.append(name)
    return names


def _step_args(body: str, masked: str, position: int) -> Dict[str, str]:
    """Arguments of a step call in either `step(args)` or `step args` form."""
    rest = body[position:]
    offset = position + (len(rest) - len(rest.lstrip(" \t")))
    if masked[offset:offset + 1] == "(":
        close = find_closing(body, offset)
        if close == -1:
            return {}
        return parse_named_args(body[offset + 1:close])
    end = body.find("\n", offset)
    end = len(body) if end == -1 else end
    return parse_named_args(body[offset:end])


def _path_calls(body: str, masked: str, step: str) -> List[str]:
    paths = []
    for match in re.finditer(r"\b%s\b" % step, masked):
        path = first_path_argument(body[match.start():match.start() + 300])
        if path and path not in paths:
            paths.append(path)
    return paths


def _agent_image(code: str) -> Optional[str]:
    match = _AGENT_DOCKER.search(code) or _DOCKER_INSIDE.search(code)
    return match.group(2) if match else None


def _first_timeout(body: str, masked: str) -> Optional[TimeoutSpec]:
    for match, args_text in iter_calls(body, "timeout", masked):
        spec = parse_timeout_args(args_text)
        if spec:
            return TimeoutSpec(time=spec[0], unit=spec[1])
    return None


def _first_retry(body: str, masked: str) -> Optional[int]:
    for _, args_text in iter_calls(body, "retry", masked):
        args = parse_named_args(args_text)
        raw = unquote(args.get("count", args.get("_0", "")) or "")
        if raw and raw.isdigit():
            return int(raw)
    return None


# ============================================================================
# Dependencies & parallelism
# ============================================================================

def _resolve_dependencies(stages: List[StageNode]) -> List[str]:
    """Wire unstash names to the stage that stashed them; return unresolved names."""
    producers: Dict[str, str] = {}
    for stage in stages:
        for name in stage.stashes:
            producers.setdefault(name, stage.name)

    unresolved = []
    for stage in stages:
        for name in stage.unstashes:
            producer = producers.get(name)
            if producer is None:
                if name not in unresolved:
                    unresolved.append(name)
            elif producer != stage.name:
                stage.depends_on.add(producer)
    return unresolved


def _mutates_shared_resource(stage: StageNode) -> bool:
    if stage.kind == StageKind.DEPLOY:
        return True
    if _SHARED_RESOURCE.search(stage.name):
        return True
    return any(_SHARED_RESOURCE.search(c.text) for c in stage.commands)


def _parallel_ranges(text: str, masked: str) -> List[Tuple[int, int]]:
    ranges = []
    for match in re.finditer(r"\bparallel\s*[({]", masked):
        open_index = match.end() - 1
        close = find_closing(text, open_index)
        ranges.append((open_index, close if close != -1 else len(text)))
    return ranges


# ============================================================================
# Pipeline-wide signals
# ============================================================================

def _conditional_blocks(text: str, masked: str, spans: List[_StageSpan]) -> List[ConditionalBlock]:
    blocks = []
    for kind, pattern in (("when", _WHEN_BLOCK), ("if", _IF_STATEMENT)):
        for match in pattern.finditer(masked):
            owner = _innermost_stage(match.start(), spans)
            blocks.append(ConditionalBlock(
                kind=kind,
                line_number=line_number(text, match.start()),
                stage=owner.name if owner else None,
            ))
    blocks.sort(key=lambda b: (b.line_number, b.kind))
    return blocks


def _error_handling(masked: str) -> ErrorHandling:
    return ErrorHandling(
        has_try_catch=bool(re.search(r"\btry\s*\{", masked) and re.search(r"\bcatch\s*\(", masked)),
        has_finally=bool(re.search(r"\bfinally\s*\{", masked)),
        has_post=bool(re.search(r"\bpost\s*\{", masked)),
    )


def detect_integrations(code: str) -> List[str]:
    """Distinct third-party system categories referenced by the pipeline."""
    return [
        category for category, pattern in INTEGRATION_SIGNATURES
        if re.search(pattern, code, re.IGNORECASE)
    ]


def _innermost_stage(offset: int, spans: List[_StageSpan]) -> Optional[_StageSpan]:
    owner = None
    for span in spans:
        if span.contains(offset):
            owner = span
    return owner


def _in_any_stage(line: int, spans: List[_StageSpan], text: str) -> bool:
    return any(
        line_number(text, span.open_index) <= line <= line_number(text, span.close_index)
        for span in spans
    )


def _outside_stages(text: str, spans: List[_StageSpan]) -> str:
    return blank_ranges(text, [(span.start, min(span.close_index + 1, len(text))) for span in spans])


def _pipeline_timeout(features: FeatureSet, spans, text: str) -> Optional[TimeoutSpec]:
    for timeout in features.timeouts:
        if not _in_any_stage(timeout.line_number, spans, text):
            return timeout
    return None


def _pipeline_retry(features: FeatureSet, spans, text: str) -> Optional[int]:
    for retry in features.retries:
        if not _in_any_stage(retry.line_number, spans, text):
            return retry.count
    return None
