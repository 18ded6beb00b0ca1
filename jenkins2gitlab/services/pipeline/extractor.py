"""
Jenkinsfile Feature Extractor

Scans Jenkinsfile text for plugin signatures and pipeline constructs
(parameters, environment, credentials, matrices, parallel blocks,
timeouts, retries, post actions, when conditions, triggers, libraries).
Never raises: text it cannot recognise simply yields nothing.
"""
import re
from typing import Dict, List, Optional, Tuple

from jenkins2gitlab.models.schemas import (
    BuildDiscarder,
    CredentialBinding,
    FeatureSet,
    Matrix,
    MatrixAxis,
    ParallelBlock,
    Parameter,
    ParameterType,
    PluginUsage,
    PostAction,
    RetrySpec,
    SharedLibrary,
    TimeoutSpec,
    Trigger,
    WhenCondition,
)
from jenkins2gitlab.services.pipeline.constants import (
    CONTEXT_MAX_LENGTH,
    FALLBACK_KEYWORDS,
    PLUGIN_SIGNATURES,
)
from jenkins2gitlab.services.pipeline.scanner import (
    STAGE_DECLARATION,
    find_closing,
    iter_blocks,
    iter_calls,
    line_at,
    line_number,
    mask_literals,
    parse_list_literal,
    parse_named_args,
    split_top_level,
    strip_comments,
    unquote,
)

_COMPILED_SIGNATURES = [
    (re.compile(pattern), identifier, label, confidence)
    for pattern, identifier, label, confidence in PLUGIN_SIGNATURES
]
_COMPILED_FALLBACK = [
    (re.compile(pattern, re.IGNORECASE), identifier, label, confidence)
    for pattern, identifier, label, confidence in FALLBACK_KEYWORDS
]

PARAMETER_TYPES = {
    "string": ParameterType.STRING,
    "booleanParam": ParameterType.BOOLEAN,
    "choice": ParameterType.CHOICE,
    "text": ParameterType.TEXT,
    "password": ParameterType.PASSWORD,
}

CREDENTIAL_KINDS = {
    "usernamePassword": "username_password",
    "usernameColonPassword": "username_password",
    "string": "secret_text",
    "file": "secret_file",
    "sshUserPrivateKey": "ssh_key",
    "certificate": "certificate",
}

POST_CONDITIONS = ("always", "success", "failure", "unstable", "aborted",
                   "changed", "fixed", "regression", "cleanup")

POST_ACTION_PATTERNS = [
    ("slack_notification", r"\bslackSend\s*\("),
    ("email_notification", r"\bemailext\s*\(|\bmail\s*\("),
    ("chat_notification", r"\bhipchatSend\s*\(|\boffice365ConnectorSend\s*\("),
    ("cleanup_workspace", r"\bcleanWs\s*\(|\bdeleteDir\s*\("),
    ("archive_artifacts", r"\barchiveArtifacts\b"),
    ("junit_report", r"\bjunit\b"),
]


# ============================================================================
# Entry point
# ============================================================================

def extract(source_text: str) -> FeatureSet:
    """Extract every recognised feature from a Jenkinsfile."""
    text = source_text or ""
    if not text.strip():
        return FeatureSet(line_count=0)

    code = strip_comments(text)
    masked = mask_literals(text)

    return FeatureSet(
        usages=extract_plugin_usages(text, code),
        parameters=extract_parameters(text, masked),
        environment=extract_environment(text, masked),
        credentials=extract_credentials(text, masked),
        matrices=extract_matrices(text, masked),
        parallel_blocks=extract_parallel_blocks(text, masked),
        timeouts=extract_timeouts(text, masked),
        retries=extract_retries(text, masked),
        post_actions=extract_post_actions(text, masked),
        build_discarder=extract_build_discarder(text, masked),
        when_conditions=extract_when_conditions(text, masked),
        triggers=extract_triggers(text, masked),
        shared_libraries=extract_shared_libraries(text, code),
        is_declarative=is_declarative(masked),
        is_scripted=is_scripted(masked),
        line_count=text.count("\n") + 1,
    )


# ============================================================================
# Plugin usages
# ============================================================================

def _context(text: str, offset: int, label: str) -> str:
    snippet = line_at(text, offset).strip()
    context = f"{label}: {snippet}" if snippet else label
    return context[:CONTEXT_MAX_LENGTH]


def extract_plugin_usages(text: str, code: Optional[str] = None) -> List[PluginUsage]:
    """Apply the signature table, then the keyword fallback if nothing matched."""
    code = code if code is not None else strip_comments(text)
    usages: List[PluginUsage] = []
    seen = set()

    def add(identifier, offset, label, confidence, version=None):
        line = line_number(text, offset)
        if (identifier, line) in seen:
            return
        seen.add((identifier, line))
        usages.append(PluginUsage(
            identifier=identifier,
            declared_version=version,
            usage_context=_context(text, offset, label),
            line_number=line,
            confidence=confidence,
        ))

    for pattern, identifier, label, confidence in _COMPILED_SIGNATURES:
        for match in pattern.finditer(code):
            add(identifier, match.start(), label, confidence)

    for library in extract_shared_libraries(text, code):
        offset = _offset_of_line(text, library.line_number)
        add("shared-library", offset, f"Shared library {library.name}", 0.95, library.version)

    if not usages and text.strip():
        for pattern, identifier, label, confidence in _COMPILED_FALLBACK:
            match = pattern.search(code)
            if match:
                add(identifier, match.start(), label, confidence)

    usages.sort(key=lambda u: (u.line_number, u.identifier))
    return usages


def _offset_of_line(text: str, line: int) -> int:
    offset = 0
    for _ in range(line - 1):
        offset = text.index("\n", offset) + 1
    return offset


# ============================================================================
# Parameters & environment
# ============================================================================

def extract_parameters(text: str, masked: Optional[str] = None) -> List[Parameter]:
    masked = masked if masked is not None else mask_literals(text)
    parameters: List[Parameter] = []
    names = set()
    for match, args_text in iter_calls(text, "|".join(PARAMETER_TYPES), masked):
        args = parse_named_args(args_text)
        if "credentialsId" in args or "name" not in args:
            continue
        name = unquote(args["name"])
        if not name or name in names:
            continue
        ptype = PARAMETER_TYPES[match.group(1)]

        default = None
        if "defaultValue" in args:
            default = unquote(args["defaultValue"])
            if ptype == ParameterType.BOOLEAN:
                default = "true" if default.strip().lower() == "true" else "false"

        choices: List[str] = []
        if ptype == ParameterType.CHOICE and "choices" in args:
            choices = parse_list_literal(args["choices"])

        description = unquote(args["description"]) if "description" in args else None
        names.add(name)
        parameters.append(Parameter(
            name=name,
            type=ptype,
            default_value=default,
            description=description or None,
            choices=choices,
            line_number=line_number(text, match.start()),
        ))
    return parameters


_ENV_LINE = re.compile(r"^\s*([A-Za-z_]\w*)\s*=\s*(.+?)\s*$", re.MULTILINE)


def extract_environment(text: str, masked: Optional[str] = None) -> Dict[str, str]:
    """KEY = value pairs from environment blocks and withEnv calls.

    First definition wins. Credential lookups are left to extract_credentials.
    """
    masked = masked if masked is not None else mask_literals(text)
    environment: Dict[str, str] = {}
    for _, body_start, body_end in iter_blocks(text, "environment", masked):
        body = text[body_start:body_end]
        for match in _ENV_LINE.finditer(strip_comments(body)):
            key, raw = match.group(1), match.group(2)
            if re.match(r"credentials\s*\(", raw):
                continue
            if key not in environment:
                environment[key] = unquote(raw)

    for _, args_text in iter_calls(text, "withEnv", masked):
        args_text = args_text.strip()
        if not args_text.startswith("["):
            continue
        for item in parse_list_literal(args_text):
            if "=" in item:
                key, value = item.split("=", 1)
                environment.setdefault(key.strip(), value)
    return environment


def extract_credentials(text: str, masked: Optional[str] = None) -> List[CredentialBinding]:
    masked = masked if masked is not None else mask_literals(text)
    bindings: List[CredentialBinding] = []
    for match, args_text in iter_calls(text, "|".join(CREDENTIAL_KINDS), masked):
        args = parse_named_args(args_text)
        if "credentialsId" not in args:
            continue
        roles = {
            unquote(value): key for key, value in args.items()
            if key == "variable" or key.endswith("Variable")
        }
        bindings.append(CredentialBinding(
            credentials_id=unquote(args["credentialsId"]),
            kind=CREDENTIAL_KINDS[match.group(1)],
            variables=list(roles),
            roles=roles,
            line_number=line_number(text, match.start()),
        ))

    for _, body_start, body_end in iter_blocks(text, "environment", masked):
        body = text[body_start:body_end]
        for match in _ENV_LINE.finditer(strip_comments(body)):
            cred = re.match(r"credentials\s*\(\s*(['\"])(.+?)\1\s*\)", match.group(2))
            if cred:
                bindings.append(CredentialBinding(
                    credentials_id=cred.group(2),
                    kind="environment",
                    variables=[match.group(1)],
                    line_number=line_number(text, body_start + match.start(1)),
                ))

    bindings.sort(key=lambda b: b.line_number)
    return bindings


# ============================================================================
# Matrix & parallel
# ============================================================================

def extract_matrices(text: str, masked: Optional[str] = None) -> List[Matrix]:
    masked = masked if masked is not None else mask_literals(text)
    matrices: List[Matrix] = []
    for match, body_start, body_end in iter_blocks(text, "matrix", masked):
        axes: List[MatrixAxis] = []
        body = text[body_start:body_end]
        body_masked = masked[body_start:body_end]
        for _, axis_start, axis_end in iter_blocks(body, "axis", body_masked):
            axis_body = body[axis_start:axis_end]
            name = re.search(r"\bname\s+(['\"])(.+?)\1", axis_body)
            values = re.search(r"\bvalues\s+(.+)", axis_body)
            if not name or not values:
                continue
            items = [unquote(v) for v in split_top_level(values.group(1).strip())]
            axes.append(MatrixAxis(name=name.group(2), values=[v for v in items if v]))
        if axes:
            matrices.append(Matrix(
                axes=axes,
                line_number=line_number(text, match.start()),
                line_end=line_number(text, body_end),
            ))
    return matrices


def extract_parallel_blocks(text: str, masked: Optional[str] = None) -> List[ParallelBlock]:
    """Declarative `parallel { stage(...) }` and scripted `parallel(...)` maps."""
    masked = masked if masked is not None else mask_literals(text)
    blocks: List[ParallelBlock] = []

    for match, body_start, body_end in iter_blocks(text, "parallel", masked):
        body = text[body_start:body_end]
        body_masked = masked[body_start:body_end]
        blocks.append(ParallelBlock(
            branches=_top_level_stage_names(body, body_masked),
            style="declarative",
            line_number=line_number(text, match.start()),
            line_end=line_number(text, body_end),
        ))

    for match, args_text in iter_calls(text, "parallel", masked):
        branches = []
        for part in split_top_level(args_text):
            key = re.match(r"^(['\"])(.+?)\1\s*:\s*\{", part) or re.match(r"^(\w+)()\s*:\s*\{", part)
            if key:
                branches.append(key.group(2) or key.group(1))
        blocks.append(ParallelBlock(
            branches=branches, style="scripted",
            line_number=line_number(text, match.start()),
            line_end=line_number(text, match.end() + len(args_text)),
        ))

    blocks.sort(key=lambda b: b.line_number)
    return blocks


def _top_level_stage_names(body: str, body_masked: str) -> List[str]:
    """Names of stages directly inside a block, not nested deeper."""
    names = []
    position = 0
    code = strip_comments(body)
    while True:
        match = STAGE_DECLARATION.search(code, position)
        if not match:
            break
        if body_masked[match.start():match.start() + 5] != "stage":
            position = match.end()
            continue
        names.append(match.group(2))
        close = find_closing(body, match.end() - 1)
        if close == -1:
            break
        position = close + 1
    return names


# ============================================================================
# Options: timeout, retry, buildDiscarder
# ============================================================================

def extract_timeouts(text: str, masked: Optional[str] = None) -> List[TimeoutSpec]:
    masked = masked if masked is not None else mask_literals(text)
    timeouts = []
    for match, args_text in iter_calls(text, "timeout", masked):
        spec = parse_timeout_args(args_text)
        if spec:
            timeouts.append(TimeoutSpec(
                time=spec[0], unit=spec[1],
                line_number=line_number(text, match.start()),
            ))
    return timeouts


def parse_timeout_args(args_text: str) -> Optional[Tuple[float, str]]:
    args = parse_named_args(args_text)
    raw_time = args.get("time", args.get("_0"))
    if raw_time is None:
        return None
    try:
        time_value = float(unquote(raw_time))
    except ValueError:
        return None
    unit = unquote(args.get("unit", "'MINUTES'")) or "MINUTES"
    return time_value, unit.upper()


def extract_retries(text: str, masked: Optional[str] = None) -> List[RetrySpec]:
    masked = masked if masked is not None else mask_literals(text)
    retries = []
    for match, args_text in iter_calls(text, "retry", masked):
        args = parse_named_args(args_text)
        raw = args.get("count", args.get("_0"))
        if raw and unquote(raw).isdigit():
            retries.append(RetrySpec(count=int(unquote(raw)), line_number=line_number(text, match.start())))
    return retries


def extract_build_discarder(text: str, masked: Optional[str] = None) -> Optional[BuildDiscarder]:
    masked = masked if masked is not None else mask_literals(text)
    for _, args_text in iter_calls(text, "logRotator", masked):
        args = parse_named_args(args_text)

        def number(key):
            value = unquote(args.get(key, "")) or ""
            return int(value) if value.lstrip("-").isdigit() and int(value) >= 0 else None

        return BuildDiscarder(
            num_to_keep=number("numToKeepStr"),
            days_to_keep=number("daysToKeepStr"),
            artifact_num_to_keep=number("artifactNumToKeepStr"),
            artifact_days_to_keep=number("artifactDaysToKeepStr"),
        )
    return None


# ============================================================================
# Post actions, when conditions, triggers, libraries
# ============================================================================

def extract_post_actions(text: str, masked: Optional[str] = None) -> List[PostAction]:
    masked = masked if masked is not None else mask_literals(text)
    actions: List[PostAction] = []
    for _, body_start, body_end in iter_blocks(text, "post", masked):
        body = text[body_start:body_end]
        body_masked = masked[body_start:body_end]
        for condition in POST_CONDITIONS:
            for match, cond_start, cond_end in iter_blocks(body, condition, body_masked):
                cond_body = strip_comments(body[cond_start:cond_end])
                for action, pattern in POST_ACTION_PATTERNS:
                    hit = re.search(pattern, cond_body)
                    if hit:
                        actions.append(PostAction(
                            condition=condition,
                            action=action,
                            detail=_post_detail(action, cond_body[hit.start():]),
                            line_number=line_number(text, body_start + cond_start + hit.start()),
                        ))
    actions.sort(key=lambda a: a.line_number)
    return actions


def _post_detail(action: str, snippet: str) -> Optional[str]:
    if action in ("archive_artifacts", "junit_report"):
        return first_path_argument(snippet)
    if action == "slack_notification":
        channel = re.search(r"channel\s*:\s*(['\"])(.+?)\1", snippet)
        return channel.group(2) if channel else None
    return None


def first_path_argument(snippet: str) -> Optional[str]:
    """Report/artifact path from `junit 'x'`, `junit(testResults: 'x')`, `archiveArtifacts artifacts: 'x'`."""
    snippet = snippet.split("\n", 1)[0]
    named = re.search(r"\b(?:testResults|artifacts|includes)\s*:\s*(['\"])(.+?)\1", snippet)
    if named:
        return named.group(2)
    positional = re.match(r"\w+\s*\(?\s*(['\"])(.+?)\1", snippet)
    return positional.group(2) if positional else None


_PARAM_COMPARE = re.compile(r"(?:params|env)\.(\w+)\s*(==|!=)\s*(['\"])(.*?)\3")
_PARAM_FLAG = re.compile(r"^(!?)\s*params\.(\w+)$")


def extract_when_conditions(text: str, masked: Optional[str] = None) -> List[WhenCondition]:
    masked = masked if masked is not None else mask_literals(text)
    conditions: List[WhenCondition] = []
    for _, body_start, body_end in iter_blocks(text, "when", masked):
        conditions.extend(parse_when_body(text[body_start:body_end], line_number(text, body_start)))
    return conditions


def parse_when_body(body: str, first_line: int = 1) -> List[WhenCondition]:
    """Recognised conditions inside one `when { }` block."""
    conditions = []
    code = strip_comments(body)
    masked = mask_literals(body)

    def line_of(offset):
        return first_line + body.count("\n", 0, offset)

    for match in re.finditer(r"\bbranch\s*\(?\s*(?:pattern\s*:\s*)?(['\"])(.+?)\1", code):
        conditions.append(WhenCondition(kind="branch", value=match.group(2), line_number=line_of(match.start())))
    for match in re.finditer(r"\btag\s*\(?\s*(?:pattern\s*:\s*)?(['\"])(.+?)\1", code):
        conditions.append(WhenCondition(kind="tag", value=match.group(2), line_number=line_of(match.start())))
    for match in re.finditer(r"\bbuildingTag\s*\(\s*\)", code):
        conditions.append(WhenCondition(kind="tag", value="*", line_number=line_of(match.start())))
    for match in re.finditer(
            r"\benvironment\s+name\s*:\s*(['\"])(.+?)\1\s*,\s*value\s*:\s*(['\"])(.*?)\3", code):
        conditions.append(WhenCondition(
            kind="environment", name=match.group(2), value=match.group(4),
            line_number=line_of(match.start()),
        ))
    for match, expr_start, expr_end in iter_blocks(body, "expression", masked):
        expression = " ".join(code[expr_start:expr_end].split())
        expression = re.sub(r"^return\s+", "", expression)
        conditions.append(WhenCondition(kind="expression", value=expression, line_number=line_of(match.start())))

    conditions.sort(key=lambda c: c.line_number)
    return conditions


def translate_expression(expression: str) -> Optional[str]:
    """Translate a simple Groovy condition on params/env into a rules `if:`.

    Returns None when the expression is outside the recognised subset.
    """
    compare = _PARAM_COMPARE.fullmatch(expression.strip())
    if compare:
        return f'${compare.group(1)} {compare.group(2)} "{compare.group(4)}"'
    flag = _PARAM_FLAG.match(expression.strip())
    if flag:
        operator = "!=" if flag.group(1) else "=="
        return f'${flag.group(2)} {operator} "true"'
    return None


def extract_triggers(text: str, masked: Optional[str] = None) -> List[Trigger]:
    masked = masked if masked is not None else mask_literals(text)
    triggers = []
    for match, args_text in iter_calls(text, "cron|pollSCM", masked):
        args = parse_named_args(args_text)
        value = unquote(args.get("_0", args.get("spec", ""))) or ""
        triggers.append(Trigger(kind=match.group(1), value=value, line_number=line_number(text, match.start())))
    for match, args_text in iter_calls(text, "upstream", masked):
        args = parse_named_args(args_text)
        value = unquote(args.get("upstreamProjects", args.get("_0", ""))) or ""
        triggers.append(Trigger(kind="upstream", value=value, line_number=line_number(text, match.start())))
    triggers.sort(key=lambda t: t.line_number)
    return triggers


def extract_shared_libraries(text: str, code: Optional[str] = None) -> List[SharedLibrary]:
    code = code if code is not None else strip_comments(text)
    libraries = []
    for match in re.finditer(r"@Library\s*\(\s*(\[[^\]]*\]|(['\"]).+?\2)\s*\)", code):
        for spec in parse_list_literal(match.group(1)):
            libraries.append(_library(spec, line_number(text, match.start())))
    for match in re.finditer(r"\blibrary\s*\(?\s*(['\"])(.+?)\1", code):
        libraries.append(_library(match.group(2), line_number(text, match.start())))
    return libraries


def _library(spec: str, line: int) -> SharedLibrary:
    name, _, version = spec.partition("@")
    return SharedLibrary(name=name.strip(), version=version.strip() or None, line_number=line)


# ============================================================================
# Style
# ============================================================================

def is_declarative(masked: str) -> bool:
    return re.search(r"(?m)^\s*pipeline\s*\{", masked) is not None


def is_scripted(masked: str) -> bool:
    for match in re.finditer(r"\bnode\s*[({]", masked):
        if not re.search(r"agent\s*\{\s*$", masked[:match.start()]):
            return True
    return False
