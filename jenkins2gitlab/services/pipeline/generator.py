"""
GitLab CI Configuration Generator

Deterministically builds a TargetDocument (.gitlab-ci.yml tree) from the
pipeline structure, plugin verdicts, parameters and environment. Every
job references a declared stage and every variable a job script uses is
either defined in `variables` or is a GitLab predefined variable.
"""
import json
import re
from typing import Dict, List, Optional, Tuple

from jenkins2gitlab.models.schemas import (
    CompatibilityStatus,
    CompatibilityVerdict,
    CredentialVariableSpec,
    DefaultSection,
    GenerationOptions,
    JobArtifacts,
    Parameter,
    ParameterType,
    PipelineStructure,
    PipelineStyle,
    Rule,
    StageKind,
    StageNode,
    TargetDocument,
    TargetJob,
    TargetVariable,
    Tier,
    WhenCondition,
)
from jenkins2gitlab.services.pipeline.constants import (
    BOOTSTRAP_STAGE,
    BUILD_TOOL_IDENTIFIERS,
    CONTAINER_IDENTIFIERS,
    DEFAULT_IMAGE,
    DEPLOY_IMAGE,
    DOCKER_IMAGE,
    DOCKER_SERVICE,
    GIT_DEPTH,
    GIT_STRATEGY,
    JENKINS_TO_GITLAB_VARIABLES,
    KIND_TO_TARGET_STAGE,
    MAX_RETRY,
    PLUGIN_GENERATION_RULES,
    POST_CONDITION_WHEN,
    QUALITY_IDENTIFIERS,
    SONAR_SCANNER_IMAGE,
    TARGET_STAGE_ORDER,
)
from jenkins2gitlab.services.pipeline.credentials import map_credentials
from jenkins2gitlab.services.pipeline.extractor import translate_expression
from jenkins2gitlab.services.pipeline.scanner import find_variable_references
from jenkins2gitlab.services.pipeline.scorer import score as score_pipeline
from jenkins2gitlab.services.pipeline.validator import is_builtin_variable

REVIEW = "REVIEW:"
MATRIX_LIMIT = 200
DIND_VARIABLES = {"DOCKER_HOST": "tcp://docker:2376", "DOCKER_TLS_CERTDIR": "/certs"}
_GROOVY_EXPRESSION = re.compile(r"\bsh\s*\(|returnStdout|\.trim\(\)|readFile|\bdef\b")


# ============================================================================
# Variable translation
# ============================================================================

def translate_references(text: str) -> str:
    """Rewrite Jenkins variable syntax into GitLab variable references."""
    text = re.sub(r"\$\{\s*(?:env|params)\.(\w+)\s*\}", r"${\1}", text)
    text = re.sub(r"\$(?:env|params)\.(\w+)", r"$\1", text)
    text = text.replace("\\$", "$")
    for jenkins_name, gitlab_name in JENKINS_TO_GITLAB_VARIABLES.items():
        text = re.sub(r"\$\{%s\}" % jenkins_name, "${%s}" % gitlab_name, text)
        text = re.sub(r"\$%s\b" % jenkins_name, "$%s" % gitlab_name, text)
    return text


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "job"


def _glob_to_regex(pattern: str) -> str:
    escaped = re.escape(pattern).replace("\\*", ".*").replace("/", "\\/")
    return f"/^{escaped}$/"


def rule_condition(condition: WhenCondition) -> Optional[str]:
    """Translate one Jenkins `when` condition to a rules `if:` expression."""
    if condition.kind == "branch":
        if "*" in condition.value:
            return f"$CI_COMMIT_BRANCH =~ {_glob_to_regex(condition.value)}"
        return f'$CI_COMMIT_BRANCH == "{condition.value}"'
    if condition.kind == "tag":
        if condition.value in ("", "*"):
            return "$CI_COMMIT_TAG"
        return f"$CI_COMMIT_TAG =~ {_glob_to_regex(condition.value)}"
    if condition.kind == "environment" and condition.name:
        return translate_references(f'${condition.name} == "{condition.value}"')
    if condition.kind == "expression":
        translated = translate_expression(condition.value)
        return translate_references(translated) if translated else None
    return None


# ============================================================================
# Builders
# ============================================================================

class _VariableBlock:
    """Ordered top-level variables; the first definition of a name wins."""

    def __init__(self):
        self._items: Dict[str, TargetVariable] = {}

    def add(self, name: str, value: str, comments: Optional[List[str]] = None) -> bool:
        if name in self._items:
            return False
        self._items[name] = TargetVariable(name=name, value=value, comments=comments or [])
        return True

    def __contains__(self, name: str) -> bool:
        return name in self._items

    def values(self) -> List[TargetVariable]:
        return list(self._items.values())


class _Context:
    """Mutable state for one generate() call."""

    def __init__(self, structure, verdicts, options, tier, detected):
        self.structure: PipelineStructure = structure
        self.verdicts: List[CompatibilityVerdict] = verdicts
        self.options: GenerationOptions = options
        self.tier: Tier = tier
        self.detected: List[str] = detected
        self.variables = _VariableBlock()
        self.default = DefaultSection()
        self.stages: List[str] = []
        self.jobs: List[TargetJob] = []
        self.warnings: List[str] = []
        self.footer: List[str] = []
        self.stage_to_job: Dict[str, str] = {}
        self.primary_rule: Optional[dict] = None
        self.credential_specs: Dict[str, CredentialVariableSpec] = {
            spec.key: spec for spec in map_credentials(structure.credentials, options.project_id)
        }

    def warn(self, message: str):
        if message not in self.warnings:
            self.warnings.append(message)

    def note(self, message: str):
        if message not in self.footer:
            self.footer.append(message)

    def unique_job_name(self, base: str) -> str:
        taken = {job.name for job in self.jobs}
        if base not in taken:
            return base
        index = 2
        while f"{base}-{index}" in taken:
            index += 1
        return f"{base}-{index}"


# ============================================================================
# Entry point
# ============================================================================

def generate(
    structure: PipelineStructure,
    verdicts: List[CompatibilityVerdict],
    parameters: Optional[List[Parameter]] = None,
    environment: Optional[Dict[str, str]] = None,
    options: Optional[GenerationOptions] = None,
) -> TargetDocument:
    """Build the GitLab CI document. Pure: same inputs, same document."""
    parameters = parameters or []
    environment = environment or {}
    options = options or GenerationOptions()
    complexity = options.score or score_pipeline(structure, verdicts)

    if not structure.stages and not verdicts and not parameters and not environment:
        return _skeleton(options)

    detected = []
    for verdict in verdicts:
        if verdict.usage.identifier not in detected:
            detected.append(verdict.usage.identifier)

    ctx = _Context(structure, verdicts, options, complexity.tier, detected)
    ctx.stages = _plan_stages(structure, complexity.tier, detected)

    _add_parameter_variables(ctx, parameters)
    _add_environment_variables(ctx, environment)
    _apply_plugin_rules(ctx)
    _add_credential_variables(ctx)
    ctx.variables.add("GIT_DEPTH", options.git_depth or GIT_DEPTH, ["Shallow clone depth"])
    ctx.variables.add("GIT_STRATEGY", GIT_STRATEGY)
    _apply_pipeline_options(ctx)

    _add_source_jobs(ctx)
    _add_template_jobs(ctx)
    _add_post_action_jobs(ctx)
    _wire_needs(ctx)
    _order_jobs(ctx)
    _collect_warnings(ctx)
    _define_missing_variables(ctx)

    return TargetDocument(
        header_comments=_header(ctx, complexity),
        warnings=ctx.warnings,
        workflow_rules=_workflow_rules(parameters),
        variables=ctx.variables.values(),
        default=ctx.default,
        stages=ctx.stages,
        jobs=ctx.jobs,
        footer_notes=ctx.footer,
        credential_variables=[
            spec for spec in ctx.credential_specs.values() if not spec.derived or spec.key in ctx.variables
        ],
    )


def _skeleton(options: GenerationOptions) -> TargetDocument:
    header = ["GitLab CI configuration converted from Jenkinsfile"]
    if options.generated_at:
        header.append(f"Generated at: {options.generated_at.isoformat()}")
    header.append("No pipeline constructs were recognised; this is a placeholder skeleton")
    return TargetDocument(
        header_comments=header,
        warnings=["Source pipeline is empty or unrecognised"],
        stages=["build"],
        jobs=[TargetJob(
            name="build:placeholder",
            stage="build",
            script=['echo "Add build steps here"'],
            comments=[f"{REVIEW} placeholder job; replace with real build commands"],
        )],
    )


# ============================================================================
# Stages & variables
# ============================================================================

def _plan_stages(structure: PipelineStructure, tier: Tier, detected: List[str]) -> List[str]:
    wanted = {BOOTSTRAP_STAGE, "build", "test"}
    has_quality_stage = any(stage.kind == StageKind.QUALITY for stage in structure.stages)
    if tier.rank >= Tier.MODERATE.rank or has_quality_stage or any(i in QUALITY_IDENTIFIERS for i in detected):
        wanted.add("quality")
    if any(i in CONTAINER_IDENTIFIERS for i in detected):
        wanted.add("package")
    if tier.rank >= Tier.MODERATE.rank:
        wanted.add("deploy")
    if tier == Tier.ENTERPRISE:
        wanted.add("cleanup")
    return [stage for stage in TARGET_STAGE_ORDER if stage in wanted]


def _add_parameter_variables(ctx: _Context, parameters: List[Parameter]):
    for param in parameters:
        comments = []
        if param.description:
            comments.append(param.description)
        if param.type == ParameterType.CHOICE and param.choices:
            comments.append(f"Options: {', '.join(param.choices)}")
        elif param.type == ParameterType.BOOLEAN:
            comments.append("Boolean parameter: true or false")
        if param.type == ParameterType.PASSWORD:
            comments.append("Password parameter; set as a masked CI/CD variable")
            ctx.variables.add(param.name, "", comments)
        else:
            ctx.variables.add(param.name, param.effective_default, comments)


def _add_environment_variables(ctx: _Context, environment: Dict[str, str]):
    for name, value in environment.items():
        if _GROOVY_EXPRESSION.search(value or ""):
            ctx.variables.add(name, "", ["Groovy expression not converted; compute it in before_script"])
            ctx.warn(f"Environment variable {name} is a Groovy expression and was left empty")
            continue
        ctx.variables.add(name, translate_references(value or ""))


def _apply_plugin_rules(ctx: _Context):
    """Apply generation rules in priority order; the first image set wins."""
    image = ctx.structure.agent_image
    image_source = "agent" if image else None

    for rule in PLUGIN_GENERATION_RULES:
        identifier = rule["identifier"]
        if identifier not in ctx.detected:
            continue
        if identifier in BUILD_TOOL_IDENTIFIERS and ctx.primary_rule is None:
            ctx.primary_rule = rule
        if rule.get("image") and image is None:
            image = rule["image"]
            image_source = identifier
            ctx.default.services = list(rule.get("services", []))
        for name, value in rule.get("variables", {}).items():
            comments = ["Set as a masked CI/CD variable"] if name in rule.get("masked", []) else []
            ctx.variables.add(name, value, comments)
        for path in rule.get("cache_paths", []):
            if path not in ctx.default.cache_paths:
                ctx.default.cache_paths.append(path)

    ctx.default.image = translate_references(image or DEFAULT_IMAGE)
    if image_source and image_source != "agent":
        ctx.note(f"Default image selected from {image_source} usage")


def _add_credential_variables(ctx: _Context):
    for spec in ctx.credential_specs.values():
        if not spec.derived:
            ctx.variables.add(spec.key, "", [_credential_comment(spec)])
    for binding in ctx.structure.credentials:
        keys = [
            f"{spec.key} (file)" if spec.is_file else spec.key
            for spec in ctx.credential_specs.values()
            if spec.credentials_id == binding.credentials_id and not spec.derived
        ]
        if binding.credentials_id and keys:
            ctx.note(
                f"Recreate Jenkins credential '{binding.credentials_id}' as GitLab CI/CD variables: "
                f"{', '.join(keys)}"
            )


def _credential_comment(spec: CredentialVariableSpec) -> str:
    flags = [flag for flag, on in (("masked", spec.masked), ("protected", spec.protected)) if on]
    if spec.is_file:
        flags.append("file")
    return f"{spec.description}; set as a {' '.join(flags + ['CI/CD variable'])}"


def _apply_pipeline_options(ctx: _Context):
    structure = ctx.structure
    if structure.pipeline_timeout:
        ctx.default.timeout = f"{structure.pipeline_timeout.minutes}m"
    if structure.pipeline_retry:
        ctx.default.retry = min(structure.pipeline_retry, MAX_RETRY)
        if structure.pipeline_retry > MAX_RETRY:
            ctx.warn(f"Pipeline retry({structure.pipeline_retry}) capped at {MAX_RETRY}")


# ============================================================================
# Jobs from source stages
# ============================================================================

def _target_stage_for(ctx: _Context, kind: StageKind) -> Optional[str]:
    if kind == StageKind.NOTIFICATION:
        return ctx.stages[-1]
    target = KIND_TO_TARGET_STAGE.get(kind.value, "build")
    if target == "quality" and target not in ctx.stages:
        target = "test"
    return target if target in ctx.stages else None


def _blocks(ctx: _Context) -> List[Tuple[str, object, List[StageNode]]]:
    """Matrix and parallel blocks with the top-level stages they contain."""
    blocks = []
    for matrix in ctx.structure.matrices:
        blocks.append(("matrix", matrix, _stages_within(ctx.structure.stages, matrix.line_number, matrix.line_end)))
    for block in ctx.structure.parallel_blocks:
        inside_matrix = any(m.line_number <= block.line_number <= m.line_end for m in ctx.structure.matrices)
        if inside_matrix:
            continue
        inner = _stages_within(ctx.structure.stages, block.line_number, block.line_end)
        owner = _enclosing_stage(ctx.structure.stages, block.line_number)
        if not inner and owner is not None:
            ctx.warn(f"Parallel branches in stage '{owner.name}' run sequentially in one job")
            continue
        blocks.append(("parallel", block, inner))
    blocks.sort(key=lambda item: item[1].line_number)
    return blocks


def _stages_within(stages: List[StageNode], first: int, last: int) -> List[StageNode]:
    inner = [s for s in stages if first <= s.line_start <= last]
    names = {s.name for s in inner}
    return [s for s in inner if s.parent not in names]


def _enclosing_stage(stages: List[StageNode], line: int) -> Optional[StageNode]:
    owner = None
    for stage in stages:
        if stage.line_start <= line <= stage.line_end:
            owner = stage
    return owner


def _add_source_jobs(ctx: _Context):
    absorbed: Dict[str, str] = {}
    block_jobs = []
    for kind, block, inner in _blocks(ctx):
        job = _matrix_job(ctx, block, inner) if kind == "matrix" else _parallel_job(ctx, block, inner)
        if job is None:
            continue
        block_jobs.append((block.line_number, job))
        for stage in inner:
            absorbed[stage.name] = job.name
            for other in ctx.structure.stages:
                if other.line_start >= stage.line_start and other.line_end <= stage.line_end:
                    absorbed[other.name] = job.name

    pending = list(block_jobs)
    for stage in ctx.structure.stages:
        while pending and pending[0][0] <= stage.line_start:
            ctx.jobs.append(pending.pop(0)[1])
        if stage.name in absorbed:
            ctx.stage_to_job[stage.name] = absorbed[stage.name]
            continue
        if stage.has_children and not stage.commands:
            continue
        job = _stage_job(ctx, stage)
        if job is not None:
            ctx.jobs.append(job)
            ctx.stage_to_job[stage.name] = job.name
    for _, job in pending:
        ctx.jobs.append(job)


def _stage_job(ctx: _Context, stage: StageNode) -> Optional[TargetJob]:
    target = _target_stage_for(ctx, stage.kind)
    if target is None:
        ctx.warn(
            f"Stage '{stage.name}' ({stage.kind.value}) omitted: no {stage.kind.value} stage "
            f"is generated for {ctx.tier.value} pipelines"
        )
        return None

    job = TargetJob(
        name=ctx.unique_job_name(f"{target}:{slugify(stage.name)}"),
        stage=target,
        source_stage=stage.name,
    )
    job.script, comments = _stage_script(ctx, stage)
    job.comments.extend(comments)

    if stage.agent_image and stage.agent_image != ctx.default.image:
        job.image = translate_references(stage.agent_image)
    if _uses_docker(stage) and ctx.default.image != DOCKER_IMAGE:
        job.image = DOCKER_IMAGE
        job.services = [DOCKER_SERVICE]
        if "DOCKER_HOST" not in ctx.variables:
            job.variables.update(DIND_VARIABLES)

    _apply_stage_rules(ctx, job, stage)
    if stage.kind == StageKind.NOTIFICATION:
        _set_when(job, "always")
    if stage.manual_input:
        _set_when(job, "manual")
        job.comments.append(f"{REVIEW} input step converted to a manual job; submitted values are not available")
    if target == "deploy":
        job.environment = _environment_name(stage.name)
        if not stage.agent_image and job.image is None and _uses_cluster_tools(stage):
            job.image = DEPLOY_IMAGE

    if stage.timeout:
        job.timeout = f"{stage.timeout.minutes}m"
    if stage.retry:
        job.retry = min(stage.retry, MAX_RETRY)
        if stage.retry > MAX_RETRY:
            ctx.warn(f"Stage '{stage.name}' retry({stage.retry}) capped at {MAX_RETRY}")

    job.artifacts = _artifacts(ctx, stage.stash_paths + stage.archived_artifacts, stage.junit_reports)
    job.comments.extend(_verdict_markers(ctx, stage))
    return job


def _stage_script(ctx: _Context, stage: StageNode) -> Tuple[List[str], List[str]]:
    script: List[str] = []
    comments: List[str] = []
    windows = False
    for command in stage.commands:
        text = translate_references(command.text)
        if command.kind == "echo":
            script.append(f"echo {json.dumps(text, ensure_ascii=False)}")
            continue
        if command.kind in ("bat", "powershell", "pwsh"):
            windows = True
        script.append(text)

    if windows:
        comments.append(f"{REVIEW} Windows commands need a Windows runner (tags) or a rewrite")
    if stage.has_script_logic:
        comments.append(f"{REVIEW} stage '{stage.name}' contains Groovy script logic that was not converted")
    if not any(c.kind != "echo" for c in stage.commands):
        fallback = _template_script(ctx, stage.kind)
        if fallback:
            script.extend(fallback)
        comments.append(f"{REVIEW} no shell steps recognised in stage '{stage.name}'")
    if stage.kind == StageKind.CUSTOM:
        comments.append(f"{REVIEW} stage '{stage.name}' has no recognised purpose; mapped to build")
    if not script:
        script.append(f"echo {json.dumps('Stage ' + stage.name, ensure_ascii=False)}")
    return script, comments


def _template_script(ctx: _Context, kind: StageKind) -> List[str]:
    rule = ctx.primary_rule
    if kind == StageKind.BUILD and rule:
        return list(rule["build_script"])
    if kind == StageKind.TEST and rule:
        return list(rule["test_script"])
    return []


def _uses_docker(stage: StageNode) -> bool:
    return any(re.search(r"\bdocker\s+(?:build|push|login|run)\b", c.text) for c in stage.commands)


def _uses_cluster_tools(stage: StageNode) -> bool:
    return any(re.search(r"\b(?:kubectl|helm)\s+\w", c.text) for c in stage.commands)


def _environment_name(stage_name: str) -> str:
    lowered = stage_name.lower()
    for name in ("production", "prod", "staging", "stage", "qa", "dev", "test"):
        if re.search(r"\b%s\b" % name, lowered):
            return "production" if name == "prod" else name
    return slugify(stage_name)


def _set_when(job: TargetJob, when: str):
    if job.rules:
        for rule in job.rules:
            rule.when = when
    else:
        job.when = when


def _apply_stage_rules(ctx: _Context, job: TargetJob, stage: StageNode):
    conditions = []
    for condition in stage.when:
        translated = rule_condition(condition)
        if translated is None:
            job.comments.append(f"{REVIEW} when condition not converted: {condition.kind} {condition.value}".rstrip())
            continue
        if translated not in conditions:
            conditions.append(translated)
    if conditions:
        job.rules = [Rule(condition=" && ".join(f"({c})" if "||" in c else c for c in conditions))]


def _artifacts(ctx: _Context, paths: List[str], reports: List[str]) -> Optional[JobArtifacts]:
    paths = [translate_references(p) for p in paths if p]
    reports = [translate_references(r) for r in reports if r]
    paths = [p for i, p in enumerate(paths) if p and p not in paths[:i]]
    reports = [r for i, r in enumerate(reports) if r and r not in reports[:i]]
    if not paths and not reports:
        return None
    artifacts = JobArtifacts(paths=paths, junit=reports, expire_in=_artifact_expiry(ctx))
    if reports:
        artifacts.when = "always"
    return artifacts


def _artifact_expiry(ctx: _Context) -> str:
    discarder = ctx.structure.build_discarder
    if discarder:
        days = discarder.artifact_days_to_keep or discarder.days_to_keep
        if days:
            return f"{days} days"
    return "1 week"


def _verdict_markers(ctx: _Context, stage: StageNode) -> List[str]:
    if not ctx.options.include_review_markers:
        return []
    markers = []
    for verdict in ctx.verdicts:
        line = verdict.usage.line_number
        if not (stage.line_start <= line <= stage.line_end):
            continue
        if verdict.status == CompatibilityStatus.COMPATIBLE and verdict.confidence >= 0.7:
            continue
        note = verdict.migration_notes[0] if verdict.migration_notes else "review manually"
        marker = (f"{REVIEW} {verdict.usage.identifier} is {verdict.status.value} "
                  f"(confidence {verdict.confidence:.2f}): {note}")
        if marker not in markers:
            markers.append(marker)
    return markers


# ============================================================================
# Matrix & parallel jobs
# ============================================================================

def _block_target(ctx: _Context, inner: List[StageNode], default_kind: StageKind) -> Optional[str]:
    kinds = [s.kind for s in inner if s.kind not in (StageKind.CUSTOM, StageKind.NOTIFICATION)]
    return _target_stage_for(ctx, kinds[0] if kinds else default_kind)


def _combined_script(ctx: _Context, stages: List[StageNode]) -> Tuple[List[str], List[str]]:
    script, comments = [], []
    for stage in stages:
        part, notes = _stage_script(ctx, stage)
        script.extend(part)
        comments.extend(n for n in notes if n not in comments)
    return script, comments


def _descendants(ctx: _Context, stage: StageNode) -> List[StageNode]:
    return [s for s in ctx.structure.stages
            if s.line_start >= stage.line_start and s.line_end <= stage.line_end]


def _matrix_job(ctx: _Context, matrix, inner: List[StageNode]) -> Optional[TargetJob]:
    target = _block_target(ctx, inner, StageKind.TEST)
    if target is None:
        ctx.warn("Matrix block omitted: its stage is not generated at this tier")
        return None
    stages = [s for stage in inner for s in _descendants(ctx, stage) if s.commands or not s.has_children]
    script, comments = _combined_script(ctx, stages)
    if not script:
        script = ['echo "Matrix cell $' + matrix.axes[0].name + '"']
    job = TargetJob(
        name=ctx.unique_job_name(f"{target}:matrix"),
        stage=target,
        script=script,
        parallel_matrix=[{axis.name: list(axis.values) for axis in matrix.axes}],
        comments=comments,
    )
    if matrix.combinations > MATRIX_LIMIT:
        ctx.warn(f"Matrix expands to {matrix.combinations} jobs; GitLab allows at most {MATRIX_LIMIT}")
    _apply_block_budget(ctx, job, _enclosing_stage(ctx.structure.stages, matrix.line_number), stages)
    reports = [r for s in stages for r in s.junit_reports]
    paths = [p for s in stages for p in s.stash_paths + s.archived_artifacts]
    job.artifacts = _artifacts(ctx, paths, reports)
    return job


def _parallel_job(ctx: _Context, block, inner: List[StageNode]) -> Optional[TargetJob]:
    if not inner and not block.branches:
        return None
    target = _block_target(ctx, inner, StageKind.TEST)
    if target is None:
        ctx.warn("Parallel block omitted: its stage is not generated at this tier")
        return None

    lines = ['case "$PARALLEL_BRANCH" in']
    comments: List[str] = []
    if inner:
        branches = [s.name for s in inner]
        for stage in inner:
            part, notes = _combined_script(ctx, [s for s in _descendants(ctx, stage) if not s.has_children or s.commands])
            comments.extend(n for n in notes if n not in comments)
            lines.append(f"  {json.dumps(stage.name, ensure_ascii=False)})")
            for command in part:
                lines.extend("    " + line for line in command.split("\n"))
            lines.append("    ;;")
    else:
        branches = list(block.branches)
        comments.append(f"{REVIEW} scripted parallel branches were not converted")
        for branch in branches:
            lines.append(f"  {json.dumps(branch, ensure_ascii=False)})")
            lines.append(f"    echo {json.dumps('Run branch ' + branch, ensure_ascii=False)}")
            lines.append("    ;;")
    lines.append("esac")

    parent = inner[0].parent if inner else None
    base = slugify(parent) if parent else "parallel"
    job = TargetJob(
        name=ctx.unique_job_name(f"{target}:{base}"),
        stage=target,
        script=["\n".join(lines)],
        parallel_matrix=[{"PARALLEL_BRANCH": branches}],
        comments=comments,
    )
    owner = _enclosing_stage(ctx.structure.stages, block.line_number)
    _apply_block_budget(ctx, job, owner, [d for s in inner for d in _descendants(ctx, s)])
    reports = [r for s in inner for d in _descendants(ctx, s) for r in d.junit_reports]
    job.artifacts = _artifacts(ctx, [], reports)
    return job


def _apply_block_budget(ctx: _Context, job: TargetJob, owner: Optional[StageNode], stages: List[StageNode]):
    """Timeout and retry of the enclosing stage, else the largest among the inner stages."""
    if owner is not None and owner.timeout:
        job.timeout = f"{owner.timeout.minutes}m"
    else:
        minutes = [s.timeout.minutes for s in stages if s.timeout]
        if minutes:
            job.timeout = f"{max(minutes)}m"

    retry = owner.retry if owner is not None and owner.retry else max((s.retry or 0 for s in stages), default=0)
    if retry:
        job.retry = min(retry, MAX_RETRY)
        if retry > MAX_RETRY:
            label = owner.name if owner is not None else job.name
            ctx.warn(f"Stage '{label}' retry({retry}) capped at {MAX_RETRY}")


# ============================================================================
# Template & post-action jobs
# ============================================================================

def _add_template_jobs(ctx: _Context):
    occupied = {job.stage for job in ctx.jobs}
    rule = ctx.primary_rule
    for stage in ctx.stages:
        if stage in occupied:
            continue
        job = _template_job(ctx, stage, rule)
        if job is not None:
            ctx.jobs.append(job)


def _template_job(ctx: _Context, stage: str, rule: Optional[dict]) -> Optional[TargetJob]:
    if stage == BOOTSTRAP_STAGE:
        return TargetJob(
            name=f"{BOOTSTRAP_STAGE}:setup",
            stage=BOOTSTRAP_STAGE,
            script=['echo "Pipeline $CI_PIPELINE_IID for $CI_COMMIT_REF_NAME at $CI_COMMIT_SHORT_SHA"'],
        )
    if stage == "build":
        job = TargetJob(name="build:app", stage="build",
                        script=list(rule["build_script"]) if rule else ['echo "Add build commands"'])
        if not rule:
            job.comments.append(f"{REVIEW} no build tool detected; add build commands")
        return job
    if stage == "test":
        job = TargetJob(name="test:unit", stage="test",
                        script=list(rule["test_script"]) if rule else ['echo "Add test commands"'])
        if rule and rule.get("test_reports"):
            job.artifacts = _artifacts(ctx, [], rule["test_reports"])
        if not rule:
            job.comments.append(f"{REVIEW} no test tooling detected; add test commands")
        return job
    if stage == "quality":
        if "sonar" in ctx.detected:
            return TargetJob(
                name="quality:sonarqube",
                stage="quality",
                image=SONAR_SCANNER_IMAGE,
                variables={"GIT_DEPTH": "0"},
                script=["sonar-scanner -Dsonar.projectKey=$CI_PROJECT_PATH_SLUG "
                        "-Dsonar.host.url=$SONAR_HOST_URL -Dsonar.token=$SONAR_TOKEN "
                        "-Dsonar.qualitygate.wait=true"],
                allow_failure=True,
            )
        return TargetJob(
            name="quality:code-quality",
            stage="quality",
            script=['echo "Run static analysis here"'],
            allow_failure=True,
            comments=[f"{REVIEW} add linters or include the Code-Quality template"],
        )
    if stage == "package":
        return TargetJob(
            name="package:docker",
            stage="package",
            image=DOCKER_IMAGE,
            services=[DOCKER_SERVICE],
            script=[
                'docker login -u "$CI_REGISTRY_USER" -p "$CI_REGISTRY_PASSWORD" "$CI_REGISTRY"',
                'docker build -t "$CI_REGISTRY_IMAGE:$CI_COMMIT_SHORT_SHA" .',
                'docker push "$CI_REGISTRY_IMAGE:$CI_COMMIT_SHORT_SHA"',
            ],
        )
    if stage == "deploy":
        return TargetJob(
            name="deploy:staging",
            stage="deploy",
            script=['echo "Deploy $CI_COMMIT_SHORT_SHA to staging"'],
            environment="staging",
            when="manual",
            comments=[f"{REVIEW} no deployment stage found in the Jenkinsfile; add deployment commands"],
        )
    if stage == "cleanup":
        return TargetJob(
            name="cleanup:workspace",
            stage="cleanup",
            script=['echo "Runner workspaces are cleaned between jobs"'],
            when="always",
        )
    return None


def _add_post_action_jobs(ctx: _Context):
    grouped: Dict[str, TargetJob] = {}
    for action in ctx.structure.post_actions:
        when = POST_CONDITION_WHEN.get(action.condition, "always")
        if action.action in ("slack_notification", "email_notification", "chat_notification"):
            name = f"notify:{action.condition}"
            job = grouped.get(name)
            if job is None:
                job = TargetJob(name=ctx.unique_job_name(name), stage=ctx.stages[-1], when=when)
                grouped[name] = job
                ctx.jobs.append(job)
            if action.action == "slack_notification":
                job.script.append(
                    'curl -sS -X POST -H "Content-type: application/json" '
                    '--data "{\\"text\\": \\"$CI_PROJECT_NAME pipeline $CI_PIPELINE_IID: $CI_JOB_STATUS\\"}" '
                    '"$SLACK_WEBHOOK_URL"'
                )
                ctx.variables.add("SLACK_WEBHOOK_URL", "", ["Slack incoming webhook; set as a masked CI/CD variable"])
            else:
                job.script.append(f'echo "Send {action.action.replace("_", " ")} ({action.condition})"')
                job.comments.append(f"{REVIEW} configure pipeline notifications in project integrations")
        elif action.action == "cleanup_workspace":
            ctx.note("cleanWs/deleteDir dropped: runners start every job with a clean workspace")
        elif action.action in ("archive_artifacts", "junit_report") and action.detail:
            _attach_post_artifact(ctx, action.action, action.detail)


def _attach_post_artifact(ctx: _Context, action: str, path: str):
    path = translate_references(path)
    stage = "test" if action == "junit_report" else "build"
    candidates = [job for job in ctx.jobs if job.stage == stage]
    if not candidates:
        return
    job = candidates[-1]
    artifacts = job.artifacts or JobArtifacts(expire_in=_artifact_expiry(ctx))
    if action == "junit_report":
        if path not in artifacts.junit:
            artifacts.junit.append(path)
        artifacts.when = "always"
    elif path not in artifacts.paths:
        artifacts.paths.append(path)
    job.artifacts = artifacts


# ============================================================================
# Cross-cutting passes
# ============================================================================

def _wire_needs(ctx: _Context):
    stage_index = {stage: i for i, stage in enumerate(ctx.stages)}
    jobs_by_name = {job.name: job for job in ctx.jobs}
    for stage in ctx.structure.stages:
        job_name = ctx.stage_to_job.get(stage.name)
        if not job_name or not stage.depends_on:
            continue
        job = jobs_by_name[job_name]
        for dependency in sorted(stage.depends_on):
            dep_name = ctx.stage_to_job.get(dependency)
            if not dep_name or dep_name == job_name or dep_name in job.needs:
                continue
            if stage_index[jobs_by_name[dep_name].stage] <= stage_index[job.stage]:
                job.needs.append(dep_name)


def _order_jobs(ctx: _Context):
    stage_index = {stage: i for i, stage in enumerate(ctx.stages)}
    ctx.jobs = [job for _, _, job in sorted(
        ((stage_index[job.stage], i, job) for i, job in enumerate(ctx.jobs)),
        key=lambda item: (item[0], item[1]),
    )]


def _job_texts(job: TargetJob) -> List[str]:
    texts = list(job.before_script) + list(job.script) + list(job.variables.values())
    texts.extend(rule.condition for rule in job.rules if rule.condition)
    texts.extend(text for text in (job.image, job.environment) if text)
    if job.artifacts:
        texts.extend(job.artifacts.paths + job.artifacts.junit)
    return texts


def _define_missing_variables(ctx: _Context):
    """Add every referenced but undefined uppercase variable with an empty value."""
    texts = [v.value for v in ctx.variables.values()]
    texts.extend(text for text in [ctx.default.image] + list(ctx.default.cache_paths) if text)
    for job in ctx.jobs:
        texts.extend(_job_texts(job))

    matrix_keys = {key for job in ctx.jobs for cell in job.parallel_matrix for key in cell}
    job_vars = {key for job in ctx.jobs for key in job.variables}
    for text in texts:
        for name in find_variable_references(text):
            if name in ctx.variables or name in matrix_keys or name in job_vars or is_builtin_variable(name):
                continue
            spec = ctx.credential_specs.get(name)
            if spec is not None:
                ctx.variables.add(name, "", [_credential_comment(spec)])
                continue
            ctx.variables.add(name, "", ["Referenced by job scripts but not defined in the Jenkinsfile"])
            ctx.warn(f"Variable {name} is referenced but was never defined; added with an empty value")


def _collect_warnings(ctx: _Context):
    structure = ctx.structure
    for verdict in ctx.verdicts:
        identifier = verdict.usage.identifier
        if verdict.is_blocking:
            ctx.warn(f"BLOCKING: plugin {identifier} ({verdict.status.value}) must be resolved before migrating")
        elif verdict.status == CompatibilityStatus.UNKNOWN:
            ctx.warn(f"Unknown plugin {identifier} (line {verdict.usage.line_number}) needs manual review")
    if structure.style == PipelineStyle.SCRIPTED:
        ctx.warn("Scripted pipeline: Groovy control flow outside recognised steps was not converted")
    elif structure.style == PipelineStyle.MIXED:
        ctx.warn("Mixed declarative/scripted pipeline: review script blocks manually")
    for library in structure.shared_libraries:
        version = f"@{library.version}" if library.version else ""
        ctx.warn(f"Shared library {library.name}{version} is not converted; port its steps to include templates")
    for name in structure.unresolved_artifacts:
        ctx.warn(f"unstash '{name}' has no matching stash in this pipeline")

    for trigger in structure.triggers:
        if trigger.kind in ("cron", "pollSCM"):
            ctx.note(f"Create a pipeline schedule for {trigger.kind} '{trigger.value}' "
                     f"(replace Jenkins H tokens with fixed values)")
        elif trigger.kind == "upstream":
            ctx.note(f"Upstream trigger '{trigger.value}' becomes a multi-project pipeline trigger")
    if structure.build_discarder:
        ctx.note(f"Build discarder mapped to artifacts:expire_in {_artifact_expiry(ctx)}")

    seen = set()
    for verdict in ctx.verdicts:
        identifier = verdict.usage.identifier
        if identifier in seen or verdict.status == CompatibilityStatus.COMPATIBLE:
            continue
        seen.add(identifier)
        target = verdict.target_equivalent or "no direct equivalent"
        note = verdict.migration_notes[0] if verdict.migration_notes else "review manually"
        ctx.note(f"{identifier}: {target}. {note}")


def _workflow_rules(parameters: List[Parameter]) -> List[Rule]:
    if not parameters:
        return []
    return [
        Rule(condition='$CI_PIPELINE_SOURCE == "web"'),
        Rule(condition='$CI_PIPELINE_SOURCE == "api"'),
        Rule(condition='$CI_PIPELINE_SOURCE == "schedule"'),
        Rule(when="always"),
    ]


def _header(ctx: _Context, complexity) -> List[str]:
    header = ["GitLab CI configuration converted from Jenkinsfile"]
    if ctx.options.source_name:
        header.append(f"Source: {ctx.options.source_name}")
    if ctx.options.generated_at:
        header.append(f"Generated at: {ctx.options.generated_at.isoformat()}")
    header.append(f"Pipeline style: {ctx.structure.style.value}")
    header.append(
        f"Complexity: {complexity.tier.value} (score {complexity.raw:.0f}/100, "
        f"estimated {complexity.estimated_hours:g}h)"
    )
    return header
