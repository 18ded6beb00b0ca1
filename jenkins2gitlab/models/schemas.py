"""
Pydantic schemas for pipeline analysis and conversion
"""
import math
from typing import Dict, Any, Optional, List, Set
from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime
from enum import Enum


# ============================================================================
# Enumerations
# ============================================================================

class MappingKind(str, Enum):
    DIRECT = "direct"
    FEATURE_EQUIVALENT = "feature-equivalent"
    WORKFLOW_CHANGE = "workflow-change"
    MANUAL = "manual"


class Criticality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CompatibilityStatus(str, Enum):
    COMPATIBLE = "compatible"
    PARTIAL = "partial"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


class SupportLevel(str, Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    DEPRECATED = "deprecated"
    ABANDONED = "abandoned"


class VerdictSource(str, Enum):
    KNOWLEDGE_BASE = "knowledge_base"
    RULE = "rule"
    FALLBACK = "fallback"
    ENRICHMENT = "enrichment"


class StageKind(str, Enum):
    BUILD = "build"
    TEST = "test"
    DEPLOY = "deploy"
    QUALITY = "quality"
    NOTIFICATION = "notification"
    CUSTOM = "custom"


class ComplexityClass(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class PipelineStyle(str, Enum):
    DECLARATIVE = "declarative"
    SCRIPTED = "scripted"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class Tier(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    ENTERPRISE = "enterprise"

    @property
    def rank(self) -> int:
        return ["simple", "moderate", "complex", "enterprise"].index(self.value)


class ParameterType(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    CHOICE = "choice"
    TEXT = "text"
    PASSWORD = "password"


class VariableType(str, Enum):
    ENV_VAR = "env_var"
    FILE = "file"


# ============================================================================
# Knowledge base & classification
# ============================================================================

class PluginUsage(BaseModel):
    """One occurrence of a plugin signature in the source pipeline."""
    model_config = ConfigDict(frozen=True)

    identifier: str
    declared_version: Optional[str] = None
    usage_context: str = ""
    line_number: int = Field(1, ge=1)
    confidence: float = Field(0.9, ge=0.0, le=1.0)


class KnowledgeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    target_equivalent: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    mapping_kind: MappingKind = MappingKind.DIRECT
    migration_notes: List[str] = Field(default_factory=list)
    review_comment: Optional[str] = None
    criticality: Criticality = Criticality.MEDIUM
    workaround_required: bool = False
    documentation_url: Optional[str] = None


class CompatibilityVerdict(BaseModel):
    """Compatibility classification for one plugin usage.

    A blocking verdict can never be compatible; constructing one raises.
    """
    usage: PluginUsage
    status: CompatibilityStatus
    support_level: Optional[SupportLevel] = None
    target_equivalent: Optional[str] = None
    is_blocking: bool = False
    workaround_available: bool = False
    confidence: float = Field(..., ge=0.0, le=1.0)
    migration_notes: List[str] = Field(default_factory=list)
    documentation_url: Optional[str] = None
    source: VerdictSource = VerdictSource.KNOWLEDGE_BASE

    @model_validator(mode="after")
    def _blocking_is_not_compatible(self):
        if self.is_blocking and self.status == CompatibilityStatus.COMPATIBLE:
            raise ValueError(f"Verdict for {self.usage.identifier} is blocking but compatible")
        return self


class EnrichmentRequest(BaseModel):
    identifier: str
    usage_context: str = ""
    project_context: Dict[str, Any] = Field(default_factory=dict)


class EnrichmentResponse(BaseModel):
    compatibility_status: CompatibilityStatus
    target_equivalent: Optional[str] = None
    migration_notes: List[str] = Field(default_factory=list)
    is_blocking: bool = False
    workaround_available: bool = False
    documentation_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _notes_as_list(cls, data):
        if isinstance(data, dict) and isinstance(data.get("migration_notes"), str):
            data = dict(data)
            data["migration_notes"] = [data["migration_notes"]]
        return data


# ============================================================================
# Extracted features
# ============================================================================

class Parameter(BaseModel):
    name: str
    type: ParameterType
    default_value: Optional[str] = None
    description: Optional[str] = None
    choices: List[str] = Field(default_factory=list)
    line_number: int = 1

    @property
    def effective_default(self) -> str:
        if self.default_value is not None:
            return self.default_value
        if self.type == ParameterType.CHOICE and self.choices:
            return self.choices[0]
        if self.type == ParameterType.BOOLEAN:
            return "false"
        return ""


class CredentialBinding(BaseModel):
    credentials_id: str
    kind: str
    variables: List[str] = Field(default_factory=list)
    # variable name -> binding argument it came from (usernameVariable, keyFileVariable, ...)
    roles: Dict[str, str] = Field(default_factory=dict)
    line_number: int = 1


class MatrixAxis(BaseModel):
    name: str
    values: List[str] = Field(default_factory=list)


class Matrix(BaseModel):
    axes: List[MatrixAxis] = Field(default_factory=list)
    line_number: int = 1
    line_end: int = 1

    @property
    def combinations(self) -> int:
        total = 1
        for axis in self.axes:
            total *= max(len(axis.values), 1)
        return total


class ParallelBlock(BaseModel):
    branches: List[str] = Field(default_factory=list)
    style: str = "declarative"
    line_number: int = 1
    line_end: int = 1


class TimeoutSpec(BaseModel):
    time: float
    unit: str = "MINUTES"
    line_number: int = 1

    @property
    def minutes(self) -> int:
        factor = {"SECONDS": 1 / 60, "MINUTES": 1, "HOURS": 60, "DAYS": 1440}.get(self.unit.upper(), 1)
        return max(1, math.ceil(round(self.time * factor, 6)))


class RetrySpec(BaseModel):
    count: int
    line_number: int = 1


class PostAction(BaseModel):
    condition: str
    action: str
    detail: Optional[str] = None
    line_number: int = 1


class BuildDiscarder(BaseModel):
    num_to_keep: Optional[int] = None
    days_to_keep: Optional[int] = None
    artifact_num_to_keep: Optional[int] = None
    artifact_days_to_keep: Optional[int] = None


class WhenCondition(BaseModel):
    kind: str
    value: str = ""
    name: Optional[str] = None
    line_number: int = 1


class Trigger(BaseModel):
    kind: str
    value: str = ""
    line_number: int = 1


class SharedLibrary(BaseModel):
    name: str
    version: Optional[str] = None
    line_number: int = 1


class FeatureSet(BaseModel):
    usages: List[PluginUsage] = Field(default_factory=list)
    parameters: List[Parameter] = Field(default_factory=list)
    environment: Dict[str, str] = Field(default_factory=dict)
    credentials: List[CredentialBinding] = Field(default_factory=list)
    matrices: List[Matrix] = Field(default_factory=list)
    parallel_blocks: List[ParallelBlock] = Field(default_factory=list)
    timeouts: List[TimeoutSpec] = Field(default_factory=list)
    retries: List[RetrySpec] = Field(default_factory=list)
    post_actions: List[PostAction] = Field(default_factory=list)
    build_discarder: Optional[BuildDiscarder] = None
    when_conditions: List[WhenCondition] = Field(default_factory=list)
    triggers: List[Trigger] = Field(default_factory=list)
    shared_libraries: List[SharedLibrary] = Field(default_factory=list)
    is_declarative: bool = False
    is_scripted: bool = False
    line_count: int = 0

    @property
    def style(self) -> PipelineStyle:
        if self.is_declarative and self.is_scripted:
            return PipelineStyle.MIXED
        if self.is_declarative:
            return PipelineStyle.DECLARATIVE
        if self.is_scripted:
            return PipelineStyle.SCRIPTED
        return PipelineStyle.UNKNOWN


# ============================================================================
# Pipeline structure
# ============================================================================

class StageCommand(BaseModel):
    kind: str
    text: str
    line_number: int = 1


class StageNode(BaseModel):
    name: str
    kind: StageKind = StageKind.CUSTOM
    complexity_class: ComplexityClass = ComplexityClass.SIMPLE
    depends_on: Set[str] = Field(default_factory=set)
    parallelizable: bool = True

    line_start: int = 1
    line_end: int = 1
    parent: Optional[str] = None
    in_parallel: bool = False
    has_children: bool = False
    complexity_units: int = 0
    commands: List[StageCommand] = Field(default_factory=list)
    agent_image: Optional[str] = None
    timeout: Optional[TimeoutSpec] = None
    retry: Optional[int] = None
    when: List[WhenCondition] = Field(default_factory=list)
    manual_input: bool = False
    stashes: List[str] = Field(default_factory=list)
    stash_paths: List[str] = Field(default_factory=list)
    unstashes: List[str] = Field(default_factory=list)
    junit_reports: List[str] = Field(default_factory=list)
    archived_artifacts: List[str] = Field(default_factory=list)
    has_script_logic: bool = False


class ConditionalBlock(BaseModel):
    kind: str
    line_number: int
    stage: Optional[str] = None


class ErrorHandling(BaseModel):
    has_try_catch: bool = False
    has_finally: bool = False
    has_post: bool = False

    @property
    def coverage(self) -> float:
        hits = sum([self.has_try_catch, self.has_finally, self.has_post])
        return round(hits / 3, 2)


class PipelineStructure(BaseModel):
    stages: List[StageNode] = Field(default_factory=list)
    style: PipelineStyle = PipelineStyle.UNKNOWN
    parallelism_level: int = 0
    potential_parallelism: int = 1
    conditional_blocks: List[ConditionalBlock] = Field(default_factory=list)
    error_handling: ErrorHandling = Field(default_factory=ErrorHandling)
    step_count: int = 0
    dependency_edge_count: int = 0
    credential_usage_count: int = 0
    integrations: List[str] = Field(default_factory=list)
    unresolved_artifacts: List[str] = Field(default_factory=list)

    # Pipeline-level directives carried for generation
    agent_image: Optional[str] = None
    pipeline_timeout: Optional[TimeoutSpec] = None
    pipeline_retry: Optional[int] = None
    matrices: List[Matrix] = Field(default_factory=list)
    parallel_blocks: List[ParallelBlock] = Field(default_factory=list)
    credentials: List[CredentialBinding] = Field(default_factory=list)
    post_actions: List[PostAction] = Field(default_factory=list)
    triggers: List[Trigger] = Field(default_factory=list)
    build_discarder: Optional[BuildDiscarder] = None
    shared_libraries: List[SharedLibrary] = Field(default_factory=list)

    @property
    def conditional_count(self) -> int:
        return len(self.conditional_blocks)

    def get_stage(self, name: str) -> Optional[StageNode]:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None


class ComplexityScore(BaseModel):
    raw: float
    tier: Tier
    factor_breakdown: Dict[str, float] = Field(default_factory=dict)
    estimated_hours: float = 0.0
    confidence: float = 1.0
    risk_multiplier: float = 1.0
    risk_adjusted_hours: float = 0.0


# ============================================================================
# Target document
# ============================================================================

class TargetVariable(BaseModel):
    name: str
    value: str = ""
    comments: List[str] = Field(default_factory=list)


class CredentialVariableSpec(BaseModel):
    """GitLab CI/CD variable that stands in for (part of) a Jenkins credential."""
    key: str
    credentials_id: str
    kind: str
    variable_type: VariableType = VariableType.ENV_VAR
    masked: bool = True
    protected: bool = True
    environment_scope: str = "*"
    description: str = ""
    # set by Jenkins implicitly (NAME_USR / NAME_PSW); only emitted when referenced
    derived: bool = False
    snippet: str = ""

    @property
    def is_file(self) -> bool:
        return self.variable_type == VariableType.FILE


class Rule(BaseModel):
    condition: Optional[str] = None
    when: Optional[str] = None


class JobArtifacts(BaseModel):
    paths: List[str] = Field(default_factory=list)
    junit: List[str] = Field(default_factory=list)
    expire_in: Optional[str] = None
    when: Optional[str] = None


class TargetJob(BaseModel):
    name: str
    stage: str
    image: Optional[str] = None
    services: List[str] = Field(default_factory=list)
    variables: Dict[str, str] = Field(default_factory=dict)
    before_script: List[str] = Field(default_factory=list)
    script: List[str] = Field(default_factory=list)
    needs: List[str] = Field(default_factory=list)
    rules: List[Rule] = Field(default_factory=list)
    when: Optional[str] = None
    timeout: Optional[str] = None
    retry: Optional[int] = None
    allow_failure: bool = False
    environment: Optional[str] = None
    artifacts: Optional[JobArtifacts] = None
    parallel_matrix: List[Dict[str, List[str]]] = Field(default_factory=list)
    comments: List[str] = Field(default_factory=list)
    source_stage: Optional[str] = None


class DefaultSection(BaseModel):
    image: Optional[str] = None
    services: List[str] = Field(default_factory=list)
    timeout: Optional[str] = None
    retry: Optional[int] = None
    cache_paths: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.image or self.services or self.timeout or self.retry or self.cache_paths)


class TargetDocument(BaseModel):
    """Ordered .gitlab-ci.yml tree produced by the generator."""
    header_comments: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    workflow_rules: List[Rule] = Field(default_factory=list)
    variables: List[TargetVariable] = Field(default_factory=list)
    default: DefaultSection = Field(default_factory=DefaultSection)
    stages: List[str] = Field(default_factory=list)
    jobs: List[TargetJob] = Field(default_factory=list)
    footer_notes: List[str] = Field(default_factory=list)
    credential_variables: List[CredentialVariableSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _jobs_use_declared_stages(self):
        for job in self.jobs:
            if job.stage not in self.stages:
                raise ValueError(f"Job {job.name} uses undeclared stage {job.stage}")
        return self

    def variable_names(self) -> List[str]:
        return [v.name for v in self.variables]

    def get_job(self, name: str) -> Optional[TargetJob]:
        for job in self.jobs:
            if job.name == name:
                return job
        return None


class GenerationOptions(BaseModel):
    """Knobs for the generator; everything optional."""
    score: Optional[ComplexityScore] = None
    generated_at: Optional[datetime] = None
    source_name: Optional[str] = None
    include_review_markers: bool = True
    git_depth: Optional[str] = None
    project_id: Optional[str] = None
