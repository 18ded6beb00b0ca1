"""
Plugin Knowledge Base

Immutable lookup table mapping Jenkins plugin identifiers to their GitLab CI
equivalents. The built-in table can be replaced by a YAML or JSON file
(`knowledge_base_path` setting); a file that fails to load is fatal.
"""
import logging
from types import MappingProxyType
from typing import Dict, Any, Iterable, List, Optional

import yaml
from pydantic import ValidationError

from jenkins2gitlab.models.schemas import KnowledgeEntry

logger = logging.getLogger(__name__)

KNOWLEDGE_BASE_VERSION = "2024.1"


class KnowledgeBaseError(RuntimeError):
    """Raised when the plugin knowledge base cannot be loaded."""


DEFAULT_PLUGIN_ENTRIES: List[Dict[str, Any]] = [
    # --- Build tools ---
    {
        "identifier": "pipeline-maven",
        "target_equivalent": "maven image with cached .m2 repository",
        "confidence": 0.98,
        "mapping_kind": "direct",
        "migration_notes": ["Replace withMaven with plain mvn commands in a maven image",
                            "Cache .m2/repository through MAVEN_OPTS"],
        "criticality": "high",
        "documentation_url": "https://docs.gitlab.com/ee/ci/examples/",
    },
    {
        "identifier": "gradle",
        "target_equivalent": "gradle image with GRADLE_USER_HOME cache",
        "confidence": 0.97,
        "mapping_kind": "direct",
        "migration_notes": ["Run ./gradlew directly in the job script"],
        "criticality": "high",
    },
    {
        "identifier": "nodejs",
        "target_equivalent": "node image",
        "confidence": 0.95,
        "mapping_kind": "direct",
        "migration_notes": ["Use a node image instead of the nodejs tool installer"],
    },
    {
        "identifier": "python",
        "target_equivalent": "python image",
        "confidence": 0.9,
        "mapping_kind": "direct",
        "migration_notes": ["Use a python image and pip cache"],
    },
    {
        "identifier": "ant",
        "target_equivalent": "custom image with Apache Ant",
        "confidence": 0.60,
        "mapping_kind": "manual",
        "migration_notes": ["No maintained official Ant image; build or pick one"],
        "review_comment": "Consider migrating the build to Maven or Gradle",
        "workaround_required": True,
    },
    # --- Source control ---
    {
        "identifier": "git",
        "target_equivalent": "built-in repository checkout",
        "confidence": 0.95,
        "mapping_kind": "direct",
        "migration_notes": ["Runners clone the repository; remove checkout steps",
                            "Tune GIT_DEPTH and GIT_STRATEGY if history is needed"],
        "criticality": "critical",
    },
    {
        "identifier": "subversion",
        "target_equivalent": "none (import repository into Git first)",
        "confidence": 0.4,
        "mapping_kind": "manual",
        "migration_notes": ["GitLab CI only builds Git repositories",
                            "Migrate the repository with git-svn before converting"],
        "criticality": "critical",
        "workaround_required": True,
    },
    # --- Credentials ---
    {
        "identifier": "credentials-binding",
        "target_equivalent": "masked and protected CI/CD variables",
        "confidence": 0.82,
        "mapping_kind": "workflow-change",
        "migration_notes": ["Recreate each credential as a masked CI/CD variable",
                            "File credentials become variables of type File"],
        "review_comment": "Credential values are not migrated automatically",
        "criticality": "critical",
        "documentation_url": "https://docs.gitlab.com/ee/ci/variables/",
    },
    {
        "identifier": "ssh-agent",
        "target_equivalent": "ssh-agent in before_script with SSH_PRIVATE_KEY variable",
        "confidence": 0.8,
        "mapping_kind": "workflow-change",
        "migration_notes": ["Load the key with ssh-add from a masked variable"],
        "documentation_url": "https://docs.gitlab.com/ee/ci/ssh_keys/",
    },
    {
        "identifier": "hashicorp-vault",
        "target_equivalent": "secrets:vault keyword",
        "confidence": 0.85,
        "mapping_kind": "feature-equivalent",
        "migration_notes": ["Use the secrets keyword with ID tokens"],
        "criticality": "high",
        "documentation_url": "https://docs.gitlab.com/ee/ci/secrets/",
    },
    # --- Containers & deployment ---
    {
        "identifier": "docker-workflow",
        "target_equivalent": "docker image with docker:dind service",
        "confidence": 0.92,
        "mapping_kind": "feature-equivalent",
        "migration_notes": ["docker.build/push become docker CLI commands",
                            "Use the built-in container registry variables"],
        "documentation_url": "https://docs.gitlab.com/ee/ci/docker/using_docker_build.html",
    },
    {
        "identifier": "kubernetes-cd",
        "target_equivalent": "kubectl in job script or GitLab agent for Kubernetes",
        "confidence": 0.85,
        "mapping_kind": "workflow-change",
        "migration_notes": ["Replace kubernetesDeploy with kubectl apply",
                            "Provide the cluster through the GitLab agent or KUBECONFIG file variable"],
        "criticality": "high",
    },
    {
        "identifier": "helm",
        "target_equivalent": "helm CLI in job script",
        "confidence": 0.88,
        "mapping_kind": "direct",
        "migration_notes": ["Run helm upgrade --install from a helm image"],
    },
    {
        "identifier": "ansible",
        "target_equivalent": "ansible-playbook in job script",
        "confidence": 0.87,
        "mapping_kind": "direct",
        "migration_notes": ["Run ansible-playbook from an ansible image"],
    },
    {
        "identifier": "terraform",
        "target_equivalent": "Terraform CI/CD template and managed state",
        "confidence": 0.9,
        "mapping_kind": "direct",
        "migration_notes": ["Consider GitLab-managed Terraform state"],
    },
    # --- Testing & reports ---
    {
        "identifier": "junit",
        "target_equivalent": "artifacts:reports:junit",
        "confidence": 0.99,
        "mapping_kind": "direct",
        "migration_notes": ["Publish test results with artifacts:reports:junit"],
    },
    {
        "identifier": "jacoco",
        "target_equivalent": "coverage keyword and coverage_report artifact",
        "confidence": 0.8,
        "mapping_kind": "feature-equivalent",
        "migration_notes": ["Convert JaCoCo XML to Cobertura for MR coverage visualisation"],
    },
    {
        "identifier": "cobertura",
        "target_equivalent": "artifacts:reports:coverage_report",
        "confidence": 0.55,
        "mapping_kind": "feature-equivalent",
        "migration_notes": ["The Cobertura plugin is deprecated; publish coverage_report instead"],
    },
    {
        "identifier": "htmlpublisher",
        "target_equivalent": "artifacts with expose_as or GitLab Pages",
        "confidence": 0.75,
        "mapping_kind": "workflow-change",
        "migration_notes": ["Expose HTML reports as job artifacts"],
    },
    {
        "identifier": "archive-artifacts",
        "target_equivalent": "artifacts:paths",
        "confidence": 0.97,
        "mapping_kind": "direct",
        "migration_notes": ["Set artifacts:expire_in to match the retention policy"],
    },
    {
        "identifier": "warnings-ng",
        "target_equivalent": "Code Quality report artifact",
        "confidence": 0.72,
        "mapping_kind": "feature-equivalent",
        "migration_notes": ["Emit a codequality report from the linters"],
    },
    {
        "identifier": "findbugs",
        "target_equivalent": "SpotBugs SAST analyzer",
        "confidence": 0.35,
        "mapping_kind": "manual",
        "migration_notes": ["FindBugs is abandoned; enable the SAST template instead"],
        "workaround_required": True,
    },
    # --- Code quality ---
    {
        "identifier": "sonar",
        "target_equivalent": "sonar-scanner job with SONAR_HOST_URL and SONAR_TOKEN",
        "confidence": 0.93,
        "mapping_kind": "feature-equivalent",
        "migration_notes": ["Run sonar-scanner with variables instead of withSonarQubeEnv",
                            "Use sonar.qualitygate.wait=true in place of waitForQualityGate"],
        "documentation_url": "https://docs.sonarsource.com/sonarqube/latest/devops-platform-integration/gitlab-integration/",
    },
    {
        "identifier": "dependency-check",
        "target_equivalent": "Dependency Scanning template",
        "confidence": 0.8,
        "mapping_kind": "feature-equivalent",
        "migration_notes": ["Include Security/Dependency-Scanning.gitlab-ci.yml"],
    },
    # --- Notifications ---
    {
        "identifier": "slack",
        "target_equivalent": "Slack notifications integration or curl webhook",
        "confidence": 0.78,
        "mapping_kind": "workflow-change",
        "migration_notes": ["Enable the Slack integration for pipeline events",
                            "Custom messages need a curl call to an incoming webhook"],
    },
    {
        "identifier": "email-ext",
        "target_equivalent": "pipeline email notifications",
        "confidence": 0.65,
        "mapping_kind": "manual",
        "migration_notes": ["Custom email templates have no equivalent; use notification settings"],
        "workaround_required": True,
    },
    {
        "identifier": "hipchat",
        "target_equivalent": "none (service discontinued)",
        "confidence": 0.3,
        "mapping_kind": "manual",
        "migration_notes": ["HipChat is discontinued; choose another chat integration"],
        "criticality": "low",
        "workaround_required": True,
    },
    # --- Pipeline control ---
    {
        "identifier": "build-timeout",
        "target_equivalent": "timeout keyword",
        "confidence": 0.95,
        "mapping_kind": "direct",
        "migration_notes": ["Job and default timeouts are expressed in minutes"],
    },
    {
        "identifier": "ws-cleanup",
        "target_equivalent": "fresh workspace per job",
        "confidence": 0.95,
        "mapping_kind": "direct",
        "migration_notes": ["Runners start from a clean checkout; cleanWs can be dropped"],
        "criticality": "low",
    },
    {
        "identifier": "build-discarder",
        "target_equivalent": "artifacts:expire_in and pipeline retention settings",
        "confidence": 0.7,
        "mapping_kind": "workflow-change",
        "migration_notes": ["Configure artifact expiry instead of log rotation"],
        "criticality": "low",
    },
    {
        "identifier": "pipeline-build-step",
        "target_equivalent": "trigger keyword (downstream pipelines)",
        "confidence": 0.5,
        "mapping_kind": "workflow-change",
        "migration_notes": ["Downstream jobs become trigger jobs or multi-project pipelines"],
        "review_comment": "Parameters passed to downstream jobs need manual mapping",
        "criticality": "high",
        "workaround_required": True,
    },
    {
        "identifier": "pipeline-input-step",
        "target_equivalent": "when: manual",
        "confidence": 0.7,
        "mapping_kind": "workflow-change",
        "migration_notes": ["Approval input becomes a manual job; submitted values are lost"],
    },
    {
        "identifier": "timer-trigger",
        "target_equivalent": "pipeline schedules",
        "confidence": 0.9,
        "mapping_kind": "workflow-change",
        "migration_notes": ["Create a pipeline schedule with the same cron expression"],
    },
    {
        "identifier": "shared-library",
        "target_equivalent": "include: project templates",
        "confidence": 0.55,
        "mapping_kind": "manual",
        "migration_notes": ["Shared library steps must be rewritten as included job templates"],
        "review_comment": "Library code is not analysed",
        "criticality": "high",
        "workaround_required": True,
    },
]


class PluginKnowledgeBase:
    """
    Read-only plugin table.

    Entries are keyed by identifier; a key of the form `identifier@version`
    overrides the plain entry for that declared version.
    """

    def __init__(self, entries: Iterable[KnowledgeEntry], version: str = KNOWLEDGE_BASE_VERSION):
        table = {}
        for entry in entries:
            table[entry.identifier] = entry
        self._entries = MappingProxyType(table)
        self.version = version

    def lookup(self, identifier: str, version: Optional[str] = None) -> Optional[KnowledgeEntry]:
        if version:
            versioned = self._entries.get(f"{identifier}@{version}")
            if versioned is not None:
                return versioned
        return self._entries.get(identifier)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def identifiers(self) -> List[str]:
        return list(self._entries.keys())

    # --- Construction ---

    @classmethod
    def default(cls) -> "PluginKnowledgeBase":
        return cls.from_records(DEFAULT_PLUGIN_ENTRIES)

    @classmethod
    def from_records(cls, records, version: str = KNOWLEDGE_BASE_VERSION) -> "PluginKnowledgeBase":
        """Build from a list of dicts or an {identifier: fields} mapping."""
        if isinstance(records, dict):
            records = [{"identifier": key, **(value or {})} for key, value in records.items()]
        try:
            entries = [KnowledgeEntry(**record) for record in records]
        except (TypeError, ValidationError) as e:
            raise KnowledgeBaseError(f"Invalid knowledge base entry: {e}") from e
        return cls(entries, version=version)

    @classmethod
    def from_file(cls, path: str) -> "PluginKnowledgeBase":
        """Load a YAML or JSON knowledge base file.

        Expected shape: either a list of entries, or a mapping with
        optional `version` and a `plugins` list/mapping.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise KnowledgeBaseError(f"Cannot load knowledge base {path}: {e}") from e

        version = KNOWLEDGE_BASE_VERSION
        if isinstance(data, dict) and "plugins" in data:
            version = str(data.get("version", version))
            data = data["plugins"]
        if not isinstance(data, (list, dict)) or not data:
            raise KnowledgeBaseError(f"Knowledge base {path} contains no plugin entries")

        kb = cls.from_records(data, version=version)
        logger.info(f"Loaded {len(kb)} knowledge base entries from {path} (version {version})")
        return kb


def load_knowledge_base(path: Optional[str] = None) -> PluginKnowledgeBase:
    """Load from path when given, otherwise the built-in table."""
    if path:
        return PluginKnowledgeBase.from_file(path)
    return PluginKnowledgeBase.default()
