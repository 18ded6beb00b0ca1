"""
Pipeline Conversion Constants

Signature tables, keyword lists, images and variable maps shared by the
extractor, analyzer, classifier and generator.
"""

# ============================================================================
# Plugin usage signatures
# ============================================================================

# Ordered (pattern, identifier, context label, confidence). Applied to the
# whole Jenkinsfile; every match becomes one PluginUsage.
PLUGIN_SIGNATURES = [
    (r"\bwithMaven\s*\(", "pipeline-maven", "Maven build wrapper", 0.95),
    (r"\btools\s*\{[^}]*\bmaven\s+['\"]", "pipeline-maven", "Maven tool installation", 0.95),
    (r"\bmvnw?\s+(?:-\S+\s+)*(?:clean|compile|package|install|verify|test|deploy)\b", "pipeline-maven", "Maven invocation", 0.9),
    (r"(?:\./gradlew|\bgradle)\s+(?:-\S+\s+)*\w", "gradle", "Gradle invocation", 0.9),
    (r"\bwithAnt\s*\(|\bant\s+-f\b", "ant", "Ant build", 0.9),
    (r"\bnodejs\s*\(", "nodejs", "NodeJS tool wrapper", 0.95),
    (r"\bnpm\s+(?:ci|install|run|test)\b|\byarn\s+(?:install|build|test)\b", "nodejs", "npm invocation", 0.9),
    (r"\bpip3?\s+install\b|\bpython3?\s+-m\s+\w", "python", "Python tooling", 0.9),
    (r"\bcheckout\s+scm\b|\bcheckout\s*\(\s*scm\s*\)", "git", "SCM checkout", 0.95),
    (r"\bgit\s*\(?\s*(?:url|branch|credentialsId)\s*:", "git", "Git checkout step", 0.95),
    (r"\bsvn\s*\(?\s*url\s*:|\bSubversionSCM\b", "subversion", "Subversion checkout", 0.95),
    (r"\bwithCredentials\s*\(", "credentials-binding", "Credential binding", 0.95),
    (r"=\s*credentials\s*\(\s*['\"]", "credentials-binding", "Environment credential", 0.9),
    (r"\bdocker\.(?:build|image|withRegistry|withServer)\b", "docker-workflow", "Docker pipeline step", 0.95),
    (r"\bdocker\s+build\b", "docker-workflow", "Docker CLI build", 0.9),
    (r"\bkubernetesDeploy\s*\(", "kubernetes-cd", "Kubernetes deployment", 0.95),
    (r"\bhelm\s+(?:upgrade|install)\b", "helm", "Helm release", 0.9),
    (r"\bansiblePlaybook\s*\(", "ansible", "Ansible playbook", 0.95),
    (r"\bterraform\s+(?:init|plan|apply)\b", "terraform", "Terraform command", 0.9),
    (r"\bjunit\s*(?:\(|['\"])", "junit", "JUnit report publication", 0.95),
    (r"\bjacoco\s*\(", "jacoco", "JaCoCo coverage", 0.95),
    (r"\bpublishHTML\s*\(", "htmlpublisher", "HTML report publication", 0.95),
    (r"\barchiveArtifacts\b", "archive-artifacts", "Artifact archiving", 0.95),
    (r"\bwithSonarQubeEnv\s*\(", "sonar", "SonarQube environment", 0.95),
    (r"\bwaitForQualityGate\b|sonar-scanner|sonar:sonar", "sonar", "SonarQube analysis", 0.9),
    (r"\bdependencyCheck\w*\s*\(", "dependency-check", "OWASP dependency check", 0.9),
    (r"\brecordIssues\s*\(", "warnings-ng", "Static analysis issues", 0.95),
    (r"\bcobertura\s*\(", "cobertura", "Cobertura coverage", 0.95),
    (r"\bfindbugs\s*\(", "findbugs", "FindBugs report", 0.95),
    (r"\bslackSend\s*\(", "slack", "Slack notification", 0.95),
    (r"\bemailext\s*\(|\bmail\s*\(\s*to\s*:", "email-ext", "Email notification", 0.95),
    (r"\bhipchatSend\s*\(", "hipchat", "HipChat notification", 0.95),
    (r"\bsshagent\s*\(", "ssh-agent", "SSH agent", 0.95),
    (r"\bwithVault\s*\(", "hashicorp-vault", "Vault secrets", 0.95),
    (r"\bwithAWSParameterStore\s*\(", "aws-parameter-store", "AWS parameter store", 0.9),
    (r"\bs3Upload\s*\(", "s3-publisher", "S3 upload", 0.9),
    (r"\block\s*\(\s*(?:resource\s*:|['\"])", "lockable-resources", "Resource lock", 0.9),
    (r"\btimeout\s*\(\s*(?:time\s*:|\d)", "build-timeout", "Time budget", 0.9),
    (r"\bcleanWs\s*\(", "ws-cleanup", "Workspace cleanup", 0.95),
    (r"\bbuildDiscarder\s*\(", "build-discarder", "Build retention", 0.95),
    (r"\bbuild\s*\(?\s*job\s*:", "pipeline-build-step", "Downstream job trigger", 0.95),
    (r"\binput\s*\(?\s*(?:message|id)\s*:|\binput\s+['\"]", "pipeline-input-step", "Manual approval", 0.9),
    (r"\b(?:cron|pollSCM)\s*\(\s*['\"]", "timer-trigger", "Scheduled trigger", 0.9),
]

# Secondary keyword scan, used only when no signature matched at all.
FALLBACK_KEYWORDS = [
    (r"credential", "credentials-binding", "Credential binding keyword", 0.6),
    (r"docker", "docker-workflow", "Container build keyword", 0.65),
    (r"slack", "slack", "Chat notification keyword", 0.55),
    (r"junit|test[\s_-]?results?", "junit", "Test result keyword", 0.7),
]

CONTEXT_MAX_LENGTH = 100

# ============================================================================
# Classification
# ============================================================================

# Constructs central to pipeline execution; unsupported means blocked.
CRITICAL_IDENTIFIERS = frozenset({
    "pipeline-stage-step",
    "workflow-aggregator",
    "pipeline-build-step",
    "credentials-binding",
    "git",
    "subversion",
})

# Coarse-category defaults for identifiers missing from the knowledge base.
# Checked in order; the first category whose keyword pattern matches wins.
RULE_TABLE = [
    {
        "category": "credentials",
        "pattern": r"credential|secret|vault|parameter-?store|password|ssh",
        "status": "partial",
        "confidence": 0.65,
        "target_equivalent": "Masked and protected CI/CD variables",
        "workaround_available": True,
        "notes": ["Move secrets into project or group CI/CD variables"],
    },
    {
        "category": "container",
        "pattern": r"docker|container|podman|kaniko|buildah",
        "status": "compatible",
        "confidence": 0.7,
        "target_equivalent": "Docker executor with docker:dind service",
        "workaround_available": True,
        "notes": ["Container steps run as plain docker CLI commands"],
    },
    {
        "category": "notification",
        "pattern": r"slack|mail|teams|notif|chat|hipchat|mattermost|webhook",
        "status": "partial",
        "confidence": 0.6,
        "target_equivalent": "Project integrations or webhook call in after_script",
        "workaround_available": True,
        "notes": ["Configure the matching GitLab integration or call the webhook with curl"],
    },
    {
        "category": "scm",
        "pattern": r"git|svn|scm|subversion|mercurial|bitbucket",
        "status": "compatible",
        "confidence": 0.7,
        "target_equivalent": "Built-in repository checkout",
        "workaround_available": True,
        "notes": ["Runners clone the project repository automatically"],
    },
    {
        "category": "build_test",
        "pattern": r"maven|gradle|ant|npm|node|python|test|junit|build|make|coverage|report",
        "status": "partial",
        "confidence": 0.6,
        "target_equivalent": "Job script commands",
        "workaround_available": True,
        "notes": ["Invoke the tool directly from the job script"],
    },
]

UNKNOWN_CONFIDENCE = 0.2

# Confidence banding: (lower bound, status, support level)
CONFIDENCE_BANDS = [
    (0.9, "compatible", "active"),
    (0.7, "compatible", "maintenance"),
    (0.5, "partial", "deprecated"),
    (0.0, "unsupported", "abandoned"),
]

# ============================================================================
# Structure analysis
# ============================================================================

# Stage kind by stage name, checked in order.
STAGE_NAME_KEYWORDS = [
    ("build", ["build", "compile", "package", "assemble"]),
    ("test", ["test", "spec", "unit", "integration", "e2e", "verify"]),
    ("deploy", ["deploy", "release", "publish", "promote", "rollout", "ship"]),
    ("quality", ["quality", "sonar", "lint", "analysis", "scan", "security", "sast", "coverage"]),
    ("notification", ["notify", "notification", "slack", "email", "announce"]),
]

# Stage kind by body content when the name is inconclusive.
STAGE_BODY_KEYWORDS = [
    ("build", r"\bmvnw?\b|gradlew?\b|\bnpm\s+(?:ci|install|run\s+build)|\bmake\b|docker\s+build|docker\.build|\bgo\s+build|\bpip3?\s+install|withMaven|\bant\b|dotnet\s+build|cargo\s+build"),
    ("test", r"\btest\b|junit|pytest|jest|mocha|go\s+test"),
    ("deploy", r"kubectl|\bhelm\s|kubernetesDeploy|ansiblePlaybook|terraform\s+apply|\bscp\b|rsync|deploy"),
    ("quality", r"sonar|checkstyle|\bpmd\b|spotbugs|eslint|pylint|flake8|recordIssues|dependencyCheck"),
    ("notification", r"slackSend|emailext|\bmail\s*\(|hipchatSend|office365ConnectorSend"),
]

# Body content that mutates shared external state; such stages never run in parallel.
SHARED_RESOURCE_PATTERN = (
    r"git\s+push|deploy|database|\bdb\b|kubectl\s+apply|helm\s+(?:upgrade|install)"
    r"|terraform\s+apply|flyway|liquibase"
)

# Complexity weights and class thresholds
STAGE_LINE_WEIGHT = 1
STAGE_COMMAND_WEIGHT = 2
STAGE_CONDITIONAL_WEIGHT = 3
STAGE_SIMPLE_MAX = 10
STAGE_MODERATE_MAX = 25

# Recognisable third-party systems
INTEGRATION_SIGNATURES = [
    ("container-registry", r"docker\.withRegistry|docker\s+(?:push|login)|\.dkr\.ecr\.|gcr\.io|nexus|artifactory|harbor"),
    ("orchestration", r"kubectl|\bhelm\s|kubernetesDeploy|openshift|\bnomad\b"),
    ("cloud", r"\baws\s|withAWS|s3Upload|\bgcloud\s|\baz\s|azure"),
    ("code-quality", r"sonar|checkmarx|fortify|codeclimate"),
    ("chat", r"slackSend|hipchatSend|office365ConnectorSend|mattermostSend"),
]

# Migration risk multiplier by pipeline style
STYLE_RISK_MULTIPLIERS = {
    "declarative": 1.0,
    "mixed": 1.25,
    "scripted": 1.5,
    "unknown": 1.0,
}

# ============================================================================
# Generation
# ============================================================================

# Generation rules in priority order: compiled build tools, interpreted
# build tools, container tooling, quality tooling.
PLUGIN_GENERATION_RULES = [
    {
        "identifier": "pipeline-maven",
        "image": "maven:3.9-eclipse-temurin-17",
        "variables": {"MAVEN_OPTS": "-Dmaven.repo.local=$CI_PROJECT_DIR/.m2/repository"},
        "cache_paths": [".m2/repository"],
        "build_script": ["mvn -B clean package -DskipTests"],
        "test_script": ["mvn -B test"],
        "test_reports": ["target/surefire-reports/TEST-*.xml"],
    },
    {
        "identifier": "gradle",
        "image": "gradle:8.7-jdk17-alpine",
        "variables": {"GRADLE_USER_HOME": "$CI_PROJECT_DIR/.gradle"},
        "cache_paths": [".gradle"],
        "build_script": ["gradle build -x test"],
        "test_script": ["gradle test"],
        "test_reports": ["build/test-results/test/TEST-*.xml"],
    },
    {
        "identifier": "nodejs",
        "image": "node:20-alpine",
        "variables": {"NPM_CONFIG_CACHE": "$CI_PROJECT_DIR/.npm"},
        "cache_paths": [".npm"],
        "build_script": ["npm ci", "npm run build --if-present"],
        "test_script": ["npm test"],
        "test_reports": [],
    },
    {
        "identifier": "python",
        "image": "python:3.11-slim",
        "variables": {"PIP_CACHE_DIR": "$CI_PROJECT_DIR/.cache/pip"},
        "cache_paths": [".cache/pip"],
        "build_script": ["pip install -r requirements.txt"],
        "test_script": ["pytest"],
        "test_reports": [],
    },
    {
        "identifier": "docker-workflow",
        "image": "docker:24",
        "services": ["docker:24-dind"],
        "variables": {
            "DOCKER_HOST": "tcp://docker:2376",
            "DOCKER_TLS_CERTDIR": "/certs",
            "DOCKER_DRIVER": "overlay2",
        },
    },
    {
        "identifier": "sonar",
        "variables": {"SONAR_HOST_URL": "", "SONAR_TOKEN": ""},
        "masked": ["SONAR_TOKEN"],
    },
]

BUILD_TOOL_IDENTIFIERS = ("pipeline-maven", "gradle", "nodejs", "python")
CONTAINER_IDENTIFIERS = ("docker-workflow",)
QUALITY_IDENTIFIERS = ("sonar", "warnings-ng", "dependency-check", "jacoco", "cobertura", "findbugs")

DEFAULT_IMAGE = "alpine:3.19"
DOCKER_IMAGE = "docker:24"
DOCKER_SERVICE = "docker:24-dind"
SONAR_SCANNER_IMAGE = "sonarsource/sonar-scanner-cli:latest"
DEPLOY_IMAGE = "alpine/k8s:1.29.2"

# Ordered target stages
BOOTSTRAP_STAGE = "prepare"
TARGET_STAGE_ORDER = ["prepare", "build", "test", "quality", "package", "deploy", "cleanup"]

# Source stage kind -> target stage
KIND_TO_TARGET_STAGE = {
    "build": "build",
    "test": "test",
    "quality": "quality",
    "deploy": "deploy",
    "custom": "build",
}

GIT_DEPTH = "50"
GIT_STRATEGY = "clone"
MAX_RETRY = 2

# Jenkins environment variables with a GitLab predefined counterpart
JENKINS_TO_GITLAB_VARIABLES = {
    "BUILD_NUMBER": "CI_PIPELINE_IID",
    "BUILD_ID": "CI_PIPELINE_ID",
    "BUILD_URL": "CI_PIPELINE_URL",
    "BUILD_TAG": "CI_JOB_ID",
    "JOB_NAME": "CI_PROJECT_NAME",
    "JOB_BASE_NAME": "CI_JOB_NAME",
    "BRANCH_NAME": "CI_COMMIT_REF_NAME",
    "GIT_BRANCH": "CI_COMMIT_REF_NAME",
    "GIT_COMMIT": "CI_COMMIT_SHA",
    "GIT_URL": "CI_REPOSITORY_URL",
    "WORKSPACE": "CI_PROJECT_DIR",
    "CHANGE_ID": "CI_MERGE_REQUEST_IID",
    "CHANGE_TARGET": "CI_MERGE_REQUEST_TARGET_BRANCH_NAME",
    "TAG_NAME": "CI_COMMIT_TAG",
    "NODE_NAME": "CI_RUNNER_DESCRIPTION",
    "JENKINS_URL": "CI_SERVER_URL",
}

# Post condition -> GitLab job `when`
POST_CONDITION_WHEN = {
    "success": "on_success",
    "failure": "on_failure",
    "unstable": "on_failure",
    "regression": "on_failure",
    "always": "always",
    "changed": "always",
    "fixed": "always",
    "aborted": "always",
    "cleanup": "always",
}

# ============================================================================
# Validation
# ============================================================================

RESERVED_TOP_LEVEL_KEYS = {
    "stages", "variables", "include", "default", "workflow", "image",
    "services", "before_script", "after_script", "cache",
}

BUILTIN_VARIABLE_PREFIXES = ("CI_", "GITLAB_", "RUNNER_", "CHAT_")
BUILTIN_VARIABLE_NAMES = frozenset({
    "TRIGGER_PAYLOAD", "HOME", "PATH", "PWD", "USER", "SHELL", "HOSTNAME",
})
