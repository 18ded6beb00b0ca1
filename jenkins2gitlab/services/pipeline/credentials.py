"""
Jenkins credential mapping: each credential binding becomes the GitLab
CI/CD variables that replace it.

Every spec carries the variable type (file or env_var), masking and
protection, plus a curl snippet that creates it through the project
variables API. Secrets themselves never leave Jenkins; values are
placeholders.
"""
import logging
import re
from typing import Dict, List, Optional

from jenkins2gitlab.models.schemas import CredentialBinding, CredentialVariableSpec, VariableType

logger = logging.getLogger(__name__)

API_URL = "${CI_API_V4_URL:-https://gitlab.com/api/v4}"
VALUE_PLACEHOLDER = "CHANGE_ME"
FILE_PLACEHOLDER = "<./path/to/file"

FILE_KINDS = ("secret_file", "certificate")
FILE_ROLES = ("keyFileVariable", "keystoreVariable")
PLAIN_ROLES = ("usernameVariable", "aliasVariable")

# credentials('id') in an environment block; the kind is only visible in Jenkins
_FILE_ID = re.compile(r"file|cert|pem|p12|pfx|jks|keystore|kubeconfig|ssh|rsa|private.?key", re.IGNORECASE)
_PAIR_ID = re.compile(r"cred|user|login|account|pass|pwd|registry|docker|harbor|nexus|artifactory",
                      re.IGNORECASE)


def sanitize_variable_name(credentials_id: str) -> str:
    """Credential id as a valid GitLab variable key."""
    name = re.sub(r"[^A-Z0-9_]", "_", credentials_id.upper())
    name = re.sub(r"_+", "_", name).strip("_")
    if not name:
        return "CREDENTIAL"
    if name[0].isdigit():
        name = f"VAR_{name}"
    if name.startswith("CI_"):
        name = f"APP_{name}"
    return name


def map_credentials(
    bindings: List[CredentialBinding],
    project_id: Optional[str] = None,
    environment_scope: str = "*",
) -> List[CredentialVariableSpec]:
    """Variable specs for all bindings, first binding wins on a repeated key."""
    specs: Dict[str, CredentialVariableSpec] = {}
    for binding in bindings:
        for spec in _binding_specs(binding):
            if spec.key in specs:
                continue
            spec.environment_scope = environment_scope
            spec.snippet = creation_snippet(spec, project_id)
            specs[spec.key] = spec
    logger.debug(f"Mapped {len(bindings)} credential bindings to {len(specs)} variables")
    return list(specs.values())


def creation_snippet(spec: CredentialVariableSpec, project_id: Optional[str] = None) -> str:
    """curl call creating the variable through the project variables API."""
    project = project_id or "${CI_PROJECT_ID}"
    value = FILE_PLACEHOLDER if spec.is_file else VALUE_PLACEHOLDER
    fields = [
        f"key={spec.key}",
        f"value={value}",
        f"variable_type={spec.variable_type.value}",
        f"masked={str(spec.masked).lower()}",
        f"protected={str(spec.protected).lower()}",
        f"environment_scope={spec.environment_scope}",
    ]
    lines = [
        'curl --request POST --header "PRIVATE-TOKEN: ${GITLAB_TOKEN}" \\',
        *[f'  --form "{item}" \\' for item in fields],
        f'  "{API_URL}/projects/{project}/variables"',
    ]
    return "\n".join(lines)


def creation_script(specs: List[CredentialVariableSpec]) -> str:
    """Shell script creating every variable; run it with GITLAB_TOKEN and CI_PROJECT_ID set."""
    lines = ["#!/usr/bin/env bash", "set -euo pipefail", ""]
    for spec in specs:
        lines.append(f"# {spec.description}")
        lines.append(spec.snippet)
        lines.append("")
    return "\n".join(lines)


def _binding_specs(binding: CredentialBinding) -> List[CredentialVariableSpec]:
    source = f"Jenkins credential '{binding.credentials_id}' ({binding.kind})"
    if binding.kind == "environment":
        return _environment_specs(binding, source)

    names = binding.variables or [sanitize_variable_name(binding.credentials_id)]
    specs = []
    for name in names:
        role = binding.roles.get(name, "variable")
        if role in FILE_ROLES or (binding.kind in FILE_KINDS and role == "variable"):
            specs.append(_spec(binding, name, f"{source} file", VariableType.FILE, masked=False))
        elif role in PLAIN_ROLES:
            specs.append(_spec(binding, name, f"{source} username", masked=False))
        else:
            specs.append(_spec(binding, name, f"{source} secret"))
    return specs


def _environment_specs(binding: CredentialBinding, source: str) -> List[CredentialVariableSpec]:
    name = binding.variables[0] if binding.variables else sanitize_variable_name(binding.credentials_id)
    if _FILE_ID.search(binding.credentials_id):
        return [_spec(binding, name, f"{source} file path", VariableType.FILE, masked=False)]
    if _PAIR_ID.search(binding.credentials_id):
        return [
            _spec(binding, name, f"{source} as user:password"),
            _spec(binding, f"{name}_USR", f"{source} username", masked=False, derived=True),
            _spec(binding, f"{name}_PSW", f"{source} password", derived=True),
        ]
    return [_spec(binding, name, f"{source} secret")]


def _spec(binding, key, description, variable_type=VariableType.ENV_VAR, masked=True, derived=False):
    return CredentialVariableSpec(
        key=key,
        credentials_id=binding.credentials_id,
        kind=binding.kind,
        variable_type=variable_type,
        masked=masked,
        protected=True,
        description=description,
        derived=derived,
    )
