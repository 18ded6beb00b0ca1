"""
GitLab CI Lint Client

Server-side validation of generated configuration:
1. Project-specific lint (if project_path provided): /api/v4/projects/:id/ci/lint
2. Global lint: /api/v4/ci/lint
"""
import logging
from typing import Optional

import httpx

from jenkins2gitlab.config import settings
from jenkins2gitlab.services.pipeline.validator import ValidationReport

logger = logging.getLogger(__name__)


class GitLabLintClient:
    """Validates .gitlab-ci.yml content with the GitLab CI Lint API."""

    def __init__(
        self,
        gitlab_url: Optional[str] = None,
        gitlab_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.gitlab_url = (gitlab_url or settings.gitlab_url).rstrip("/")
        self.gitlab_token = gitlab_token or settings.gitlab_token
        self.timeout = timeout
        self.transport = transport

    async def lint(self, content: str, project_path: Optional[str] = None) -> ValidationReport:
        errors = []
        warnings = []

        if not content or not content.strip():
            return ValidationReport(valid=False, errors=["YAML content is empty"], warnings=[])

        headers = {"PRIVATE-TOKEN": self.gitlab_token} if self.gitlab_token else {}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            if project_path:
                encoded_path = project_path.replace("/", "%2F")
                lint_url = f"{self.gitlab_url}/api/v4/projects/{encoded_path}/ci/lint"
                try:
                    response = await client.post(lint_url, headers=headers, json={"content": content})
                    if response.status_code == 200:
                        return self._report(response.json())
                    logger.warning(f"[GitLab Lint] Project lint returned {response.status_code}, trying global lint")
                except httpx.HTTPError as e:
                    logger.warning(f"[GitLab Lint] Project lint failed: {e}, trying global lint")

            lint_url = f"{self.gitlab_url}/api/v4/ci/lint"
            try:
                response = await client.post(lint_url, headers=headers, json={"content": content})

                if response.status_code == 200:
                    return self._report(response.json())
                elif response.status_code == 401:
                    warnings.append("GitLab Lint: Authentication failed - skipping server validation")
                elif response.status_code == 429:
                    errors.append("GitLab Lint: Rate limit exceeded. Please try again later.")
                elif response.status_code >= 500:
                    errors.append("GitLab Lint: GitLab server error. Please try again later.")
                else:
                    warnings.append(f"GitLab Lint: API returned status {response.status_code}")

            except httpx.TimeoutException:
                warnings.append("GitLab Lint: Request timed out")
            except httpx.HTTPError as e:
                warnings.append(f"GitLab Lint: {str(e)}")

        return ValidationReport(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings
        )

    async def check_connection(self) -> bool:
        """True when the GitLab instance answers /api/v4/version."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(f"{self.gitlab_url}/api/v4/version")
                return response.status_code == 200
            except httpx.HTTPError as e:
                logger.debug(f"[GitLab Lint] Connection check failed: {e}")
                return False

    @staticmethod
    def _report(result: dict) -> ValidationReport:
        valid = result.get("valid") is True or result.get("status") == "valid"
        errors = [f"GitLab Lint: {err}" for err in result.get("errors", [])] if not valid else []
        if valid:
            logger.info("[GitLab Lint] Pipeline valid")
        return ValidationReport(
            valid=valid,
            errors=errors,
            warnings=list(result.get("warnings", []))
        )
