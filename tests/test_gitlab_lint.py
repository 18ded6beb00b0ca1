"""Tests for the GitLab CI Lint API client."""
import asyncio
import json

import httpx

from jenkins2gitlab.integrations.gitlab_lint import GitLabLintClient

CONTENT = "stages: [build]\nbuild:\n  stage: build\n  script: [make]\n"


def lint(handler, content=CONTENT, project_path=None):
    client = GitLabLintClient(
        gitlab_url="https://gitlab.example.com/",
        gitlab_token="glpat-test",
        transport=httpx.MockTransport(handler),
    )
    return asyncio.run(client.lint(content, project_path))


class TestLint:
    def test_valid(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["token"] = request.headers["PRIVATE-TOKEN"]
            seen["content"] = json.loads(request.content)["content"]
            return httpx.Response(200, json={"valid": True, "errors": [], "warnings": ["deprecated key"]})

        report = lint(handler)
        assert report.valid
        assert report.warnings == ["deprecated key"]
        assert seen == {
            "url": "https://gitlab.example.com/api/v4/ci/lint",
            "token": "glpat-test",
            "content": CONTENT,
        }

    def test_invalid(self):
        report = lint(lambda request: httpx.Response(200, json={
            "status": "invalid", "errors": ["jobs:build config contains unknown keys: scrpt"],
        }))
        assert not report.valid
        assert report.errors == ["GitLab Lint: jobs:build config contains unknown keys: scrpt"]

    def test_project_lint_falls_back_to_global(self):
        urls = []

        def handler(request):
            urls.append(request.url.path)
            if "/projects/" in request.url.path:
                return httpx.Response(404)
            return httpx.Response(200, json={"status": "valid"})

        report = lint(handler, project_path="group/app")
        assert report.valid
        assert len(urls) == 2
        assert urls[0].startswith("/api/v4/projects/group")
        assert urls[1] == "/api/v4/ci/lint"

    def test_project_lint_success(self):
        report = lint(lambda request: httpx.Response(200, json={"valid": True}), project_path="group/app")
        assert report.valid

    def test_authentication_failure_is_a_warning(self):
        report = lint(lambda request: httpx.Response(401))
        assert report.valid
        assert report.warnings == ["GitLab Lint: Authentication failed - skipping server validation"]

    def test_server_error(self):
        report = lint(lambda request: httpx.Response(500))
        assert not report.valid
        assert report.errors == ["GitLab Lint: GitLab server error. Please try again later."]

    def test_rate_limited(self):
        report = lint(lambda request: httpx.Response(429))
        assert report.errors == ["GitLab Lint: Rate limit exceeded. Please try again later."]

    def test_timeout_is_a_warning(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        report = lint(handler)
        assert report.valid
        assert report.warnings == ["GitLab Lint: Request timed out"]

    def test_empty_content(self):
        report = lint(lambda request: httpx.Response(200, json={"valid": True}), content="  ")
        assert not report.valid
        assert report.errors == ["YAML content is empty"]


class TestConnection:
    def test_check_connection(self):
        client = GitLabLintClient(
            gitlab_url="https://gitlab.example.com",
            gitlab_token="t",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"version": "17.0"})),
        )
        assert asyncio.run(client.check_connection()) is True

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = GitLabLintClient(gitlab_url="https://gitlab.example.com", gitlab_token="t",
                                  transport=httpx.MockTransport(handler))
        assert asyncio.run(client.check_connection()) is False
