"""
LLM Enrichment Client

Asks an OpenAI-compatible chat completions endpoint how an unrecognised
Jenkins plugin maps to GitLab CI. Any transport error, non-2xx status or
reply that does not parse into an EnrichmentResponse raises; callers
treat every failure as "collaborator unavailable".
"""
import json
import logging
import re
from typing import Optional

import httpx
from pydantic import ValidationError

from jenkins2gitlab.config import settings
from jenkins2gitlab.models.schemas import EnrichmentRequest, EnrichmentResponse

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a CI/CD migration expert. You assess whether Jenkins plugins can be "
    "migrated to GitLab CI. Answer with a single JSON object and nothing else."
)

PROMPT_TEMPLATE = """Analyze this Jenkins plugin for GitLab CI migration compatibility.

Plugin: {identifier}
Usage context: {usage_context}
Project context: {project_context}

Return JSON with exactly these fields:
{{
  "compatibility_status": "compatible" | "partial" | "unsupported" | "unknown",
  "target_equivalent": "GitLab feature or null",
  "migration_notes": ["short note", "..."],
  "is_blocking": true | false,
  "workaround_available": true | false,
  "documentation_url": "https://... or null"
}}"""


class EnrichmentError(RuntimeError):
    """Raised when the enrichment endpoint returns an unusable reply."""


class EnrichmentClient:
    """
    OpenAI-compatible chat completions client.

    Usable as the collaborator of EnrichingClassifier: exposes
    `async enrich(request) -> EnrichmentResponse`.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or settings.enrichment_api_key
        self.base_url = (base_url or settings.enrichment_base_url).rstrip("/")
        self.model = model or settings.enrichment_model
        self.timeout = timeout or settings.enrichment_timeout
        self.client = client or httpx.AsyncClient(timeout=self.timeout)

    def build_prompt(self, request: EnrichmentRequest) -> str:
        return PROMPT_TEMPLATE.format(
            identifier=request.identifier,
            usage_context=request.usage_context or "n/a",
            project_context=json.dumps(request.project_context, sort_keys=True) if request.project_context else "n/a",
        )

    async def enrich(self, request: EnrichmentRequest) -> EnrichmentResponse:
        logger.info(f"Requesting enrichment for plugin {request.identifier}")
        response = await self.client.post(
            f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json"
            },
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_prompt(request)},
                ],
                "temperature": 0.1,
                "max_tokens": 800
            }
        )
        response.raise_for_status()

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EnrichmentError(f"Unexpected completion payload: {e}") from e
        return parse_enrichment_reply(content)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()


def parse_enrichment_reply(content: str) -> EnrichmentResponse:
    """Parse the model's reply, tolerating a fenced ```json block."""
    if not content:
        raise EnrichmentError("Empty enrichment reply")
    fenced = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", content, re.DOTALL)
    if fenced:
        body = fenced.group(1)
    else:
        start, end = content.find("{"), content.rfind("}")
        if start == -1 or end <= start:
            raise EnrichmentError("No JSON object in enrichment reply")
        body = content[start:end + 1]
    try:
        return EnrichmentResponse(**json.loads(body))
    except (ValueError, TypeError, ValidationError) as e:
        raise EnrichmentError(f"Malformed enrichment reply: {e}") from e
