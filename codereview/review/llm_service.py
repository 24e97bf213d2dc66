"""
llm_service.py — analysis gateway for CodeReview.

Components:
  AnalysisGateway      — opaque generate(prompt) -> raw text capability
  MistralGateway       — Mistral chat completion wrapped in asyncio.Semaphore
  parse_review_output() — strip code fences, parse JSON, validate CodeReviewResult
  run_analysis()       — prompt → gateway (bounded by timeout) → validated result

No module-level asyncio.Semaphore — semaphore is created in main.py lifespan
and passed in (avoids RuntimeError: no running event loop at import).

No retries anywhere: a malformed result usually means a prompt/schema
mismatch, and retrying would hide it while multiplying cost.
No HTTPException anywhere — this is pure business logic, HTTP layer is routes.py.
"""
import abc
import asyncio
import json
import logging
import re
from typing import Optional

from mistralai import Mistral
from pydantic import ValidationError

from codereview.errors import GatewayError, GatewayTimeout, MalformedAnalysisResult
from codereview.review.prompts import build_review_prompt
from codereview.review.schemas import CodeReviewResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mistral API constants
# ---------------------------------------------------------------------------

MISTRAL_TEMPERATURE = 0.2
MISTRAL_MAX_TOKENS = 8192

_CODE_FENCE = re.compile(r"```(?:json)?\n?")


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class AnalysisGateway(abc.ABC):
    """Opaque call to a generative model. Implementations must not retry."""

    @abc.abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return the model's raw text, or raise GatewayError."""


class MistralGateway(AnalysisGateway):
    def __init__(
        self,
        client: Mistral,
        semaphore: asyncio.Semaphore,
        model: str,
        temperature: float = MISTRAL_TEMPERATURE,
        max_tokens: int = MISTRAL_MAX_TOKENS,
    ) -> None:
        self._client = client
        self._semaphore = semaphore
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def generate(self, prompt: str) -> str:
        logger.info("Calling Mistral API model=%s prompt_len=%d", self._model, len(prompt))

        async with self._semaphore:
            try:
                response = await self._client.chat.complete_async(
                    model=self._model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                    response_format={"type": "json_object"},
                )
            except Exception as exc:
                # SDK and transport failures alike: the gateway is opaque to callers
                raise GatewayError(f"Analysis model call failed: {exc}") from exc

        if not response or not response.choices:
            raise GatewayError("Analysis model returned no choices")

        content = response.choices[0].message.content
        if isinstance(content, list):
            content = "".join(getattr(chunk, "text", "") or "" for chunk in content)
        text: str = content or ""
        if not text.strip():
            raise GatewayError("Analysis model returned an empty response")

        logger.info("Mistral response received text_len=%d", len(text))
        return text


# ---------------------------------------------------------------------------
# Output validation
# ---------------------------------------------------------------------------

def parse_review_output(text: str) -> CodeReviewResult:
    """
    Strip markdown code-fence wrapping, parse JSON and validate against the
    fixed review schema. Any failure raises MalformedAnalysisResult.
    """
    cleaned = _CODE_FENCE.sub("", text).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedAnalysisResult(f"Analysis result is not valid JSON: {exc.msg}") from exc

    try:
        return CodeReviewResult.model_validate(payload)
    except ValidationError as exc:
        details = [
            {"field": ".".join(str(loc) for loc in err["loc"]) or None, "issue": err["msg"]}
            for err in exc.errors()
        ]
        raise MalformedAnalysisResult(
            "Analysis result does not match the review schema", details=details
        ) from exc


# ---------------------------------------------------------------------------
# Main async analysis function
# ---------------------------------------------------------------------------

async def run_analysis(
    gateway: AnalysisGateway,
    project_context: str,
    changes_content: str,
    change_description: str,
    timeout: Optional[float],
) -> CodeReviewResult:
    """
    Build the review prompt, call the gateway bounded by timeout, validate.

    Raises GatewayTimeout, GatewayError or MalformedAnalysisResult.
    """
    prompt = build_review_prompt(project_context, changes_content, change_description)
    logger.info(
        "Starting code review context_len=%d changes_len=%d",
        len(project_context), len(changes_content),
    )

    try:
        text = await asyncio.wait_for(gateway.generate(prompt), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise GatewayTimeout(f"Analysis model did not answer within {timeout}s") from exc

    review = parse_review_output(text)
    logger.info(
        "Code review complete total_issues=%d critical_issues=%d",
        review.summary.total_issues, review.summary.critical_issues,
    )
    return review
