"""
Semantic Oracle - AI-assisted last-resort template matching (smart path)

Given a legacy account and a bounded shortlist of template accounts, asks
Claude to pick the best candidate index (or none) with a confidence and a
rationale.

The oracle is fallible and optional:
- Transport errors, malformed JSON and out-of-range indices → no verdict (None)
- It never raises to the matcher
- The matcher bounds every call with a timeout
- The migration service only adopts a verdict that beats the rule-based
  classifier's confidence
"""
import json
from functools import lru_cache
from typing import Optional, Protocol

import anthropic
import structlog
from pydantic import ValidationError

from packages.common.config import Settings, get_settings
from packages.common.metrics import oracle_calls_total
from packages.domain.coa_migration.schemas import OracleRequest, OracleVerdict

logger = structlog.get_logger()


class SemanticOracle(Protocol):
    """
    Protocol for semantic similarity services.

    Implementations return None for "no verdict" rather than raising.
    """

    async def select(self, request: OracleRequest) -> Optional[OracleVerdict]:
        """
        Pick the best candidate for a legacy account.

        Args:
            request: Legacy account fields and at most 10 candidates

        Returns:
            OracleVerdict with an in-range selected_index, or None
        """
        ...


def usable_verdict(verdict: Optional[OracleVerdict], candidate_count: int) -> Optional[OracleVerdict]:
    """Return the verdict only if it selects a candidate that exists."""
    if verdict is None or verdict.selected_index is None:
        return None
    if not 0 <= verdict.selected_index < candidate_count:
        return None
    return verdict


class AnthropicSemanticOracle:
    """
    Semantic oracle backed by the Anthropic Messages API.

    Usage:
        oracle = AnthropicSemanticOracle(api_key="...")
        verdict = await oracle.select(request)
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5",
        timeout_seconds: float = 10.0,
    ):
        self.model = model
        # Retries would stretch past the caller's timeout budget
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        )

    async def select(self, request: OracleRequest) -> Optional[OracleVerdict]:
        logger.info("semantic_oracle_requested",
                    legacy_name=request.legacy_name,
                    candidate_count=len(request.candidates))

        prompt = self._build_prompt(request)

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=500,
                temperature=0.0,  # Deterministic for reproducible migrations
                messages=[
                    {
                        "role": "user",
                        "content": prompt
                    }
                ]
            )
        except Exception as e:
            logger.error("semantic_oracle_failed",
                         legacy_name=request.legacy_name,
                         error=str(e),
                         exc_info=True)
            oracle_calls_total.labels(outcome="error").inc()
            return None

        logger.info("semantic_oracle_responded",
                    legacy_name=request.legacy_name,
                    input_tokens=response.usage.input_tokens,
                    output_tokens=response.usage.output_tokens)

        text = getattr(response.content[0], "text", "") if response.content else ""
        verdict = usable_verdict(self._parse_response(text), len(request.candidates))

        oracle_calls_total.labels(outcome="verdict" if verdict else "no_verdict").inc()
        return verdict

    def _build_prompt(self, request: OracleRequest) -> str:
        """
        Build the matching prompt.

        Candidates are listed with their 0-based index; the model answers
        with that index.
        """
        prompt = f"""You are helping to find the best matching account from a chart of accounts template.

LEGACY ACCOUNT TO MATCH:
- Name: {request.legacy_name}
- Type: {request.legacy_type or 'Not specified'}
- Description: {request.legacy_description or 'Not provided'}

TEMPLATE ACCOUNTS TO CONSIDER:
"""
        for candidate in request.candidates:
            prompt += (
                f"{candidate.index}. {candidate.name} ({candidate.type})\n"
                f"   Description: {candidate.description or 'None'}\n"
                f"   Keywords: {', '.join(candidate.keywords) or 'None'}\n"
            )

        prompt += """
Consider the business purpose of the account, not just name similarity.

RESPONSE FORMAT (return ONLY this JSON, no other text):
{
  "selectedIndex": <index from the list above, or null if no good match>,
  "confidence": 0.0-1.0,
  "rationale": "Why this is or isn't a good match"
}
"""
        return prompt

    def _parse_response(self, response_text: str) -> Optional[OracleVerdict]:
        """
        Parse the JSON verdict.

        Args:
            response_text: Raw response from Claude

        Returns:
            OracleVerdict, or None if the response is malformed
        """
        try:
            # Claude should return clean JSON, but extract it if wrapped in markdown
            if "```json" in response_text:
                response_text = response_text.split("```json")[1].split("```")[0].strip()
            elif "```" in response_text:
                response_text = response_text.split("```")[1].split("```")[0].strip()

            data = json.loads(response_text)
            return OracleVerdict.model_validate(data)

        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("semantic_oracle_response_invalid",
                           response=response_text,
                           error=str(e))
            return None


def get_semantic_oracle(settings: Optional[Settings] = None) -> Optional[SemanticOracle]:
    """
    Build the configured oracle.

    Returns None when the oracle is disabled or no API key is configured;
    migrations then run on templates and rules alone.
    """
    settings = settings or get_settings()

    if not settings.oracle_enabled:
        return None

    if not settings.anthropic_api_key:
        logger.warning("anthropic_api_key_missing",
                       message="ANTHROPIC_API_KEY not set, semantic oracle disabled")
        return None

    return _shared_oracle(
        settings.anthropic_api_key,
        settings.oracle_model,
        settings.oracle_timeout_seconds,
    )


@lru_cache()
def _shared_oracle(api_key: str, model: str, timeout_seconds: float) -> AnthropicSemanticOracle:
    """One oracle (and one HTTP connection pool) per configuration"""
    logger.info("semantic_oracle_initialized", model=model, timeout_seconds=timeout_seconds)
    return AnthropicSemanticOracle(
        api_key=api_key,
        model=model,
        timeout_seconds=timeout_seconds,
    )
