"""
OpenAI summarizer for classification hints.

Given subject/sender/body, asks the model for a category, priority and
confidence as JSON. One attempt per call: any failure is raised as
UpstreamUnavailable and the classification engine treats that as "no hint".
"""

import json
from typing import Any, Protocol

import openai
from openai import AsyncOpenAI

from inbox_triage.config import Settings
from inbox_triage.core.errors import UpstreamUnavailable
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.domain.classification import SummarizerHint
from inbox_triage.models.domain.enums import Priority, Sentiment

logger = get_logger(__name__)

MAX_BODY_CHARS = 4000

SYSTEM_MESSAGE = """### Role
You triage a single email for a busy professional.

### Output Requirements
- Return ONLY valid JSON (no backticks, no prose)
- Schema:
{
  "category": "work|personal|finance|newsletter|shopping|travel|support|other",
  "priority": "CRITICAL|HIGH|MEDIUM|LOW",
  "confidence": 0.0-1.0,
  "sentiment": "POSITIVE|NEUTRAL|NEGATIVE|URGENT",
  "needs_reply": true|false,
  "reasoning": "one short sentence"
}

### Rules
- CRITICAL only for same-day business impact
- Newsletters and automated notices are LOW
- Base every value on the email text only
"""


class Summarizer(Protocol):
    async def summarize(self, subject: str, sender: str, body: str) -> SummarizerHint: ...


class OpenAISummarizer:
    """Classification hints from an OpenAI chat model."""

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        if client is None and not settings.OPENAI_API_KEY:
            raise UpstreamUnavailable("OPENAI_API_KEY not configured", service="openai")

        self.settings = settings
        self.client = client or AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=0,
        )
        logger.info("OpenAI summarizer initialized", model=settings.OPENAI_MODEL)

    async def summarize(self, subject: str, sender: str, body: str) -> SummarizerHint:
        user_message = f"From: {sender}\nSubject: {subject}\n\n{(body or '')[:MAX_BODY_CHARS]}"
        raw = await self._call_openai(user_message)
        return self._parse_hint(raw)

    async def _call_openai(self, user_message: str) -> str:
        """Single attempt; retrying is left to the caller's next cycle."""
        try:
            response = await self.client.chat.completions.create(
                model=self.settings.OPENAI_MODEL,
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": user_message},
                ],
                max_tokens=self.settings.OPENAI_MAX_TOKENS,
                temperature=self.settings.OPENAI_TEMPERATURE,
                response_format={"type": "json_object"},
            )

        except openai.RateLimitError as e:
            logger.warning("OpenAI rate limit hit", error=str(e))
            raise UpstreamUnavailable(f"OpenAI rate limited: {e}", service="openai") from e

        except openai.APITimeoutError as e:
            logger.warning("OpenAI API timeout", error=str(e))
            raise UpstreamUnavailable(f"OpenAI timed out: {e}", service="openai") from e

        except openai.APIError as e:
            logger.error("OpenAI API error", error=str(e), status=getattr(e, "status_code", None))
            raise UpstreamUnavailable(f"OpenAI API error: {e}", service="openai") from e

        except Exception as e:
            logger.error("Unexpected error calling OpenAI", error=str(e), error_type=type(e).__name__)
            raise UpstreamUnavailable(f"OpenAI call failed: {e}", service="openai") from e

        if not response.choices or not response.choices[0].message.content:
            logger.warning("Empty response from OpenAI API")
            raise UpstreamUnavailable("Empty response from OpenAI API", service="openai")

        return response.choices[0].message.content.strip()

    @staticmethod
    def _parse_hint(raw: str) -> SummarizerHint:
        try:
            data: dict[str, Any] = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("OpenAI returned invalid JSON", raw_result=raw[:200])
            raise UpstreamUnavailable("OpenAI returned invalid JSON", service="openai") from e

        def _enum(kind, value):
            try:
                return kind(str(value).upper()) if value is not None else None
            except ValueError:
                return None

        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5

        category = data.get("category")
        needs_reply = data.get("needs_reply")
        return SummarizerHint(
            category=str(category).lower() if category else None,
            priority=_enum(Priority, data.get("priority")),
            confidence=max(0.0, min(1.0, confidence)),
            sentiment=_enum(Sentiment, data.get("sentiment")),
            needs_reply=needs_reply if isinstance(needs_reply, bool) else None,
            reasoning=str(data.get("reasoning") or ""),
        )
