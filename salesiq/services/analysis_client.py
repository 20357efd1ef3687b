"""
SalesIQ — Analysis Client

================================================================================
THE ONLY POINT OF CONTACT WITH THE GENERATIVE-AI PROVIDER
================================================================================

One call → one request:
  1. The base64 payload is decoded back to raw audio bytes.
  2. Audio + the fixed coaching prompt + the declared response schema go to
     the injected provider (GeminiProvider in production, a fake in tests).
  3. The reply text is parsed strictly as JSON into an AnalysisResult.

Failures:
  • provider exceptions are classified into ProviderError kinds
    (too large, rate limited, unsupported media, content filtered, generic)
  • empty / non-JSON / schema-violating replies → MalformedResponseError
No retries. Every retry is a new user action.
================================================================================
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from ..core.errors import (
    EncodingError,
    MalformedResponseError,
    ProviderError,
    ProviderErrorKind,
    SalesIQError,
)
from ..core.models import AnalysisResult

logger = logging.getLogger("salesiq.analysis")


# ---------------------------------------------------------------------------
# Instruction prompt
# ---------------------------------------------------------------------------

ANALYSIS_PROMPT = """
You are an elite sales coach who has reviewed thousands of B2B sales calls.
Analyze the attached recording with blunt honesty and give specific,
actionable feedback.

1. CALL TYPE
   One of "discovery", "demo", "negotiation", "closing", "renewal", "other".

2. TRANSCRIPT WITH SPEAKER ROLES
   - Infer roles from what people say (who qualifies, who describes their
     company). Label speakers "Salesperson" and "Prospect", translated into
     the spoken language of the call. Never use neutral labels such as
     "Speaker 1".
   - Give every turn a start timestamp and an end timestamp as MM:SS
     (HH:MM:SS for calls longer than an hour).

3. SALES METRICS
   - talkRatio: percentage of the call the salesperson spoke (0-100)
   - questionCount: questions asked by the salesperson
   - fillerWordCount: filler words ("um", "uh", "like", "you know") by the salesperson
   - longestMonologue: longest uninterrupted salesperson turn, in seconds
   - buyingSignals: prospect phrases showing interest
   - riskSignals: prospect phrases signalling hesitation

4. OBJECTIONS
   List EVERY objection the prospect raised. For each: category ("price",
   "timing", "authority", "need", "competitor", "other"), the exact quote,
   its timestamp, how it was handled ("strong", "weak", "missed") and, when
   weak or missed, a specific better rebuttal.

5. RISK ASSESSMENT
   Deal health from 1 to 10 (10 = very likely to close) with level
   "low" (8-10), "medium" (5-7), "high" (3-4) or "critical" (1-2),
   2-3 concrete reasons and any deal-breakers.

6. COACHING
   Exactly 3 strengths and exactly 3 improvements. Cite concrete moments.
   Improvements say what to do differently, not only what went wrong.

7. NEXT STEPS
   One primary action, a timeline ("Within 24 hours", "Within 3 days",
   "This week"), 2-3 secondary actions and a 3-4 sentence follow-up email
   the salesperson can send as-is.

8. SENTIMENT FLOW
   10 to 15 checkpoints spread evenly across the whole call, each with a
   0-100 engagement score and the reason for it.

9. VERDICT
   One line capturing the essence of the call.

10. SUMMARY
    Two sentences: what happened, and where the deal stands.

OUTPUT RULES
- Detect the spoken language and write ALL text in exactly that language.
  Do not translate quotes or transcript text.
- Return ONLY a JSON object matching the response schema.
"""


# ---------------------------------------------------------------------------
# Declared response schema (OpenAPI subset understood by Gemini)
# ---------------------------------------------------------------------------

def _string_list(description: str = "") -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "ARRAY", "items": {"type": "STRING"}}
    if description:
        schema["description"] = description
    return schema


RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "callType": {
            "type": "STRING",
            "enum": ["discovery", "demo", "negotiation", "closing", "renewal", "other"],
        },
        "verdict": {"type": "STRING", "description": "One-line verdict"},
        "summary": {"type": "STRING", "description": "Two-sentence executive summary"},
        "topics": _string_list("5-7 key topics discussed"),
        "transcript": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "speaker": {"type": "STRING"},
                    "timestamp": {"type": "STRING", "description": "Start time, e.g. 00:15"},
                    "endTime": {"type": "STRING", "description": "End time, e.g. 00:22"},
                    "text": {"type": "STRING"},
                },
                "required": ["speaker", "timestamp", "text"],
            },
        },
        "sentiment": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "timePoint": {"type": "STRING"},
                    "score": {"type": "NUMBER", "description": "0-100 engagement"},
                    "context": {"type": "STRING"},
                },
                "required": ["timePoint", "score"],
            },
        },
        "coaching": {
            "type": "OBJECT",
            "properties": {
                "strengths": _string_list("Exactly 3"),
                "improvements": _string_list("Exactly 3"),
            },
            "required": ["strengths", "improvements"],
        },
        "salesMetrics": {
            "type": "OBJECT",
            "properties": {
                "talkRatio": {"type": "NUMBER"},
                "questionCount": {"type": "NUMBER"},
                "fillerWordCount": {"type": "NUMBER"},
                "longestMonologue": {"type": "NUMBER"},
                "buyingSignals": _string_list(),
                "riskSignals": _string_list(),
            },
        },
        "riskAssessment": {
            "type": "OBJECT",
            "properties": {
                "score": {"type": "NUMBER", "description": "1-10, 10 = likely to close"},
                "level": {"type": "STRING", "enum": ["low", "medium", "high", "critical"]},
                "reasons": _string_list(),
                "dealBreakers": _string_list(),
            },
            "required": ["score", "level"],
        },
        "objections": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "type": {
                        "type": "STRING",
                        "enum": ["price", "timing", "authority", "need", "competitor", "other"],
                    },
                    "quote": {"type": "STRING"},
                    "timestamp": {"type": "STRING"},
                    "rebuttalQuality": {"type": "STRING", "enum": ["strong", "weak", "missed"]},
                    "suggestedRebuttal": {"type": "STRING"},
                },
                "required": ["type", "quote", "rebuttalQuality"],
            },
        },
        "nextSteps": {
            "type": "OBJECT",
            "properties": {
                "primary": {"type": "STRING"},
                "timeline": {"type": "STRING"},
                "secondary": _string_list(),
                "followUpEmail": {"type": "STRING"},
            },
        },
    },
    "required": ["callType", "summary", "transcript", "sentiment", "coaching"],
}


# ---------------------------------------------------------------------------
# Provider boundary
# ---------------------------------------------------------------------------

@runtime_checkable
class AnalysisProvider(Protocol):
    """External generative model: audio + instructions in, JSON text out."""

    def check_configured(self) -> None:
        """Raise ConfigurationError if credentials are missing."""
        ...

    async def generate(
        self,
        audio: bytes,
        mime_type: str,
        prompt: str,
        schema: Dict[str, Any],
    ) -> Optional[str]:
        ...


def classify_provider_error(exc: BaseException) -> ProviderErrorKind:
    """Map a provider exception to a kind using its HTTP code, status and text."""
    code = getattr(exc, "code", None)
    status = str(getattr(exc, "status", "") or "").upper()
    message = str(getattr(exc, "message", "") or exc).lower()

    if code == 413 or "too large" in message or "exceeds the maximum" in message:
        return ProviderErrorKind.TOO_LARGE
    if code == 429 or status == "RESOURCE_EXHAUSTED" or "rate limit" in message or "quota" in message:
        return ProviderErrorKind.RATE_LIMITED
    if code == 415 or "mime type" in message or "unsupported" in message:
        return ProviderErrorKind.UNSUPPORTED_MEDIA
    if "safety" in message or "blocked" in message or "prohibited content" in message:
        return ProviderErrorKind.CONTENT_FILTERED
    return ProviderErrorKind.GENERIC


def parse_analysis(text: Optional[str]) -> AnalysisResult:
    if not text or not text.strip():
        raise MalformedResponseError("Empty response from provider")
    try:
        return AnalysisResult.model_validate_json(text)
    except ValidationError as e:
        raise MalformedResponseError(
            f"Provider reply does not match the schema ({e.error_count()} errors): "
            f"{str(e)[:300]}"
        ) from e


# ═══════════════════════════════════════════════════════════════════════════
# Analysis Client
# ═══════════════════════════════════════════════════════════════════════════

class AnalysisClient:
    """
    Wraps one provider behind `analyze(payload, mime_type)`.

    Usage:
        client = AnalysisClient(GeminiProvider())
        result = await client.analyze(base64_audio, "audio/wav")
    """

    def __init__(
        self,
        provider: AnalysisProvider,
        prompt: str = ANALYSIS_PROMPT,
        schema: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._provider = provider
        self._prompt = prompt
        self._schema = schema or RESPONSE_SCHEMA
        self._requests = 0

    @property
    def requests_issued(self) -> int:
        return self._requests

    def check_configured(self) -> None:
        self._provider.check_configured()

    async def analyze(self, payload: str, mime_type: str) -> AnalysisResult:
        try:
            audio = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EncodingError(f"Payload is not valid base64: {e}") from e

        self._requests += 1
        started = time.time()
        try:
            text = await self._provider.generate(audio, mime_type, self._prompt, self._schema)
        except SalesIQError:
            raise
        except Exception as e:
            kind = classify_provider_error(e)
            logger.error(f"Provider request failed ({kind.value}): {e}")
            raise ProviderError(kind, str(e)[:200]) from e

        result = parse_analysis(text)
        logger.info(
            f"Analysis received in {round((time.time() - started) * 1000)} ms: "
            f"{result.call_type.value}, {len(result.transcript)} segments, "
            f"{len(result.sentiment)} sentiment points"
        )
        return result
