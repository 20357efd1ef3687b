"""
SalesIQ — Gemini Provider

Production AnalysisProvider backed by the google-genai SDK.
The client is created lazily on first use so a missing key surfaces as a
ConfigurationError when an analysis is attempted, never at import.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from ..core.config import analysis_cfg, resolve_api_key
from ..core.errors import ConfigurationError, ProviderError, ProviderErrorKind

logger = logging.getLogger("salesiq.gemini")


class GeminiProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = analysis_cfg.model,
        temperature: float = analysis_cfg.temperature,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._client: Optional[genai.Client] = None

    @property
    def model(self) -> str:
        return self._model

    def _key(self) -> Optional[str]:
        return self._api_key or resolve_api_key()

    def check_configured(self) -> None:
        if not self._key():
            raise ConfigurationError("GEMINI_API_KEY / API_KEY is not set")

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self.check_configured()
            self._client = genai.Client(api_key=self._key())
            logger.info(f"Gemini client created (model={self._model})")
        return self._client

    async def generate(
        self,
        audio: bytes,
        mime_type: str,
        prompt: str,
        schema: Dict[str, Any],
    ) -> Optional[str]:
        client = self._get_client()
        response = await client.aio.models.generate_content(
            model=self._model,
            contents=[
                types.Part.from_bytes(data=audio, mime_type=mime_type),
                prompt,
            ],
            config=types.GenerateContentConfig(
                temperature=self._temperature,
                response_mime_type=analysis_cfg.response_mime_type,
                response_schema=schema,
            ),
        )

        feedback = response.prompt_feedback
        if feedback is not None and feedback.block_reason:
            raise ProviderError(
                ProviderErrorKind.CONTENT_FILTERED,
                f"Prompt blocked: {feedback.block_reason}",
            )
        candidates = response.candidates or []
        if candidates and candidates[0].finish_reason == types.FinishReason.SAFETY:
            raise ProviderError(
                ProviderErrorKind.CONTENT_FILTERED,
                "Response stopped by safety filters",
            )
        return response.text
