"""
SmartNotes Backend - Google Gemini Gateway
===========================================

What:  LLMGateway implementation calling Gemini's generateContent REST API.
How:   One httpx POST per call to
       {base}/models/{model}:generateContent?key=<api key>
       with body {"contents": [{"parts": [...]}]}. The response is walked
       defensively and every failure is mapped to a GatewayError subclass.
Who:   Singleton `gemini_gateway`, used by NoteProcessor and OCRService.

Failure Mapping:
    no API key             → MissingCredentialError (no request sent)
    httpx transport error  → NetworkFailureError
    non-2xx status         → APIError(status, error.message or raw body)
    finishReason=SAFETY    → SafetyBlockedError (checked before the text)
    missing text path      → MalformedResponseError(field path)
    finishReason=MAX_TOKENS→ warning logged, partial text returned

No retries here; see services/ai_pipeline.py.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from smartnotes.config import settings
from smartnotes.exceptions import (
    APIError,
    MalformedResponseError,
    MissingCredentialError,
    NetworkFailureError,
    SafetyBlockedError,
)
from smartnotes.services.llm_base import InlineImage, LLMGateway

logger = logging.getLogger(__name__)


class GeminiGateway(LLMGateway):
    """
    Gemini REST gateway.

    Constructor arguments override settings; anything left as None is read
    from settings at call time, so a key configured after import is honoured.
    `transport` lets tests plug in an httpx.MockTransport.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    # ── Resolved configuration ────────────────────────────────────────────

    @property
    def api_key(self) -> str:
        key = self._api_key if self._api_key is not None else settings.gemini_api_key
        return (key or "").strip()

    @property
    def model(self) -> str:
        return self._model or settings.gemini_model

    @property
    def base_url(self) -> str:
        return (self._base_url or settings.gemini_api_base_url).rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        timeout = self._timeout if self._timeout is not None else settings.llm_timeout_seconds
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=self._transport,
        )

    # ── Public API ────────────────────────────────────────────────────────

    async def generate(
        self,
        prompt: str,
        images: Optional[Sequence[InlineImage]] = None,
        model: Optional[str] = None,
    ) -> str:
        api_key = self.api_key
        if not api_key:
            raise MissingCredentialError()

        model_name = model or self.model
        url = f"{self.base_url}/models/{model_name}:generateContent"
        body = self.build_request_body(prompt, images)

        start_time = time.perf_counter()
        try:
            async with self._client() as client:
                response = await client.post(url, params={"key": api_key}, json=body)
        except httpx.HTTPError as e:
            logger.warning(
                "Gemini request to model=%s failed after %.0fms: %s",
                model_name,
                (time.perf_counter() - start_time) * 1000,
                type(e).__name__,
            )
            raise NetworkFailureError(
                message=f"Could not reach the Gemini API: {type(e).__name__}",
                context={"model": model_name},
            ) from e

        duration_ms = (time.perf_counter() - start_time) * 1000

        if not response.is_success:
            detail = self._error_detail(response)
            logger.error(
                "Gemini API returned %d for model=%s in %.0fms: %s",
                response.status_code,
                model_name,
                duration_ms,
                detail,
            )
            raise APIError(response.status_code, detail, context={"model": model_name})

        try:
            data = response.json()
        except ValueError:
            raise MalformedResponseError("response body", context={"model": model_name})

        text = self.extract_text(data)
        logger.info(
            "Gemini generation completed in %.0fms, model=%s, %d chars",
            duration_ms,
            model_name,
            len(text),
        )
        return text

    async def health_check(self) -> bool:
        """Fetches model metadata (no token cost). Never raises."""
        if not self.api_key:
            return False
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/models/{self.model}",
                    params={"key": self.api_key},
                )
            return response.is_success
        except httpx.HTTPError as e:
            logger.warning("Gemini health check failed: %s", type(e).__name__)
            return False

    # ── Wire format helpers ───────────────────────────────────────────────

    @staticmethod
    def build_request_body(
        prompt: str,
        images: Optional[Sequence[InlineImage]] = None,
    ) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        for image in images or ():
            parts.append(
                {"inline_data": {"mime_type": image.mime_type, "data": image.data}}
            )
        return {"contents": [{"parts": parts}]}

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        """Prefer the JSON `error.message`; fall back to the raw body."""
        try:
            payload = response.json()
        except ValueError:
            return response.text.strip()
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        return response.text.strip()

    @staticmethod
    def extract_text(data: Any) -> str:
        """
        Walk candidates[0].content.parts[0].text.

        The safety check runs on the candidate before its content is read,
        since a blocked candidate usually carries no parts at all.
        """
        if not isinstance(data, dict):
            raise MalformedResponseError("candidates")

        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            feedback = data.get("promptFeedback") or {}
            if isinstance(feedback, dict) and feedback.get("blockReason") == "SAFETY":
                raise SafetyBlockedError()
            raise MalformedResponseError("candidates[0]")

        candidate = candidates[0]
        if not isinstance(candidate, dict):
            raise MalformedResponseError("candidates[0]")

        finish_reason = candidate.get("finishReason")
        if finish_reason == "SAFETY":
            raise SafetyBlockedError(context={"finish_reason": finish_reason})

        content = candidate.get("content")
        if not isinstance(content, dict):
            raise MalformedResponseError("candidates[0].content")

        parts = content.get("parts")
        if not isinstance(parts, list) or not parts:
            raise MalformedResponseError("candidates[0].content.parts")

        first = parts[0]
        text = first.get("text") if isinstance(first, dict) else None
        if not isinstance(text, str):
            raise MalformedResponseError("candidates[0].content.parts[0].text")

        if finish_reason == "MAX_TOKENS":
            logger.warning(
                "Gemini response truncated (finishReason=MAX_TOKENS), returning %d chars",
                len(text),
            )
        return text


# Module-level instance shared by every request.
gemini_gateway = GeminiGateway()
