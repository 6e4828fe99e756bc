"""Google Gemini provider for direct video understanding."""
from __future__ import annotations

import asyncio
import time
from typing import Any

import google.generativeai as genai

from recipe_import.config import settings
from recipe_import.errors import ModelProviderError, ProviderRateLimitedError, looks_rate_limited
from recipe_import.models.media import MediaPayload
from recipe_import.services.logger import log_llm_call


def _is_rate_limited(error: Exception) -> bool:
    # google.api_core raises ResourceExhausted (HTTP 429) for quota and rate limits.
    if type(error).__name__ in {"ResourceExhausted", "TooManyRequests"}:
        return True
    if getattr(error, "code", None) == 429:
        return True
    return looks_rate_limited(str(error))


class GeminiVideoProvider:
    name = "gemini"

    def __init__(
        self,
        model: str | None = None,
        *,
        api_key: str | None = None,
        genai_module: Any | None = None,
        timeout_s: float | None = None,
    ):
        self.model = model or settings.video_primary_model
        self._genai = genai_module or genai
        self._genai.configure(api_key=api_key if api_key is not None else settings.gemini_api_key)
        self.timeout_s = timeout_s or settings.model_call_timeout_s

    def _build_model(self) -> Any:
        return self._genai.GenerativeModel(
            model_name=self.model,
            generation_config=self._genai.GenerationConfig(
                temperature=settings.llm_temperature,
                max_output_tokens=settings.llm_max_tokens,
                response_mime_type="application/json",
            ),
        )

    def _parts(self, prompt: str, media: MediaPayload | None) -> list[Any]:
        parts: list[Any] = [prompt]
        if media is not None and media.video is not None:
            parts.append({"mime_type": media.video.mime_type, "data": media.video.path.read_bytes()})
        return parts

    async def generate(self, prompt: str, media: MediaPayload | None = None) -> str:
        model = self._build_model()
        parts = self._parts(prompt, media)
        started = time.monotonic()

        def _generate():
            return model.generate_content(parts)

        try:
            response = await asyncio.wait_for(asyncio.to_thread(_generate), timeout=self.timeout_s)
            text = response.text
        except asyncio.TimeoutError as e:
            log_llm_call(self.model, self.name, _elapsed_ms(started), media and media.describe(), "timeout", "timeout")
            raise ModelProviderError(f"{self.model} timed out", provider=self.name, model=self.model) from e
        except Exception as e:
            log_llm_call(self.model, self.name, _elapsed_ms(started), media and media.describe(), "error", str(e))
            error_cls = ProviderRateLimitedError if _is_rate_limited(e) else ModelProviderError
            raise error_cls(f"{self.model} failed: {e}", provider=self.name, model=self.model) from e

        if not text:
            raise ModelProviderError(f"{self.model} returned an empty response", provider=self.name, model=self.model)
        log_llm_call(self.model, self.name, _elapsed_ms(started), media and media.describe())
        return text


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
