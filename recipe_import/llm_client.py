"""OpenRouter model provider used for caption, image and paid video extraction."""
from __future__ import annotations

import asyncio
import time
from typing import Any

from recipe_import.config import settings
from recipe_import.errors import ModelProviderError, ProviderRateLimitedError, looks_rate_limited
from recipe_import.models.media import MediaPayload
from recipe_import.services.logger import log_llm_call

SYSTEM_PROMPT = "You extract cooking recipes from social media content and reply with a single JSON object."


def get_client() -> Any:
    """Get OpenRouter client via OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    return AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
    )


_client: Any | None = None


def client() -> Any:
    """Get or create the shared OpenRouter client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client


def build_user_content(prompt: str, media: MediaPayload | None) -> list[dict[str, Any]]:
    content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
    if media is None:
        return content
    if media.video is not None:
        data_url = f"data:{media.video.mime_type};base64,{media.video.read_base64()}"
        content.append({"type": "video_url", "video_url": {"url": data_url}})
    for url in media.image_urls:
        content.append({"type": "image_url", "image_url": {"url": url}})
    return content


def _is_rate_limited(error: Exception) -> bool:
    if getattr(error, "status_code", None) == 429:
        return True
    return looks_rate_limited(str(error))


class OpenRouterProvider:
    name = "openrouter"

    def __init__(
        self,
        model: str,
        *,
        openai_client: Any | None = None,
        timeout_s: float | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        self.model = model
        self._client = openai_client
        self.timeout_s = timeout_s or settings.model_call_timeout_s
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.llm_max_tokens

    async def generate(self, prompt: str, media: MediaPayload | None = None) -> str:
        openai_client = self._client or client()
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                openai_client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": build_user_content(prompt, media)},
                    ],
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as e:
            log_llm_call(self.model, self.name, _elapsed_ms(started), media and media.describe(), "timeout", "timeout")
            raise ModelProviderError(f"{self.model} timed out", provider=self.name, model=self.model) from e
        except Exception as e:
            log_llm_call(self.model, self.name, _elapsed_ms(started), media and media.describe(), "error", str(e))
            error_cls = ProviderRateLimitedError if _is_rate_limited(e) else ModelProviderError
            raise error_cls(f"{self.model} failed: {e}", provider=self.name, model=self.model) from e

        choices = getattr(response, "choices", None) or []
        text = getattr(choices[0].message, "content", None) if choices else None
        if not text:
            raise ModelProviderError(f"{self.model} returned an empty response", provider=self.name, model=self.model)
        log_llm_call(self.model, self.name, _elapsed_ms(started), media and media.describe())
        return text


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
