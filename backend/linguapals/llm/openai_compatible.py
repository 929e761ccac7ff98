"""
OpenAI-compatible chat/completions provider.
Serves both OpenAI and Gemini (through Google's OpenAI-compatible endpoint).
"""

import httpx
import logging
import time
from typing import Optional, List, Dict, Any

from .base import LLMProvider, LLMMessage, LLMResponse

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(LLMProvider):
    """Provider for any endpoint speaking the OpenAI chat/completions format."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        provider_name: str = "openai",
        default_temperature: float = 0.7,
        default_max_tokens: int = 1024,
        timeout: float = 60.0,
    ):
        super().__init__(api_key, model, base_url.rstrip("/"), default_temperature, default_max_tokens)
        self.provider_name = provider_name
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def chat_completion(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """Send request to the Chat Completions endpoint."""
        start_time = time.time()
        url = f"{self.base_url}/chat/completions"
        payload: Dict[str, Any] = {
            "model": kwargs.get("model", self.model),
            "messages": self._format_messages(messages),
            "temperature": temperature if temperature is not None else self.default_temperature,
            "max_tokens": max_tokens or self.default_max_tokens,
        }

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"LLM API call starting: provider={self.provider_name}, model={payload['model']}, "
                f"temperature={payload['temperature']}, {len(messages)} messages"
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload, headers=self._get_headers())
                resp.raise_for_status()
                data = resp.json()

            choice = data["choices"][0]
            usage = data.get("usage", {})
            duration_ms = (time.time() - start_time) * 1000

            logger.info(
                "LLM API call completed",
                extra={"extra_fields": {
                    "provider": self.provider_name,
                    "model": data.get("model", self.model),
                    "prompt_tokens": usage.get("prompt_tokens", 0),
                    "completion_tokens": usage.get("completion_tokens", 0),
                    "total_tokens": usage.get("total_tokens", 0),
                    "duration_ms": round(duration_ms, 2),
                }}
            )

            return LLMResponse(
                content=choice["message"]["content"],
                model=data.get("model", self.model),
                usage=usage,
                raw=data,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"LLM API call failed: {e}",
                exc_info=True,
                extra={"extra_fields": {
                    "provider": self.provider_name,
                    "model": payload.get("model"),
                    "duration_ms": round(duration_ms, 2),
                    "error": str(e),
                }}
            )
            raise
