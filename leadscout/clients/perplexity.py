"""Client for the Perplexity chat-completions API (OpenAI-compatible)."""

from __future__ import annotations

from typing import Any

from openai import APIError as OpenAIAPIError
from openai import APITimeoutError, AsyncOpenAI, RateLimitError
from openai import OpenAIError as OpenAIBaseError


class PerplexityError(RuntimeError):
    """Base error for Perplexity client failures."""

    def __init__(self, message: str, code: str = "PERPLEXITY_ERROR") -> None:
        super().__init__(message)
        self.code = code


class PerplexityRateLimitError(PerplexityError):
    """Raised when Perplexity responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Perplexity") -> None:
        super().__init__(message, code="PERPLEXITY_429")


class PerplexityTimeoutError(PerplexityError):
    """Raised when a Perplexity request times out."""

    def __init__(self, message: str = "Perplexity request timed out") -> None:
        super().__init__(message, code="PERPLEXITY_TIMEOUT")


class PerplexityClient:
    """Thin wrapper around the OpenAI SDK pointed at Perplexity."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.perplexity.ai",
        model: str = "sonar",
        timeout: float = 8.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("PERPLEXITY_API_KEY is required to create a PerplexityClient.")
        self._model = model
        self._owns_client = client is None
        # Retries are disabled: a miss is treated as missing evidence, not retried.
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            max_retries=0,
        )

    @property
    def model(self) -> str:
        return self._model

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.close()

    async def complete(self, prompt: str, *, max_tokens: int = 300, temperature: float = 0.1) -> str:
        """Send a single user prompt and return the assistant text."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except APITimeoutError as exc:
            raise PerplexityTimeoutError() from exc
        except RateLimitError as exc:
            raise PerplexityRateLimitError() from exc
        except OpenAIAPIError as exc:
            message = getattr(exc, "message", str(exc))
            raise PerplexityError(f"Perplexity request failed: {message}") from exc
        except OpenAIBaseError as exc:
            raise PerplexityError(f"Perplexity client error: {exc}") from exc
        return _extract_message_text(response)


def _extract_message_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = choices[0].message
    content = getattr(message, "content", "")
    if isinstance(content, list):
        return "".join(part.get("text", "") for part in content if isinstance(part, dict)).strip()
    if isinstance(content, str):
        return content.strip()
    return ""
