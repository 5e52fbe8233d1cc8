"""Async client for the Exa semantic search API."""

from __future__ import annotations

from typing import Any

import httpx


class ExaError(RuntimeError):
    """Base error for Exa client failures."""

    def __init__(self, message: str, code: str = "EXA_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ExaRateLimitError(ExaError):
    """Raised when Exa responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Exa") -> None:
        super().__init__(message, code="EXA_429")


class ExaTimeoutError(ExaError):
    """Raised when Exa request times out."""

    def __init__(self, message: str = "Exa request timed out") -> None:
        super().__init__(message, code="EXA_TIMEOUT")


class ExaSchemaError(ExaError):
    """Raised when Exa response schema is not as expected."""

    def __init__(self, message: str = "Unexpected Exa response schema") -> None:
        super().__init__(message, code="EXA_SCHEMA_ERR")


class ExaClient:
    """Minimal async Exa API client."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.exa.ai",
        timeout: float = 40.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("EXA_API_KEY is required to create an ExaClient.")
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            await self._http.aclose()

    async def search_and_contents(
        self,
        *,
        query: str,
        limit: int,
        max_characters: int = 500,
        search_type: str = "auto",
    ) -> list[dict[str, Any]]:
        """Run a search and return results with their page text excerpts."""
        if limit <= 0:
            raise ValueError("limit must be a positive integer.")

        payload = {
            "query": query,
            "numResults": limit,
            "type": search_type,
            "contents": {"text": {"maxCharacters": max_characters}},
        }
        headers = {"x-api-key": self._api_key}

        try:
            response = await self._http.post("/search", json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ExaTimeoutError() from exc
        except httpx.HTTPError as exc:  # pragma: no cover - network failures
            raise ExaError(f"HTTP error calling Exa: {exc}") from exc

        if response.status_code == 429:
            raise ExaRateLimitError()

        if response.status_code in (408, 504):
            raise ExaTimeoutError()

        if response.status_code >= 400:
            detail: str | None = None
            try:
                body = response.json()
                detail = body.get("message") or body.get("error") or body.get("detail")
            except ValueError:
                detail = response.text[:200]
            message = f"Exa request failed: {response.status_code}"
            if detail:
                message = f"{message} - {detail}"
            raise ExaError(
                message,
                code=response.headers.get("x-exa-error-code", "EXA_ERROR"),
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ExaSchemaError("Failed to decode Exa response JSON.") from exc
        results = data.get("results") if isinstance(data, dict) else None

        if not isinstance(results, list):
            raise ExaSchemaError("`results` missing from Exa response.")

        if not all(isinstance(entry, dict) for entry in results):
            raise ExaSchemaError("Entries in `results` must be JSON objects.")

        return results

    async def __aenter__(self) -> "ExaClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
