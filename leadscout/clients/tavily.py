"""Async client for the Tavily search API."""

from __future__ import annotations

from typing import Any

import httpx


class TavilyError(RuntimeError):
    """Base error for Tavily client failures."""

    def __init__(self, message: str, code: str = "TAVILY_ERROR") -> None:
        super().__init__(message)
        self.code = code


class TavilyRateLimitError(TavilyError):
    """Raised when Tavily responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Tavily") -> None:
        super().__init__(message, code="TAVILY_429")


class TavilyTimeoutError(TavilyError):
    """Raised when Tavily request times out."""

    def __init__(self, message: str = "Tavily request timed out") -> None:
        super().__init__(message, code="TAVILY_TIMEOUT")


class TavilySchemaError(TavilyError):
    """Raised when Tavily response schema does not match expectations."""

    def __init__(self, message: str = "Unexpected Tavily response schema") -> None:
        super().__init__(message, code="TAVILY_SCHEMA_ERR")


class TavilyClient:
    """Minimal async Tavily API client wrapper."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.tavily.com",
        timeout: float = 40.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("TAVILY_API_KEY is required to create a TavilyClient.")
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            await self._http.aclose()

    async def search(
        self,
        *,
        query: str,
        max_results: int = 10,
        exclude_domains: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a Tavily web search request."""
        if max_results <= 0:
            raise ValueError("max_results must be a positive integer.")

        payload: dict[str, Any] = {
            "query": query,
            "search_depth": "basic",
            "max_results": max_results,
        }
        if exclude_domains:
            payload["exclude_domains"] = exclude_domains

        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            response = await self._http.post("/search", json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise TavilyTimeoutError() from exc
        except httpx.HTTPError as exc:  # pragma: no cover - network failures
            raise TavilyError(f"HTTP error calling Tavily: {exc}") from exc

        if response.status_code == 429:
            raise TavilyRateLimitError()
        if response.status_code in (408, 504):
            raise TavilyTimeoutError()
        if response.status_code >= 400:
            detail = response.text[:200]
            try:
                detail_json = response.json()
                if isinstance(detail_json, dict):
                    detail = detail_json.get("message") or detail_json.get("detail") or detail
            except ValueError:
                pass
            raise TavilyError(f"Tavily request failed: {response.status_code} - {detail}")

        try:
            data = response.json()
        except ValueError as exc:
            raise TavilySchemaError("Failed to decode Tavily response JSON.") from exc

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise TavilySchemaError("`results` missing from Tavily response.")
        if not all(isinstance(item, dict) for item in results):
            raise TavilySchemaError("Entries in `results` must be JSON objects.")
        return results

    async def __aenter__(self) -> "TavilyClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
