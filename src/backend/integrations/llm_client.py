"""
HTTP client for the OpenAI-compatible LLM endpoint.

Streams ``POST {base}/chat/completions`` as decoded StreamEvents and lists
models from ``GET {base}/models``.
"""

from __future__ import annotations

import time

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from core.constants import LLM_CHAT_COMPLETIONS_PATH, LLM_MODELS_PATH
from core.exceptions import TransportError
from core.stream_decoder import StreamEvent, iter_stream_events
from models.config_models import sanitize_url
from utils.logger import logger
from utils.metrics import llm_stream_duration_seconds, llm_stream_requests_total

#: Characters of an error response body kept in the TransportError
ERROR_BODY_PREVIEW_CHARS = 500


class LLMClient:
    """Thin async client over a shared httpx.AsyncClient.

    Args:
        http_client: Shared httpx client (timeouts configured by the factory)
        base_url: Base URL of the chat-completions API, e.g. ``https://host/v1``
        api_key: Bearer key, omitted from requests when empty
    """

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, api_key: str | None = None) -> None:
        self._http = http_client
        self.base_url = sanitize_url(base_url).rstrip("/")
        self._api_key = api_key

    def _headers(self, streaming: bool = False) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if streaming else "application/json",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    @asynccontextmanager
    async def open_stream(self, body: dict[str, Any]) -> AsyncIterator[AsyncIterator[StreamEvent]]:
        """Open a streaming completion and yield its decoded events.

        Raises:
            TransportError: On network failure, a non-2xx status or an in-stream error object
            StreamDecodeError: If a data line is not valid JSON
        """
        url = f"{self.base_url}/{LLM_CHAT_COMPLETIONS_PATH}"
        payload = {**body, "stream": True}
        start = time.perf_counter()
        outcome = "error"

        try:
            async with self._http.stream("POST", url, json=payload, headers=self._headers(streaming=True)) as response:
                if response.status_code >= 400:
                    await response.aread()
                    preview = response.text[:ERROR_BODY_PREVIEW_CHARS]
                    logger.error(
                        f"LLM request rejected with HTTP {response.status_code}",
                        status_code=response.status_code,
                        model=body.get("model"),
                    )
                    raise TransportError(
                        f"LLM request failed with HTTP {response.status_code}: {preview}",
                        status_code=response.status_code,
                    )

                yield iter_stream_events(response.aiter_lines())
                outcome = "ok"
        except httpx.HTTPError as e:
            logger.error(f"LLM stream transport failure: {e}", model=body.get("model"))
            raise TransportError(f"LLM stream failed: {e}", cause=e) from e
        finally:
            llm_stream_requests_total.labels(outcome=outcome).inc()
            llm_stream_duration_seconds.observe(time.perf_counter() - start)

    async def fetch_models(self) -> list[Any]:
        """Return the raw ``data`` array of ``GET /models``.

        Raises:
            TransportError: On network failure or a non-2xx status
        """
        url = f"{self.base_url}/{LLM_MODELS_PATH}"
        try:
            response = await self._http.get(url, headers=self._headers())
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Model listing failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Model listing failed: {e}", cause=e) from e
        except ValueError as e:
            raise TransportError("Model listing returned a non-JSON body", cause=e) from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            logger.warning("Model listing response has no data array")
            return []
        return data


__all__ = ["LLMClient"]
