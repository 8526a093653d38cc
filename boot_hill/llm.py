"""AI client: HTTP connection to a chat-completion backend.

The decision service depends only on the AIClient protocol:

    async def make_request(self, prompt, options) -> response: ...
    def get_rate_limit_remaining(self) -> int: ...
    def get_rate_limit_reset_time(self) -> float: ...   # epoch seconds

`prompt` is a list of chat messages ({"role", "content"}); `options` holds
per-request settings such as max_tokens. The response is the decoded JSON
body of the backend, e.g. {"choices": [{"message": {"content": "..."}}]}.

Two implementations are provided:

    HttpAIClient      — real HTTP client for OpenAI-compatible
                        /chat/completions endpoints, tracking the
                        X-RateLimit-* response headers.
    ScriptedAIClient  — replays canned responses. No network calls. Useful
                        for smoke-testing the pipeline wiring without a
                        running model.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable
from typing import Any, Protocol

import httpx

from boot_hill.config import AIClientConfig
from boot_hill.errors import AIRequestError

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = 3600.0


# ---------------------------------------------------------------------------
# Protocol: every AI client implementation must match this shape
# ---------------------------------------------------------------------------

class AIClient(Protocol):
    async def make_request(self, prompt: list[dict[str, str]], options: dict[str, Any]) -> Any: ...

    def get_rate_limit_remaining(self) -> int: ...

    def get_rate_limit_reset_time(self) -> float: ...


# ---------------------------------------------------------------------------
# HttpAIClient: connects to a real backend
# ---------------------------------------------------------------------------

class HttpAIClient:
    """Async HTTP client for OpenAI-compatible chat-completion backends.

    POST {endpoint}/chat/completions  {"model": ..., "messages": [...], "max_tokens": ...}
    Response: {"choices": [{"message": {"content": "..."}}]}

    Rate limiting follows the backend's X-RateLimit-Remaining and
    X-RateLimit-Reset (epoch seconds) headers. Without headers the client
    counts down from the configured rate_limit per hour.
    """

    def __init__(self, config: AIClientConfig) -> None:
        self._config = config
        self._base_url = config.endpoint.rstrip("/")
        self._rate_limit_remaining = config.rate_limit
        self._rate_limit_reset_time = time.time() + RATE_LIMIT_WINDOW

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    def _build_request(
        self, prompt: list[dict[str, str]] | str, options: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        """Return (url, body) for a chat-completion call."""
        if isinstance(prompt, str):
            prompt = [{"role": "user", "content": prompt}]
        body: dict[str, Any] = {"model": self._config.model_name, "messages": prompt}
        body.update(options or {})
        return f"{self._base_url}/chat/completions", body

    def _update_rate_limit(self, headers: httpx.Headers | dict[str, str]) -> None:
        remaining = headers.get("X-RateLimit-Remaining")
        reset = headers.get("X-RateLimit-Reset")
        try:
            self._rate_limit_remaining = int(remaining) if remaining is not None else self._rate_limit_remaining - 1
        except ValueError:
            self._rate_limit_remaining -= 1
        if reset is not None:
            try:
                self._rate_limit_reset_time = float(reset)
            except ValueError:
                logger.warning("Ignoring malformed X-RateLimit-Reset header %r", reset)

    def get_rate_limit_remaining(self) -> int:
        if self._rate_limit_remaining <= 0 and time.time() >= self._rate_limit_reset_time:
            self._rate_limit_remaining = self._config.rate_limit
            self._rate_limit_reset_time = time.time() + RATE_LIMIT_WINDOW
        return max(0, self._rate_limit_remaining)

    def get_rate_limit_reset_time(self) -> float:
        return self._rate_limit_reset_time

    async def make_request(
        self, prompt: list[dict[str, str]] | str, options: dict[str, Any]
    ) -> Any:
        url, body = self._build_request(prompt, options)
        logger.debug("ai request url=%s messages=%d", url, len(body["messages"]))

        try:
            async with httpx.AsyncClient(timeout=self._config.timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise AIRequestError(f"Cannot connect to AI backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            # quota headers ride on error responses too, 429s especially
            self._update_rate_limit(e.response.headers)
            raise AIRequestError(
                f"AI backend returned HTTP {status}", retryable=status >= 500 or status == 429
            ) from e
        except httpx.TimeoutException as e:
            raise AIRequestError(f"AI backend timed out after {self._config.timeout}s") from e
        except httpx.HTTPError as e:
            raise AIRequestError(f"AI request failed: {e}") from e

        self._update_rate_limit(resp.headers)
        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise AIRequestError("AI backend returned a non-JSON body") from e
        logger.debug("ai response remaining_quota=%d", self._rate_limit_remaining)
        return data


# ---------------------------------------------------------------------------
# ScriptedAIClient: replays canned responses; useful for pipeline smoke tests
# ---------------------------------------------------------------------------

class ScriptedAIClient:
    """Returns queued responses in order. No network calls.

    Each queued item is returned as-is (a decoded response dict or raw
    text); an Exception instance is raised instead of returned. Prompts are
    kept in `calls` for inspection.
    """

    def __init__(self, responses: Iterable[Any] = (), rate_limit: int = 1_000_000) -> None:
        self._responses = list(responses)
        self._rate_limit_remaining = rate_limit
        self.calls: list[tuple[Any, dict[str, Any]]] = []

    def queue(self, response: Any) -> None:
        self._responses.append(response)

    async def make_request(self, prompt: Any, options: dict[str, Any]) -> Any:
        self.calls.append((prompt, options))
        self._rate_limit_remaining -= 1
        if not self._responses:
            raise AIRequestError("No scripted response left")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get_rate_limit_remaining(self) -> int:
        return max(0, self._rate_limit_remaining)

    def get_rate_limit_reset_time(self) -> float:
        return time.time() + RATE_LIMIT_WINDOW


def chat_response(content: str) -> dict[str, Any]:
    """Wrap content in a chat-completion response envelope."""
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}
