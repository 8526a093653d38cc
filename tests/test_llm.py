"""Tests for boot_hill.llm: HttpAIClient and ScriptedAIClient."""

import time

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from boot_hill.config import AIClientConfig
from boot_hill.errors import AIRequestError
from boot_hill.llm import HttpAIClient, ScriptedAIClient, chat_response


# ---------------------------------------------------------------------------
# ScriptedAIClient
# ---------------------------------------------------------------------------

class TestScriptedAIClient:
    async def test_returns_queued_responses_in_order(self) -> None:
        client = ScriptedAIClient(["first", "second"])
        assert await client.make_request([], {}) == "first"
        assert await client.make_request([], {}) == "second"

    async def test_raises_queued_exception(self) -> None:
        client = ScriptedAIClient([AIRequestError("boom")])
        with pytest.raises(AIRequestError, match="boom"):
            await client.make_request([], {})

    async def test_empty_queue_raises(self) -> None:
        with pytest.raises(AIRequestError, match="No scripted response"):
            await ScriptedAIClient().make_request([], {})

    async def test_records_calls_and_counts_down_quota(self) -> None:
        client = ScriptedAIClient(["ok"], rate_limit=2)
        await client.make_request([{"role": "user", "content": "hi"}], {"max_tokens": 5})
        assert client.calls == [([{"role": "user", "content": "hi"}], {"max_tokens": 5})]
        assert client.get_rate_limit_remaining() == 1

    def test_chat_response_envelope(self) -> None:
        assert chat_response("x") == {"choices": [{"message": {"role": "assistant", "content": "x"}}]}


# ---------------------------------------------------------------------------
# HttpAIClient
# ---------------------------------------------------------------------------

def _mock_response(body: dict, status: int = 200, headers: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


MESSAGES = [{"role": "user", "content": "Describe the saloon."}]


class TestHttpAIClient:
    @pytest.fixture
    def client(self) -> HttpAIClient:
        return HttpAIClient(AIClientConfig(endpoint="http://localhost:8080/v1", model_name="western-7b"))

    async def test_happy_path_returns_decoded_body(self, client: HttpAIClient) -> None:
        body = chat_response('{"prompt": "Draw?"}')
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await client.make_request(MESSAGES, {})
        assert result == body

    async def test_posts_to_chat_completions(self, client: HttpAIClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response(chat_response("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.make_request(MESSAGES, {})
        url = mock_post.call_args[0][0]
        assert url == "http://localhost:8080/v1/chat/completions"

    async def test_sends_model_messages_and_options(self, client: HttpAIClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response(chat_response("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.make_request(MESSAGES, {"max_tokens": 1000})
        sent_body = mock_post.call_args.kwargs["json"]
        assert sent_body == {"model": "western-7b", "messages": MESSAGES, "max_tokens": 1000}

    async def test_string_prompt_wrapped_as_user_message(self, client: HttpAIClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response(chat_response("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.make_request("hello", {})
        assert mock_post.call_args.kwargs["json"]["messages"] == [{"role": "user", "content": "hello"}]

    async def test_bearer_token_sent_when_api_key_set(self) -> None:
        client = HttpAIClient(AIClientConfig(endpoint="http://localhost:8080", api_key="secret"))
        mock_post = AsyncMock(return_value=_mock_response(chat_response("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.make_request(MESSAGES, {})
        headers = mock_post.call_args.kwargs["headers"]
        assert headers.get("Authorization") == "Bearer secret"

    async def test_no_auth_header_when_no_api_key(self, client: HttpAIClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response(chat_response("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.make_request(MESSAGES, {})
        assert "Authorization" not in mock_post.call_args.kwargs["headers"]

    async def test_trailing_slash_stripped_from_url(self) -> None:
        client = HttpAIClient(AIClientConfig(endpoint="http://localhost:8080/v1/"))
        mock_post = AsyncMock(return_value=_mock_response(chat_response("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.make_request(MESSAGES, {})
        assert mock_post.call_args[0][0] == "http://localhost:8080/v1/chat/completions"

    async def test_connect_error_raises_ai_request_error(self, client: HttpAIClient) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(AIRequestError, match="Cannot connect"):
                await client.make_request(MESSAGES, {})

    async def test_timeout_raises_ai_request_error(self, client: HttpAIClient) -> None:
        mock_post = AsyncMock(side_effect=httpx.TimeoutException("timeout"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(AIRequestError, match="timed out"):
                await client.make_request(MESSAGES, {})

    async def test_server_error_is_retryable(self, client: HttpAIClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(AIRequestError, match="HTTP 503") as exc_info:
                await client.make_request(MESSAGES, {})
        assert exc_info.value.retryable

    async def test_client_error_is_not_retryable(self, client: HttpAIClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=400))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(AIRequestError, match="HTTP 400") as exc_info:
                await client.make_request(MESSAGES, {})
        assert not exc_info.value.retryable

    async def test_non_json_body_raises(self, client: HttpAIClient) -> None:
        resp = _mock_response({})
        resp.json.side_effect = ValueError("not json")
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
            with pytest.raises(AIRequestError, match="non-JSON"):
                await client.make_request(MESSAGES, {})


class TestRateLimit:
    async def test_headers_update_quota(self) -> None:
        client = HttpAIClient(AIClientConfig(endpoint="http://x", rate_limit=60))
        reset = time.time() + 120
        headers = {"X-RateLimit-Remaining": "7", "X-RateLimit-Reset": str(reset)}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response(chat_response("ok"), headers=headers))):
            await client.make_request(MESSAGES, {})
        assert client.get_rate_limit_remaining() == 7
        assert client.get_rate_limit_reset_time() == pytest.approx(reset)

    async def test_counts_down_without_headers(self) -> None:
        client = HttpAIClient(AIClientConfig(endpoint="http://x", rate_limit=3))
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response(chat_response("ok")))):
            await client.make_request(MESSAGES, {})
            await client.make_request(MESSAGES, {})
        assert client.get_rate_limit_remaining() == 1

    async def test_quota_refills_after_reset_time(self) -> None:
        client = HttpAIClient(AIClientConfig(endpoint="http://x", rate_limit=5))
        headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(time.time() - 1)}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response(chat_response("ok"), headers=headers))):
            await client.make_request(MESSAGES, {})
        assert client.get_rate_limit_remaining() == 5

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AI_API_ENDPOINT", "http://env:9000/v1")
        monkeypatch.setenv("AI_RATE_LIMIT", "12")
        config = AIClientConfig.from_env(model_name="override")
        assert config.endpoint == "http://env:9000/v1"
        assert config.rate_limit == 12
        assert config.model_name == "override"

    async def test_rate_limited_response_updates_quota(self) -> None:
        client = HttpAIClient(AIClientConfig(endpoint="http://x", rate_limit=60))
        reset = time.time() + 300
        headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(reset)}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response({}, status=429, headers=headers))):
            with pytest.raises(AIRequestError, match="HTTP 429") as exc_info:
                await client.make_request(MESSAGES, {})
        assert exc_info.value.retryable
        assert client.get_rate_limit_remaining() == 0
        assert client.get_rate_limit_reset_time() == pytest.approx(reset)
