"""LLM 클라이언트 재시도 / 오류 분류 테스트."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from analyzer.llm.client import LLMClient
from pipeline.errors import AnalysisUnavailable


def _resp(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.json.return_value = body if body is not None else {}
    resp.text = str(body)
    return resp


def _anthropic_body(text):
    return {"content": [{"type": "text", "text": text}]}


def _client(*responses, **kwargs):
    session = MagicMock()
    session.post.side_effect = list(responses)
    kwargs.setdefault("api_key", "sk-test")
    kwargs.setdefault("max_retries", 3)
    kwargs.setdefault("retry_delay", 5)
    return LLMClient("anthropic", session=session, **kwargs), session


class TestAnthropic:

    def test_success(self):
        client, session = _client(_resp(200, _anthropic_body('{"ok": true}')))
        assert client.complete("prompt") == '{"ok": true}'
        kwargs = session.post.call_args.kwargs
        assert kwargs["headers"]["x-api-key"] == "sk-test"
        assert kwargs["headers"]["anthropic-version"] == "2023-06-01"
        assert kwargs["json"]["messages"][0]["content"] == "prompt"
        assert kwargs["timeout"][1] == client.timeout

    @patch("analyzer.llm.client.time.sleep")
    def test_rate_limit_retried_with_fixed_delay(self, mock_sleep):
        """429는 고정 간격으로 재시도."""
        client, session = _client(_resp(429), _resp(429), _resp(200, _anthropic_body("done")))
        assert client.complete("p") == "done"
        assert session.post.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [5, 5]

    @patch("analyzer.llm.client.time.sleep")
    def test_retries_exhausted(self, mock_sleep):
        client, session = _client(_resp(503), _resp(503), _resp(503))
        with pytest.raises(AnalysisUnavailable) as exc_info:
            client.complete("p")
        assert exc_info.value.retryable
        assert session.post.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("analyzer.llm.client.time.sleep")
    def test_timeout_and_connection_errors_retried(self, mock_sleep):
        client, _ = _client(
            requests.Timeout("slow"),
            requests.ConnectionError("reset"),
            _resp(200, _anthropic_body("ok")),
        )
        assert client.complete("p") == "ok"

    @patch("analyzer.llm.client.time.sleep")
    def test_client_error_not_retried(self, mock_sleep):
        client, session = _client(_resp(400, {"error": "bad request"}))
        with pytest.raises(AnalysisUnavailable, match="400"):
            client.complete("p")
        assert session.post.call_count == 1
        mock_sleep.assert_not_called()

    def test_missing_api_key(self):
        client, session = _client(api_key="")
        with pytest.raises(AnalysisUnavailable) as exc_info:
            client.complete("p")
        assert not exc_info.value.retryable
        session.post.assert_not_called()

    def test_empty_completion(self):
        client, _ = _client(_resp(200, {"content": []}))
        with pytest.raises(AnalysisUnavailable, match="empty"):
            client.complete("p")


class TestOllama:

    def test_generate(self):
        session = MagicMock()
        session.post.return_value = _resp(200, {"response": ' {"a": 1} '})
        client = LLMClient("ollama", model="qwen2.5:14b", session=session)
        assert client.complete("p") == '{"a": 1}'
        url = session.post.call_args.args[0]
        assert url.endswith("/api/generate")
        assert session.post.call_args.kwargs["json"]["model"] == "qwen2.5:14b"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            LLMClient("openai")
