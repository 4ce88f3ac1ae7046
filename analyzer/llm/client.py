"""LLM 제공자 호출 (Anthropic Messages API / Ollama).

단일 블로킹 요청. 429 / 5xx / 타임아웃 / 연결 오류만 고정 간격으로 재시도하고,
소진되거나 그 외 오류면 AnalysisUnavailable.
"""
import logging
import time

import requests

from config.settings import (
    ANTHROPIC_API_KEY,
    ANTHROPIC_API_URL,
    ANTHROPIC_VERSION,
    CLAUDE_MODEL,
    LLM_MAX_RETRIES,
    LLM_MAX_TOKENS,
    LLM_PROVIDER,
    LLM_RETRY_DELAY,
    LLM_TIMEOUT,
    OLLAMA_MODEL,
    get_ollama_host,
)
from pipeline.errors import AnalysisUnavailable

logger = logging.getLogger(__name__)

_CONNECT_TIMEOUT = 10
_RETRY_STATUS = {429, 500, 502, 503, 504, 529}


class _RetryableCall(Exception):
    """재시도 대상 응답/오류 (내부용)."""


class LLMClient:
    """provider: 'anthropic' | 'ollama'"""

    def __init__(
        self,
        provider: str = LLM_PROVIDER,
        *,
        model: str | None = None,
        api_key: str = ANTHROPIC_API_KEY,
        max_tokens: int = LLM_MAX_TOKENS,
        timeout: int = LLM_TIMEOUT,
        max_retries: int = LLM_MAX_RETRIES,
        retry_delay: float = LLM_RETRY_DELAY,
        session: requests.Session | None = None,
    ) -> None:
        if provider not in ("anthropic", "ollama"):
            raise ValueError(f"Unknown LLM provider: '{provider}'. Available: anthropic, ollama")
        self.provider = provider
        self.model = model or (CLAUDE_MODEL if provider == "anthropic" else OLLAMA_MODEL)
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._session = session or requests.Session()

    # ------------------------------------------------------------------

    def complete(self, prompt: str) -> str:
        """프롬프트 1건 → 응답 텍스트."""
        if self.provider == "anthropic" and not self.api_key:
            raise AnalysisUnavailable("ANTHROPIC_API_KEY is not configured", retryable=False)

        last_error = ""
        for attempt in range(1, self.max_retries + 1):
            try:
                if self.provider == "anthropic":
                    return self._call_anthropic(prompt)
                return self._call_ollama(prompt)
            except _RetryableCall as e:
                last_error = str(e)
                if attempt < self.max_retries:
                    logger.warning(
                        "LLM 재시도 %d/%d (%.1f초 후): %s",
                        attempt, self.max_retries, self.retry_delay, e,
                    )
                    time.sleep(self.retry_delay)
        raise AnalysisUnavailable(
            f"LLM provider unavailable after {self.max_retries} attempts: {last_error}"
        )

    def _post(self, url: str, **kwargs) -> requests.Response:
        try:
            resp = self._session.post(url, timeout=(_CONNECT_TIMEOUT, self.timeout), **kwargs)
        except requests.Timeout as e:
            raise _RetryableCall(f"timeout ({self.timeout}s)") from e
        except requests.ConnectionError as e:
            raise _RetryableCall(f"connection error: {e}") from e
        except requests.RequestException as e:
            raise AnalysisUnavailable(f"LLM request failed: {e}") from e

        if resp.status_code in _RETRY_STATUS:
            raise _RetryableCall(f"HTTP {resp.status_code}")
        if not resp.ok:
            raise AnalysisUnavailable(
                f"LLM provider returned HTTP {resp.status_code}: {resp.text[:300]}"
            )
        return resp

    def _call_anthropic(self, prompt: str) -> str:
        resp = self._post(
            ANTHROPIC_API_URL,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": self.model,
                "max_tokens": self.max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        try:
            blocks = resp.json().get("content") or []
        except ValueError as e:
            raise AnalysisUnavailable("LLM provider returned a non-JSON body") from e
        text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
        if not text.strip():
            raise AnalysisUnavailable("LLM provider returned an empty completion")
        return text

    def _call_ollama(self, prompt: str) -> str:
        resp = self._post(
            f"{get_ollama_host()}/api/generate",
            json={
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "format": "json",
                "options": {"num_predict": self.max_tokens, "temperature": 0.2},
            },
        )
        try:
            text = resp.json().get("response", "")
        except ValueError as e:
            raise AnalysisUnavailable("Ollama returned a non-JSON body") from e
        if not text.strip():
            raise AnalysisUnavailable("Ollama returned an empty completion")
        return text.strip()
