"""장면 분석 LLM 호출 이력 (llm_logs).

기록 실패는 경고만 남긴다. 분석 결과 저장 여부와 무관.
"""
import logging
import time

from db.models import LLMLog

logger = logging.getLogger(__name__)

# TEXT 컬럼 한도 이내로 자름
_RESPONSE_LIMIT = 60_000
_ERROR_LIMIT = 2_000


def _clip(value: str | None, limit: int) -> str | None:
    return value[:limit] if value else None


class LLMCallTimer:
    """with 블록 경과시간(ms). 예외로 빠져나가도 elapsed_ms는 채워진다."""

    def __init__(self) -> None:
        self._started = 0.0
        self.elapsed_ms = 0

    def __enter__(self) -> "LLMCallTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, *_exc) -> None:
        self.elapsed_ms = round((time.perf_counter() - self._started) * 1000)


def log_llm_call(
    *,
    call_type: str,
    movie_id: int | None,
    model_name: str,
    prompt_text: str,
    raw_response: str | None,
    content_length: int = 0,
    success: bool = True,
    error_message: str | None = None,
    duration_ms: int | None = None,
    session_factory=None,
) -> None:
    """호출 1건을 별도 세션으로 저장.

    분석 트랜잭션과 분리되어 있어 분석이 롤백돼도 실패 이력은 남는다.
    content_length는 프롬프트에 넣기 전 자막 글자 수.
    """
    if session_factory is None:
        from db.session import SessionLocal as session_factory

    row = LLMLog(
        movie_id=movie_id,
        call_type=call_type,
        model_name=model_name,
        content_length=content_length,
        prompt_text=prompt_text or None,
        raw_response=_clip(raw_response, _RESPONSE_LIMIT),
        success=success,
        error_message=_clip(error_message, _ERROR_LIMIT),
        duration_ms=duration_ms,
    )
    try:
        with session_factory() as db:
            db.add(row)
            db.commit()
    except Exception as exc:
        logger.warning("llm_logs 저장 실패 (movie_id=%s, %s): %s", movie_id, call_type, exc)
        return
    logger.debug("llm_logs: movie_id=%s success=%s %sms", movie_id, success, duration_ms)
