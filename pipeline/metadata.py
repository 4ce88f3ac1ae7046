"""TMDB 메타데이터 조회 (IMDb ID → 제목/연도/줄거리/포스터/평점)."""
import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, TypeVar

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.settings import TMDB_API_KEY, TMDB_BASE_URL, TMDB_IMAGE_BASE, TMDB_TIMEOUT
from pipeline.errors import MetadataUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    exceptions: tuple = (requests.Timeout, requests.ConnectionError),
) -> Callable:
    """일시적 네트워크 오류 고정 간격 재시도 데코레이터.

    Args:
        max_attempts: 최대 시도 횟수
        delay: 재시도 간격 (초, 고정)
        exceptions: 재시도할 예외 타입
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception: Exception | None = None
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts:
                        logger.warning(
                            "%s 재시도 %d/%d (%.1f초 후): %s",
                            func.__name__, attempt, max_attempts, delay, e,
                        )
                        time.sleep(delay)
            raise last_exception  # type: ignore[misc]
        return wrapper
    return decorator


# Retry-After 상한 (초)
RETRY_AFTER_MAX = 30.0


class _CappedRetry(Retry):
    def get_retry_after(self, response):
        seconds = super().get_retry_after(response)
        return None if seconds is None else min(seconds, RETRY_AFTER_MAX)


def _build_session() -> requests.Session:
    """429/5xx 응답 재시도(Retry-After 존중, 상한 있음)가 포함된 세션."""
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=_CappedRetry(
        total=2,
        backoff_factor=0,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        respect_retry_after_header=True,
        raise_on_status=False,
    ))
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


@dataclass(frozen=True)
class MovieMetadata:
    title: str
    release_year: int | None
    summary: str
    poster_url: str | None
    rating: float | None


class TmdbClient:

    def __init__(
        self,
        api_key: str = TMDB_API_KEY,
        base_url: str = TMDB_BASE_URL,
        timeout: int = TMDB_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or _build_session()

    @retry(max_attempts=3, delay=1.0)
    def _find(self, imdb_id: str) -> requests.Response:
        return self._session.get(
            f"{self.base_url}/find/{imdb_id}",
            params={"api_key": self.api_key, "external_source": "imdb_id"},
            timeout=self.timeout,
        )

    def find_by_imdb_id(self, imdb_id: str) -> MovieMetadata:
        if not self.api_key:
            raise MetadataUnavailable("TMDB_API_KEY is not configured", retryable=False)
        try:
            resp = self._find(imdb_id)
        except requests.RequestException as e:
            raise MetadataUnavailable(f"TMDB request failed: {e}") from e

        if not resp.ok:
            raise MetadataUnavailable(f"TMDB returned HTTP {resp.status_code} for {imdb_id}")
        try:
            results = resp.json().get("movie_results") or []
        except ValueError as e:
            raise MetadataUnavailable("TMDB returned a non-JSON body") from e
        if not results:
            raise MetadataUnavailable(f"no TMDB movie found for {imdb_id}", retryable=False)

        movie = results[0]
        title = (movie.get("title") or movie.get("original_title") or "").strip()
        if not title:
            raise MetadataUnavailable(f"TMDB result for {imdb_id} has no title", retryable=False)

        release_date = movie.get("release_date") or ""
        year = int(release_date[:4]) if release_date[:4].isdigit() else None
        poster = movie.get("poster_path")
        rating = movie.get("vote_average")
        meta = MovieMetadata(
            title=title,
            release_year=year,
            summary=(movie.get("overview") or "").strip() or "No summary available",
            poster_url=f"{TMDB_IMAGE_BASE}{poster}" if poster else None,
            rating=float(rating) if isinstance(rating, (int, float)) else None,
        )
        logger.info("TMDB 메타데이터: %s → %s (%s)", imdb_id, meta.title, meta.release_year)
        return meta
