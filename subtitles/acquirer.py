"""여러 백엔드를 순서대로 시도해 유효한 자막 1건을 얻는다.

실패한 백엔드는 재시도하지 않고 건너뛴다. 아무것도 못 찾으면 None (예외 아님).
"""
import logging
import time
from dataclasses import dataclass

from sqlalchemy.orm import Session

from config.settings import BACKEND_DELAY, ENABLED_BACKENDS
from db import repository
from db.models import Movie
from pipeline.errors import SubtitleCorrupted
from subtitles.base import SubtitleBackend
from subtitles.plugin_manager import BackendRegistry
from subtitles.validator import detect_format, validate_subtitle_content

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcquiredSubtitle:
    text: str
    source: str
    file_format: str


def load_enabled_backends(names: list[str] | None = None) -> list[SubtitleBackend]:
    """ENABLED_BACKENDS 순서대로 활성 백엔드 인스턴스 생성."""
    BackendRegistry.auto_discover('subtitles')
    return BackendRegistry.in_order(names or ENABLED_BACKENDS)


class SubtitleAcquirer:

    def __init__(self, backends: list[SubtitleBackend] | None = None, delay: float = BACKEND_DELAY) -> None:
        self._backends = backends
        self.delay = delay

    @property
    def backends(self) -> list[SubtitleBackend]:
        if self._backends is None:
            self._backends = load_enabled_backends()
        return self._backends

    def acquire(self, title: str, year: int | None = None, imdb_id: str | None = None) -> AcquiredSubtitle | None:
        for i, backend in enumerate(self.backends):
            if i > 0 and self.delay > 0:
                time.sleep(self.delay)

            try:
                url = backend.search(title, year=year, imdb_id=imdb_id)
                if not url:
                    logger.info("[%s] 후보 없음: %s", backend.name, title)
                    continue
                text = backend.fetch(url)
            except Exception:
                logger.exception("[%s] 자막 수집 실패: %s", backend.name, title)
                continue

            verdict = validate_subtitle_content(text)
            if not verdict.valid:
                logger.warning("[%s] 자막 후보 거부: %s (%s)", backend.name, verdict.reason, url)
                continue

            logger.info("[%s] 자막 확보: %s (%d자)", backend.name, title, len(text))
            return AcquiredSubtitle(text=text, source=backend.name, file_format=detect_format(text))

        logger.info("모든 백엔드 실패: %s", title)
        return None

    def acquire_for_movie(self, session: Session, movie: Movie) -> bool:
        """자막 확보 후 저장. 성공 여부만 반환."""
        found = self.acquire(movie.title, year=movie.release_year, imdb_id=movie.imdb_id)
        if found is None:
            return False
        try:
            repository.replace_subtitle(session, movie, found.text, found.source)
        except SubtitleCorrupted as e:
            logger.warning("자막 저장 거부: movie_id=%d %s", movie.id, e)
            return False
        return True
