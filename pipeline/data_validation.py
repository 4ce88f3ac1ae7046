"""분석 전 영화 데이터 검증 (제목 / IMDb ID / 줄거리 / 자막)."""
import re
from dataclasses import dataclass

from sqlalchemy.orm import Session

from db import repository
from db.models import Movie
from subtitles.validator import validate_subtitle_content

_IMDB_RE = re.compile(r"^tt\d+$")


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str = ""


def validate_movie_data(session: Session, movie: Movie) -> ValidationResult:
    if not (movie.title or "").strip():
        return ValidationResult(False, "movie title is missing")
    if not _IMDB_RE.match(movie.imdb_id or ""):
        return ValidationResult(False, f"invalid IMDb ID {movie.imdb_id!r}")
    if not (movie.summary or "").strip():
        return ValidationResult(False, "movie summary is missing")

    subtitle = repository.get_subtitle(session, movie.id)
    if subtitle is None:
        return ValidationResult(False, "no subtitles stored")
    # 저장본은 큐 줄이 정리되어 원문보다 짧다. 길이 기준은 저장 시점에 원문으로 검사됨
    verdict = validate_subtitle_content(subtitle.subtitle_text, min_chars=0)
    if not verdict.valid:
        return ValidationResult(False, f"stored subtitles are invalid: {verdict.reason}")
    return ValidationResult(True)
