"""영화 / 자막 / 장면 저장소 함수.

커밋 경계는 이 모듈이 가진다. SQLAlchemy 오류는 rollback 후 PersistenceError로 변환.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from analyzer.schema import NormalizedAnalysis
from db.models import AnalysisRun, IngestState, Movie, Scene, Subtitle
from pipeline.errors import PersistenceError, SubtitleCorrupted
from subtitles.validator import clean_subtitle_text, detect_format, validate_subtitle_content

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExistenceCheck:
    exists: bool
    movie_id: int | None = None
    title: str | None = None


class DuplicateMovieRecord(Exception):
    """동시 삽입으로 unique 제약에 걸림: 호출측에서 중복으로 보고한다."""

    def __init__(self, imdb_id: str, existing: ExistenceCheck):
        super().__init__(imdb_id)
        self.imdb_id = imdb_id
        self.existing = existing


# ---------------------------------------------------------------------------
# Movie
# ---------------------------------------------------------------------------

def check_exists(session: Session, imdb_id: str) -> ExistenceCheck:
    movie = session.query(Movie).filter_by(imdb_id=imdb_id).first()
    if movie is None:
        return ExistenceCheck(False)
    return ExistenceCheck(True, movie.id, movie.title)


def get_movie(session: Session, movie_id: int) -> Movie | None:
    return session.get(Movie, movie_id)


def create_movie(session: Session, imdb_id: str, metadata) -> Movie:
    """메타데이터로 영화 레코드 생성. 점수는 null (첫 분석 전)."""
    movie = Movie(
        imdb_id=imdb_id,
        title=metadata.title,
        release_year=metadata.release_year,
        summary=metadata.summary,
        poster_url=metadata.poster_url,
        rating=metadata.rating,
        age_scores=None,
        status=IngestState.CREATING_RECORD,
    )
    try:
        session.add(movie)
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = check_exists(session, imdb_id)
        logger.warning("영화 동시 삽입 감지: imdb_id=%s → movie_id=%s", imdb_id, existing.movie_id)
        raise DuplicateMovieRecord(imdb_id, existing)
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"movie insert failed: {e}", step="CREATING_RECORD") from e
    logger.info("영화 생성: id=%d imdb_id=%s title=%s", movie.id, imdb_id, movie.title)
    return movie


def set_status(
    session: Session,
    movie: Movie,
    state: IngestState,
    *,
    failed_step: str | None = None,
    reason: str | None = None,
) -> None:
    movie.status = state
    movie.failed_step = failed_step
    movie.failure_reason = reason
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"status update failed: {e}", step=state.value) from e


def list_by_status(session: Session, *states: IngestState) -> list[Movie]:
    return (
        session.query(Movie)
        .filter(Movie.status.in_(states))
        .order_by(Movie.id)
        .all()
    )


def list_unanalyzed(session: Session) -> list[Movie]:
    """자막은 있는데 장면이 없는 영화.

    실패 영화는 분석 단계에서 실패한 경우만 포함 (LLM 장애 등은 재시도로 회복 가능).
    """
    return (
        session.query(Movie)
        .filter(Movie.has_subtitles.is_(True), Movie.has_scenes.is_(False))
        .filter(or_(
            Movie.status != IngestState.FAILED,
            Movie.failed_step == IngestState.ANALYZING.value,
        ))
        .order_by(Movie.id)
        .all()
    )


def list_movies(session: Session) -> list[Movie]:
    return session.query(Movie).order_by(Movie.id).all()


# ---------------------------------------------------------------------------
# Subtitle
# ---------------------------------------------------------------------------

def replace_subtitle(session: Session, movie: Movie, text: str, source: str) -> Subtitle:
    """자막 통째로 교체 (삭제 후 삽입). 검증 실패 본문은 저장하지 않는다."""
    verdict = validate_subtitle_content(text)
    if not verdict.valid:
        raise SubtitleCorrupted(verdict.reason)

    file_format = detect_format(text)
    cleaned = clean_subtitle_text(text)
    # 길이 기준은 원문에서 이미 통과, 정리본은 나머지 조건만 재확인
    verdict = validate_subtitle_content(cleaned, min_chars=0)
    if not verdict.valid:
        raise SubtitleCorrupted(f"cleaned subtitles rejected: {verdict.reason}")
    try:
        session.query(Subtitle).filter_by(movie_id=movie.id).delete(synchronize_session=False)
        session.flush()
        sub = Subtitle(
            movie_id=movie.id,
            subtitle_text=cleaned,
            language="en",
            source=source,
            file_format=file_format,
        )
        session.add(sub)
        movie.has_subtitles = True
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"subtitle save failed: {e}", step="ACQUIRING_SUBTITLES") from e
    session.refresh(movie)
    logger.info(
        "자막 저장: movie_id=%d source=%s format=%s len=%d",
        movie.id, source, file_format, len(cleaned),
    )
    return sub


def get_subtitle(session: Session, movie_id: int) -> Subtitle | None:
    return session.query(Subtitle).filter_by(movie_id=movie_id).first()


# ---------------------------------------------------------------------------
# Scenes / scores
# ---------------------------------------------------------------------------

def replace_scenes(
    session: Session, movie: Movie, analysis: NormalizedAnalysis, model_name: str | None,
) -> AnalysisRun:
    """기존 장면 삭제 → 새 장면 삽입 → 점수 갱신을 한 트랜잭션에서 수행.

    실패 시 rollback: 이전 장면/점수가 그대로 남는다.
    """
    scores = analysis.overall_scores.as_dict()
    try:
        session.query(Scene).filter_by(movie_id=movie.id).delete(synchronize_session=False)
        session.flush()
        for rec in analysis.scenes:
            session.add(Scene(
                movie_id=movie.id,
                timestamp_start=rec.timestamp_start,
                timestamp_end=rec.timestamp_end,
                description=rec.description,
                tags=list(rec.tags),
                intensity=rec.intensity,
                age_flags=rec.age_flags.as_dict(),
            ))
        movie.age_scores = scores
        movie.score_provenance = "analysis"
        movie.has_scenes = bool(analysis.scenes)
        movie.last_analyzed_at = datetime.now(timezone.utc)
        run = AnalysisRun(
            movie_id=movie.id,
            scenes_count=len(analysis.scenes),
            age_scores=scores,
            model_name=model_name,
        )
        session.add(run)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"scene replacement failed: {e}") from e
    session.refresh(movie)
    logger.info(
        "장면 교체: movie_id=%d scenes=%d scores=%s",
        movie.id, len(analysis.scenes), scores,
    )
    return run


def get_scenes(session: Session, movie_id: int) -> list[Scene]:
    return session.query(Scene).filter_by(movie_id=movie_id).order_by(Scene.id).all()


def clear_scenes(session: Session, movie: Movie) -> int:
    """강제 재분석 전 기존 장면 삭제. 점수는 다음 분석이 덮어쓴다."""
    try:
        deleted = session.query(Scene).filter_by(movie_id=movie.id).delete(synchronize_session=False)
        movie.has_scenes = False
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"scene delete failed: {e}") from e
    session.refresh(movie)
    return deleted


def reset_movie(session: Session, movie: Movie) -> None:
    """처음부터 다시: 자막/장면/점수 삭제, 레코드 자체는 유지."""
    try:
        session.query(Scene).filter_by(movie_id=movie.id).delete(synchronize_session=False)
        session.query(Subtitle).filter_by(movie_id=movie.id).delete(synchronize_session=False)
        movie.age_scores = None
        movie.score_provenance = None
        movie.has_subtitles = False
        movie.has_scenes = False
        movie.last_analyzed_at = None
        movie.failed_step = None
        movie.failure_reason = None
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"reset failed: {e}", step="ACQUIRING_SUBTITLES") from e
    session.refresh(movie)
    logger.info("영화 초기화: movie_id=%d", movie.id)


def update_scores(session: Session, movie: Movie, scores: dict, provenance: str) -> None:
    try:
        movie.age_scores = dict(scores)  # 새 dict 할당 (JSON 변경 감지)
        movie.score_provenance = provenance
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"score update failed: {e}") from e


def list_analysis_runs(session: Session, movie_id: int) -> list[AnalysisRun]:
    return (
        session.query(AnalysisRun)
        .filter_by(movie_id=movie_id)
        .order_by(AnalysisRun.id.desc())
        .all()
    )
