import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, Float, Index, Integer, BigInteger, String, Text, Enum, JSON,
    ForeignKey, DateTime,
)
from sqlalchemy.dialects.mysql import MEDIUMTEXT
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class IngestState(enum.Enum):
    VALIDATING = "VALIDATING"
    CHECKING_DUPLICATE = "CHECKING_DUPLICATE"
    FETCHING_METADATA = "FETCHING_METADATA"
    CREATING_RECORD = "CREATING_RECORD"
    ACQUIRING_SUBTITLES = "ACQUIRING_SUBTITLES"
    NEEDS_MANUAL_SUBTITLES = "NEEDS_MANUAL_SUBTITLES"  # 자동 수집 실패 → 수동 업로드 대기 (만료 없음)
    DATA_VALIDATING = "DATA_VALIDATING"
    ANALYZING = "ANALYZING"
    VALIDATING_ANALYSIS = "VALIDATING_ANALYSIS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def _utcnow():
    return datetime.now(timezone.utc)


# 자막 본문은 TEXT(64KB)를 쉽게 넘음
_LONG_TEXT = Text().with_variant(MEDIUMTEXT(), "mysql")


class Movie(Base):
    __tablename__ = "movies"
    __table_args__ = (
        Index("ix_movies_status", "status"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    imdb_id = Column(String(16), nullable=False, unique=True)
    title = Column(String(512), nullable=False)
    release_year = Column(Integer, nullable=True)
    summary = Column(Text, nullable=True)
    poster_url = Column(String(512), nullable=True)
    rating = Column(Float, nullable=True)

    # {"24m": int, "36m": int, "48m": int, "60m": int}: 첫 분석 완료 전까지 NULL
    age_scores = Column(JSON(none_as_null=True), nullable=True)
    score_provenance = Column(String(32), nullable=True)  # analysis | heuristic_repair

    status = Column(Enum(IngestState), nullable=False, default=IngestState.CREATING_RECORD)
    failed_step = Column(String(32), nullable=True)
    failure_reason = Column(Text, nullable=True)
    has_subtitles = Column(Boolean, nullable=False, default=False, server_default="0")
    has_scenes = Column(Boolean, nullable=False, default=False, server_default="0")
    last_analyzed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    subtitle = relationship(
        "Subtitle", back_populates="movie", uselist=False, cascade="all, delete-orphan",
    )
    scenes = relationship(
        "Scene", back_populates="movie", cascade="all, delete-orphan", order_by="Scene.id",
    )
    analysis_runs = relationship(
        "AnalysisRun", back_populates="movie", cascade="all, delete-orphan",
        order_by="AnalysisRun.id",
    )

    def __repr__(self):
        return f"<Movie {self.imdb_id} '{(self.title or '')[:30]}' {self.status}>"


class Subtitle(Base):
    __tablename__ = "subtitles"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    movie_id = Column(
        BigInteger, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    subtitle_text = Column(_LONG_TEXT, nullable=False)
    language = Column(String(8), nullable=False, default="en")
    source = Column(String(32), nullable=False)       # 백엔드명 | manual_file | manual_text
    file_format = Column(String(8), nullable=False, default="srt")  # srt | vtt
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    movie = relationship("Movie", back_populates="subtitle")

    def __repr__(self):
        return f"<Subtitle movie_id={self.movie_id} source={self.source} len={len(self.subtitle_text or '')}>"


class Scene(Base):
    __tablename__ = "scenes"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    movie_id = Column(
        BigInteger, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    timestamp_start = Column(String(8), nullable=False)  # HH:MM:SS
    timestamp_end = Column(String(8), nullable=False)
    description = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    intensity = Column(Integer, nullable=False)
    # {"24m": "appropriate"|"caution"|"not_recommended", ...}
    age_flags = Column(JSON, nullable=False)

    movie = relationship("Movie", back_populates="scenes")

    def __repr__(self):
        return f"<Scene movie_id={self.movie_id} {self.timestamp_start}-{self.timestamp_end} i={self.intensity}>"


class AnalysisRun(Base):
    """분석 실행 이력 (append-only)."""
    __tablename__ = "analysis_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    movie_id = Column(
        BigInteger, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    scenes_count = Column(Integer, nullable=False)
    age_scores = Column(JSON, nullable=False)
    model_name = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    movie = relationship("Movie", back_populates="analysis_runs")


class LLMLog(Base):
    """LLM 호출 이력: 프롬프트 튜닝용 상세 로그.

    call_type:
        'scene_analysis': ContentAnalyzer.analyze() (장면/연령 점수 분석)
    """
    __tablename__ = "llm_logs"
    __table_args__ = (
        Index("ix_llm_logs_movie_id",   "movie_id"),
        Index("ix_llm_logs_created_at", "created_at"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    movie_id = Column(
        BigInteger,
        ForeignKey("movies.id", ondelete="SET NULL"),
        nullable=True,
    )

    call_type      = Column(String(32), nullable=False)
    model_name     = Column(String(64), nullable=True)
    content_length = Column(Integer, nullable=False, default=0, server_default="0")

    prompt_text  = Column(_LONG_TEXT, nullable=True)
    raw_response = Column(Text, nullable=True)

    success       = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)
    duration_ms   = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<LLMLog movie_id={self.movie_id} {self.call_type} success={self.success}>"
