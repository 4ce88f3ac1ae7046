"""
Ingestion Orchestrator

영화 1편 수집 워크플로우:
  VALIDATING → CHECKING_DUPLICATE → FETCHING_METADATA → CREATING_RECORD
  → ACQUIRING_SUBTITLES → (NEEDS_MANUAL_SUBTITLES | DATA_VALIDATING)
  → ANALYZING → VALIDATING_ANALYSIS → COMPLETED

어느 단계든 실패하면 FAILED + 실패 단계/사유를 영화 레코드에 남긴다.
복구 방법은 두 가지뿐: resume() (해당 단계 재시도), start_over() (처음부터).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from sqlalchemy.orm import Session

from analyzer.analyzer import ContentAnalyzer
from analyzer.consistency import check_movie
from config.settings import DATA_DIR, MIN_SCENES
from db import repository
from db.models import IngestState, Movie
from db.repository import DuplicateMovieRecord
from pipeline.data_validation import validate_movie_data
from pipeline.errors import PipelineError, SchemaInvariantViolation
from pipeline.identifier import extract_imdb_id
from pipeline.metadata import TmdbClient
from subtitles.acquirer import SubtitleAcquirer

logger = logging.getLogger(__name__)


@dataclass
class StepRecord:
    step: str
    status: str  # ok | failed | paused | duplicate
    message: str = ""


@dataclass
class IngestResult:
    state: IngestState
    imdb_id: str | None = None
    movie_id: int | None = None
    title: str | None = None
    reason: str | None = None
    failed_step: str | None = None
    duplicate_of: int | None = None
    overall_scores: dict | None = None
    scenes_count: int | None = None
    steps: list[StepRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state == IngestState.COMPLETED

    @property
    def paused(self) -> bool:
        return self.state == IngestState.NEEDS_MANUAL_SUBTITLES


class IngestionOrchestrator:

    def __init__(
        self,
        session: Session,
        *,
        acquirer: SubtitleAcquirer | None = None,
        analyzer: ContentAnalyzer | None = None,
        metadata_client: TmdbClient | None = None,
        failure_log: Path | None = None,
    ) -> None:
        self.session = session
        self._acquirer = acquirer
        self._analyzer = analyzer
        self._metadata = metadata_client
        self.failure_log = failure_log or (DATA_DIR / "logs" / "failures.log")

    # 협력 객체는 필요할 때 생성 (재개 경로에서 불필요한 초기화 방지)
    @property
    def acquirer(self) -> SubtitleAcquirer:
        if self._acquirer is None:
            self._acquirer = SubtitleAcquirer()
        return self._acquirer

    @property
    def analyzer(self) -> ContentAnalyzer:
        if self._analyzer is None:
            self._analyzer = ContentAnalyzer()
        return self._analyzer

    @property
    def metadata(self) -> TmdbClient:
        if self._metadata is None:
            self._metadata = TmdbClient()
        return self._metadata

    # ===================================================================
    # 진입점
    # ===================================================================

    def ingest(self, raw_identifier: str) -> IngestResult:
        """URL 또는 IMDb ID로 전체 워크플로우 실행."""
        result = IngestResult(state=IngestState.VALIDATING)

        # ===== 식별자 검증 =====
        try:
            imdb_id = extract_imdb_id(raw_identifier)
        except PipelineError as e:
            return self._fail(result, None, IngestState.VALIDATING, e)
        result.imdb_id = imdb_id
        self._step(result, IngestState.VALIDATING, "ok", imdb_id)

        # ===== 중복 확인 =====
        result.state = IngestState.CHECKING_DUPLICATE
        existing = repository.check_exists(self.session, imdb_id)
        if existing.exists:
            return self._duplicate(result, existing)
        self._step(result, IngestState.CHECKING_DUPLICATE, "ok")

        # ===== 메타데이터 =====
        result.state = IngestState.FETCHING_METADATA
        try:
            meta = self.metadata.find_by_imdb_id(imdb_id)
        except PipelineError as e:
            return self._fail(result, None, IngestState.FETCHING_METADATA, e)
        result.title = meta.title
        self._step(result, IngestState.FETCHING_METADATA, "ok", meta.title)

        # ===== 레코드 생성 =====
        result.state = IngestState.CREATING_RECORD
        try:
            movie = repository.create_movie(self.session, imdb_id, meta)
        except DuplicateMovieRecord as e:
            return self._duplicate(result, e.existing)
        except PipelineError as e:
            return self._fail(result, None, IngestState.CREATING_RECORD, e)
        result.movie_id = movie.id
        self._step(result, IngestState.CREATING_RECORD, "ok", f"movie_id={movie.id}")

        return self._run_acquisition(movie, result)

    def resume(self, movie_id: int) -> IngestResult:
        """저장된 상태에서 다음 단계부터 재개 (멱등)."""
        movie, result = self._load(movie_id)
        if movie is None:
            return result
        if not movie.has_subtitles:
            return self._run_acquisition(movie, result)
        if not movie.has_scenes:
            return self._run_data_validation(movie, result)
        return self._run_analysis_validation(movie, result)

    def upload_subtitles(self, movie_id: int, text: str, source: str = "manual_text") -> IngestResult:
        """수동 자막 업로드 후 데이터 검증부터 계속.

        Raises:
            SubtitleCorrupted: 본문이 자막이 아님 (상태 유지, 다시 업로드 요청)
        """
        movie, result = self._load(movie_id)
        if movie is None:
            return result
        repository.replace_subtitle(self.session, movie, text, source)
        self._step(result, IngestState.ACQUIRING_SUBTITLES, "ok", f"uploaded ({source})")
        return self._run_data_validation(movie, result)

    def reanalyze(self, movie_id: int) -> IngestResult:
        """기존 장면 삭제 후 강제 재분석."""
        movie, result = self._load(movie_id)
        if movie is None:
            return result
        if not movie.has_subtitles:
            return self._fail(
                result, movie, IngestState.ANALYZING,
                PipelineError("cannot re-analyze without subtitles", step="ANALYZING"),
            )
        deleted = repository.clear_scenes(self.session, movie)
        logger.info("[reanalyze] movie_id=%d 기존 장면 %d개 삭제", movie.id, deleted)
        return self._run_data_validation(movie, result)

    def start_over(self, movie_id: int) -> IngestResult:
        """자막/장면/점수를 지우고 자막 수집부터 다시 (레코드는 유지)."""
        movie, result = self._load(movie_id)
        if movie is None:
            return result
        repository.reset_movie(self.session, movie)
        return self._run_acquisition(movie, result)

    # ===================================================================
    # 단계
    # ===================================================================

    def _run_acquisition(self, movie: Movie, result: IngestResult) -> IngestResult:
        self._enter(movie, result, IngestState.ACQUIRING_SUBTITLES)
        try:
            found = self.acquirer.acquire_for_movie(self.session, movie)
        except PipelineError as e:
            return self._fail(result, movie, IngestState.ACQUIRING_SUBTITLES, e)

        if not found:
            # 만료 없음: 수동 업로드 또는 resume()까지 대기
            repository.set_status(self.session, movie, IngestState.NEEDS_MANUAL_SUBTITLES)
            result.state = IngestState.NEEDS_MANUAL_SUBTITLES
            self._step(result, IngestState.ACQUIRING_SUBTITLES, "paused", "no subtitles found; manual upload required")
            logger.info("[ingest] movie_id=%d 자막 미발견 → 수동 업로드 대기", movie.id)
            return result

        self._step(result, IngestState.ACQUIRING_SUBTITLES, "ok")
        return self._run_data_validation(movie, result)

    def _run_data_validation(self, movie: Movie, result: IngestResult) -> IngestResult:
        self._enter(movie, result, IngestState.DATA_VALIDATING)
        check = validate_movie_data(self.session, movie)
        if not check.valid:
            return self._fail(
                result, movie, IngestState.DATA_VALIDATING,
                PipelineError(check.reason, step="DATA_VALIDATING"),
            )
        self._step(result, IngestState.DATA_VALIDATING, "ok")
        return self._run_analysis(movie, result)

    def _run_analysis(self, movie: Movie, result: IngestResult) -> IngestResult:
        self._enter(movie, result, IngestState.ANALYZING)
        try:
            outcome = self.analyzer.analyze(self.session, movie)
        except PipelineError as e:
            return self._fail(result, movie, IngestState.ANALYZING, e)
        self._step(
            result, IngestState.ANALYZING, "ok",
            f"{outcome.scenes_count} scenes, model={outcome.model_name}",
        )
        return self._run_analysis_validation(movie, result)

    def _run_analysis_validation(self, movie: Movie, result: IngestResult) -> IngestResult:
        """저장된 장면/점수를 다시 읽어 검증."""
        self._enter(movie, result, IngestState.VALIDATING_ANALYSIS)
        self.session.refresh(movie)
        report = check_movie(movie)
        if not movie.scenes:
            report.violations.append(f"no scenes stored (minimum {MIN_SCENES})")
        if report.violations:
            return self._fail(
                result, movie, IngestState.VALIDATING_ANALYSIS,
                SchemaInvariantViolation("; ".join(report.violations)),
            )

        repository.set_status(self.session, movie, IngestState.COMPLETED)
        result.state = IngestState.COMPLETED
        result.overall_scores = dict(movie.age_scores)
        result.scenes_count = len(movie.scenes)
        self._step(result, IngestState.VALIDATING_ANALYSIS, "ok")
        logger.info(
            "[ingest] 완료: movie_id=%d '%s' scenes=%d scores=%s",
            movie.id, movie.title, result.scenes_count, result.overall_scores,
        )
        return result

    # ===================================================================
    # 헬퍼
    # ===================================================================

    def _load(self, movie_id: int) -> tuple[Movie | None, IngestResult]:
        movie = repository.get_movie(self.session, movie_id)
        if movie is None:
            result = IngestResult(state=IngestState.FAILED, movie_id=movie_id)
            result.reason = f"movie {movie_id} not found"
            return None, result
        result = IngestResult(
            state=movie.status, imdb_id=movie.imdb_id, movie_id=movie.id, title=movie.title,
        )
        return movie, result

    def _enter(self, movie: Movie, result: IngestResult, state: IngestState) -> None:
        result.state = state
        repository.set_status(self.session, movie, state)

    @staticmethod
    def _step(result: IngestResult, state: IngestState, status: str, message: str = "") -> None:
        result.steps.append(StepRecord(state.value, status, message))

    def _duplicate(self, result: IngestResult, existing) -> IngestResult:
        result.state = IngestState.FAILED
        result.duplicate_of = existing.movie_id
        result.movie_id = existing.movie_id
        result.title = existing.title
        result.failed_step = IngestState.CHECKING_DUPLICATE.value
        result.reason = f"movie already exists (movie_id={existing.movie_id})"
        self._step(result, IngestState.CHECKING_DUPLICATE, "duplicate", result.reason)
        logger.info("[ingest] 중복: %s → movie_id=%s", result.imdb_id, existing.movie_id)
        return result

    def _fail(
        self, result: IngestResult, movie: Movie | None, state: IngestState, error: PipelineError,
    ) -> IngestResult:
        reason = f"{type(error).__name__}: {error}"
        result.state = IngestState.FAILED
        result.failed_step = state.value
        result.reason = reason
        self._step(result, state, "failed", reason)
        logger.error(
            "[ingest] 실패: step=%s imdb_id=%s movie_id=%s error=%s",
            state.value, result.imdb_id, result.movie_id, reason,
        )
        if movie is not None:
            repository.set_status(
                self.session, movie, IngestState.FAILED, failed_step=state.value, reason=reason,
            )
        self._log_failure(result, error)
        return result

    def _log_failure(self, result: IngestResult, error: PipelineError) -> None:
        """실패 이력 파일 기록"""
        self.failure_log.parent.mkdir(parents=True, exist_ok=True)
        with open(self.failure_log, "a", encoding="utf-8") as f:
            f.write(
                f"{datetime.now().isoformat()} | movie_id={result.movie_id} | "
                f"imdb_id={result.imdb_id} | step={result.failed_step} | "
                f"error_type={type(error).__name__} | retryable={error.retryable} | "
                f"error={error}\n"
            )
