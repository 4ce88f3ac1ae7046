"""자막 → LLM 장면 분석 → 정규화/검증 → 저장.

검증을 통과하지 못한 분석은 저장하지 않는다 (기존 장면/점수 유지).
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from analyzer.consistency import check_analysis
from analyzer.llm.client import LLMClient
from analyzer.llm.logger import LLMCallTimer, log_llm_call
from analyzer.normalizer import extract_json_payload, normalize_analysis
from analyzer.policy import FlagPolicy, get_policy
from analyzer.prompts import build_prompt
from analyzer.schema import AgeScoreVector
from config.settings import MIN_SCENES
from db import repository
from db.models import Movie
from pipeline.errors import PipelineError, SchemaInvariantViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOutcome:
    overall_scores: AgeScoreVector
    scenes_count: int
    model_name: str


class ContentAnalyzer:

    def __init__(
        self,
        client: LLMClient | None = None,
        *,
        policy: FlagPolicy | None = None,
        min_scenes: int = MIN_SCENES,
        call_logger=log_llm_call,
    ) -> None:
        self.client = client or LLMClient()
        self.policy = policy or get_policy()
        self.min_scenes = min_scenes
        self._call_logger = call_logger

    def analyze(self, session: Session, movie: Movie) -> AnalysisOutcome:
        """영화 1편 분석 후 장면/점수를 한 트랜잭션으로 교체한다.

        Raises:
            AnalysisUnavailable: LLM 호출 실패 (재시도 가능)
            MalformedAnalysisResponse: JSON 추출/최상위 키 실패
            SchemaInvariantViolation: 구조 또는 일관성 위반
            PersistenceError: 저장 실패
        """
        subtitle = repository.get_subtitle(session, movie.id)
        if subtitle is None:
            raise PipelineError("no subtitles stored for movie", step="ANALYZING")

        prompt = build_prompt(
            title=movie.title,
            year=movie.release_year,
            summary=movie.summary,
            subtitles=subtitle.subtitle_text,
            min_scenes=self.min_scenes,
            policy=self.policy,
        )
        logger.info(
            "[analyze] movie_id=%d '%s' 자막 %d자, model=%s",
            movie.id, movie.title, len(subtitle.subtitle_text), self.client.model,
        )

        raw: str | None = None
        timer = LLMCallTimer()
        try:
            with timer:
                raw = self.client.complete(prompt)
            payload = extract_json_payload(raw)
            analysis = normalize_analysis(payload, min_scenes=self.min_scenes)

            report = check_analysis(analysis.overall_scores, analysis.scenes, self.policy)
            if report.violations:
                raise SchemaInvariantViolation(
                    "consistency check failed: " + "; ".join(report.violations)
                )
        except PipelineError as e:
            self._record_call(movie, prompt, raw, len(subtitle.subtitle_text), timer, str(e))
            raise

        for warning in report.warnings:
            logger.info("[analyze] movie_id=%d 정책 경고: %s", movie.id, warning)
        self._record_call(movie, prompt, raw, len(subtitle.subtitle_text), timer, None)

        repository.replace_scenes(session, movie, analysis, self.client.model)
        logger.info(
            "[analyze] 완료: movie_id=%d scenes=%d scores=%s",
            movie.id, len(analysis.scenes), analysis.overall_scores.as_dict(),
        )
        return AnalysisOutcome(
            overall_scores=analysis.overall_scores,
            scenes_count=len(analysis.scenes),
            model_name=self.client.model,
        )

    def _record_call(self, movie, prompt, raw, content_length, timer, error) -> None:
        self._call_logger(
            call_type="scene_analysis",
            movie_id=movie.id,
            model_name=self.client.model,
            prompt_text=prompt,
            raw_response=raw,
            content_length=content_length,
            success=error is None,
            error_message=error,
            duration_ms=timer.elapsed_ms,
        )
