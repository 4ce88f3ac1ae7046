"""연령 점수 / 장면 플래그 일관성 검사.

어떤 것도 자동 보정하지 않는다. 보정은 analyzer.repair (명시적 실행) 담당.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from analyzer.policy import FlagPolicy, get_policy
from analyzer.schema import AGE_BUCKETS, AgeFlagVector, AgeScoreVector, SceneRecord
from config.settings import CALM_SCORE_MAX, MIN_SCENES
from db.models import Movie
from subtitles.validator import is_clean_timestamp

logger = logging.getLogger(__name__)


@dataclass
class ConsistencyReport:
    violations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def extend(self, other: "ConsistencyReport") -> None:
        self.violations.extend(other.violations)
        self.warnings.extend(other.warnings)


@dataclass
class MovieAudit:
    movie_id: int
    imdb_id: str
    title: str
    report: ConsistencyReport


def is_calm(scores: AgeScoreVector) -> bool:
    """모든 점수가 같고 CALM_SCORE_MAX 이하."""
    values = scores.values()
    return len(set(values)) == 1 and values[0] <= CALM_SCORE_MAX


def check_monotonic(scores: AgeScoreVector) -> ConsistencyReport:
    """어린 연령일수록 점수가 같거나 높아야 한다: 24m ≥ 36m ≥ 48m ≥ 60m."""
    report = ConsistencyReport()
    values = scores.values()
    for i in range(len(AGE_BUCKETS) - 1):
        if values[i] < values[i + 1]:
            report.violations.append(
                f"score[{AGE_BUCKETS[i]}]={values[i]} < score[{AGE_BUCKETS[i + 1]}]={values[i + 1]}"
            )
    return report


def check_scene_flags(
    scenes,
    scores: AgeScoreVector,
    policy: FlagPolicy | None = None,
) -> ConsistencyReport:
    """장면 플래그 검사.

    모든 연령대 플래그가 같은 장면은 영화 전체가 차분할 때만 허용.
    정책 표와 다른 플래그는 경고만 남긴다.
    """
    report = ConsistencyReport()
    calm = is_calm(scores)
    for i, scene in enumerate(scenes):
        label = f"scene[{i}] {scene.timestamp_start}"
        flags: AgeFlagVector = scene.age_flags
        if flags.is_uniform() and not calm:
            report.violations.append(
                f"{label}: identical flag '{flags.m24.value}' for every age bucket"
            )
        if policy is not None and 1 <= scene.intensity <= 5:
            expected = policy.expected_flags(scene.intensity)
            if expected != flags:
                report.warnings.append(
                    f"{label}: flags {flags.as_dict()} differ from policy for intensity "
                    f"{scene.intensity} {expected.as_dict()}"
                )
    return report


def check_analysis(scores: AgeScoreVector, scenes, policy: FlagPolicy | None = None) -> ConsistencyReport:
    report = check_monotonic(scores)
    report.extend(check_scene_flags(scenes, scores, policy))
    return report


def _scene_records(movie: Movie, report: ConsistencyReport) -> list[SceneRecord]:
    records: list[SceneRecord] = []
    for scene in movie.scenes:
        flags = scene.age_flags or {}
        missing = [b for b in AGE_BUCKETS if b not in flags]
        if missing:
            report.violations.append(
                f"scene {scene.id}: missing flags for {', '.join(missing)}"
            )
            continue
        try:
            vector = AgeFlagVector.from_dict(flags)
        except ValueError:
            report.violations.append(f"scene {scene.id}: unknown flag value in {flags}")
            continue
        for name in ("timestamp_start", "timestamp_end"):
            value = getattr(scene, name)
            if not is_clean_timestamp(value or ""):
                report.violations.append(f"scene {scene.id}: bad {name} {value!r}")
        records.append(SceneRecord(
            timestamp_start=scene.timestamp_start,
            timestamp_end=scene.timestamp_end,
            description=scene.description,
            intensity=scene.intensity,
            age_flags=vector,
            tags=tuple(scene.tags or ()),
        ))
    return records


def check_movie(movie: Movie, policy: FlagPolicy | None = None) -> ConsistencyReport:
    """저장된 영화 1편 검사 (점수, 장면 수, 플래그, 타임스탬프)."""
    report = ConsistencyReport()
    if movie.age_scores is None:
        if movie.scenes:
            report.violations.append("scenes present but no age scores")
        return report

    missing = [b for b in AGE_BUCKETS if b not in movie.age_scores]
    if missing:
        report.violations.append(f"age scores missing buckets: {', '.join(missing)}")
        return report
    scores = AgeScoreVector.from_dict(movie.age_scores)

    report.extend(check_monotonic(scores))
    count = len(movie.scenes)
    if 0 < count < MIN_SCENES:
        report.violations.append(f"only {count} scenes (minimum {MIN_SCENES})")
    records = _scene_records(movie, report)
    report.extend(check_scene_flags(records, scores, policy))
    return report


def audit_all(session: Session, policy: FlagPolicy | None = None) -> list[MovieAudit]:
    """저장된 모든 영화 감사: 문제가 있는 영화만 반환."""
    policy = policy or get_policy()
    results: list[MovieAudit] = []
    movies = session.query(Movie).order_by(Movie.id).all()
    for movie in movies:
        report = check_movie(movie, policy)
        if report.violations or report.warnings:
            results.append(MovieAudit(movie.id, movie.imdb_id, movie.title, report))
    logger.info(
        "감사 완료: %d편 중 위반 %d편",
        len(movies), sum(1 for r in results if r.report.violations),
    )
    return results
