"""연령 점수 휴리스틱 보정 (명시적 실행 전용, 기본은 dry-run).

보정된 점수는 score_provenance = "heuristic_repair"로 표시되어
분석 결과와 구분된다.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from analyzer.schema import AGE_BUCKETS
from db import repository
from db.models import Movie

logger = logging.getLogger(__name__)

PROVENANCE = "heuristic_repair"


@dataclass(frozen=True)
class ScoreRepair:
    movie_id: int
    imdb_id: str
    title: str
    before: dict
    after: dict
    rule: str


def propose_scores(scores: dict) -> tuple[dict, str] | None:
    """보정안 계산. 보정할 것이 없으면 None.

    - 48m == 36m 이고 60m == 36m (구버전 복사 버그 패턴): 48m = max(1, 36m-1), 60m = max(1, 36m-2)
    - 그 밖의 비단조 벡터: 어린 연령 점수를 더 큰 연령의 최댓값까지 올림
    """
    if not scores or any(b not in scores for b in AGE_BUCKETS):
        return None
    s24, s36, s48, s60 = (scores[b] for b in AGE_BUCKETS)

    if s48 == s36 and s60 == s36 and s36 > 1:
        proposed = dict(scores)
        proposed["48m"] = max(1, s36 - 1)
        proposed["60m"] = max(1, s36 - 2)
        if proposed["24m"] < proposed["36m"]:
            proposed["24m"] = proposed["36m"]
        return proposed, "copied_36m"

    values = [s24, s36, s48, s60]
    if all(values[i] >= values[i + 1] for i in range(3)):
        return None
    fixed = list(values)
    for i in range(len(fixed) - 2, -1, -1):
        fixed[i] = max(fixed[i], fixed[i + 1])
    return dict(zip(AGE_BUCKETS, fixed)), "monotonic_raise"


def repair_scores(session: Session, *, apply: bool = False) -> list[ScoreRepair]:
    """모든 영화에 대해 보정안 계산, apply=True일 때만 저장."""
    repairs: list[ScoreRepair] = []
    for movie in session.query(Movie).filter(Movie.age_scores.isnot(None)).order_by(Movie.id):
        proposal = propose_scores(movie.age_scores)
        if proposal is None:
            continue
        after, rule = proposal
        repair = ScoreRepair(movie.id, movie.imdb_id, movie.title, dict(movie.age_scores), after, rule)
        repairs.append(repair)
        if apply:
            repository.update_scores(session, movie, after, PROVENANCE)
            logger.info("점수 보정 적용: movie_id=%d %s → %s (%s)", movie.id, repair.before, after, rule)
        else:
            logger.info("[dry-run] 점수 보정안: movie_id=%d %s → %s (%s)", movie.id, repair.before, after, rule)
    return repairs
