"""정규화된 분석 결과 타입.

LLM 응답은 normalizer에서 이 타입으로만 변환되며, 이후 단계(일관성 검사, 저장)는
원시 dict를 보지 않는다.
"""
import enum
from dataclasses import dataclass, field

AGE_BUCKETS: tuple[str, ...] = ("24m", "36m", "48m", "60m")

SCORE_MIN = 1
SCORE_MAX = 5


class AgeFlag(enum.Enum):
    APPROPRIATE = "appropriate"
    CAUTION = "caution"
    NOT_RECOMMENDED = "not_recommended"


@dataclass(frozen=True)
class AgeScoreVector:
    """연령대별 무서움 점수 (1 = 차분, 5 = 매우 강함)."""
    m24: float
    m36: float
    m48: float
    m60: float

    def as_dict(self) -> dict[str, float]:
        return dict(zip(AGE_BUCKETS, (self.m24, self.m36, self.m48, self.m60)))

    def values(self) -> tuple[float, ...]:
        return (self.m24, self.m36, self.m48, self.m60)

    @classmethod
    def from_dict(cls, d: dict) -> "AgeScoreVector":
        return cls(*(d[k] for k in AGE_BUCKETS))


@dataclass(frozen=True)
class AgeFlagVector:
    m24: AgeFlag
    m36: AgeFlag
    m48: AgeFlag
    m60: AgeFlag

    def as_dict(self) -> dict[str, str]:
        return {k: f.value for k, f in zip(AGE_BUCKETS, self.values())}

    def values(self) -> tuple[AgeFlag, ...]:
        return (self.m24, self.m36, self.m48, self.m60)

    def is_uniform(self) -> bool:
        return len(set(self.values())) == 1

    @classmethod
    def from_dict(cls, d: dict) -> "AgeFlagVector":
        return cls(*(AgeFlag(d[k]) for k in AGE_BUCKETS))


@dataclass(frozen=True)
class SceneRecord:
    timestamp_start: str  # HH:MM:SS
    timestamp_end: str
    description: str
    intensity: int
    age_flags: AgeFlagVector
    tags: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NormalizedAnalysis:
    overall_scores: AgeScoreVector
    scenes: tuple[SceneRecord, ...]
    # 정규화 중 무시된 키 등 (실패는 아님)
    warnings: tuple[str, ...] = field(default_factory=tuple)
