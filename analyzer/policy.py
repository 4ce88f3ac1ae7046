"""
Flag Policy Loader

flag_policy.yaml(장면 강도 → 연령대별 권장 플래그) 로드.
프롬프트 가이드 문구와 감사 경고에만 쓰인다. LLM 플래그를 덮어쓰지 않는다.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

import yaml

from analyzer.schema import AGE_BUCKETS, AgeFlag, AgeFlagVector
from config.settings import FLAG_POLICY_PATH

log = logging.getLogger(__name__)

_FLAG_EMOJI = {
    AgeFlag.APPROPRIATE: "✅",
    AgeFlag.CAUTION: "⚠️",
    AgeFlag.NOT_RECOMMENDED: "🚫",
}

# flag_policy.yaml이 없을 때 사용하는 기본 표
_DEFAULT_TABLE: Dict[int, dict] = {
    1: {"24m": "caution", "36m": "appropriate", "48m": "appropriate", "60m": "appropriate",
        "example": "mild tension, brief sad moment"},
    2: {"24m": "caution", "36m": "caution", "48m": "appropriate", "60m": "appropriate",
        "example": "loud noise, character gets lost briefly"},
    3: {"24m": "not_recommended", "36m": "caution", "48m": "caution", "60m": "appropriate",
        "example": "villain appears, chase scene"},
    4: {"24m": "not_recommended", "36m": "not_recommended", "48m": "caution", "60m": "caution",
        "example": "character in danger, frightening creature"},
    5: {"24m": "not_recommended", "36m": "not_recommended", "48m": "not_recommended",
        "60m": "caution", "example": "death of a parent, intense violence"},
}


class FlagPolicy:
    """강도별 기대 플래그 표"""

    def __init__(self, table: Dict[int, dict]):
        self._expected: Dict[int, AgeFlagVector] = {}
        self._examples: Dict[int, str] = {}
        for intensity in range(1, 6):
            row = table.get(intensity)
            if row is None:
                raise ValueError(f"flag policy missing intensity {intensity}")
            self._expected[intensity] = AgeFlagVector.from_dict(
                {k: row[k] for k in AGE_BUCKETS}
            )
            self._examples[intensity] = str(row.get("example", ""))

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "FlagPolicy":
        """
        YAML 파일에서 정책 로드

        Args:
            path: 정책 파일 경로 (기본: FLAG_POLICY_PATH)

        Returns:
            FlagPolicy (파일이 없으면 기본 표)
        """
        path = Path(path or FLAG_POLICY_PATH)
        if not path.exists():
            log.warning("flag policy not found: %s (using defaults)", path)
            return cls(_DEFAULT_TABLE)

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        table = {int(k): v for k, v in (data.get("intensity") or {}).items()}
        log.debug("Loaded flag policy from %s", path)
        return cls(table)

    def expected_flags(self, intensity: int) -> AgeFlagVector:
        return self._expected[intensity]

    def render_guidance(self) -> str:
        """프롬프트에 삽입할 강도별 가이드 문구."""
        lines = []
        for intensity in range(1, 6):
            flags = self._expected[intensity]
            parts = ", ".join(
                f"{bucket}: {_FLAG_EMOJI[flag]} {flag.value}"
                for bucket, flag in zip(AGE_BUCKETS, flags.values())
            )
            example = self._examples[intensity]
            suffix = f" (e.g. {example})" if example else ""
            lines.append(f"- Intensity {intensity}{suffix} -> {parts}")
        return "\n".join(lines)


_default_policy: Optional[FlagPolicy] = None


def get_policy() -> FlagPolicy:
    global _default_policy
    if _default_policy is None:
        _default_policy = FlagPolicy.load()
    return _default_policy
