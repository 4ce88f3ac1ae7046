"""LLM 분석 응답 → NormalizedAnalysis 변환.

원시 응답은 이 모듈 밖으로 나가지 않는다.
- 연령 키: 고정 별칭 표로만 매핑 (추측 금지, 모르는 키는 경고 후 무시)
- 장면 플래그: 이모지/단어 → AgeFlag, 빠진 항목은 caution
- 구조 위반(장면 수 부족, 점수 범위 밖 등)은 SchemaInvariantViolation
"""
import json
import logging
import re

from analyzer.schema import (
    AGE_BUCKETS,
    SCORE_MAX,
    SCORE_MIN,
    AgeFlag,
    AgeFlagVector,
    AgeScoreVector,
    NormalizedAnalysis,
    SceneRecord,
)
from config.settings import MIN_SCENES
from pipeline.errors import MalformedAnalysisResponse, SchemaInvariantViolation
from subtitles.validator import clean_timestamp, is_clean_timestamp

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 고정 별칭 표
# ---------------------------------------------------------------------------


def _build_age_aliases() -> dict[str, str]:
    table: dict[str, str] = {}
    for years, bucket in ((2, "24m"), (3, "36m"), (4, "48m"), (5, "60m")):
        months = years * 12
        for alias in (
            bucket,
            str(years),
            f"{years}y", f"{years}yr", f"{years}yrs",
            f"{years} y", f"{years} yr", f"{years} yrs",
            f"{years} year", f"{years} years", f"{years}_years", f"{years}years",
            f"{years}-year", f"{years}-years", f"{years} year old", f"{years} years old",
            f"age_{years}", f"age {years}", f"age{years}",
            f"{months}", f"{months} m", f"{months}mo", f"{months} months",
            f"{months}_months", f"{months}months", f"{months}-months",
            f"age_{months}m",
        ):
            table[alias] = bucket
    return table


AGE_KEY_ALIASES: dict[str, str] = _build_age_aliases()

_FLAG_ALIASES: dict[str, AgeFlag] = {
    "✅": AgeFlag.APPROPRIATE,
    "✔": AgeFlag.APPROPRIATE,
    "✔️": AgeFlag.APPROPRIATE,
    "appropriate": AgeFlag.APPROPRIATE,
    "ok": AgeFlag.APPROPRIATE,
    "safe": AgeFlag.APPROPRIATE,
    "⚠️": AgeFlag.CAUTION,
    "⚠": AgeFlag.CAUTION,
    "caution": AgeFlag.CAUTION,
    "warning": AgeFlag.CAUTION,
    "🚫": AgeFlag.NOT_RECOMMENDED,
    "❌": AgeFlag.NOT_RECOMMENDED,
    "not_recommended": AgeFlag.NOT_RECOMMENDED,
    "not recommended": AgeFlag.NOT_RECOMMENDED,
    "not-recommended": AgeFlag.NOT_RECOMMENDED,
    "inappropriate": AgeFlag.NOT_RECOMMENDED,
}

_OVERALL_KEYS = ("overall_scary_score", "overall_scores", "age_scores")


def canonical_age_key(key) -> str | None:
    return AGE_KEY_ALIASES.get(str(key).strip().lower())


def map_age_keys(raw: dict, context: str, warnings: list[str]) -> dict:
    """연령 키를 정규 버킷으로 매핑. 정규 키가 별칭보다 우선한다."""
    mapped: dict = {}
    from_alias: set[str] = set()
    for key, value in raw.items():
        bucket = canonical_age_key(key)
        if bucket is None:
            msg = f"{context}: ignored unknown age key {key!r}"
            logger.warning(msg)
            warnings.append(msg)
            continue
        is_canonical = str(key).strip().lower() == bucket
        if bucket in mapped:
            if bucket in from_alias and is_canonical:
                mapped[bucket] = value
                from_alias.discard(bucket)
            continue
        mapped[bucket] = value
        if not is_canonical:
            from_alias.add(bucket)
    return mapped


def parse_flag(value) -> AgeFlag | None:
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in _FLAG_ALIASES:
        return _FLAG_ALIASES[text]
    # "✅ appropriate", "⚠️ Caution" 등 이모지 + 단어 조합
    for token, flag in _FLAG_ALIASES.items():
        if text.startswith(token):
            return flag
    return None


# ---------------------------------------------------------------------------
# JSON 추출 (무손실 보정만)
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def _fix_control_chars(s: str) -> str:
    """JSON 문자열 리터럴 내부의 제어 문자를 이스케이프 시퀀스로 변환."""
    result: list[str] = []
    in_string = False
    i = 0
    while i < len(s):
        c = s[i]
        if c == "\\" and in_string:
            result.append(c)
            i += 1
            if i < len(s):
                result.append(s[i])
            i += 1
            continue
        if c == '"':
            in_string = not in_string
            result.append(c)
        elif in_string and c == "\n":
            result.append("\\n")
        elif in_string and c == "\r":
            result.append("\\r")
        elif in_string and c == "\t":
            result.append("\\t")
        elif in_string and ord(c) < 0x20:
            result.append(f"\\u{ord(c):04x}")
        else:
            result.append(c)
        i += 1
    return "".join(result)


def _strip_trailing_commas(s: str) -> str:
    return re.sub(r",\s*([}\]])", r"\1", s)


def _first_balanced_object(text: str) -> str | None:
    """처음 나오는 최상위 {...} 구간 (문자열 내부 괄호 무시)."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            c = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif c == "\\":
                    escaped = True
                elif c == '"':
                    in_string = False
                continue
            if c == '"':
                in_string = True
            elif c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def extract_json_payload(raw: str) -> dict:
    """LLM 원시 응답에서 JSON 객체 추출.

    1차: ```json 코드 블록 → 2차: 첫 최상위 {...} 구간.
    제어 문자 이스케이프, 후행 쉼표 제거 외의 보정은 하지 않는다.
    """
    if not raw or not raw.strip():
        raise MalformedAnalysisResponse("empty response from model")

    candidate: str | None = None
    fence = _FENCE_RE.search(raw)
    if fence and "{" in fence.group(1):
        candidate = _first_balanced_object(fence.group(1)) or fence.group(1).strip()
    if candidate is None:
        candidate = _first_balanced_object(raw)
    if candidate is None:
        raise MalformedAnalysisResponse("no JSON object found in model response")

    cleaned = _fix_control_chars(candidate)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        try:
            data = json.loads(_strip_trailing_commas(cleaned))
            logger.info("JSON 후행 쉼표 보정 후 파싱 성공")
        except json.JSONDecodeError as e:
            raise MalformedAnalysisResponse(f"model returned invalid JSON ({e})") from e

    if not isinstance(data, dict):
        raise MalformedAnalysisResponse("model response JSON is not an object")
    return data


# ---------------------------------------------------------------------------
# 정규화
# ---------------------------------------------------------------------------

def _parse_score(value, bucket: str):
    if isinstance(value, bool):
        raise SchemaInvariantViolation(f"score for {bucket} is not numeric: {value!r}")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise SchemaInvariantViolation(f"score for {bucket} is not numeric: {value!r}")
    if not isinstance(value, (int, float)):
        raise SchemaInvariantViolation(f"score for {bucket} is not numeric: {value!r}")
    if not SCORE_MIN <= value <= SCORE_MAX:
        raise SchemaInvariantViolation(
            f"score for {bucket} out of range [{SCORE_MIN},{SCORE_MAX}]: {value}"
        )
    if float(value).is_integer():
        return int(value)
    return float(value)


def normalize_scores(raw, warnings: list[str]) -> AgeScoreVector:
    if not isinstance(raw, dict):
        raise SchemaInvariantViolation("overall scores must be an object keyed by age")
    mapped = map_age_keys(raw, "overall scores", warnings)
    missing = [b for b in AGE_BUCKETS if b not in mapped]
    if missing:
        raise SchemaInvariantViolation(f"overall scores missing buckets: {', '.join(missing)}")
    return AgeScoreVector(*(_parse_score(mapped[b], b) for b in AGE_BUCKETS))


def normalize_flags(raw, context: str, warnings: list[str]) -> AgeFlagVector:
    """연령별 플래그. age_flags 자체가 없으면 모든 연령 caution (경고 기록)."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise SchemaInvariantViolation(f"{context}: age_flags must be an object keyed by age")
    mapped = map_age_keys(raw, context, warnings)
    flags: list[AgeFlag] = []
    for bucket in AGE_BUCKETS:
        flag = parse_flag(mapped.get(bucket))
        if flag is None:
            msg = f"{context}: flag for {bucket} missing or unrecognised ({mapped.get(bucket)!r}), using caution"
            logger.warning(msg)
            warnings.append(msg)
            flag = AgeFlag.CAUTION
        flags.append(flag)
    return AgeFlagVector(*flags)


def _parse_intensity(value, context: str) -> int:
    if isinstance(value, bool):
        raise SchemaInvariantViolation(f"{context}: intensity is not an integer: {value!r}")
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise SchemaInvariantViolation(f"{context}: intensity is not an integer: {value!r}")
    if not number.is_integer() or not 1 <= number <= 5:
        raise SchemaInvariantViolation(f"{context}: intensity must be an integer in [1,5], got {value!r}")
    return int(number)


def _parse_tags(value) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        return ()
    return tuple(str(t).strip() for t in items if str(t).strip())


def _parse_timestamp(value, field_name: str, context: str) -> str:
    cleaned = clean_timestamp("" if value is None else str(value))
    if not is_clean_timestamp(cleaned):
        raise SchemaInvariantViolation(f"{context}: unparseable {field_name} {value!r}")
    return cleaned


def normalize_scene(raw, index: int, warnings: list[str]) -> SceneRecord:
    context = f"scene[{index}]"
    if not isinstance(raw, dict):
        raise SchemaInvariantViolation(f"{context}: scene must be an object")
    description = str(raw.get("description") or "").strip()
    if not description:
        raise SchemaInvariantViolation(f"{context}: description is empty")
    return SceneRecord(
        timestamp_start=_parse_timestamp(raw.get("timestamp_start"), "timestamp_start", context),
        timestamp_end=_parse_timestamp(raw.get("timestamp_end"), "timestamp_end", context),
        description=description,
        intensity=_parse_intensity(raw.get("intensity"), context),
        age_flags=normalize_flags(raw.get("age_flags"), context, warnings),
        tags=_parse_tags(raw.get("tags")),
    )


def normalize_analysis(payload: dict, *, min_scenes: int = MIN_SCENES) -> NormalizedAnalysis:
    """파싱된 JSON을 정규화하고 구조를 검증한다.

    Raises:
        MalformedAnalysisResponse: 최상위 키 누락
        SchemaInvariantViolation: 장면 수 부족, 점수/강도/타임스탬프 위반
    """
    overall_key = next((k for k in _OVERALL_KEYS if k in payload), None)
    if overall_key is None or "scenes" not in payload:
        missing = [k for k, ok in (("overall_scary_score", overall_key), ("scenes", "scenes" in payload)) if not ok]
        raise MalformedAnalysisResponse(f"response missing keys: {', '.join(missing)}")

    warnings: list[str] = []
    scores = normalize_scores(payload[overall_key], warnings)

    raw_scenes = payload["scenes"]
    if not isinstance(raw_scenes, list):
        raise SchemaInvariantViolation("scenes must be a list")
    scenes = tuple(normalize_scene(s, i, warnings) for i, s in enumerate(raw_scenes))
    if len(scenes) < min_scenes:
        raise SchemaInvariantViolation(
            f"too few scenes: {len(scenes)} (minimum {min_scenes})"
        )
    return NormalizedAnalysis(overall_scores=scores, scenes=scenes, warnings=tuple(warnings))
