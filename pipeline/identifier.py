"""IMDb 식별자 추출."""
import re

from pipeline.errors import InvalidIdentifier

_URL_RE = re.compile(r"imdb\.com/title/(tt\d+)", re.IGNORECASE)
_BARE_RE = re.compile(r"^(tt\d+)$", re.IGNORECASE)


def extract_imdb_id(raw: str | None) -> str:
    """URL 또는 bare ID → 정규 'tt' + 숫자. 실패 시 InvalidIdentifier."""
    value = (raw or "").strip()
    m = _URL_RE.search(value) or _BARE_RE.match(value)
    if not m:
        raise InvalidIdentifier(f"not an IMDb title URL or ID: {raw!r}")
    return "tt" + m.group(1)[2:]


def dedupe_identifiers(raws: list[str]) -> tuple[list[str], dict[str, str]]:
    """정규 ID 기준 중복 제거 (입력 순서 유지).

    Returns:
        (정규 ID 목록, {원본: 오류 메시지})
    """
    seen: list[str] = []
    invalid: dict[str, str] = {}
    for raw in raws:
        try:
            imdb_id = extract_imdb_id(raw)
        except InvalidIdentifier as e:
            invalid[raw] = str(e)
            continue
        if imdb_id not in seen:
            seen.append(imdb_id)
    return seen, invalid
