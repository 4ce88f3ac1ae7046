"""자막 본문 검증 / 타임스탬프 정리.

수집 백엔드와 수동 업로드 양쪽이 같은 검증을 거친다.
HTML 페이지(차단 페이지, 로그인 페이지 등)가 자막으로 저장되는 것을 막는 것이 핵심.
"""
import re
from dataclasses import dataclass

from config.settings import MIN_SUBTITLE_CHARS

_HTML_MARKERS = ("<!doctype", "<html", "<head", "<body", "<script")
_TIMESTAMP_RE = re.compile(r"\d{1,2}:\d{2}:\d{2}")
_LEADING_TS_RE = re.compile(r"^\s*(\d{1,2}):(\d{2}):(\d{2})")
_CLEAN_TS_RE = re.compile(r"^\d{2}:\d{2}:\d{2}$")
# 00:01:02,345 --> 00:01:04,000  /  0:01:02.345 --> 0:01:04.000 position:50%
_CUE_TIMING_RE = re.compile(
    r"^\s*(\d{1,2}:\d{2}:\d{2})(?:[.,]\d{1,3})?\s*(?:-->|-)\s*"
    r"(\d{1,2}:\d{2}:\d{2})(?:[.,]\d{1,3})?.*$"
)
# 01:10.500 --> 01:12.000  (WebVTT: 시간 생략 가능, 화살표 필수)
_SHORT_CUE_TIMING_RE = re.compile(
    r"^\s*(\d{2}:\d{2})(?:[.,]\d{1,3})?\s*-->\s*"
    r"(\d{2}:\d{2})(?:[.,]\d{1,3})?.*$"
)


@dataclass(frozen=True)
class ContentVerdict:
    valid: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.valid


def contains_html(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in _HTML_MARKERS)


def validate_subtitle_content(text: str | None, *, min_chars: int = MIN_SUBTITLE_CHARS) -> ContentVerdict:
    """자막으로 저장 가능한 본문인지 판정한다.

    순서: 빈 값 → HTML 마커(길이와 무관) → 최소 길이 → 타이밍 마커.
    최소 길이는 원문 기준. 저장본은 큐 줄이 짧아지므로 min_chars=0으로 검사한다.
    """
    if not text or not text.strip():
        return ContentVerdict(False, "empty subtitle content")
    if contains_html(text):
        return ContentVerdict(False, "content looks like an HTML document, not subtitles")
    if len(text) < min_chars:
        return ContentVerdict(
            False, f"content too short ({len(text)} < {min_chars} chars)",
        )
    if "-->" not in text and not _TIMESTAMP_RE.search(text):
        return ContentVerdict(False, "no subtitle timing markers found")
    return ContentVerdict(True)


def clean_timestamp(raw: str) -> str:
    """선두의 H:MM:SS / HH:MM:SS만 남기고 HH:MM:SS로 0 채움.

    밀리초, 화살표, 뒤따르는 텍스트는 버린다. 매칭이 없으면 양끝 공백만 제거해 그대로 반환.
    멱등: clean_timestamp(clean_timestamp(x)) == clean_timestamp(x)
    """
    if raw is None:
        return ""
    m = _LEADING_TS_RE.match(str(raw))
    if not m:
        return str(raw).strip()
    h, mm, ss = m.groups()
    return f"{int(h):02d}:{mm}:{ss}"


def is_clean_timestamp(value: str) -> bool:
    return bool(value) and bool(_CLEAN_TS_RE.match(value))


def clean_subtitle_text(text: str) -> str:
    """모든 큐 타이밍 줄을 'HH:MM:SS - HH:MM:SS' 형태로 바꾼다."""
    out: list[str] = []
    for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        m = _CUE_TIMING_RE.match(line)
        if m:
            out.append(f"{clean_timestamp(m.group(1))} - {clean_timestamp(m.group(2))}")
            continue
        m = _SHORT_CUE_TIMING_RE.match(line)
        if m:
            out.append(f"{clean_timestamp('00:' + m.group(1))} - {clean_timestamp('00:' + m.group(2))}")
        else:
            out.append(line)
    return "\n".join(out).strip() + "\n"


def detect_format(text: str) -> str:
    return "vtt" if text.lstrip("﻿").lstrip().upper().startswith("WEBVTT") else "srt"


def normalize_title(title: str) -> str:
    """검색용 제목: 괄호 내용 제거, 구두점 → 공백, 공백 축약, 소문자."""
    t = re.sub(r"\([^)]*\)", " ", title or "")
    t = re.sub(r"[^\w\s]", " ", t)
    t = re.sub(r"\s+", " ", t)
    return t.strip().casefold()
