"""장면 분석 프롬프트."""
from analyzer.policy import FlagPolicy, get_policy
from config.settings import MAX_SUBTITLE_CHARS

TRUNCATION_NOTE = "\n\n[Note: Subtitle truncated due to length]"

# ---------------------------------------------------------------------------
# 프롬프트 템플릿
# ---------------------------------------------------------------------------

_SCENE_PROMPT = """\
You are a child development expert analyzing a movie for age-appropriateness for young children.

Movie: {title}{year}
Summary: {summary}

Read the subtitles below and identify the scenes that could be scary, upsetting or
overstimulating for children aged 2 to 5.

Respond with JSON ONLY, no other text, in exactly this format:
{{
  "overall_scary_score": {{"24m": 1-5, "36m": 1-5, "48m": 1-5, "60m": 1-5}},
  "scenes": [
    {{
      "timestamp_start": "HH:MM:SS",
      "timestamp_end": "HH:MM:SS",
      "description": "what happens and why it may affect a young child",
      "tags": ["tag1", "tag2"],
      "intensity": 1-5,
      "age_flags": {{"24m": "✅", "36m": "⚠️", "48m": "🚫", "60m": "✅"}}
    }}
  ]
}}

## Rules
1. Use exactly the age keys 24m, 36m, 48m and 60m (24, 36, 48 and 60 months).
2. Scores and intensity are integers from 1 (calm) to 5 (very intense).
3. Younger children are more sensitive: 24m >= 36m >= 48m >= 60m for overall_scary_score.
4. age_flags values: ✅ appropriate, ⚠️ caution, 🚫 not recommended. Give a flag for every age key.
5. List at least {min_scenes} scenes in chronological order. Timestamps must be HH:MM:SS without milliseconds.
6. Flags should differ between ages when the scene affects ages differently.

## Intensity guidance
{guidance}

## Subtitles
{subtitles}
"""


def truncate_subtitles(text: str, limit: int = MAX_SUBTITLE_CHARS) -> str:
    """길이 초과 시 앞부분만 남기고 안내 문구를 붙인다 (요약/분할 없음)."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_NOTE


def build_prompt(
    *,
    title: str,
    subtitles: str,
    year: int | None = None,
    summary: str | None = None,
    min_scenes: int = 5,
    policy: FlagPolicy | None = None,
    max_chars: int = MAX_SUBTITLE_CHARS,
) -> str:
    policy = policy or get_policy()
    return _SCENE_PROMPT.format(
        title=title,
        year=f" ({year})" if year else "",
        summary=summary or "No summary available",
        min_scenes=min_scenes,
        guidance=policy.render_guidance(),
        subtitles=truncate_subtitles(subtitles, max_chars),
    )
