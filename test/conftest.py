"""공용 fixture: 인메모리 SQLite 세션, 샘플 자막/LLM 응답."""
import json
import os
import tempfile

# config.settings 임포트 전에 테스트 환경 고정
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="tinyviewers-test-"))
os.environ["TMDB_API_KEY"] = "test-tmdb-key"
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["BACKEND_DELAY"] = "0"
os.environ["LLM_RETRY_DELAY"] = "0"
os.environ["OPENSUBTITLES_API_KEY"] = ""

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from db.models import Base  # noqa: E402

DEFAULT_FLAGS = {"24m": "🚫", "36m": "⚠️", "48m": "⚠️", "60m": "✅"}
DEFAULT_SCORES = {"24m": 4, "36m": 3, "48m": 2, "60m": 2}


@pytest.fixture
def session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    db = factory()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def srt_text():
    """300자를 충분히 넘는 정상 SRT."""
    blocks = [
        f"{i}\n00:{i:02d}:00,000 --> 00:{i:02d}:04,500\nLine number {i} of the dialogue here.\n"
        for i in range(1, 13)
    ]
    return "\n".join(blocks)


@pytest.fixture
def make_payload():
    """LLM 분석 응답 dict 생성기."""
    def _make(n_scenes=6, scores=None, flags=None, score_key="overall_scary_score"):
        scenes = [
            {
                "timestamp_start": f"00:{i + 1:02d}:00",
                "timestamp_end": f"00:{i + 1:02d}:30",
                "description": f"Scene {i + 1}: the villain chases the hero",
                "tags": ["chase", "villain"],
                "intensity": 3,
                "age_flags": dict(flags or DEFAULT_FLAGS),
            }
            for i in range(n_scenes)
        ]
        return {score_key: dict(scores or DEFAULT_SCORES), "scenes": scenes}
    return _make


@pytest.fixture
def make_response(make_payload):
    """코드 블록으로 감싼 LLM 원시 응답 문자열 생성기."""
    def _make(**kwargs):
        payload = kwargs.pop("payload", None) or make_payload(**kwargs)
        return "Here is the analysis:\n```json\n" + json.dumps(payload, ensure_ascii=False) + "\n```"
    return _make


class FakeLLM:
    """응답 목록을 순서대로 돌려주는 LLM 대역."""
    model = "fake-model"

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def complete(self, prompt):
        self.prompts.append(prompt)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def fake_llm():
    return FakeLLM
