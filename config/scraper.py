"""자막 수집 백엔드 공통 설정."""
import os

from dotenv import load_dotenv

load_dotenv()

# 시도 순서 = 나열 순서
ENABLED_BACKENDS: list[str] = os.getenv(
    "ENABLED_BACKENDS", "opensubtitles_api,yts_subs,yify,opensubtitles_web",
).split(",")

USER_AGENTS: list[str] = [
    # Chrome 131 / Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    # Chrome 131 / Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    # Firefox 132 / Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:132.0) Gecko/20100101 Firefox/132.0",
    # Safari 18.1 / Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
]

REQUEST_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Encoding": "gzip, deflate",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

REQUEST_TIMEOUT: int = int(os.getenv("REQUEST_TIMEOUT", "20"))

# 백엔드 간 예의상 대기 (고정값, 실패 백엔드는 재시도하지 않음)
BACKEND_DELAY: float = float(os.getenv("BACKEND_DELAY", "1.0"))

# 이보다 짧은 본문은 자막으로 보지 않음
MIN_SUBTITLE_CHARS: int = int(os.getenv("MIN_SUBTITLE_CHARS", "300"))

OPENSUBTITLES_API_KEY: str = os.getenv("OPENSUBTITLES_API_KEY", "")
OPENSUBTITLES_API_URL: str = os.getenv(
    "OPENSUBTITLES_API_URL", "https://api.opensubtitles.com/api/v1",
)
