import logging
from urllib.parse import parse_qs, urlparse

from config.settings import OPENSUBTITLES_API_KEY, OPENSUBTITLES_API_URL, REQUEST_TIMEOUT
from subtitles.base import SubtitleBackend
from subtitles.plugin_manager import BackendRegistry

log = logging.getLogger(__name__)


@BackendRegistry.register(
    'opensubtitles_api',
    description='OpenSubtitles REST API (OPENSUBTITLES_API_KEY 필요)',
    enabled=bool(OPENSUBTITLES_API_KEY),
)
class OpenSubtitlesApiBackend(SubtitleBackend):
    name = "opensubtitles_api"
    base_url = OPENSUBTITLES_API_URL

    def __init__(self, api_key: str = OPENSUBTITLES_API_KEY) -> None:
        super().__init__()
        self.api_key = api_key
        self._session.headers.update({
            "Api-Key": api_key,
            "Accept": "application/json",
        })

    def _rotate_ua(self) -> None:
        # API는 앱 식별용 고정 UA 요구
        self._session.headers["User-Agent"] = "TinyViewers v1.0"

    def search(self, title, year=None, imdb_id=None):
        if not self.api_key or not imdb_id:
            return None
        number = imdb_id[2:] if imdb_id.lower().startswith("tt") else imdb_id
        data = self._get(
            f"{self.base_url}/subtitles",
            params={"imdb_id": number, "languages": "en"},
        ).json()

        items = data.get("data") or []
        if not items:
            return None
        best = next(
            (
                s for s in items
                if s.get("attributes", {}).get("language") == "en"
                and s.get("attributes", {}).get("download_count", 0) > 0
            ),
            items[0],
        )
        files = best.get("attributes", {}).get("files") or []
        if not files:
            return None
        return f"{self.base_url}/download?file_id={files[0]['file_id']}"

    def fetch(self, url):
        file_id = parse_qs(urlparse(url).query).get("file_id", [None])[0]
        if not file_id:
            return None
        self._rotate_ua()
        resp = self._session.post(
            f"{self.base_url}/download",
            json={"file_id": int(file_id), "sub_format": "srt"},
            timeout=REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        link = resp.json().get("link")
        if not link:
            log.debug("[opensubtitles_api] 다운로드 링크 없음: file_id=%s", file_id)
            return None
        return self._decode_payload(self._get(link))
