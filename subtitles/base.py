import io
import logging
import random
import zipfile
from abc import ABC, abstractmethod
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from config.settings import REQUEST_HEADERS, REQUEST_TIMEOUT, USER_AGENTS

log = logging.getLogger(__name__)

_SUBTITLE_EXTENSIONS = (".srt", ".vtt")


class SubtitleBackend(ABC):
    """자막 제공처 1곳.

    search() → 후보 URL, fetch() → 자막 본문. 둘 다 못 찾으면 None.
    네트워크 오류는 그대로 올려보내고 acquirer가 해당 백엔드를 건너뛴다.
    """
    name: str = ""
    base_url: str = ""

    def __init__(self) -> None:
        self._session = requests.Session()
        self._session.headers.update(REQUEST_HEADERS)

    def _rotate_ua(self) -> None:
        self._session.headers["User-Agent"] = random.choice(USER_AGENTS)

    def _get(self, url: str, **kwargs) -> requests.Response:
        self._rotate_ua()
        kwargs.setdefault("timeout", REQUEST_TIMEOUT)
        resp = self._session.get(url, **kwargs)
        resp.raise_for_status()
        return resp

    def _soup(self, url: str, **kwargs) -> BeautifulSoup:
        return BeautifulSoup(self._get(url, **kwargs).text, "html.parser")

    def _absolute(self, href: str) -> str:
        return urljoin(self.base_url or "", href)

    @staticmethod
    def _text(el) -> str:
        return el.get_text(" ", strip=True) if el else ""

    @abstractmethod
    def search(self, title: str, year: int | None = None, imdb_id: str | None = None) -> str | None:
        """자막 후보 URL 반환 (없으면 None)."""

    def fetch(self, url: str) -> str | None:
        """URL에서 자막 본문을 받는다.

        HTML 페이지가 오면 다운로드 링크를 한 번만 따라간다. zip은 첫 .srt/.vtt를 푼다.
        """
        resp = self._get(url)
        text = self._decode_payload(resp)
        if text is not None:
            return text

        link = self._extract_download_link(resp.text, url)
        if not link:
            log.debug("[%s] 다운로드 링크 없음: %s", self.name, url)
            return None
        log.debug("[%s] 다운로드 페이지 경유: %s → %s", self.name, url, link)
        return self._decode_payload(self._get(link))

    def _extract_download_link(self, html: str, page_url: str) -> str | None:
        """보조 페이지에서 실제 다운로드 링크 찾기 (백엔드별 재정의)."""
        soup = BeautifulSoup(html, "html.parser")
        for a in soup.find_all("a", href=True):
            href = a["href"]
            if href.lower().endswith(_SUBTITLE_EXTENSIONS + (".zip",)) or "download" in href.lower():
                return urljoin(page_url, href)
        return None

    def _decode_payload(self, resp: requests.Response) -> str | None:
        """자막 파일이면 본문, HTML이면 None."""
        content = resp.content or b""
        if content[:2] == b"PK":
            return self._unzip(content)
        ctype = resp.headers.get("Content-Type", "").lower()
        text = resp.text
        head = text[:512].lower()
        if "text/html" in ctype or "<html" in head or "<!doctype" in head:
            return None
        return text

    def _unzip(self, content: bytes) -> str | None:
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as zf:
                for member in zf.namelist():
                    if member.lower().endswith(_SUBTITLE_EXTENSIONS):
                        raw = zf.read(member)
                        return raw.decode("utf-8-sig", errors="replace")
        except zipfile.BadZipFile:
            log.warning("[%s] 손상된 zip 응답", self.name)
            return None
        log.debug("[%s] zip 안에 자막 파일 없음", self.name)
        return None
