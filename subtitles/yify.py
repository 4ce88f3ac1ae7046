import logging

from bs4 import BeautifulSoup

from subtitles.base import SubtitleBackend
from subtitles.plugin_manager import BackendRegistry

log = logging.getLogger(__name__)


@BackendRegistry.register('yify', description='YIFY subtitles (IMDb ID lookup)')
class YifyBackend(SubtitleBackend):
    name = "yify"
    base_url = "https://yifysubtitles.ch"

    def search(self, title, year=None, imdb_id=None):
        # IMDb ID 없이는 검색 불가
        if not imdb_id:
            return None

        soup = self._soup(f"{self.base_url}/movie-imdb/{imdb_id}")
        for row in soup.select("tr"):
            lang = row.select_one(".sub-lang")
            if lang is not None and self._text(lang).lower() != "english":
                continue
            a = row.select_one('a[href*="/subtitles/"]') or row.select_one('a[href*="/subtitle/"]')
            if a is not None and (lang is not None or "english" in a["href"].lower()):
                return self._absolute(a["href"])
        return None

    def _extract_download_link(self, html, page_url):
        soup = BeautifulSoup(html, "html.parser")
        a = soup.select_one("a.download-subtitle") or soup.select_one('a[href$=".zip"]')
        return self._absolute(a["href"]) if a is not None else None
