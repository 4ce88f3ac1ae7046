import logging
from urllib.parse import quote

import requests
from bs4 import BeautifulSoup

from subtitles.base import SubtitleBackend
from subtitles.plugin_manager import BackendRegistry
from subtitles.validator import normalize_title

log = logging.getLogger(__name__)


@BackendRegistry.register('yts_subs', description='YTS-Subs (IMDb page, then title search)')
class YtsSubsBackend(SubtitleBackend):
    name = "yts_subs"
    base_url = "https://yts-subs.com"

    def search(self, title, year=None, imdb_id=None):
        # IMDb 페이지에 영어 자막이 없으면 제목 검색으로 한 번 더
        if imdb_id:
            try:
                url = self._english_subtitle(self._absolute(f"/movie-imdb/{imdb_id}"))
            except requests.HTTPError as e:
                log.debug("[yts_subs] IMDb 페이지 없음: %s (%s)", imdb_id, e)
                url = None
            if url:
                return url

        movie_url = self._search_title(title)
        if movie_url is None:
            return None
        return self._english_subtitle(movie_url)

    def _search_title(self, title):
        query = normalize_title(title)
        if not query:
            return None
        soup = self._soup(f"{self.base_url}/search?q={quote(query)}")
        link = soup.select_one('a[href^="/movie-imdb/"]')
        if link is None:
            log.debug("[yts_subs] 검색 결과 없음: %s", query)
            return None
        return self._absolute(link["href"])

    def _english_subtitle(self, movie_url):
        soup = self._soup(movie_url, headers={"Referer": f"{self.base_url}/"})
        for row in soup.select("tr"):
            if "english" not in self._text(row).lower():
                continue
            a = row.select_one('a[href*="/subtitles/"]') or row.select_one('a[href*="download"]')
            if a is not None:
                return self._absolute(a["href"])

        # 표 구조가 다르면 영어 자막 링크 아무거나
        for a in soup.select('a[href*="/subtitles/"]'):
            if "english" in a["href"].lower():
                return self._absolute(a["href"])
        return None

    def _extract_download_link(self, html, page_url):
        soup = BeautifulSoup(html, "html.parser")
        a = soup.select_one("a.download-subtitle") or soup.select_one('a[href$=".zip"]')
        return self._absolute(a["href"]) if a is not None else None
