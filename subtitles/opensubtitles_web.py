import logging

from bs4 import BeautifulSoup

from subtitles.base import SubtitleBackend
from subtitles.plugin_manager import BackendRegistry

log = logging.getLogger(__name__)


@BackendRegistry.register('opensubtitles_web', description='OpenSubtitles.org web search')
class OpenSubtitlesWebBackend(SubtitleBackend):
    name = "opensubtitles_web"
    base_url = "https://www.opensubtitles.org"

    def search(self, title, year=None, imdb_id=None):
        if not imdb_id:
            return None
        number = imdb_id[2:] if imdb_id.lower().startswith("tt") else imdb_id
        soup = self._soup(
            f"{self.base_url}/en/search/imdbid-{number}/sublanguageid-eng",
            headers={"Referer": f"{self.base_url}/"},
        )
        a = (
            soup.select_one('a[href*="/en/download/"]')
            or soup.select_one('a[href*="/en/subtitleserve/"]')
            or soup.select_one('a[href*="/en/subtitles/"]')
        )
        return self._absolute(a["href"]) if a is not None else None

    def _extract_download_link(self, html, page_url):
        soup = BeautifulSoup(html, "html.parser")
        a = (
            soup.select_one('a[href*="/en/download/"]')
            or soup.select_one('a[href*="/en/subtitleserve/"]')
        )
        return self._absolute(a["href"]) if a is not None else None
