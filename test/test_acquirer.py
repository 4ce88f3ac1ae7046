"""자막 수집 체인 테스트 (가짜 백엔드)."""
from unittest.mock import patch

from db.models import IngestState, Movie, Subtitle
from subtitles.acquirer import SubtitleAcquirer
from subtitles.base import SubtitleBackend


class FakeBackend(SubtitleBackend):

    def __init__(self, name, url="http://example.com/sub", text=None, error=None):
        super().__init__()
        self.name = name
        self.url = url
        self.text = text
        self.error = error
        self.calls = []

    def search(self, title, year=None, imdb_id=None):
        self.calls.append((title, year, imdb_id))
        if self.error:
            raise self.error
        return self.url

    def fetch(self, url):
        return self.text


class TestSubtitleAcquirer:

    def test_first_valid_candidate_wins(self, srt_text):
        a = FakeBackend("a", text=srt_text)
        b = FakeBackend("b", text=srt_text)
        found = SubtitleAcquirer([a, b], delay=0).acquire("Up", 2009, "tt1049413")
        assert found.source == "a"
        assert found.file_format == "srt"
        assert b.calls == []

    def test_html_candidate_rejected_and_next_tried(self, srt_text):
        """HTML 페이지를 자막으로 받은 백엔드는 건너뛴다."""
        html = FakeBackend("html", text="<html><body>" + srt_text + "</body></html>")
        good = FakeBackend("good", text=srt_text)
        found = SubtitleAcquirer([html, good], delay=0).acquire("Up")
        assert found.source == "good"

    def test_failing_backend_skipped_not_retried(self, srt_text):
        broken = FakeBackend("broken", error=ConnectionError("down"))
        good = FakeBackend("good", text=srt_text)
        found = SubtitleAcquirer([broken, good], delay=0).acquire("Up")
        assert found.source == "good"
        assert len(broken.calls) == 1

    def test_nothing_found_returns_none(self):
        backends = [FakeBackend("none", url=None), FakeBackend("short", text="too short")]
        assert SubtitleAcquirer(backends, delay=0).acquire("Up") is None

    @patch("subtitles.acquirer.time.sleep")
    def test_courtesy_delay_between_backends(self, mock_sleep):
        backends = [FakeBackend(str(i), url=None) for i in range(3)]
        SubtitleAcquirer(backends, delay=1.0).acquire("Up")
        assert mock_sleep.call_count == 2
        mock_sleep.assert_called_with(1.0)

    def test_acquire_for_movie_stores_cleaned_subtitle(self, session, srt_text):
        movie = Movie(imdb_id="tt1049413", title="Up", release_year=2009, summary="Balloons.",
                      status=IngestState.ACQUIRING_SUBTITLES)
        session.add(movie)
        session.commit()
        backend = FakeBackend("yify", text=srt_text)

        assert SubtitleAcquirer([backend], delay=0).acquire_for_movie(session, movie) is True
        assert backend.calls == [("Up", 2009, "tt1049413")]
        stored = session.query(Subtitle).filter_by(movie_id=movie.id).one()
        assert stored.source == "yify"
        assert "-->" not in stored.subtitle_text
        assert movie.has_subtitles

    def test_acquire_for_movie_not_found(self, session):
        movie = Movie(imdb_id="tt1049413", title="Up", status=IngestState.ACQUIRING_SUBTITLES)
        session.add(movie)
        session.commit()
        assert SubtitleAcquirer([FakeBackend("x", url=None)], delay=0).acquire_for_movie(session, movie) is False
        assert not movie.has_subtitles
