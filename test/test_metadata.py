"""TMDB 메타데이터 조회 테스트 (세션 mock)."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from pipeline.errors import MetadataUnavailable
from pipeline.metadata import RETRY_AFTER_MAX, TmdbClient, _build_session, retry


def _resp(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.json.return_value = body if body is not None else {}
    return resp


def _client(*responses):
    session = MagicMock()
    session.get.side_effect = list(responses)
    return TmdbClient(api_key="key", base_url="https://api.tmdb.test/3/", session=session), session


TANGLED = {
    "title": "Tangled",
    "release_date": "2010-11-24",
    "overview": "  The magically long-haired Rapunzel has spent her entire life in a tower.  ",
    "poster_path": "/ym7Kst6a4uodryxqbGOxmewF235.jpg",
    "vote_average": 7.6,
}


class TestTmdbClient:

    def test_found(self):
        client, session = _client(_resp(body={"movie_results": [TANGLED]}))
        meta = client.find_by_imdb_id("tt0398286")

        assert meta.title == "Tangled"
        assert meta.release_year == 2010
        assert meta.summary.startswith("The magically")
        assert meta.poster_url == "https://image.tmdb.org/t/p/w500/ym7Kst6a4uodryxqbGOxmewF235.jpg"
        assert meta.rating == 7.6
        assert session.get.call_args.args[0] == "https://api.tmdb.test/3/find/tt0398286"
        assert session.get.call_args.kwargs["params"]["external_source"] == "imdb_id"

    def test_missing_optional_fields(self):
        client, _ = _client(_resp(body={"movie_results": [{"original_title": "Obscure"}]}))
        meta = client.find_by_imdb_id("tt0000001")
        assert meta.title == "Obscure"
        assert meta.release_year is None
        assert meta.summary == "No summary available"
        assert meta.poster_url is None
        assert meta.rating is None

    def test_not_found_is_permanent(self):
        client, _ = _client(_resp(body={"movie_results": []}))
        with pytest.raises(MetadataUnavailable) as exc:
            client.find_by_imdb_id("tt9999999")
        assert exc.value.retryable is False

    def test_http_error_is_retryable(self):
        client, _ = _client(_resp(status=503))
        with pytest.raises(MetadataUnavailable, match="HTTP 503") as exc:
            client.find_by_imdb_id("tt0398286")
        assert exc.value.retryable is True

    def test_timeout_retried_then_reported(self):
        """타임아웃은 고정 간격으로 재시도 후 MetadataUnavailable."""
        client, session = _client(*[requests.Timeout("read timed out")] * 3)
        with patch("pipeline.metadata.time.sleep") as mock_sleep:
            with pytest.raises(MetadataUnavailable, match="timed out"):
                client.find_by_imdb_id("tt0398286")
        assert session.get.call_count == 3
        assert mock_sleep.call_count == 2

    def test_timeout_then_success(self):
        client, session = _client(requests.Timeout("slow"), _resp(body={"movie_results": [TANGLED]}))
        with patch("pipeline.metadata.time.sleep"):
            assert client.find_by_imdb_id("tt0398286").title == "Tangled"
        assert session.get.call_count == 2

    def test_missing_key(self):
        client = TmdbClient(api_key="", session=MagicMock())
        with pytest.raises(MetadataUnavailable, match="TMDB_API_KEY"):
            client.find_by_imdb_id("tt0398286")


class TestRetryDecorator:

    def test_non_listed_exception_not_retried(self):
        calls = []

        @retry(max_attempts=3, delay=0)
        def boom():
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            boom()
        assert len(calls) == 1


class TestRetryAfterCap:

    def _response(self, retry_after):
        resp = MagicMock()
        resp.headers = {"Retry-After": retry_after}
        return resp

    def test_long_header_capped(self):
        retry = _build_session().get_adapter("https://api.themoviedb.org").max_retries
        assert retry.get_retry_after(self._response("3600")) == RETRY_AFTER_MAX

    def test_short_header_kept(self):
        retry = _build_session().get_adapter("https://api.themoviedb.org").max_retries
        assert retry.get_retry_after(self._response("2")) == 2

    def test_no_header(self):
        resp = MagicMock()
        resp.headers = {}
        retry = _build_session().get_adapter("https://api.themoviedb.org").max_retries
        assert retry.get_retry_after(resp) is None
