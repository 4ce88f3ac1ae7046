"""IMDb 식별자 추출 / 중복 제거 테스트."""
import pytest

from pipeline.errors import InvalidIdentifier
from pipeline.identifier import dedupe_identifiers, extract_imdb_id


class TestExtractImdbId:

    @pytest.mark.parametrize("raw", [
        "tt0398286",
        "  tt0398286\n",
        "TT0398286",
        "https://www.imdb.com/title/tt0398286/",
        "https://m.imdb.com/title/tt0398286/?ref_=fn_al_tt_1",
        "imdb.com/title/tt0398286/reviews",
    ])
    def test_accepted_forms(self, raw):
        assert extract_imdb_id(raw) == "tt0398286"

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "0398286",
        "Tangled",
        "https://www.themoviedb.org/movie/38757",
        "https://www.imdb.com/name/nm0000123/",
        "tt",
    ])
    def test_rejected(self, raw):
        with pytest.raises(InvalidIdentifier):
            extract_imdb_id(raw)

    def test_error_is_not_retryable(self):
        with pytest.raises(InvalidIdentifier) as exc:
            extract_imdb_id("nope")
        assert exc.value.retryable is False
        assert exc.value.step == "VALIDATING"


class TestDedupe:

    def test_same_movie_in_different_forms(self):
        ids, invalid = dedupe_identifiers([
            "tt0398286",
            "https://www.imdb.com/title/tt0398286/",
            "tt2294629",
            "garbage",
        ])
        assert ids == ["tt0398286", "tt2294629"]
        assert list(invalid) == ["garbage"]
