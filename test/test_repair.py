"""점수 휴리스틱 보정 테스트."""
from db.models import IngestState, Movie
from analyzer.repair import PROVENANCE, propose_scores, repair_scores


class TestProposeScores:

    def test_copied_36m_pattern(self):
        after, rule = propose_scores({"24m": 3, "36m": 3, "48m": 3, "60m": 3})
        assert rule == "copied_36m"
        assert after == {"24m": 3, "36m": 3, "48m": 2, "60m": 1}

    def test_copied_pattern_raises_24m(self):
        after, _ = propose_scores({"24m": 2, "36m": 4, "48m": 4, "60m": 4})
        assert after == {"24m": 4, "36m": 4, "48m": 3, "60m": 2}

    def test_calm_movie_untouched(self):
        assert propose_scores({"24m": 1, "36m": 1, "48m": 1, "60m": 1}) is None

    def test_monotonic_raise(self):
        after, rule = propose_scores({"24m": 2, "36m": 3, "48m": 2, "60m": 1})
        assert rule == "monotonic_raise"
        assert after == {"24m": 3, "36m": 3, "48m": 2, "60m": 1}

    def test_already_consistent(self):
        assert propose_scores({"24m": 5, "36m": 4, "48m": 2, "60m": 2}) is None

    def test_incomplete_vector_skipped(self):
        assert propose_scores({"24m": 3, "36m": 3}) is None
        assert propose_scores(None) is None


class TestRepairScores:

    def _movies(self, session):
        broken = Movie(imdb_id="tt0000001", title="Broken", summary="x",
                       age_scores={"24m": 4, "36m": 4, "48m": 4, "60m": 4},
                       score_provenance="analysis", status=IngestState.COMPLETED)
        fine = Movie(imdb_id="tt0000002", title="Fine", summary="x",
                     age_scores={"24m": 3, "36m": 2, "48m": 1, "60m": 1},
                     score_provenance="analysis", status=IngestState.COMPLETED)
        pending = Movie(imdb_id="tt0000003", title="Pending", summary="x",
                        status=IngestState.NEEDS_MANUAL_SUBTITLES)
        session.add_all([broken, fine, pending])
        session.commit()
        return broken, fine

    def test_dry_run_changes_nothing(self, session):
        broken, _ = self._movies(session)
        repairs = repair_scores(session)

        assert [r.imdb_id for r in repairs] == ["tt0000001"]
        assert repairs[0].after == {"24m": 4, "36m": 4, "48m": 3, "60m": 2}
        session.refresh(broken)
        assert broken.age_scores == {"24m": 4, "36m": 4, "48m": 4, "60m": 4}
        assert broken.score_provenance == "analysis"

    def test_apply_marks_provenance(self, session):
        broken, fine = self._movies(session)
        repair_scores(session, apply=True)

        session.refresh(broken)
        session.refresh(fine)
        assert broken.age_scores == {"24m": 4, "36m": 4, "48m": 3, "60m": 2}
        assert broken.score_provenance == PROVENANCE
        assert fine.score_provenance == "analysis"
