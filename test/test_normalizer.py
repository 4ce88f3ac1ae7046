"""LLM 응답 JSON 추출 / 스키마 정규화 테스트."""
import json

import pytest

from analyzer.normalizer import (
    canonical_age_key,
    extract_json_payload,
    normalize_analysis,
    parse_flag,
)
from analyzer.schema import AgeFlag
from pipeline.errors import MalformedAnalysisResponse, SchemaInvariantViolation


class TestExtractJsonPayload:

    def test_fenced_block(self, make_payload):
        payload = make_payload()
        raw = "Sure!\n```json\n" + json.dumps(payload) + "\n```\nLet me know."
        assert extract_json_payload(raw) == payload

    def test_bare_object_with_prose(self):
        raw = 'Analysis follows {"a": {"b": "text with } brace"}} and that is all {"c": 1}'
        assert extract_json_payload(raw) == {"a": {"b": "text with } brace"}}

    def test_trailing_comma_fixed(self):
        assert extract_json_payload('{"a": [1, 2,], "b": 3,}') == {"a": [1, 2], "b": 3}

    def test_control_chars_inside_strings(self):
        raw = '{"description": "line one\nline two"}'
        assert extract_json_payload(raw) == {"description": "line one\nline two"}

    @pytest.mark.parametrize("raw", ["", "no json here at all", "[1, 2, 3]"])
    def test_no_object_is_malformed(self, raw):
        with pytest.raises(MalformedAnalysisResponse):
            extract_json_payload(raw)

    def test_unparseable_is_malformed(self):
        """무손실 보정으로 고칠 수 없는 JSON은 추측하지 않는다."""
        with pytest.raises(MalformedAnalysisResponse):
            extract_json_payload('{"a": 1 "b": 2}')


class TestAgeKeys:

    @pytest.mark.parametrize("key,bucket", [
        ("2", "24m"), ("3", "36m"), ("4", "48m"), ("5", "60m"),
        ("2y", "24m"), ("3 years", "36m"), ("age_4", "48m"), ("60 months", "60m"),
        ("24M", "24m"), (" 36m ", "36m"), (5, "60m"),
    ])
    def test_fixed_aliases(self, key, bucket):
        assert canonical_age_key(key) == bucket

    @pytest.mark.parametrize("key", ["toddler", "6", "1", "preschool", "72m"])
    def test_unknown_keys_not_guessed(self, key):
        assert canonical_age_key(key) is None

    def test_legacy_numeric_keys_mapped(self, make_payload):
        """구버전 "2"/"3"/"4"/"5" 키가 정규 버킷으로 매핑된다."""
        payload = make_payload(scores={"2": 5, "3": 4, "4": 3, "5": 2})
        for scene in payload["scenes"]:
            scene["age_flags"] = {"2": "🚫", "3": "⚠️", "4": "✅", "5": "✅"}
        result = normalize_analysis(payload)
        assert result.overall_scores.as_dict() == {"24m": 5, "36m": 4, "48m": 3, "60m": 2}
        assert result.scenes[0].age_flags.as_dict() == {
            "24m": "not_recommended", "36m": "caution", "48m": "appropriate", "60m": "appropriate",
        }

    def test_unknown_key_ignored_with_warning(self, make_payload):
        payload = make_payload()
        payload["overall_scary_score"]["toddler"] = 5
        result = normalize_analysis(payload)
        assert result.overall_scores.as_dict() == {"24m": 4, "36m": 3, "48m": 2, "60m": 2}
        assert any("toddler" in w for w in result.warnings)

    def test_canonical_key_wins_over_alias(self, make_payload):
        payload = make_payload()
        payload["overall_scary_score"] = {"2": 5, "24m": 4, "36m": 3, "48m": 2, "60m": 1}
        result = normalize_analysis(payload)
        assert result.overall_scores.m24 == 4


class TestFlags:

    @pytest.mark.parametrize("value,flag", [
        ("✅", AgeFlag.APPROPRIATE),
        ("⚠️", AgeFlag.CAUTION),
        ("🚫", AgeFlag.NOT_RECOMMENDED),
        ("Appropriate", AgeFlag.APPROPRIATE),
        ("not recommended", AgeFlag.NOT_RECOMMENDED),
        ("⚠️ Caution", AgeFlag.CAUTION),
    ])
    def test_parse_flag(self, value, flag):
        assert parse_flag(value) == flag

    def test_missing_flag_defaults_to_caution(self, make_payload):
        """빠진 플래그는 caution (appropriate 아님, 버리지 않음)."""
        payload = make_payload(flags={"24m": "🚫", "36m": "⚠️", "60m": "✅"})
        result = normalize_analysis(payload)
        for scene in result.scenes:
            assert scene.age_flags.m48 == AgeFlag.CAUTION
            assert set(scene.age_flags.as_dict()) == {"24m", "36m", "48m", "60m"}

    def test_unrecognised_flag_defaults_to_caution(self, make_payload):
        payload = make_payload(flags={"24m": "🚫", "36m": "maybe?", "48m": "⚠️", "60m": "✅"})
        assert normalize_analysis(payload).scenes[0].age_flags.m36 == AgeFlag.CAUTION

    def test_missing_flags_object_defaults_to_caution(self, make_payload):
        """age_flags 자체가 없으면 모든 연령 caution, 연령마다 경고."""
        payload = make_payload(scores={"24m": 1, "36m": 1, "48m": 1, "60m": 1})
        del payload["scenes"][0]["age_flags"]
        result = normalize_analysis(payload)

        assert result.scenes[0].age_flags.values() == (AgeFlag.CAUTION,) * 4
        assert len([w for w in result.warnings if w.startswith("scene[0]")]) == 4

    def test_flags_not_an_object_is_violation(self, make_payload):
        payload = make_payload()
        payload["scenes"][2]["age_flags"] = "all fine"
        with pytest.raises(SchemaInvariantViolation, match="scene\\[2\\]"):
            normalize_analysis(payload)


class TestStructure:

    def test_valid_payload(self, make_payload):
        result = normalize_analysis(make_payload(n_scenes=7))
        assert len(result.scenes) == 7
        assert result.scenes[0].timestamp_start == "00:01:00"
        assert result.scenes[0].tags == ("chase", "villain")

    def test_too_few_scenes(self, make_payload):
        with pytest.raises(SchemaInvariantViolation, match="too few scenes"):
            normalize_analysis(make_payload(n_scenes=3))

    def test_zero_scenes_rejected(self, make_payload):
        with pytest.raises(SchemaInvariantViolation):
            normalize_analysis(make_payload(n_scenes=0))

    def test_missing_top_level_key_is_malformed(self, make_payload):
        payload = make_payload()
        del payload["scenes"]
        with pytest.raises(MalformedAnalysisResponse, match="scenes"):
            normalize_analysis(payload)

    @pytest.mark.parametrize("bad", [0, 6, "high", True, None])
    def test_score_out_of_range(self, make_payload, bad):
        payload = make_payload()
        payload["overall_scary_score"]["36m"] = bad
        with pytest.raises(SchemaInvariantViolation):
            normalize_analysis(payload)

    def test_missing_bucket(self, make_payload):
        payload = make_payload()
        del payload["overall_scary_score"]["60m"]
        with pytest.raises(SchemaInvariantViolation, match="60m"):
            normalize_analysis(payload)

    def test_numeric_string_score_accepted(self, make_payload):
        payload = make_payload(scores={"24m": "4", "36m": "3.5", "48m": 2, "60m": 2.0})
        scores = normalize_analysis(payload).overall_scores
        assert scores.as_dict() == {"24m": 4, "36m": 3.5, "48m": 2, "60m": 2}

    def test_timestamps_cleaned(self, make_payload):
        payload = make_payload()
        payload["scenes"][0]["timestamp_start"] = "0:01:00,250 --> 0:01:30,000"
        assert normalize_analysis(payload).scenes[0].timestamp_start == "00:01:00"

    def test_unparseable_timestamp(self, make_payload):
        payload = make_payload()
        payload["scenes"][1]["timestamp_end"] = "near the end"
        with pytest.raises(SchemaInvariantViolation, match="timestamp_end"):
            normalize_analysis(payload)

    @pytest.mark.parametrize("bad", [0, 6, 2.5, "loud"])
    def test_bad_intensity(self, make_payload, bad):
        payload = make_payload()
        payload["scenes"][0]["intensity"] = bad
        with pytest.raises(SchemaInvariantViolation, match="intensity"):
            normalize_analysis(payload)
