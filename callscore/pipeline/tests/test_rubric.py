"""Tests for rubric definition and loading."""

import json

import pytest

from callscore.pipeline.errors import ConfigurationError
from callscore.pipeline.rubric import DEFAULT_RUBRIC, Rubric, load_rubric
from callscore.pipeline.types import CallType


class TestDefaultRubric:
    """Test the built-in rubric."""

    @pytest.mark.unit
    def test_six_ordered_criteria(self):
        assert DEFAULT_RUBRIC.criterion_keys == (
            "contact",
            "discovery",
            "presentation",
            "booking",
            "objections",
            "closing",
        )

    @pytest.mark.unit
    def test_objections_has_neutral_score(self):
        objections = DEFAULT_RUBRIC.criteria[4]
        assert objections.neutral_score == 80

    @pytest.mark.unit
    def test_instructions_mention_every_criterion(self):
        text = DEFAULT_RUBRIC.render_instructions("Spanish")
        for criterion in DEFAULT_RUBRIC.criteria:
            assert f"(key: {criterion.key})" in text
        assert "Spanish" in text
        assert DEFAULT_RUBRIC.success_rule in text

    @pytest.mark.unit
    def test_response_template_keys(self):
        template = DEFAULT_RUBRIC.response_template()
        for key in DEFAULT_RUBRIC.criterion_keys:
            assert f"{key}_score" in template
            assert f"{key}_explanation" in template
        assert {"call_type", "total_score", "client_info", "ai_summary", "is_successful"} <= set(template)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("PRIMARY", CallType.PRIMARY),
            (" repeat ", CallType.REPEAT),
            ("short", CallType.SHORT),
            ("unknown", None),
            (3, None),
        ],
    )
    def test_parse_call_type(self, value, expected):
        assert DEFAULT_RUBRIC.parse_call_type(value) is expected


class TestRubricLoading:
    """Test JSON rubric files."""

    @pytest.mark.unit
    def test_dict_form_is_lossless(self):
        assert Rubric.from_dict(DEFAULT_RUBRIC.to_dict()) == DEFAULT_RUBRIC

    @pytest.mark.unit
    def test_load_from_file(self, tmp_path):
        data = DEFAULT_RUBRIC.to_dict()
        data["name"] = "dental"
        data["criteria"] = data["criteria"][:2]
        path = tmp_path / "rubric.json"
        path.write_text(json.dumps(data), encoding="utf-8")

        rubric = load_rubric(str(path))
        assert rubric.name == "dental"
        assert rubric.criterion_keys == ("contact", "discovery")

    @pytest.mark.unit
    def test_empty_path_returns_default(self):
        assert load_rubric("") is DEFAULT_RUBRIC

    @pytest.mark.unit
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_rubric(str(tmp_path / "absent.json"))

    @pytest.mark.unit
    def test_duplicate_keys_rejected(self):
        data = DEFAULT_RUBRIC.to_dict()
        data["criteria"] = [data["criteria"][0], data["criteria"][0]]
        with pytest.raises(ConfigurationError, match="unique"):
            Rubric.from_dict(data)

    @pytest.mark.unit
    def test_no_criteria_rejected(self):
        data = DEFAULT_RUBRIC.to_dict()
        data["criteria"] = []
        with pytest.raises(ConfigurationError, match="at least one"):
            Rubric.from_dict(data)

    @pytest.mark.unit
    def test_missing_field_rejected(self):
        data = DEFAULT_RUBRIC.to_dict()
        del data["success_rule"]
        with pytest.raises(ConfigurationError, match="Invalid rubric"):
            Rubric.from_dict(data)
