"""Tests for three-tier JSON recovery from model output."""

import pytest

from callscore.pipeline.json_extraction import (
    ExtractionTier,
    Parsed,
    Unparsed,
    extract_json,
    find_embedded,
    strip_fences,
)


class TestExtractJson:
    """Test tier selection and results."""

    @pytest.mark.unit
    def test_direct_object(self):
        result = extract_json('{"agent": "hi", "counterpart": "hello"}')
        assert isinstance(result, Parsed)
        assert result.tier is ExtractionTier.DIRECT
        assert result.value == {"agent": "hi", "counterpart": "hello"}

    @pytest.mark.unit
    def test_direct_array(self):
        result = extract_json('  [{"role": "agent", "text": "hi"}]  ')
        assert isinstance(result, Parsed)
        assert result.tier is ExtractionTier.DIRECT

    @pytest.mark.unit
    def test_fenced_block(self):
        text = '```json\n{"total_score": 72}\n```'
        result = extract_json(text)
        assert isinstance(result, Parsed)
        assert result.tier is ExtractionTier.FENCED
        assert result.value == {"total_score": 72}

    @pytest.mark.unit
    def test_fence_without_language_tag(self):
        result = extract_json('```\n{"a": 1}\n```')
        assert isinstance(result, Parsed)
        assert result.value == {"a": 1}

    @pytest.mark.unit
    def test_embedded_after_commentary(self):
        text = (
            "Here is my assessment of the call. The agent was polite.\n"
            '{"contact_score": 90, "summary": "Booked {Tuesday}"}\n'
            "Let me know if you need more."
        )
        result = extract_json(text)
        assert isinstance(result, Parsed)
        assert result.tier is ExtractionTier.EMBEDDED
        assert result.value == {"contact_score": 90, "summary": "Booked {Tuesday}"}

    @pytest.mark.unit
    def test_embedded_skips_unparseable_brackets(self):
        text = 'Scores [see below] follow: {"a": 1}'
        result = extract_json(text)
        assert isinstance(result, Parsed)
        assert result.value == {"a": 1}

    @pytest.mark.unit
    def test_embedded_without_expect_takes_first_value(self):
        result = extract_json('Stages [1, 2, 3] then {"a": 1}')
        assert isinstance(result, Parsed)
        assert result.value == [1, 2, 3]

    @pytest.mark.unit
    def test_expect_dict_skips_prose_array(self):
        text = 'I scored stages [1, 2, 3, 4, 5, 6] as follows:\n{"total_score": 70}'
        result = extract_json(text, expect=dict)
        assert isinstance(result, Parsed)
        assert result.tier is ExtractionTier.EMBEDDED
        assert result.value == {"total_score": 70}

    @pytest.mark.unit
    def test_expect_dict_skips_objects_nested_in_skipped_array(self):
        text = 'Examples [{"x": 1}] and the answer {"y": 2}'
        result = extract_json(text, expect=dict)
        assert isinstance(result, Parsed)
        assert result.value == {"y": 2}

    @pytest.mark.unit
    def test_expect_dict_with_only_arrays(self):
        result = extract_json("Stages [1, 2] and [3]", expect=dict)
        assert isinstance(result, Unparsed)

    @pytest.mark.unit
    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_input(self, text):
        result = extract_json(text)
        assert isinstance(result, Unparsed)
        assert result.reason == "empty response"

    @pytest.mark.unit
    def test_prose_only(self):
        result = extract_json("I cannot score this call, the audio is unclear.")
        assert isinstance(result, Unparsed)
        assert result.raw.startswith("I cannot")
        assert result.reason == "no JSON value found"

    @pytest.mark.unit
    def test_truncated_object(self):
        result = extract_json('{"agent": "Good afternoon, how can')
        assert isinstance(result, Unparsed)

    @pytest.mark.unit
    def test_deterministic(self):
        text = 'Result: {"x": [1, 2, 3]} done'
        assert extract_json(text) == extract_json(text)


class TestHelpers:
    """Test fence stripping and balanced scanning."""

    @pytest.mark.unit
    def test_strip_unterminated_fence(self):
        assert strip_fences('```json\n{"a": 1}') == '{"a": 1}'

    @pytest.mark.unit
    def test_brackets_inside_strings_are_ignored(self):
        ok, value = find_embedded('note {"text": "a } tricky \\" ] string"} end')
        assert ok
        assert value == {"text": 'a } tricky " ] string'}

    @pytest.mark.unit
    def test_nothing_embedded(self):
        assert find_embedded("no json here") == (False, None)
