"""Tests for rubric scoring."""

import json
import math

import pytest

from callscore.pipeline.errors import CompletionError, ScoringError
from callscore.pipeline.rubric import DEFAULT_RUBRIC
from callscore.pipeline.scoring import (
    SHORT_CALL_EXPLANATION,
    Scorer,
    overall_score,
    round_half_up,
)
from callscore.pipeline.tests.fakes import ScriptedChat, score_payload
from callscore.pipeline.types import (
    CallType,
    Role,
    TranscriptLayout,
    TranslatedBlock,
    TranslatedTranscript,
)

SCORES = {
    "contact": 90,
    "discovery": 75,
    "presentation": 60,
    "booking": 85,
    "objections": 80,
    "closing": 70,
}

TRANSCRIPT = TranslatedTranscript(
    (
        TranslatedBlock(Role.AGENT, "Good afternoon, how can I help?"),
        TranslatedBlock(Role.COUNTERPART, "My back hurts, I want a visit."),
    ),
    TranscriptLayout.TWO_BLOCK,
)


class TestOverallScore:
    """Test the local overall score computation."""

    @pytest.mark.unit
    def test_rounds_half_up(self):
        assert round_half_up(76.5) == 77
        assert round_half_up(76.49) == 76
        assert round_half_up(0.5) == 1

    @pytest.mark.unit
    def test_mean_of_scores(self):
        assert overall_score(list(SCORES.values())) == 77
        assert overall_score([]) == 0

    @pytest.mark.unit
    def test_bounded_by_min_and_max(self):
        scores = [12, 100, 47, 0, 88, 63]
        assert min(scores) <= overall_score(scores) <= max(scores)


class TestScorerCoerce:
    """Test validation of the scoring model's JSON."""

    @pytest.mark.unit
    def test_flat_keys(self):
        report = Scorer(ScriptedChat()).coerce(score_payload(SCORES))

        assert [c.key for c in report.criteria] == list(DEFAULT_RUBRIC.criterion_keys)
        assert [c.score for c in report.criteria] == list(SCORES.values())
        assert report.overall_score == overall_score(list(SCORES.values()))
        assert report.call_type is CallType.PRIMARY
        assert report.is_successful
        assert report.caller_profile.needs == ("treatment for back pain",)
        assert report.summary.startswith("The caller booked")

    @pytest.mark.unit
    def test_nested_criteria(self):
        data = {
            "call_type": "repeat",
            "criteria": {key: {"score": value, "explanation": "ok"} for key, value in SCORES.items()},
            "caller_profile": {"facts": "Name: Ivan"},
            "summary": "Follow-up call.",
            "is_successful": "false",
        }
        report = Scorer(ScriptedChat()).coerce(data)

        assert report.call_type is CallType.REPEAT
        assert report.caller_profile.facts == ("Name: Ivan",)
        assert report.summary == "Follow-up call."
        assert not report.is_successful

    @pytest.mark.unit
    def test_model_overall_is_replaced_by_computed(self):
        report = Scorer(ScriptedChat()).coerce(score_payload(SCORES, total=95))

        assert report.model_overall_score == 95
        assert report.overall_score == 77

    @pytest.mark.unit
    def test_scores_are_clamped_and_parsed(self):
        scores = dict(SCORES, contact=140, discovery=-5)
        data = score_payload(scores)
        data["presentation_score"] = "61.6"
        report = Scorer(ScriptedChat()).coerce(data)

        by_key = {c.key: c.score for c in report.criteria}
        assert by_key["contact"] == 100
        assert by_key["discovery"] == 0
        assert by_key["presentation"] == 62
        assert all(0 <= c.score <= 100 for c in report.criteria)

    @pytest.mark.unit
    @pytest.mark.parametrize("bad", [None, "high", True, math.nan])
    def test_unusable_score_raises(self, bad):
        data = score_payload(SCORES)
        data["booking_score"] = bad
        with pytest.raises(ScoringError, match="booking"):
            Scorer(ScriptedChat()).coerce(data)

    @pytest.mark.unit
    def test_non_object_raises(self):
        with pytest.raises(ScoringError):
            Scorer(ScriptedChat()).coerce([1, 2, 3])

    @pytest.mark.unit
    def test_unknown_call_type_defaults_to_primary(self):
        report = Scorer(ScriptedChat()).coerce(score_payload(SCORES, call_type="WEIRD"))
        assert report.call_type is CallType.PRIMARY

    @pytest.mark.unit
    def test_coerce_is_idempotent(self):
        scorer = Scorer(ScriptedChat())
        first = scorer.coerce(score_payload(SCORES))
        assert scorer.coerce(score_payload(SCORES)) == first


class TestScorer:
    """Test Scorer.score against a scripted chat model."""

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_scores_transcript(self):
        chat = ScriptedChat(scoring=json.dumps(score_payload(SCORES)))
        report = await Scorer(chat).score(TRANSCRIPT)

        assert len(report.criteria) == 6
        assert report.overall_score == 77
        assert chat.operations() == ["scoring"]
        assert "AGENT: Good afternoon" in chat.calls[0]["user"]
        assert "contact_score" in chat.calls[0]["user"]

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_prose_with_embedded_json(self):
        reply = (
            "Here is my evaluation of the call. The agent followed most of the script.\n"
            f"{json.dumps(score_payload(SCORES))}\n"
            "Overall a solid call."
        )
        report = await Scorer(ScriptedChat(scoring=reply)).score(TRANSCRIPT)

        assert [c.score for c in report.criteria] == list(SCORES.values())

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_array_in_preamble_does_not_hide_scores(self):
        reply = (
            "I scored stages [1, 2, 3, 4, 5, 6] as follows:\n"
            f"{json.dumps(score_payload(SCORES))}"
        )
        report = await Scorer(ScriptedChat(scoring=reply)).score(TRANSCRIPT)

        assert [c.score for c in report.criteria] == list(SCORES.values())
        assert report.call_type is CallType.PRIMARY

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_prose_without_json_raises(self):
        chat = ScriptedChat(scoring="The call was fine, I would give it a B.")
        with pytest.raises(ScoringError, match="no JSON"):
            await Scorer(chat).score(TRANSCRIPT)

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_model_failure_raises(self):
        chat = ScriptedChat(scoring=CompletionError("Chat completion returned empty content"))
        with pytest.raises(ScoringError) as exc_info:
            await Scorer(chat).score(TRANSCRIPT)
        assert isinstance(exc_info.value.__cause__, CompletionError)

    @pytest.mark.unit
    def test_short_call_report(self):
        report = Scorer(ScriptedChat()).short_call_report("Hello?")

        assert report.call_type is CallType.SHORT
        assert report.overall_score == 0
        assert all(c.score == 0 for c in report.criteria)
        assert all(c.explanation == SHORT_CALL_EXPLANATION for c in report.criteria)
        assert not report.is_successful
        assert "Hello?" in report.summary
