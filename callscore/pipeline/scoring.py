"""Rubric-based scoring of a translated call transcript."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from typing import Any

from callscore.common.structured_logging import get_logger
from callscore.pipeline.errors import ScoringError
from callscore.pipeline.json_extraction import Parsed, extract_json
from callscore.pipeline.llm_client import ChatCompleter
from callscore.pipeline.rubric import DEFAULT_RUBRIC, Rubric
from callscore.pipeline.types import (
    CallerProfile,
    CallType,
    CriterionScore,
    ScoreReport,
    TranslatedTranscript,
)

logger = get_logger(__name__)

SHORT_CALL_EXPLANATION = "Call too short to evaluate"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def overall_score(scores: Sequence[int]) -> int:
    """Arithmetic mean of ``scores`` rounded half up; 0 for no scores."""
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


def _clamp_score(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return max(0, min(100, round_half_up(float(value))))


def _string_list(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else ()
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip() for item in value if str(item).strip())


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


class Scorer:
    """Asks the model to grade a transcript against a rubric."""

    def __init__(
        self,
        chat: ChatCompleter,
        rubric: Rubric = DEFAULT_RUBRIC,
        *,
        output_language: str = "English",
        max_tokens: int | None = 3000,
    ) -> None:
        self._chat = chat
        self._rubric = rubric
        self._output_language = output_language
        self._max_tokens = max_tokens
        self._system_prompt = rubric.render_instructions(output_language)

    @property
    def rubric(self) -> Rubric:
        return self._rubric

    def _user_prompt(self, transcript: TranslatedTranscript) -> str:
        template = json.dumps(self._rubric.response_template(), ensure_ascii=False, indent=2)
        return (
            f"Score this call:\n\n{transcript.flatten()}\n\n"
            f"Answer ONLY with JSON:\n{template}"
        )

    async def score(self, transcript: TranslatedTranscript) -> ScoreReport:
        """Grade ``transcript``.

        Raises:
            ScoringError: the model call failed or its output cannot be turned
                into a report.
        """
        try:
            content = await self._chat.complete(
                self._system_prompt,
                self._user_prompt(transcript),
                operation="scoring",
                max_tokens=self._max_tokens,
            )
        except Exception as exc:
            raise ScoringError(f"Scoring request failed: {exc}") from exc

        result = extract_json(content, expect=dict)
        if not isinstance(result, Parsed):
            logger.error("scoring.unparseable_response", reason=result.reason, preview=content[:500])
            raise ScoringError(f"Scoring response has no JSON: {result.reason}")

        report = self.coerce(result.value)
        logger.info(
            "scoring.complete",
            tier=result.tier.value,
            overall_score=report.overall_score,
            call_type=report.call_type.value,
            is_successful=report.is_successful,
        )
        return report

    def coerce(self, data: Any) -> ScoreReport:
        """Validate a parsed model response into a ScoreReport.

        Raises:
            ScoringError: the response is not an object or lacks a criterion score.
        """
        if not isinstance(data, Mapping):
            raise ScoringError(f"Scoring response is a {type(data).__name__}, expected an object")

        nested = data.get("criteria") if isinstance(data.get("criteria"), Mapping) else {}
        criteria = []
        for criterion in self._rubric.criteria:
            entry = nested.get(criterion.key)
            if isinstance(entry, Mapping):
                raw_score = entry.get("score")
                explanation = entry.get("explanation", "")
            else:
                raw_score = data.get(f"{criterion.key}_score")
                explanation = data.get(f"{criterion.key}_explanation", "")
            score = _clamp_score(raw_score)
            if score is None:
                raise ScoringError(f"Scoring response has no usable score for '{criterion.key}'")
            criteria.append(
                CriterionScore(
                    key=criterion.key,
                    title=criterion.title,
                    score=score,
                    explanation=str(explanation or "").strip(),
                )
            )

        call_type = self._rubric.parse_call_type(data.get("call_type"))
        if call_type is None:
            logger.warning("scoring.unknown_call_type", value=data.get("call_type"))
            call_type = CallType.PRIMARY

        computed = overall_score([c.score for c in criteria])
        model_total = _clamp_score(data.get("total_score", data.get("overall_score")))
        if model_total is not None and model_total != computed:
            logger.warning(
                "scoring.overall_mismatch",
                model_overall=model_total,
                computed_overall=computed,
            )

        info = data.get("client_info", data.get("caller_profile"))
        info = info if isinstance(info, Mapping) else {}
        profile = CallerProfile(
            facts=_string_list(info.get("facts")),
            needs=_string_list(info.get("needs")),
            pains=_string_list(info.get("pains")),
            objections=_string_list(info.get("objections")),
        )

        return ScoreReport(
            criteria=tuple(criteria),
            overall_score=computed,
            model_overall_score=model_total,
            call_type=call_type,
            caller_profile=profile,
            is_successful=_as_bool(data.get("is_successful", False)),
            summary=str(data.get("ai_summary", data.get("summary", "")) or "").strip(),
            red_flags=_string_list(data.get("red_flags")),
        )

    def short_call_report(self, raw_text: str = "") -> ScoreReport:
        """Zero-score report for calls too short to evaluate; no model call."""
        text = raw_text.strip()
        summary = SHORT_CALL_EXPLANATION
        if text:
            summary = f"{SHORT_CALL_EXPLANATION}. Transcript: {text}"
        return ScoreReport(
            criteria=tuple(
                CriterionScore(c.key, c.title, 0, SHORT_CALL_EXPLANATION)
                for c in self._rubric.criteria
            ),
            overall_score=0,
            model_overall_score=None,
            call_type=CallType.SHORT,
            is_successful=False,
            summary=summary,
        )
