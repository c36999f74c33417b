"""Repair and translate noisy ASR text into role-labelled blocks."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from callscore.common.structured_logging import get_logger
from callscore.pipeline.json_extraction import Parsed, extract_json
from callscore.pipeline.llm_client import ChatCompleter
from callscore.pipeline.types import (
    Role,
    TranscriptLayout,
    TranslatedBlock,
    TranslatedTranscript,
)

logger = get_logger(__name__)


_AGENT_KEYS = ("agent", "manager", "admin", "administrator", "operator")
_COUNTERPART_KEYS = ("counterpart", "client", "patient", "customer", "caller")
_DIALOGUE_KEYS = ("dialogue", "utterances", "turns")

_TRANSLATION_RULES = """\
# TRANSLATION RULES
1. LITERAL: keep each speaker's sentence structure. Do not improve, embellish or summarize.
2. DO NOT INVENT: if a passage is unclear, translate it approximately; never add content
   that was not said.
3. KEEP ORDER: translate each channel as it is; do not try to rebuild the dialogue.
4. KEEP NAMES: do not change or "correct" names of people, places or products.
5. CLEAN UP: drop recognition artifacts such as stuttered word repeats.
6. FORMAT: start a new paragraph (blank line) every 2-3 sentences."""


def _coerce_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _first_text(data: Mapping[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        text = _coerce_text(data.get(key))
        if text:
            return text
    return ""


def coerce_transcript(value: Any) -> TranslatedTranscript | None:
    """Validate a parsed model response.

    Accepts ``{"agent": ..., "counterpart": ...}`` (legacy role keys too) or a
    list of ``{"role", "text"}`` utterances. Empty entries are dropped, text is
    trimmed and unknown roles become the agent. Returns None when nothing
    usable remains.
    """
    if isinstance(value, Mapping):
        for key in _DIALOGUE_KEYS:
            if isinstance(value.get(key), list):
                return coerce_transcript(value[key])
        blocks = []
        agent = _first_text(value, _AGENT_KEYS)
        counterpart = _first_text(value, _COUNTERPART_KEYS)
        if agent:
            blocks.append(TranslatedBlock(Role.AGENT, agent))
        if counterpart:
            blocks.append(TranslatedBlock(Role.COUNTERPART, counterpart))
        if not blocks:
            return None
        return TranslatedTranscript(tuple(blocks), TranscriptLayout.TWO_BLOCK)

    if isinstance(value, list):
        blocks = []
        for item in value:
            if not isinstance(item, Mapping):
                continue
            text = _coerce_text(item.get("text"))
            if not text:
                continue
            role = Role.parse(item.get("role", item.get("speaker"))) or Role.AGENT
            blocks.append(TranslatedBlock(role, text))
        if not blocks:
            return None
        return TranslatedTranscript(tuple(blocks), TranscriptLayout.DIALOGUE)

    return None


class Repairer:
    """Turns raw ASR text into a literal translation split by role.

    Never raises: when the model call fails or its output cannot be parsed
    the raw text is returned as a degraded transcript.
    """

    def __init__(
        self,
        chat: ChatCompleter,
        *,
        output_language: str = "English",
        glossary: Mapping[str, str] | None = None,
        business_context: str = "",
        max_tokens: int | None = None,
    ) -> None:
        self._chat = chat
        self._output_language = output_language
        self._glossary = dict(glossary or {})
        self._business_context = business_context
        self._max_tokens = max_tokens

    def _system_prompt(self, task: str, response_format: str) -> str:
        sections = [
            "# ROLE",
            "You are a professional translator of recorded sales phone calls into clean "
            f"{self._output_language}.",
            "",
            "# CRITICAL",
            "TRANSLATE LITERALLY. The result feeds a quality audit; invented or improved "
            "content corrupts the audit.",
            "",
            "# TASK",
            task,
        ]
        if self._glossary:
            sections += ["", "# DOMAIN GLOSSARY"]
            sections += [f"{term} = {meaning}" for term, meaning in self._glossary.items()]
        if self._business_context:
            sections += ["", "# BUSINESS CONTEXT", self._business_context]
        sections += ["", "# RESPONSE FORMAT: strict JSON, no markdown", response_format]
        sections += ["", _TRANSLATION_RULES]
        return "\n".join(sections)

    async def _ask(self, operation: str, system_prompt: str, user_prompt: str) -> Any | None:
        try:
            content = await self._chat.complete(
                system_prompt,
                user_prompt,
                operation=operation,
                max_tokens=self._max_tokens,
            )
        except Exception as exc:
            logger.warning(
                "repair.llm_failed",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        result = extract_json(content, expect=dict)
        if isinstance(result, Parsed):
            logger.debug("repair.parsed", operation=operation, tier=result.tier.value)
            return result.value
        logger.warning(
            "repair.unparseable_response",
            operation=operation,
            reason=result.reason,
            preview=content[:200],
        )
        return None

    async def repair_stereo(self, agent_raw: str, counterpart_raw: str) -> TranslatedTranscript:
        agent_raw = (agent_raw or "").strip()
        counterpart_raw = (counterpart_raw or "").strip()
        if not agent_raw and not counterpart_raw:
            return TranslatedTranscript()

        system_prompt = self._system_prompt(
            "You receive two separately recorded channels of one call: the agent's and the "
            "customer's. Translate each channel on its own.",
            '{\n  "agent": "Full translated text of the agent.\\n\\nParagraphs every 2-3 '
            'sentences.",\n  "counterpart": "Full translated text of the customer."\n}',
        )
        user_prompt = (
            f"AGENT CHANNEL (raw):\n{agent_raw}\n\n"
            f"CUSTOMER CHANNEL (raw):\n{counterpart_raw}\n\n"
            f"Translate both channels LITERALLY into {self._output_language}, keep every "
            "detail, format into paragraphs. Return JSON."
        )

        parsed = await self._ask("repair.stereo", system_prompt, user_prompt)
        transcript = coerce_transcript(parsed) if parsed is not None else None
        if transcript is None:
            return self._passthrough_stereo(agent_raw, counterpart_raw)

        logger.info(
            "repair.stereo_complete",
            layout=transcript.layout.value,
            blocks=len(transcript.blocks),
        )
        return transcript

    async def repair_mono(self, raw_text: str) -> TranslatedTranscript:
        raw_text = (raw_text or "").strip()
        if not raw_text:
            return TranslatedTranscript()

        system_prompt = self._system_prompt(
            "You receive the transcript of one call where BOTH voices were recorded in a "
            "single channel. Work out from context who is speaking: the agent greets, asks "
            "questions, proposes a booking and names the price; the customer answers, "
            "describes their situation and asks about price. Then translate each role.",
            '{\n  "agent": "All of the agent\'s text in one block.\\n\\nWith paragraphs.",\n'
            '  "counterpart": "All of the customer\'s text in one block."\n}\n'
            'Or, to keep the call order, {"dialogue": [{"role": "agent|counterpart", '
            '"text": "..."}]}. Always answer with a JSON object, never a bare list.',
        )
        user_prompt = (
            f"TRANSCRIPT (mono):\n{raw_text}\n\n"
            f"Split by role, translate LITERALLY into {self._output_language}, format into "
            "paragraphs. Return JSON."
        )

        parsed = await self._ask("repair.mono", system_prompt, user_prompt)
        transcript = coerce_transcript(parsed) if parsed is not None else None
        if transcript is None:
            return self._passthrough_mono(raw_text)

        logger.info(
            "repair.mono_complete",
            layout=transcript.layout.value,
            blocks=len(transcript.blocks),
        )
        return transcript

    @staticmethod
    def _passthrough_stereo(agent_raw: str, counterpart_raw: str) -> TranslatedTranscript:
        logger.warning("repair.passthrough", mode="stereo")
        blocks = []
        if agent_raw:
            blocks.append(TranslatedBlock(Role.AGENT, agent_raw))
        if counterpart_raw:
            blocks.append(TranslatedBlock(Role.COUNTERPART, counterpart_raw))
        return TranslatedTranscript(tuple(blocks), TranscriptLayout.TWO_BLOCK, degraded=True)

    @staticmethod
    def _passthrough_mono(raw_text: str) -> TranslatedTranscript:
        logger.warning("repair.passthrough", mode="mono")
        return TranslatedTranscript(
            (TranslatedBlock(Role.AGENT, raw_text),),
            TranscriptLayout.TWO_BLOCK,
            degraded=True,
        )
