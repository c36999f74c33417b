"""Data model shared by the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class CallDirection(str, Enum):
    """Who placed the call, seen from the sales agent."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"

    @classmethod
    def parse(cls, value: object) -> CallDirection:
        """Accept enum values, CRM spellings and CRM call-type codes (1 in, 2 out)."""
        if isinstance(value, CallDirection):
            return value
        key = str(value).strip().lower()
        try:
            return _DIRECTION_ALIASES[key]
        except KeyError:
            raise ValueError(f"Unknown call direction: {value!r}") from None


_DIRECTION_ALIASES: dict[str, CallDirection] = {
    "inbound": CallDirection.INBOUND,
    "incoming": CallDirection.INBOUND,
    "in": CallDirection.INBOUND,
    "1": CallDirection.INBOUND,
    "outbound": CallDirection.OUTBOUND,
    "outgoing": CallDirection.OUTBOUND,
    "out": CallDirection.OUTBOUND,
    "2": CallDirection.OUTBOUND,
}


class Role(str, Enum):
    """Speaker role in a sales call."""

    AGENT = "agent"
    COUNTERPART = "counterpart"

    @classmethod
    def parse(cls, value: object) -> Role | None:
        """Map a role label (including legacy aliases) to a Role, or None if unknown."""
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            return None
        return _ROLE_ALIASES.get(value.strip().lower())


_ROLE_ALIASES: dict[str, Role] = {
    "agent": Role.AGENT,
    "manager": Role.AGENT,
    "admin": Role.AGENT,
    "administrator": Role.AGENT,
    "operator": Role.AGENT,
    "counterpart": Role.COUNTERPART,
    "client": Role.COUNTERPART,
    "patient": Role.COUNTERPART,
    "customer": Role.COUNTERPART,
    "caller": Role.COUNTERPART,
}


@dataclass(frozen=True)
class AudioAsset:
    """A downloaded recording. Lives only for one invocation."""

    data: bytes
    source_url: str
    direction: CallDirection

    def __repr__(self) -> str:
        return (
            f"AudioAsset(source_url={self.source_url!r}, direction={self.direction.value}, "
            f"size={len(self.data)})"
        )


@dataclass(frozen=True)
class ChannelPair:
    """Per-speaker mono WAV buffers produced from a stereo recording."""

    agent: bytes
    counterpart: bytes

    def __repr__(self) -> str:
        return f"ChannelPair(agent={len(self.agent)}B, counterpart={len(self.counterpart)}B)"


@dataclass(frozen=True)
class TranscriptSegment:
    """One timed chunk returned by the ASR service."""

    text: str
    start: float | None = None
    end: float | None = None


@dataclass(frozen=True)
class TranscriptBlock:
    """Raw ASR text for one channel, or for the whole call when ``role`` is None."""

    role: Role | None
    raw_text: str

    def render(self) -> str:
        if self.role is None:
            return self.raw_text
        return f"{self.role.value.upper()}: {self.raw_text}"


@dataclass(frozen=True)
class TranslatedBlock:
    role: Role
    text: str


class TranscriptLayout(str, Enum):
    TWO_BLOCK = "two_block"
    DIALOGUE = "dialogue"


@dataclass(frozen=True)
class TranslatedTranscript:
    """Ordered role-labelled blocks after repair and translation.

    ``degraded`` is set when the model output could not be used and the raw
    ASR text was passed through untranslated.
    """

    blocks: tuple[TranslatedBlock, ...] = ()
    layout: TranscriptLayout = TranscriptLayout.TWO_BLOCK
    degraded: bool = False

    def is_empty(self) -> bool:
        return not any(block.text.strip() for block in self.blocks)

    def flatten(self) -> str:
        """Render as ``ROLE: text`` lines, the form the scorer reads."""
        return "\n".join(
            f"{block.role.value.upper()}: {block.text}" for block in self.blocks if block.text
        )

    def plain_text(self) -> str:
        return "\n\n".join(block.text for block in self.blocks if block.text)

    def to_dict(self) -> dict[str, object]:
        return {
            "layout": self.layout.value,
            "degraded": self.degraded,
            "blocks": [{"role": b.role.value, "text": b.text} for b in self.blocks],
        }


class CallType(str, Enum):
    PRIMARY = "primary"
    REPEAT = "repeat"
    SERVICE = "service"
    SHORT = "short"


@dataclass(frozen=True)
class CriterionScore:
    key: str
    title: str
    score: int
    explanation: str = ""


@dataclass(frozen=True)
class CallerProfile:
    """What the counterpart revealed about themselves during the call."""

    facts: tuple[str, ...] = ()
    needs: tuple[str, ...] = ()
    pains: tuple[str, ...] = ()
    objections: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "facts": list(self.facts),
            "needs": list(self.needs),
            "pains": list(self.pains),
            "objections": list(self.objections),
        }


@dataclass(frozen=True)
class ScoreReport:
    """Rubric scores for one call.

    ``overall_score`` is always computed locally from ``criteria``;
    ``model_overall_score`` keeps whatever the model reported.
    """

    criteria: tuple[CriterionScore, ...]
    overall_score: int
    call_type: CallType
    caller_profile: CallerProfile = field(default_factory=CallerProfile)
    is_successful: bool = False
    summary: str = ""
    model_overall_score: int | None = None
    red_flags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "criteria": [
                {
                    "key": c.key,
                    "title": c.title,
                    "score": c.score,
                    "explanation": c.explanation,
                }
                for c in self.criteria
            ],
            "overall_score": self.overall_score,
            "model_overall_score": self.model_overall_score,
            "call_type": self.call_type.value,
            "caller_profile": self.caller_profile.to_dict(),
            "is_successful": self.is_successful,
            "summary": self.summary,
            "red_flags": list(self.red_flags),
        }


class ProcessingMode(str, Enum):
    STEREO = "stereo"
    MONO = "mono"


@dataclass(frozen=True)
class PipelineResult:
    """Everything one invocation produces, keyed by call id."""

    call_id: str
    raw_transcript: str
    transcript: TranslatedTranscript
    report: ScoreReport
    mode: ProcessingMode
    fallback_reason: str | None = None
