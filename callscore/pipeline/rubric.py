"""Scoring rubric: criteria, score bands and call-type rules.

The rubric is configuration. The built-in default describes a generic
appointment-booking sales script; a deployment can replace it with a JSON
file (``RUBRIC_PATH``) using the same field names as ``Rubric.to_dict``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from callscore.common.structured_logging import get_logger
from callscore.pipeline.errors import ConfigurationError
from callscore.pipeline.types import CallType

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScoreBand:
    low: int
    high: int
    description: str


@dataclass(frozen=True)
class Criterion:
    """One ordered stage of the script with its checkpoints and score bands.

    When ``neutral_score`` is set and ``neutral_condition`` does not occur in
    the call (for example, no objections were raised) the criterion is
    scored at ``neutral_score`` instead of zero.
    """

    key: str
    title: str
    checkpoints: tuple[str, ...]
    bands: tuple[ScoreBand, ...]
    neutral_score: int | None = None
    neutral_condition: str = ""


@dataclass(frozen=True)
class Rubric:
    name: str
    auditor_role: str
    criteria: tuple[Criterion, ...]
    call_type_labels: Mapping[CallType, str]
    call_type_rules: Mapping[CallType, str]
    success_rule: str
    red_flags: tuple[str, ...] = ()
    business_context: str = ""
    glossary: Mapping[str, str] = field(default_factory=dict)

    @property
    def criterion_keys(self) -> tuple[str, ...]:
        return tuple(criterion.key for criterion in self.criteria)

    def label_for(self, call_type: CallType) -> str:
        return self.call_type_labels.get(call_type, call_type.value.upper())

    def parse_call_type(self, value: object) -> CallType | None:
        """Match a model-reported call type against labels and enum values."""
        if not isinstance(value, str):
            return None
        needle = value.strip().casefold()
        for call_type in CallType:
            if needle in (call_type.value, self.label_for(call_type).casefold()):
                return call_type
        return None

    def render_instructions(self, output_language: str = "English") -> str:
        """Instruction block given to the scoring model."""
        lines = [
            "# ROLE",
            self.auditor_role,
        ]
        if self.business_context:
            lines += ["", "# BUSINESS CONTEXT", self.business_context]

        lines += [
            "",
            f"# REFERENCE SALES SCRIPT ({len(self.criteria)} STAGES)",
            "The agent should complete every stage in order. Score each stage from 0 to 100 "
            "by how fully the agent performed its key actions.",
        ]
        for number, criterion in enumerate(self.criteria, start=1):
            lines += ["", f"## STAGE {number}: {criterion.title} (key: {criterion.key})"]
            if criterion.neutral_score is not None:
                lines.append(
                    f"Score this stage only if {criterion.neutral_condition}. "
                    f"Otherwise give {criterion.neutral_score} (neutral, not a penalty)."
                )
            lines.append("Key actions:")
            lines += [f"- {checkpoint}" for checkpoint in criterion.checkpoints]
            lines.append("Scoring bands:")
            lines += [f"{band.low}-{band.high}: {band.description}" for band in criterion.bands]

        lines += ["", "# CALL TYPES"]
        for call_type in CallType:
            rule = self.call_type_rules.get(call_type)
            if rule:
                lines.append(f'- {rule} -> call_type: "{self.label_for(call_type)}"')
        lines.append(
            f'- A "{self.label_for(CallType.SHORT)}" call gets 0 for every stage and a total of 0.'
        )

        if self.red_flags:
            lines += ["", "# CRITICAL VIOLATIONS (list every one that occurred in red_flags)"]
            lines += [f"- {flag}" for flag in self.red_flags]

        lines += [
            "",
            "# SCORING RULES",
            f"- total_score is the arithmetic mean of the {len(self.criteria)} stage scores, "
            "rounded to the nearest integer.",
            f"- is_successful is true ONLY if {self.success_rule}.",
            "- Explanations must state concretely what the agent did or did not do and quote "
            "the call.",
            "- If the agent said the same thing as the script in their own words, it counts "
            "as done.",
            "- Be strict but fair; name good work explicitly.",
            f"- Write every explanation and the summary in {output_language}.",
            "",
            "# RESPONSE FORMAT",
            "Strict JSON, no markdown.",
        ]
        return "\n".join(lines)

    def response_template(self) -> dict[str, Any]:
        """The JSON shape the scoring model is asked to return."""
        template: dict[str, Any] = {
            "call_type": "|".join(self.label_for(call_type) for call_type in CallType),
        }
        for criterion in self.criteria:
            template[f"{criterion.key}_score"] = "integer 0-100"
            template[f"{criterion.key}_explanation"] = "what the agent did or did not do"
        template["total_score"] = "integer"
        template["client_info"] = {
            "facts": ["facts about the caller: name, age, if mentioned"],
            "needs": ["what the caller needs"],
            "pains": ["what problem they have, since when, how it affects them"],
            "objections": ["objections the caller raised"],
        }
        if self.red_flags:
            template["red_flags"] = ["critical violations that occurred"]
        template["ai_summary"] = "what happened, whether the caller booked, what to improve"
        template["is_successful"] = "true|false"
        return template

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "auditor_role": self.auditor_role,
            "business_context": self.business_context,
            "criteria": [
                {
                    "key": c.key,
                    "title": c.title,
                    "checkpoints": list(c.checkpoints),
                    "bands": [
                        {"low": b.low, "high": b.high, "description": b.description}
                        for b in c.bands
                    ],
                    "neutral_score": c.neutral_score,
                    "neutral_condition": c.neutral_condition,
                }
                for c in self.criteria
            ],
            "call_type_labels": {k.value: v for k, v in self.call_type_labels.items()},
            "call_type_rules": {k.value: v for k, v in self.call_type_rules.items()},
            "success_rule": self.success_rule,
            "red_flags": list(self.red_flags),
            "glossary": dict(self.glossary),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Rubric:
        """Build a rubric from its JSON form.

        Raises:
            ConfigurationError: a required field is missing or malformed.
        """
        try:
            criteria = tuple(
                Criterion(
                    key=str(c["key"]),
                    title=str(c["title"]),
                    checkpoints=tuple(str(p) for p in c.get("checkpoints", [])),
                    bands=tuple(
                        ScoreBand(int(b["low"]), int(b["high"]), str(b["description"]))
                        for b in c.get("bands", [])
                    ),
                    neutral_score=(
                        int(c["neutral_score"]) if c.get("neutral_score") is not None else None
                    ),
                    neutral_condition=str(c.get("neutral_condition", "")),
                )
                for c in data["criteria"]
            )
            rubric = cls(
                name=str(data.get("name", "custom")),
                auditor_role=str(data["auditor_role"]),
                criteria=criteria,
                call_type_labels={
                    CallType(k): str(v) for k, v in data.get("call_type_labels", {}).items()
                },
                call_type_rules={
                    CallType(k): str(v) for k, v in data.get("call_type_rules", {}).items()
                },
                success_rule=str(data["success_rule"]),
                red_flags=tuple(str(f) for f in data.get("red_flags", [])),
                business_context=str(data.get("business_context", "")),
                glossary={str(k): str(v) for k, v in data.get("glossary", {}).items()},
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid rubric definition: {exc}") from exc

        if not rubric.criteria:
            raise ConfigurationError("Rubric must define at least one criterion")
        if len(set(rubric.criterion_keys)) != len(rubric.criteria):
            raise ConfigurationError("Rubric criterion keys must be unique")
        return rubric


def _bands(*descriptions: str) -> tuple[ScoreBand, ...]:
    limits = ((90, 100), (70, 89), (50, 69), (30, 49), (0, 29))
    return tuple(ScoreBand(low, high, text) for (low, high), text in zip(limits, descriptions))


DEFAULT_RUBRIC = Rubric(
    name="appointment-booking",
    auditor_role=(
        "You are a strict call-center quality auditor. The company sells an entry "
        "diagnostic appointment by phone; agents follow a six-stage sales script."
    ),
    criteria=(
        Criterion(
            key="contact",
            title="Contact and taking the lead",
            checkpoints=(
                "Greets the caller by name",
                "Introduces themselves and the company",
                "Confirms the request the caller left",
                "Asks whether it is a convenient time to talk",
                "Explains how the conversation will go and gets agreement to ask questions",
            ),
            bands=_bands(
                "All actions including agreement on the conversation structure",
                "Introduced, confirmed the request, checked timing, but did not lead",
                "Introduced and confirmed the request only",
                "Formal greeting without introducing the company or confirming the request",
                "No introduction, rude, or stage skipped",
            ),
        ),
        Criterion(
            key="discovery",
            title="Discovering and amplifying the need",
            checkpoints=(
                "Asks what exactly the problem is",
                "Clarifies its nature and how long it has lasted",
                "Asks how it affects everyday life",
                "Lets the caller talk and shows empathy",
            ),
            bands=_bands(
                "All three questions plus empathy",
                "What and nature asked, impact on daily life not explored",
                "Only asked what the problem is",
                "Barely asked, jumped to the offer",
                "No needs discovery",
            ),
        ),
        Criterion(
            key="presentation",
            title="Presenting the solution",
            checkpoints=(
                "Bridges from the caller's problem with empathy",
                "Presents the company's specialization",
                "Describes every component of the offer and why it matters",
                "Anchors value against the regular price before naming the price",
                "Closes the presentation with an agreement question",
            ),
            bands=_bands(
                "Full presentation with every component, value anchor and closing question",
                "Offer and price named with main components but few details",
                "Price named, offer contents not explained",
                "Appointment mentioned without presenting value",
                "No presentation",
            ),
        ),
        Criterion(
            key="booking",
            title="Booking with a choice of slots",
            checkpoints=(
                "Does not ask 'do you want to book?', proposes concrete times instead",
                "Ties booking to locking in the current conditions",
                "Offers two concrete time options",
                "Narrows down to an exact slot after the caller chooses",
            ),
            bands=_bands(
                "Locked conditions, two options, exact slot, no yes/no question",
                "Concrete time offered but with a yes/no question or without locking conditions",
                "Asked 'do you want to book?' without concrete options",
                "Waited for the caller to ask for a booking",
                "Never reached booking",
            ),
        ),
        Criterion(
            key="objections",
            title="Handling objections",
            checkpoints=(
                "Price: breaks down what the caller would pay elsewhere",
                "'I'll think about it': offers a tentative hold on a slot",
                "'It won't help': positions the visit as an honest diagnosis",
                "'I can get it free elsewhere': contrasts waiting time and urgency",
            ),
            bands=_bands(
                "Every objection handled with script-level arguments",
                "Objections handled, partly off-script",
                "Weak or formal answers",
                "Ignored or dodged objections",
                "Gave up at the first objection",
            ),
            neutral_score=80,
            neutral_condition="the caller raised at least one objection",
        ),
        Criterion(
            key="closing",
            title="Confirmation and closing",
            checkpoints=(
                "Records the caller's full name and date of birth",
                "Repeats date, time, address and amount due",
                "Reminds the caller to bring ID and arrive 10-15 minutes early",
                "Offers to send the location and a reminder by messenger",
                "Asks to be warned about changes and says goodbye politely",
            ),
            bands=_bands(
                "Full data, full confirmation, reminders and messenger follow-up",
                "Name, date, time, address and amount, without reminders",
                "Date and time only",
                "Formal goodbye without confirmation",
                "Call cut off without closing",
            ),
        ),
    ),
    call_type_labels={
        CallType.PRIMARY: "PRIMARY",
        CallType.REPEAT: "REPEAT",
        CallType.SERVICE: "SERVICE",
        CallType.SHORT: "SHORT",
    },
    call_type_rules={
        CallType.PRIMARY: "First call to a new lead (the main type)",
        CallType.REPEAT: "Repeat call to an existing customer",
        CallType.SERVICE: (
            "Service call (rescheduling, question about an ongoing service, address check); "
            "score by what applies"
        ),
        CallType.SHORT: "Too short to evaluate: no answer, voicemail, caller hung up",
    },
    success_rule="the caller booked a concrete date and time",
)


def load_rubric(path: str | None = None) -> Rubric:
    """Return the rubric at ``path``, or the built-in one when ``path`` is empty."""
    if not path:
        return DEFAULT_RUBRIC
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Cannot read rubric file {path}: {exc}") from exc
    rubric = Rubric.from_dict(data)
    logger.info("rubric.loaded", path=path, name=rubric.name, criteria=len(rubric.criteria))
    return rubric
