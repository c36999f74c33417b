"""Typed errors raised by pipeline stages.

Stages raise; only the orchestrator decides between a fallback and an abort.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline failures."""


class FetchError(PipelineError):
    """The recording could not be downloaded."""


class SeparationError(PipelineError):
    """The audio tool failed to probe or split the recording."""


class TranscriptionError(PipelineError):
    """The ASR call failed permanently or ran out of retries."""

    def __init__(self, message: str, *, role: str | None = None, attempts: int | None = None):
        super().__init__(message)
        self.role = role
        self.attempts = attempts


class ScoringError(PipelineError):
    """The scoring model output could not be coerced into a report."""


class ConfigurationError(PipelineError):
    """Credentials or tooling required by the pipeline are missing."""


class DuplicateInvocationError(PipelineError):
    """A run for the same call id is already in flight."""

    def __init__(self, call_id: str):
        super().__init__(f"Call {call_id} is already being processed")
        self.call_id = call_id


class PipelineAbortedError(PipelineError):
    """Terminal failure of one invocation.

    ``state`` is the stage that failed and ``reason`` a one-line root cause
    suitable for showing to the caller.
    """

    def __init__(self, call_id: str, state: str, reason: str):
        super().__init__(f"Pipeline aborted for call {call_id} during {state}: {reason}")
        self.call_id = call_id
        self.state = state
        self.reason = reason


class AlreadyAnalyzedError(PipelineError):
    """A result for the call already exists and re-analysis was not forced."""

    def __init__(self, call_id: str):
        super().__init__(f"Call {call_id} already has a result; pass force to re-analyze")
        self.call_id = call_id


class InvalidTransitionError(PipelineError):
    """The orchestrator attempted a state change outside the allowed edges."""


class CompletionError(PipelineError):
    """The chat completion endpoint answered without usable content."""


def root_cause(exc: BaseException) -> str:
    """One-line summary of the innermost cause of ``exc``."""
    seen: set[int] = set()
    current: BaseException = exc
    while True:
        nxt = current.__cause__ or current.__context__
        if nxt is None or id(nxt) in seen:
            break
        seen.add(id(current))
        current = nxt
    message = str(current).strip().splitlines()
    text = message[0] if message else ""
    return f"{type(current).__name__}: {text}" if text else type(current).__name__
