"""Core data models for functions-conformance."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple


class Encoding(str, Enum):
    """Wire encodings an event fixture can be expressed in."""

    LEGACY = "legacy"
    CLOUD_EVENT = "cloudevent"

    @property
    def label(self) -> str:
        """Human-readable name used in messages."""
        if self is Encoding.LEGACY:
            return "legacy event"
        return "cloud event"

    @property
    def other(self) -> "Encoding":
        """The encoding on the other side of a cross-encoding mapping."""
        if self is Encoding.LEGACY:
            return Encoding.CLOUD_EVENT
        return Encoding.LEGACY


class SignatureType(str, Enum):
    """Calling convention exposed by the function under test."""

    HTTP = "http"
    CLOUD_EVENT = "cloudevent"
    LEGACY_EVENT = "legacyevent"

    @property
    def encoding(self) -> Optional[Encoding]:
        """Event encoding exercised by this signature (None for plain HTTP)."""
        return _SIGNATURE_ENCODINGS[self]

    @property
    def buildpack_signature(self) -> str:
        """Signature type name understood by the function buildpacks."""
        if self is SignatureType.LEGACY_EVENT:
            return "event"
        return self.value


_SIGNATURE_ENCODINGS = {
    SignatureType.HTTP: None,
    SignatureType.CLOUD_EVENT: Encoding.CLOUD_EVENT,
    SignatureType.LEGACY_EVENT: Encoding.LEGACY,
}


@dataclass(frozen=True)
class ScenarioOutcome:
    """Verdict for a single scenario.

    A scenario is either judged (``errors`` empty means it passed) or
    explicitly skipped because nothing was expected for the encoding.
    """

    name: str
    errors: Tuple[str, ...] = ()
    skipped_reason: Optional[str] = None

    def __post_init__(self) -> None:
        if self.errors and self.skipped_reason is not None:
            raise ValueError(
                f"Scenario {self.name!r} cannot be both skipped and failed"
            )

    @classmethod
    def ok(cls, name: str) -> "ScenarioOutcome":
        return cls(name=name)

    @classmethod
    def failure(cls, name: str, errors: Iterable[str]) -> "ScenarioOutcome":
        errs = tuple(errors)
        if not errs:
            raise ValueError("A failed outcome needs at least one error")
        return cls(name=name, errors=errs)

    @classmethod
    def skip(cls, name: str, reason: str) -> "ScenarioOutcome":
        return cls(name=name, skipped_reason=reason)

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    @property
    def passed(self) -> bool:
        return not self.failed and not self.skipped

    @property
    def status(self) -> str:
        """Summary label used in run logs."""
        if self.failed:
            return "FAILED"
        if self.skipped:
            return f"SKIPPED: {self.skipped_reason}"
        return "PASSED"


@dataclass
class AggregateReport:
    """Ordered outcomes of one validation run."""

    outcomes: List[ScenarioOutcome] = field(default_factory=list)

    def add(self, outcome: ScenarioOutcome) -> None:
        self.outcomes.append(outcome)

    def extend(self, outcomes: Iterable[ScenarioOutcome]) -> None:
        self.outcomes.extend(outcomes)

    @property
    def failed(self) -> bool:
        return any(o.failed for o in self.outcomes)

    @property
    def failures(self) -> List[ScenarioOutcome]:
        return [o for o in self.outcomes if o.failed]

    def render_log(self) -> str:
        """Render the per-scenario summary line block."""
        lines = ["Events tried:"]
        for outcome in self.outcomes:
            lines.append(f"\t- {outcome.name} ({outcome.status})")
        return "\n".join(lines)

    def render_errors(self) -> Optional[str]:
        """Render every failure grouped by scenario, or None if all passed."""
        failures = self.failures
        if not failures:
            return None
        lines = ["Validation errors:"]
        for outcome in failures:
            lines.append(f"\t- {outcome.name}:")
            for error in outcome.errors:
                lines.append(f"\t\t- {error}")
        return "\n".join(lines)

    def raise_for_failures(self) -> None:
        """Raise ValidationFailure if any scenario failed."""
        message = self.render_errors()
        if message is not None:
            raise ValidationFailure(message, report=self)


@dataclass(frozen=True)
class BenchmarkSample:
    """Timings gathered by one concurrency benchmark invocation."""

    baseline: float
    concurrent: float
    errors: Tuple[Optional[str], ...]

    @property
    def ratio(self) -> float:
        return self.concurrent / self.baseline if self.baseline else float("inf")


# Custom Exceptions
class ConformanceError(Exception):
    """Base exception for all library errors."""
    pass


class StartupFailure(ConformanceError):
    """The function server could not be brought up."""
    pass


class TransportError(ConformanceError):
    """A request to the function under test failed or was not acknowledged."""
    pass


class OutputUnavailable(ConformanceError):
    """The function's captured output could not be read back."""
    pass


class DecodeError(ConformanceError):
    """Bytes could not be parsed as the requested encoding."""
    pass


class BenchmarkError(ConformanceError):
    """The concurrency benchmark could not establish concurrent handling."""
    pass


class BenchmarkFloorViolation(BenchmarkError):
    """The baseline request returned too quickly to measure meaningfully."""
    pass


class BenchmarkScalingViolation(BenchmarkError):
    """Concurrent requests took too long relative to a single request."""
    pass


class TeardownFailure(ConformanceError):
    """The function server could not be stopped or its logs collected."""
    pass


class ValidationFailure(ConformanceError):
    """A validation run failed; the message carries every failure detail."""

    def __init__(self, message: str, report: Optional[AggregateReport] = None) -> None:
        self.report = report
        super().__init__(message)
