"""Unit tests for core data models."""
import pytest

from functions_conformance.models import (
    AggregateReport,
    BenchmarkError,
    BenchmarkFloorViolation,
    BenchmarkSample,
    BenchmarkScalingViolation,
    ConformanceError,
    DecodeError,
    Encoding,
    OutputUnavailable,
    ScenarioOutcome,
    SignatureType,
    StartupFailure,
    TeardownFailure,
    TransportError,
    ValidationFailure,
)


class TestEncoding:
    """Tests for the Encoding enum."""

    def test_labels(self) -> None:
        assert Encoding.LEGACY.label == "legacy event"
        assert Encoding.CLOUD_EVENT.label == "cloud event"

    def test_other_is_an_involution(self) -> None:
        for encoding in Encoding:
            assert encoding.other is not encoding
            assert encoding.other.other is encoding

    def test_parses_from_value(self) -> None:
        assert Encoding("cloudevent") is Encoding.CLOUD_EVENT
        assert Encoding("legacy") is Encoding.LEGACY


class TestSignatureType:
    """Tests for the SignatureType enum."""

    def test_encodings(self) -> None:
        assert SignatureType.HTTP.encoding is None
        assert SignatureType.CLOUD_EVENT.encoding is Encoding.CLOUD_EVENT
        assert SignatureType.LEGACY_EVENT.encoding is Encoding.LEGACY

    def test_buildpack_signature(self) -> None:
        assert SignatureType.HTTP.buildpack_signature == "http"
        assert SignatureType.CLOUD_EVENT.buildpack_signature == "cloudevent"
        assert SignatureType.LEGACY_EVENT.buildpack_signature == "event"


class TestScenarioOutcome:
    """Tests for ScenarioOutcome."""

    def test_ok(self) -> None:
        outcome = ScenarioOutcome.ok("pubsub")
        assert outcome.passed
        assert not outcome.failed
        assert not outcome.skipped
        assert outcome.status == "PASSED"

    def test_failure(self) -> None:
        outcome = ScenarioOutcome.failure("pubsub", ["bad id", "bad type"])
        assert outcome.failed
        assert not outcome.passed
        assert outcome.errors == ("bad id", "bad type")
        assert outcome.status == "FAILED"

    def test_failure_requires_errors(self) -> None:
        with pytest.raises(ValueError, match="at least one error"):
            ScenarioOutcome.failure("pubsub", [])

    def test_skip(self) -> None:
        outcome = ScenarioOutcome.skip("firebase-db", "no expected cloud event output")
        assert outcome.skipped
        assert not outcome.passed
        assert not outcome.failed
        assert outcome.status == "SKIPPED: no expected cloud event output"

    def test_cannot_be_both_failed_and_skipped(self) -> None:
        with pytest.raises(ValueError, match="both skipped and failed"):
            ScenarioOutcome(name="x", errors=("e",), skipped_reason="r")

    def test_is_frozen(self) -> None:
        outcome = ScenarioOutcome.ok("pubsub")
        with pytest.raises(AttributeError):
            outcome.name = "storage"  # type: ignore[misc]


class TestAggregateReport:
    """Tests for AggregateReport rendering and failure handling."""

    def _report(self) -> AggregateReport:
        report = AggregateReport()
        report.add(ScenarioOutcome.ok("firebase-auth"))
        report.extend(
            [
                ScenarioOutcome.skip("firebase-db", "no expected cloud event output"),
                ScenarioOutcome.failure("pubsub", ["unexpected cloud event id"]),
                ScenarioOutcome.failure("storage", ["bad source", "bad time"]),
            ]
        )
        return report

    def test_render_log_preserves_order(self) -> None:
        assert self._report().render_log() == (
            "Events tried:\n"
            "\t- firebase-auth (PASSED)\n"
            "\t- firebase-db (SKIPPED: no expected cloud event output)\n"
            "\t- pubsub (FAILED)\n"
            "\t- storage (FAILED)"
        )

    def test_render_errors_groups_by_scenario(self) -> None:
        assert self._report().render_errors() == (
            "Validation errors:\n"
            "\t- pubsub:\n"
            "\t\t- unexpected cloud event id\n"
            "\t- storage:\n"
            "\t\t- bad source\n"
            "\t\t- bad time"
        )

    def test_failures(self) -> None:
        report = self._report()
        assert report.failed
        assert [o.name for o in report.failures] == ["pubsub", "storage"]

    def test_passing_report_renders_no_errors(self) -> None:
        report = AggregateReport([ScenarioOutcome.ok("a"), ScenarioOutcome.skip("b", "r")])
        assert not report.failed
        assert report.render_errors() is None
        report.raise_for_failures()

    def test_raise_for_failures_carries_report(self) -> None:
        report = self._report()
        with pytest.raises(ValidationFailure) as excinfo:
            report.raise_for_failures()
        assert excinfo.value.report is report
        assert "bad time" in str(excinfo.value)


class TestBenchmarkSample:
    """Tests for BenchmarkSample."""

    def test_ratio(self) -> None:
        sample = BenchmarkSample(baseline=1.0, concurrent=1.5, errors=(None,))
        assert sample.ratio == pytest.approx(1.5)

    def test_ratio_with_zero_baseline(self) -> None:
        sample = BenchmarkSample(baseline=0.0, concurrent=1.0, errors=())
        assert sample.ratio == float("inf")


class TestExceptions:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        "exc_type",
        [
            StartupFailure,
            TransportError,
            OutputUnavailable,
            DecodeError,
            BenchmarkError,
            TeardownFailure,
            ValidationFailure,
        ],
    )
    def test_rooted_at_conformance_error(self, exc_type: type) -> None:
        assert issubclass(exc_type, ConformanceError)

    def test_benchmark_violations(self) -> None:
        assert issubclass(BenchmarkFloorViolation, BenchmarkError)
        assert issubclass(BenchmarkScalingViolation, BenchmarkError)
