"""Reusable test helpers for functions-conformance.

Framework authors can import these to write their own conformance assertions:
    from functions_conformance.events.pytest_helpers import (
        assert_output_conforms,
        assert_output_fails,
    )
"""
from __future__ import annotations

from typing import Optional

from functions_conformance.events.loader import EventCorpus
from functions_conformance.events.validators import EquivalenceEngine
from functions_conformance.models import Encoding, ScenarioOutcome


def assert_output_conforms(
    name: str,
    encoding: Encoding,
    actual: bytes,
    *,
    is_conversion: bool = False,
    corpus: Optional[EventCorpus] = None,
) -> ScenarioOutcome:
    """Assert an output is an acceptable rendering of the fixture's expected output."""
    outcome = EquivalenceEngine(corpus).judge(name, encoding, actual, is_conversion)
    if outcome.skipped:
        raise AssertionError(
            f"Fixture {name!r} has no expected {encoding.label} output: "
            f"{outcome.skipped_reason}"
        )
    if outcome.failed:
        raise AssertionError(
            f"Output for {name!r} ({encoding.label}) failed conformance:\n"
            + "\n".join(f"  {error}" for error in outcome.errors)
        )
    return outcome


def assert_output_fails(
    name: str,
    encoding: Encoding,
    actual: bytes,
    *,
    is_conversion: bool = False,
    corpus: Optional[EventCorpus] = None,
) -> ScenarioOutcome:
    """Assert an output DOES NOT conform (expected mismatch)."""
    outcome = EquivalenceEngine(corpus).judge(name, encoding, actual, is_conversion)
    if not outcome.failed:
        raise AssertionError(
            f"Output for {name!r} ({encoding.label}) was expected to fail "
            f"but was {outcome.status}."
        )
    return outcome
