"""Event corpus and equivalence engine for functions-conformance."""
from functions_conformance.events.envelopes import (
    CloudEventEnvelope,
    LegacyEvent,
    LegacyResource,
    decode_cloud_event,
    decode_legacy_event,
)
from functions_conformance.events.loader import (
    EventCorpus,
    EventFixture,
    default_corpus,
)
from functions_conformance.events.pytest_helpers import (
    assert_output_conforms,
    assert_output_fails,
)
from functions_conformance.events.validators import (
    EquivalenceEngine,
    compare_cloud_events,
    compare_legacy_events,
    diff_paths,
    validate_event,
)

__all__ = [
    "CloudEventEnvelope",
    "EquivalenceEngine",
    "EventCorpus",
    "EventFixture",
    "LegacyEvent",
    "LegacyResource",
    "assert_output_conforms",
    "assert_output_fails",
    "compare_cloud_events",
    "compare_legacy_events",
    "decode_cloud_event",
    "decode_legacy_event",
    "default_corpus",
    "diff_paths",
    "validate_event",
]
