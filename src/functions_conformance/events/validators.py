"""Format-tolerant equivalence checks for function outputs.

This module decides whether the output a function under test wrote is an
acceptable rendering of the expected fixture output:

1. Legacy events: structural payload equality plus id, type, timestamp and
   resource context checks that accept both historical naming conventions
   and both resource shapes.
2. Cloud events: attribute equality, structural payload equality and
   instant equality for ``time``.

Mismatches are collected, never raised, so a single pass reports every
field that is wrong.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, List, Optional

from functions_conformance.events.envelopes import (
    CloudEventEnvelope,
    LegacyEvent,
    LegacyResource,
    decode_cloud_event,
    decode_legacy_event,
    parse_instant,
)
from functions_conformance.events.loader import EventCorpus, default_corpus
from functions_conformance.models import DecodeError, Encoding, ScenarioOutcome

logger = logging.getLogger("functions_conformance.events.validators")

_LEGACY = Encoding.LEGACY.label
_CLOUD_EVENT = Encoding.CLOUD_EVENT.label


def _render(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(value)


def diff_paths(got: Any, want: Any, path: str = "$") -> List[str]:
    """List the paths at which two decoded JSON values differ.

    Mappings are compared key by key regardless of order; sequences are
    compared position by position. An empty result means the values are
    structurally equal.
    """
    if isinstance(got, dict) and isinstance(want, dict):
        paths: List[str] = []
        for key in sorted(set(got) | set(want), key=str):
            child = f"{path}.{key}"
            if key not in got:
                paths.append(f"{child} (missing)")
            elif key not in want:
                paths.append(f"{child} (unexpected)")
            else:
                paths.extend(diff_paths(got[key], want[key], child))
        return paths
    if isinstance(got, list) and isinstance(want, list):
        if len(got) != len(want):
            return [f"{path} (length {len(got)} != {len(want)})"]
        paths = []
        for index, (g, w) in enumerate(zip(got, want)):
            paths.extend(diff_paths(g, w, f"{path}[{index}]"))
        return paths
    # bool is an int subclass; keep true/1 distinct
    if isinstance(got, bool) != isinstance(want, bool) or got != want:
        return [path]
    return []


def _render_instant(value: Optional[datetime]) -> str:
    if value is None:
        return "None"
    return value.isoformat().replace("+00:00", "Z")


def _same_instant(got: Any, want: Any) -> bool:
    got_instant = parse_instant(got)
    want_instant = parse_instant(want)
    if got_instant is None or want_instant is None:
        return bool(got == want)
    try:
        return got_instant == want_instant
    except TypeError:
        return False


def _resource_matches(got: Any, want: LegacyResource) -> bool:
    """Check an actual resource value against the expected resource.

    A flat string must equal the expected raw path. A mapping must agree with
    the expected resource on service, name and type individually.
    """
    if isinstance(got, str):
        return want.is_flat and got == want.raw_path
    if isinstance(got, dict):
        decomposed = LegacyResource.from_value(got)
        return (
            decomposed.service == want.service
            and decomposed.name == want.name
            and decomposed.type == want.type
        )
    return False


def compare_legacy_events(got: LegacyEvent, want: LegacyEvent) -> List[str]:
    """Compare two decoded legacy events, returning one entry per mismatch."""
    errors: List[str] = []

    paths = diff_paths(got.data, want.data, "data")
    if paths:
        errors.append(
            f"unexpected {_LEGACY} data at {', '.join(paths)}: "
            f"got {_render(got.data)}, want {_render(want.data)}"
        )

    if got.event_id != want.event_id:
        errors.append(
            f"unexpected {_LEGACY} ID: got {got.event_id!r}, want {want.event_id!r}"
        )
    if got.event_type != want.event_type:
        errors.append(
            f"unexpected {_LEGACY} type: got {got.event_type!r}, want {want.event_type!r}"
        )
    if not _same_instant(got.timestamp, want.timestamp):
        errors.append(
            f"unexpected {_LEGACY} timestamp: got {got.timestamp!r}, want {want.timestamp!r}"
        )
    if not _resource_matches(got.raw_resource, want.resource):
        errors.append(
            f"unexpected {_LEGACY} resource: got {_render(got.raw_resource)}, "
            f"want {want.resource.render()}"
        )

    return errors


def compare_cloud_events(got: CloudEventEnvelope, want: CloudEventEnvelope) -> List[str]:
    """Compare two decoded cloud events, returning one entry per mismatch."""
    errors: List[str] = []

    for attribute in ("id", "source", "type", "datacontenttype"):
        got_value = getattr(got, attribute)
        want_value = getattr(want, attribute)
        if got_value != want_value:
            errors.append(
                f"unexpected {_CLOUD_EVENT} {attribute}: got {got_value!r}, want {want_value!r}"
            )

    try:
        got_data = got.payload()
        want_data = want.payload()
    except DecodeError as e:
        errors.append(f"unable to decode {_CLOUD_EVENT} data: {e}")
    else:
        paths = diff_paths(got_data, want_data, "data")
        if paths:
            errors.append(
                f"unexpected {_CLOUD_EVENT} data at {', '.join(paths)}: "
                f"got {_render(got_data)}, want {_render(want_data)}"
            )

    if not _same_instant(got.time, want.time):
        errors.append(
            f"unexpected {_CLOUD_EVENT} time: got {_render_instant(got.time)}, "
            f"want {_render_instant(want.time)}"
        )

    return errors


class EquivalenceEngine:
    """Judges actual function outputs against the fixtures of a corpus."""

    def __init__(self, corpus: Optional[EventCorpus] = None) -> None:
        self.corpus = corpus if corpus is not None else default_corpus()

    def judge(
        self,
        name: str,
        encoding: Encoding,
        actual: bytes,
        is_conversion: bool = False,
    ) -> ScenarioOutcome:
        """Judge *actual* against the expected output of fixture *name*.

        Args:
            name: Fixture name (e.g. ``"pubsub"``).
            encoding: Encoding the output is expected in.
            actual: Raw bytes the function under test wrote.
            is_conversion: True when the input was sent in the other encoding,
                so a converted-output override applies.

        Returns:
            A skip outcome when nothing is expected for this encoding,
            otherwise a pass or a failure listing every mismatch.
        """
        expected = self.corpus.output_data(name, encoding, is_conversion)
        if expected is None:
            logger.debug("No expected %s output for %s", encoding.label, name)
            return ScenarioOutcome.skip(name, f"no expected {encoding.label} output")

        if encoding is Encoding.LEGACY:
            errors = self._judge_legacy(actual, expected)
        else:
            errors = self._judge_cloud_event(actual, expected)

        if errors:
            return ScenarioOutcome.failure(name, errors)
        return ScenarioOutcome.ok(name)

    @staticmethod
    def _judge_legacy(actual: bytes, expected: bytes) -> List[str]:
        try:
            want = decode_legacy_event(expected)
        except DecodeError as e:
            return [f"invalid expected output: {e}"]
        try:
            got = decode_legacy_event(actual)
        except DecodeError as e:
            return [str(e)]
        return compare_legacy_events(got, want)

    @staticmethod
    def _judge_cloud_event(actual: bytes, expected: bytes) -> List[str]:
        try:
            want = decode_cloud_event(expected)
        except DecodeError as e:
            return [f"invalid expected output: {e}"]
        try:
            got = decode_cloud_event(actual)
        except DecodeError as e:
            return [str(e)]
        return compare_cloud_events(got, want)


def validate_event(
    name: str,
    encoding: Encoding,
    actual: bytes,
    is_conversion: bool = False,
) -> ScenarioOutcome:
    """Judge *actual* against the bundled corpus."""
    return EquivalenceEngine().judge(name, encoding, actual, is_conversion)
