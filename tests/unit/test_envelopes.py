"""Tests for structural decoding of legacy events and cloud events."""
from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest

from functions_conformance.events.envelopes import (
    CloudEventEnvelope,
    LegacyEvent,
    LegacyResource,
    decode_cloud_event,
    decode_legacy_event,
    parse_instant,
)
from functions_conformance.models import DecodeError


def _cloud_event(**overrides: object) -> bytes:
    doc: dict = {
        "specversion": "1.0",
        "id": "evt-1",
        "source": "//pubsub.googleapis.com/projects/p/topics/t",
        "type": "google.cloud.pubsub.topic.v1.messagePublished",
        "time": "2020-09-29T11:32:00.000Z",
        "datacontenttype": "application/json",
        "data": {"message": {"data": "aGk="}},
    }
    doc.update(overrides)
    return json.dumps(doc).encode()


class TestParseInstant:
    """Tests for parse_instant."""

    def test_parses_iso_timestamps(self) -> None:
        parsed = parse_instant("2020-09-29T11:32:00.000Z")
        assert parsed == datetime(2020, 9, 29, 11, 32, tzinfo=timezone.utc)

    def test_offsets_denote_the_same_instant(self) -> None:
        assert parse_instant("2020-09-29T11:32:00Z") == parse_instant(
            "2020-09-29T13:32:00+02:00"
        )

    @pytest.mark.parametrize(
        "value",
        [None, 12, 1601379120.123, "1601379120", "not a time", "2020-09-29", "2020-09-29T11:32:00", {}],
    )
    def test_rejects_non_timestamps(self, value: object) -> None:
        assert parse_instant(value) is None

    def test_passes_datetimes_through(self) -> None:
        now = datetime.now(timezone.utc)
        assert parse_instant(now) is now


class TestDecodeCloudEvent:
    """Tests for decode_cloud_event and CloudEventEnvelope."""

    def test_decodes_core_attributes(self) -> None:
        envelope = decode_cloud_event(_cloud_event())
        assert envelope.id == "evt-1"
        assert envelope.type == "google.cloud.pubsub.topic.v1.messagePublished"
        assert envelope.time == datetime(2020, 9, 29, 11, 32, tzinfo=timezone.utc)
        assert envelope.payload() == {"message": {"data": "aGk="}}

    @pytest.mark.parametrize("time", [1601379120.123, "1601379120.123", "2020-09-29"])
    def test_time_must_be_rfc3339_string(self, time: object) -> None:
        with pytest.raises(DecodeError, match="time: .*RFC 3339"):
            decode_cloud_event(_cloud_event(time=time))

    def test_missing_required_attribute(self) -> None:
        raw = json.dumps({"id": "evt-1", "type": "t"}).encode()
        with pytest.raises(DecodeError, match="unmarshalling cloud event: source"):
            decode_cloud_event(raw)

    def test_not_json(self) -> None:
        with pytest.raises(DecodeError, match="unmarshalling cloud event"):
            decode_cloud_event(b"<html>")

    def test_extensions_are_kept(self) -> None:
        envelope = decode_cloud_event(_cloud_event(traceparent="00-abc"))
        assert envelope.extensions == {"traceparent": "00-abc"}

    def test_string_payload_is_parsed_as_json(self) -> None:
        envelope = decode_cloud_event(_cloud_event(data='{"a": [1, 2]}'))
        assert envelope.payload() == {"a": [1, 2]}

    def test_base64_payload_is_decoded(self) -> None:
        encoded = base64.b64encode(b'{"a": 1}').decode()
        envelope = decode_cloud_event(_cloud_event(data=None, data_base64=encoded))
        assert envelope.payload() == {"a": 1}

    def test_base64_binary_payload(self) -> None:
        encoded = base64.b64encode(b"\x00\x01").decode()
        envelope = decode_cloud_event(
            _cloud_event(
                data=None,
                data_base64=encoded,
                datacontenttype="application/octet-stream",
            )
        )
        assert envelope.payload() == b"\x00\x01"

    def test_invalid_base64_payload(self) -> None:
        envelope = decode_cloud_event(_cloud_event(data=None, data_base64="!!!"))
        with pytest.raises(DecodeError, match="invalid data_base64"):
            envelope.payload()

    def test_is_frozen(self) -> None:
        envelope = decode_cloud_event(_cloud_event())
        with pytest.raises(Exception):
            envelope.id = "other"  # type: ignore[misc]


class TestBinaryMode:
    """Tests for binary content mode encoding."""

    def test_headers(self) -> None:
        envelope = decode_cloud_event(
            _cloud_event(subject="objects/a.txt", traceparent="00-abc")
        )
        headers = envelope.binary_headers()
        assert headers["ce-id"] == "evt-1"
        assert headers["ce-source"] == "//pubsub.googleapis.com/projects/p/topics/t"
        assert headers["ce-type"] == "google.cloud.pubsub.topic.v1.messagePublished"
        assert headers["ce-specversion"] == "1.0"
        assert headers["ce-subject"] == "objects/a.txt"
        assert headers["ce-time"] == "2020-09-29T11:32:00Z"
        assert headers["ce-traceparent"] == "00-abc"
        assert headers["Content-Type"] == "application/json"

    def test_body(self) -> None:
        envelope = decode_cloud_event(_cloud_event())
        assert json.loads(envelope.binary_body()) == {"message": {"data": "aGk="}}

    def test_body_without_data(self) -> None:
        envelope = CloudEventEnvelope(id="1", source="s", type="t")
        assert envelope.binary_body() == b""


class TestLegacyResource:
    """Tests for LegacyResource."""

    def test_flat(self) -> None:
        resource = LegacyResource.from_value("projects/p/topics/t")
        assert resource.is_flat
        assert resource.name == "projects/p/topics/t"
        assert resource.service is None
        assert resource.type is None
        assert resource.render() == "'projects/p/topics/t'"

    def test_structured(self) -> None:
        resource = LegacyResource.from_value(
            {"service": "pubsub.googleapis.com", "name": "projects/p/topics/t", "type": "x"}
        )
        assert not resource.is_flat
        assert resource.service == "pubsub.googleapis.com"
        assert resource.render() == (
            "{service='pubsub.googleapis.com', name='projects/p/topics/t', type='x'}"
        )

    def test_missing(self) -> None:
        assert LegacyResource.from_value(None) == LegacyResource()


class TestDecodeLegacyEvent:
    """Tests for decode_legacy_event and LegacyEvent."""

    def test_context_object(self) -> None:
        event = decode_legacy_event(
            json.dumps(
                {
                    "data": {"a": 1},
                    "context": {
                        "eventId": "1",
                        "eventType": "t",
                        "timestamp": "2020-01-01T00:00:00Z",
                        "resource": "r",
                    },
                }
            ).encode()
        )
        assert event.data == {"a": 1}
        assert event.event_id == "1"
        assert event.event_type == "t"
        assert event.timestamp == "2020-01-01T00:00:00Z"
        assert event.resource == LegacyResource(raw_path="r", name="r")

    def test_root_level_context(self) -> None:
        event = LegacyEvent(
            {"data": None, "eventId": "1", "eventType": "t", "resource": "r"}
        )
        assert event.event_id == "1"
        assert event.raw_resource == "r"

    def test_snake_case_keys(self) -> None:
        event = LegacyEvent({"context": {"event_id": "1", "event_type": "t"}})
        assert event.event_id == "1"
        assert event.event_type == "t"

    def test_camel_case_preferred(self) -> None:
        event = LegacyEvent({"context": {"eventId": "camel", "event_id": "snake"}})
        assert event.event_id == "camel"

    def test_missing_fields_are_none(self) -> None:
        event = LegacyEvent({})
        assert event.data is None
        assert event.event_id is None
        assert event.timestamp is None

    def test_not_json(self) -> None:
        with pytest.raises(DecodeError, match="unmarshalling legacy event"):
            decode_legacy_event(b"{")

    def test_not_an_object(self) -> None:
        with pytest.raises(DecodeError, match="expected a JSON object, got list"):
            decode_legacy_event(b"[]")


def test_timezone_offsets_compare_equal_after_decoding() -> None:
    """Cloud event times at different offsets decode to the same instant."""
    utc = decode_cloud_event(_cloud_event(time="2020-09-29T11:32:00Z"))
    shifted = decode_cloud_event(_cloud_event(time="2020-09-29T12:32:00+01:00"))
    assert utc.time == shifted.time
    assert shifted.time is not None
    assert shifted.time.utcoffset() == timedelta(hours=1)
