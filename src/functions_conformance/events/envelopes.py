"""Structural decoding of the two event encodings.

Legacy events are free-form JSON documents with a ``data`` payload and context
fields either nested under ``context`` or at the document root. Cloud events
are envelopes with a fixed set of header attributes plus an opaque payload.
"""
from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from functions_conformance.models import DecodeError, Encoding

_INSTANT: TypeAdapter[datetime] = TypeAdapter(datetime)

# RFC 3339 date-time: full date, full time and a mandatory offset.
_RFC3339_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)

# Accepted spellings for legacy context keys, preferred spelling first.
EVENT_ID_KEYS = ("eventId", "event_id")
EVENT_TYPE_KEYS = ("eventType", "event_type")


def parse_instant(value: object) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp string, returning None if it is not one.

    Epoch numbers and numeric strings are not timestamps here, even though
    pydantic's lax datetime parsing would accept them.
    """
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or _RFC3339_RE.match(value) is None:
        return None
    try:
        return _INSTANT.validate_python(value)
    except PydanticValidationError:
        return None


def _is_json_content_type(content_type: Optional[str]) -> bool:
    if content_type is None:
        return True
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


class CloudEventEnvelope(BaseModel):
    """A structured-mode cloud event."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str = Field(..., min_length=1, description="Event identifier")
    source: str = Field(..., min_length=1, description="Event producer URI reference")
    type: str = Field(..., min_length=1, description="Event type, e.g. 'google.cloud.pubsub.topic.v1.messagePublished'")
    specversion: str = Field(default="1.0", description="Cloud events spec version")
    datacontenttype: Optional[str] = Field(None, description="Media type of data")
    dataschema: Optional[str] = Field(None, description="Schema URI of data")
    subject: Optional[str] = Field(None, description="Subject within the source")
    time: Optional[datetime] = Field(None, description="Instant the event occurred")
    data: Any = Field(None, description="Payload (inline)")
    data_base64: Optional[str] = Field(None, description="Payload (base64 encoded binary)")

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"CloudEventEnvelope(id={self.id}, type={self.type}, "
            f"source={self.source})"
        )

    @field_validator("time", mode="before")
    @classmethod
    def _time_is_rfc3339(cls, value: Any) -> Any:
        if value is None or isinstance(value, datetime):
            return value
        if not isinstance(value, str) or _RFC3339_RE.match(value) is None:
            raise ValueError(f"time must be an RFC 3339 string, got {value!r}")
        return value

    def payload(self) -> Any:
        """Return the payload as parsed structured data where possible.

        JSON payloads carried as strings or base64 are decoded so they can be
        compared structurally rather than byte-for-byte.

        Raises:
            DecodeError: If ``data_base64`` is not valid base64.
        """
        if self.data_base64 is not None:
            try:
                raw = base64.b64decode(self.data_base64, validate=True)
            except (binascii.Error, ValueError) as e:
                raise DecodeError(f"invalid data_base64: {e}") from e
            if _is_json_content_type(self.datacontenttype):
                try:
                    return json.loads(raw)
                except ValueError:
                    return raw
            return raw
        if isinstance(self.data, str) and _is_json_content_type(self.datacontenttype):
            try:
                return json.loads(self.data)
            except ValueError:
                return self.data
        return self.data

    @property
    def extensions(self) -> Dict[str, Any]:
        """Extension attributes not covered by the core attribute set."""
        return dict(self.model_extra or {})

    def binary_headers(self) -> Dict[str, str]:
        """HTTP headers for sending this event in binary content mode."""
        headers: Dict[str, str] = {
            "ce-id": self.id,
            "ce-source": self.source,
            "ce-type": self.type,
            "ce-specversion": self.specversion,
            "Content-Type": self.datacontenttype or "application/json",
        }
        if self.subject is not None:
            headers["ce-subject"] = self.subject
        if self.dataschema is not None:
            headers["ce-dataschema"] = self.dataschema
        if self.time is not None:
            headers["ce-time"] = self.time.isoformat().replace("+00:00", "Z")
        for name, value in self.extensions.items():
            headers[f"ce-{name}"] = value if isinstance(value, str) else json.dumps(value)
        return headers

    def binary_body(self) -> bytes:
        """Request body for binary content mode."""
        payload = self.payload()
        if isinstance(payload, bytes):
            return payload
        if isinstance(payload, str) and not _is_json_content_type(self.datacontenttype):
            return payload.encode("utf-8")
        if payload is None:
            return b""
        return json.dumps(payload).encode("utf-8")


@dataclass(frozen=True)
class LegacyResource:
    """A legacy event resource in either of its two accepted shapes.

    A flat resource carries ``raw_path`` and decomposes to a bare ``name``;
    a structured resource carries ``service``, ``name`` and ``type``.
    """

    raw_path: Optional[str] = None
    service: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None

    @classmethod
    def from_value(cls, value: object) -> "LegacyResource":
        if isinstance(value, str):
            return cls(raw_path=value, name=value)
        if isinstance(value, dict):
            return cls(
                service=value.get("service"),
                name=value.get("name"),
                type=value.get("type"),
            )
        return cls()

    @property
    def is_flat(self) -> bool:
        return self.raw_path is not None

    def render(self) -> str:
        if self.is_flat:
            return repr(self.raw_path)
        return f"{{service={self.service!r}, name={self.name!r}, type={self.type!r}}}"


@dataclass(frozen=True)
class LegacyEvent:
    """A decoded legacy event document."""

    document: Dict[str, Any]

    @property
    def data(self) -> Any:
        return self.document.get("data")

    @property
    def context(self) -> Dict[str, Any]:
        """Context fields, from the ``context`` object or the document root."""
        ctx = self.document.get("context")
        if isinstance(ctx, dict):
            return ctx
        return self.document

    def _first(self, keys: tuple) -> Any:
        ctx = self.context
        for key in keys:
            if key in ctx:
                return ctx[key]
        return None

    @property
    def event_id(self) -> Any:
        return self._first(EVENT_ID_KEYS)

    @property
    def event_type(self) -> Any:
        return self._first(EVENT_TYPE_KEYS)

    @property
    def timestamp(self) -> Any:
        return self.context.get("timestamp")

    @property
    def raw_resource(self) -> Any:
        return self.context.get("resource")

    @property
    def resource(self) -> LegacyResource:
        return LegacyResource.from_value(self.raw_resource)


def decode_legacy_event(raw: bytes) -> LegacyEvent:
    """Decode bytes as a legacy event document.

    Raises:
        DecodeError: If the bytes are not a JSON object.
    """
    try:
        document = json.loads(raw)
    except ValueError as e:
        raise DecodeError(f"unmarshalling {Encoding.LEGACY.label}: {e}") from e
    if not isinstance(document, dict):
        raise DecodeError(
            f"unmarshalling {Encoding.LEGACY.label}: expected a JSON object, "
            f"got {type(document).__name__}"
        )
    return LegacyEvent(document=document)


def decode_cloud_event(raw: bytes) -> CloudEventEnvelope:
    """Decode bytes as a structured-mode cloud event.

    Raises:
        DecodeError: If the bytes are not JSON or lack required attributes.
    """
    try:
        return CloudEventEnvelope.model_validate_json(raw)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or '$'}: {err['msg']}"
            for err in e.errors()
        )
        raise DecodeError(f"unmarshalling {Encoding.CLOUD_EVENT.label}: {problems}") from e
