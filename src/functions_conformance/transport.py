"""HTTP transport for sending requests and events to the function under test."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

import requests

from functions_conformance.events.envelopes import decode_cloud_event
from functions_conformance.models import DecodeError, Encoding, TransportError

logger = logging.getLogger("functions_conformance.transport")

DEFAULT_TIMEOUT = 60.0


class Transport(Protocol):
    """Sends single requests of a given encoding to a URL."""

    def send_http(self, url: str, data: bytes) -> None:
        ...

    def send_event(self, url: str, encoding: Encoding, data: bytes) -> None:
        ...


class HttpTransport:
    """Transport backed by a ``requests.Session``.

    Plain HTTP requests and legacy events are POSTed as JSON documents. Cloud
    events are re-encoded in binary content mode: attributes travel as
    ``ce-*`` headers and the payload is the request body.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()

    def send_http(self, url: str, data: bytes) -> None:
        """POST *data* and require a 2xx status.

        Raises:
            TransportError: On connection failure or a non-2xx status.
        """
        self._post(url, data, {"Content-Type": "application/json"})

    def send_event(self, url: str, encoding: Encoding, data: bytes) -> None:
        """Deliver an event in *encoding* and require acknowledgement.

        Raises:
            TransportError: If the event cannot be encoded, the request fails,
                or the server does not acknowledge it with a 2xx status.
        """
        if encoding is Encoding.LEGACY:
            self._post(url, data, {"Content-Type": "application/json"})
            return

        try:
            envelope = decode_cloud_event(data)
        except DecodeError as e:
            raise TransportError(f"failed to send CloudEvent: {e}") from e
        self._post(url, envelope.binary_body(), envelope.binary_headers())

    def _post(self, url: str, body: bytes, headers: Dict[str, str]) -> None:
        logger.debug("POST %s (%d bytes)", url, len(body))
        try:
            response = self.session.post(
                url, data=body, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TransportError(f"failed to send HTTP request: {e}") from e

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"validation failed with exit code {response.status_code}: "
                f"{response.text}"
            )

    def close(self) -> None:
        self.session.close()
