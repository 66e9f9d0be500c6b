"""Shared pytest fixtures for all tests."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

import pytest

from functions_conformance import (
    Encoding,
    EventCorpus,
    OutputUnavailable,
    SignatureType,
    StartupFailure,
    TeardownFailure,
    TransportError,
    ValidatorConfig,
    default_corpus,
)


def make_config(tmp_path: Path, **overrides: Any) -> ValidatorConfig:
    """Build a ValidatorConfig that writes its logs under *tmp_path*.

    Callers override specific fields as needed.
    """
    defaults: dict[str, Any] = {
        "cmd": "fake-server",
        "start_delay": 0,
        "stdout_file": str(tmp_path / "stdout.txt"),
        "stderr_file": str(tmp_path / "stderr.txt"),
        "output_file": str(tmp_path / "function_output.json"),
    }
    defaults.update(overrides)
    return ValidatorConfig(**defaults)


class FakeFunctionServer:
    """In-memory FunctionServer; ``output`` is what fetch_output returns."""

    def __init__(
        self,
        start_error: Optional[str] = None,
        teardown_error: Optional[str] = None,
        stdout: str = "server says hello",
        stderr: str = "",
    ) -> None:
        self.start_error = start_error
        self.teardown_error = teardown_error
        self.stdout = stdout
        self.stderr = stderr
        self.output: Optional[bytes] = None
        self.start_calls = 0
        self.teardown_calls = 0

    def start(self, stdout_file: str, stderr_file: str, output_file: str) -> Callable[[], None]:
        self.start_calls += 1
        if self.start_error is not None:
            raise StartupFailure(self.start_error)
        Path(stdout_file).write_text(self.stdout, encoding="utf-8")
        Path(stderr_file).write_text(self.stderr, encoding="utf-8")

        def teardown() -> None:
            self.teardown_calls += 1
            if self.teardown_error is not None:
                raise TeardownFailure(self.teardown_error)

        return teardown

    def fetch_output(self) -> bytes:
        if self.output is None:
            raise OutputUnavailable("no output written")
        return self.output


class FakeFunction:
    """Transport that plays a conforming function against a fake server.

    Every request is answered by writing the expected output of the matching
    fixture (in the function's own encoding) to the server's output slot.
    ``mutate`` can rewrite that output to simulate a non-conforming function.
    """

    def __init__(
        self,
        server: FakeFunctionServer,
        signature_type: SignatureType,
        corpus: Optional[EventCorpus] = None,
        mutate: Optional[Callable[[str, bytes], bytes]] = None,
        fail_for: Tuple[str, ...] = (),
    ) -> None:
        self.server = server
        self.signature_type = signature_type
        self.corpus = corpus if corpus is not None else default_corpus()
        self.mutate = mutate
        self.fail_for = fail_for
        self.sent: List[Tuple[Optional[Encoding], str]] = []

    def send_http(self, url: str, data: bytes) -> None:
        self.sent.append((None, "http"))
        self.server.output = data

    def send_event(self, url: str, encoding: Encoding, data: bytes) -> None:
        name = self._fixture_for(encoding, data)
        self.sent.append((encoding, name))
        if name in self.fail_for:
            raise TransportError(f"validation failed with exit code 500: {name} exploded")
        output_encoding = self.signature_type.encoding
        assert output_encoding is not None
        output = self.corpus.output_data(
            name, output_encoding, is_conversion=encoding is not output_encoding
        )
        if output is None:
            return
        if self.mutate is not None:
            output = self.mutate(name, output)
        self.server.output = output

    def _fixture_for(self, encoding: Encoding, data: bytes) -> str:
        for fixture in self.corpus:
            if fixture.inputs.get(encoding) == data:
                return fixture.name
        raise AssertionError("request does not match any fixture input")


@pytest.fixture
def corpus() -> EventCorpus:
    """The bundled event corpus."""
    return default_corpus()


@pytest.fixture
def fake_server() -> FakeFunctionServer:
    return FakeFunctionServer()


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ValidatorConfig]:
    """Factory for configs whose log and output files live in tmp_path."""

    def factory(**overrides: Any) -> ValidatorConfig:
        return make_config(tmp_path, **overrides)

    return factory


@pytest.fixture
def function_factory(
    fake_server: FakeFunctionServer,
) -> Callable[..., FakeFunction]:
    """Factory for fake functions answering through ``fake_server``."""

    def factory(
        signature_type: SignatureType,
        server: Optional[FakeFunctionServer] = None,
        **kwargs: Any,
    ) -> FakeFunction:
        return FakeFunction(server or fake_server, signature_type, **kwargs)

    return factory


@pytest.fixture
def server_factory() -> Callable[..., FakeFunctionServer]:
    """Factory for fake servers with scripted startup or teardown errors."""
    return FakeFunctionServer
