"""Validation run orchestration.

A run starts the function server, then either benchmarks it for concurrent
request handling or drives it through the scenario matrix for its signature
type, and always tears the server down before returning. Failures from every
scenario are reported together, followed by the server's captured logs.
"""
from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional

from functions_conformance.benchmark import ConcurrencyBenchmark, validate_concurrency
from functions_conformance.config import ValidatorConfig
from functions_conformance.events.loader import EventCorpus, default_corpus
from functions_conformance.events.validators import EquivalenceEngine, diff_paths
from functions_conformance.models import (
    AggregateReport,
    BenchmarkError,
    ConformanceError,
    Encoding,
    OutputUnavailable,
    ScenarioOutcome,
    SignatureType,
    StartupFailure,
    TeardownFailure,
    TransportError,
    ValidationFailure,
)
from functions_conformance.server import FunctionServer, Teardown
from functions_conformance.transport import HttpTransport, Transport

logger = logging.getLogger("functions_conformance.orchestrator")

HTTP_SCENARIO = "HTTP"
HTTP_REQUEST = b'{"res":"PASS"}'


class RunState(str, Enum):
    """Lifecycle of one validation run."""

    IDLE = "idle"
    STARTING = "starting"
    BENCHMARK = "benchmark"
    MATRIX = "matrix"
    TEARDOWN = "teardown"
    COMPLETED = "completed"


def compare_http_output(actual: bytes, want: bytes = HTTP_REQUEST) -> List[str]:
    """Compare an HTTP echo output with the request body, ignoring formatting."""
    try:
        got_doc = json.loads(actual)
    except ValueError:
        return [f"unexpected HTTP output data: got {actual!r}, want {want.decode()}"]
    want_doc = json.loads(want)
    if diff_paths(got_doc, want_doc):
        return [
            f"unexpected HTTP output data: got {json.dumps(got_doc, sort_keys=True)}, "
            f"want {json.dumps(want_doc, sort_keys=True)}"
        ]
    return []


def read_server_logs(stdout_file: str, stderr_file: str) -> str:
    """Render the captured server logs for a failure message."""
    sections = []
    for label, path in (("stdout", stdout_file), ("stderr", stderr_file)):
        try:
            content = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            content = f"<unable to read {path}: {e}>"
        sections.append(f"--- Server {label} ({path}) ---\n{content.rstrip()}")
    return "Server logs:\n" + "\n".join(sections)


class ValidationOrchestrator:
    """Drives one validation run against one function server."""

    def __init__(
        self,
        config: ValidatorConfig,
        server: FunctionServer,
        transport: Optional[Transport] = None,
        corpus: Optional[EventCorpus] = None,
    ) -> None:
        self.config = config
        self.server = server
        self.transport = transport if transport is not None else HttpTransport()
        self.corpus = corpus if corpus is not None else default_corpus()
        self.engine = EquivalenceEngine(self.corpus)
        self.state = RunState.IDLE

    def run(self) -> AggregateReport:
        """Execute the run.

        Returns:
            The aggregate report of a passing run.

        Raises:
            StartupFailure: If the server could not be started.
            ValidationFailure: If any scenario or the benchmark failed, or the
                server could not be torn down. The message carries every
                failure, teardown errors and the captured server logs.
        """
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"run() called in state {self.state.value}")
        cfg = self.config
        logger.info(
            "Validating %s for %s...",
            cfg.cmd or cfg.source,
            cfg.function_type.value,
        )

        self.state = RunState.STARTING
        try:
            teardown = self.server.start(cfg.stdout_file, cfg.stderr_file, cfg.output_file)
        except StartupFailure as e:
            self.state = RunState.COMPLETED
            raise StartupFailure(f"{e} (server logs unavailable)") from e

        report = AggregateReport()
        primary: Optional[str] = None
        try:
            if cfg.validate_concurrency:
                self.state = RunState.BENCHMARK
                self._run_benchmark()
            else:
                self.state = RunState.MATRIX
                report = self.run_matrix()
                logger.info(report.render_log())
                primary = report.render_errors()
        except BenchmarkError as e:
            primary = f"Concurrency validation failure: {e}"
        except ConformanceError as e:
            primary = f"Validation failure: {e}"
        finally:
            teardown_error = self._teardown(teardown)
            self.state = RunState.COMPLETED

        if primary is None and teardown_error is None:
            logger.info("All validation passed!")
            return report

        parts = [p for p in (primary, teardown_error) if p is not None]
        if primary is not None:
            parts.append(read_server_logs(cfg.stdout_file, cfg.stderr_file))
        message = "\n".join(parts)
        logger.error(message)
        raise ValidationFailure(message, report=report)

    def _teardown(self, teardown: Teardown) -> Optional[str]:
        self.state = RunState.TEARDOWN
        try:
            teardown()
        except TeardownFailure as e:
            logger.error("Teardown failed: %s", e)
            return f"Teardown failure: {e}"
        return None

    def _run_benchmark(self) -> None:
        cfg = self.config
        benchmark = ConcurrencyBenchmark(
            fan_out=cfg.fan_out,
            min_baseline=cfg.min_baseline,
            max_ratio=cfg.max_ratio,
        )
        validate_concurrency(
            self.transport, cfg.url, cfg.function_type, benchmark, self.corpus
        )

    def run_matrix(self) -> AggregateReport:
        """Run every scenario for the configured signature type, in order."""
        function_type = self.config.function_type
        report = AggregateReport()

        if function_type is SignatureType.HTTP:
            logger.info("HTTP validation started...")
            report.add(self.validate_http())
            return report

        output = function_type.encoding
        if output is None:
            raise ValueError(f"signature type {function_type.value} has no event encoding")
        logger.info("%s validation started...", output.label.capitalize())
        report.extend(self.validate_events(output, output))
        if self.config.validate_mapping:
            report.extend(self.validate_events(output.other, output))
        return report

    def validate_http(self) -> ScenarioOutcome:
        """Send the HTTP echo request and check the function copied it."""
        try:
            self.transport.send_http(self.config.url, HTTP_REQUEST)
            actual = self.server.fetch_output()
        except (TransportError, OutputUnavailable) as e:
            return ScenarioOutcome.failure(HTTP_SCENARIO, [str(e)])
        errors = compare_http_output(actual)
        if errors:
            return ScenarioOutcome.failure(HTTP_SCENARIO, errors)
        return ScenarioOutcome.ok(HTTP_SCENARIO)

    def validate_events(self, input_encoding: Encoding, output_encoding: Encoding) -> List[ScenarioOutcome]:
        """Send every fixture input in *input_encoding* and judge the output.

        When the encodings differ the scenario exercises the function's
        conversion between them, and converted-output overrides apply.
        """
        is_conversion = input_encoding is not output_encoding
        outcomes: List[ScenarioOutcome] = []
        for name in self.corpus.names_for(input_encoding):
            scenario = name
            if is_conversion:
                scenario = f"{name} ({input_encoding.value} -> {output_encoding.value})"
            outcome = self._validate_event(name, input_encoding, output_encoding, is_conversion)
            if scenario != name:
                outcome = ScenarioOutcome(
                    name=scenario,
                    errors=outcome.errors,
                    skipped_reason=outcome.skipped_reason,
                )
            logger.info("%s: %s", scenario, outcome.status)
            outcomes.append(outcome)
        return outcomes

    def _validate_event(
        self,
        name: str,
        input_encoding: Encoding,
        output_encoding: Encoding,
        is_conversion: bool,
    ) -> ScenarioOutcome:
        if self.corpus.output_data(name, output_encoding, is_conversion) is None:
            return self.engine.judge(name, output_encoding, b"", is_conversion)

        data = self.corpus.input_data(name, input_encoding)
        if data is None:
            return ScenarioOutcome.failure(name, [f"no {input_encoding.label} input data"])
        try:
            self.transport.send_event(self.config.url, input_encoding, data)
        except TransportError as e:
            return ScenarioOutcome.failure(
                name, [f"failed to get response from function: {e}"]
            )
        try:
            actual = self.server.fetch_output()
        except OutputUnavailable as e:
            return ScenarioOutcome.failure(name, [f"reading output from function: {e}"])
        return self.engine.judge(name, output_encoding, actual, is_conversion)
