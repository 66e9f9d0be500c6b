"""Concurrency benchmark for functions under test.

Validates that a server handles overlapping requests by checking that the
wall-clock time for N concurrent requests does not grow linearly with N,
given a function that:

1. Is not CPU-bound (e.g. sleeps).
2. Takes at least ``min_baseline`` seconds, so the difference between
   serial and concurrent handling is measurable.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Tuple

from functions_conformance.events.loader import EventCorpus, default_corpus
from functions_conformance.models import (
    BenchmarkError,
    BenchmarkFloorViolation,
    BenchmarkSample,
    BenchmarkScalingViolation,
    SignatureType,
)
from functions_conformance.transport import Transport

logger = logging.getLogger("functions_conformance.benchmark")

DEFAULT_FAN_OUT = 10
DEFAULT_MIN_BASELINE = 1.0
DEFAULT_MAX_RATIO = 2.0

SendOne = Callable[[], None]

HTTP_PAYLOAD = b'{"data": "hello"}'

# Event signatures reuse an arbitrary corpus event that conforms to both schemas.
CONCURRENCY_FIXTURE = "firebase-auth"


def concurrency_sender(
    transport: Transport,
    url: str,
    signature_type: SignatureType,
    corpus: Optional[EventCorpus] = None,
) -> SendOne:
    """Bind the canned payload for *signature_type* to a transport call."""
    encoding = signature_type.encoding
    if encoding is None:
        return lambda: transport.send_http(url, HTTP_PAYLOAD)

    if corpus is None:
        corpus = default_corpus()
    payload = corpus.input_data(CONCURRENCY_FIXTURE, encoding)
    if payload is None:
        raise ValueError(
            f"Fixture {CONCURRENCY_FIXTURE!r} has no {encoding.label} input"
        )
    return lambda: transport.send_event(url, encoding, payload)


class ConcurrencyBenchmark:
    """Times one request, then a fan-out of concurrent ones, and compares."""

    def __init__(
        self,
        fan_out: int = DEFAULT_FAN_OUT,
        min_baseline: float = DEFAULT_MIN_BASELINE,
        max_ratio: float = DEFAULT_MAX_RATIO,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if fan_out < 1:
            raise ValueError(f"fan_out must be at least 1, got {fan_out}")
        if max_ratio <= 0:
            raise ValueError(f"max_ratio must be positive, got {max_ratio}")
        self.fan_out = fan_out
        self.min_baseline = min_baseline
        self.max_ratio = max_ratio
        self._clock = clock

    def _timed(self, fn: SendOne) -> Tuple[float, Optional[Exception]]:
        start = self._clock()
        try:
            fn()
        except Exception as e:  # noqa: BLE001
            return self._clock() - start, e
        return self._clock() - start, None

    def run(self, send_one: SendOne) -> BenchmarkSample:
        """Run the benchmark against *send_one*, which raises on failure.

        Returns:
            The measured :class:`BenchmarkSample` when the target scaled.

        Raises:
            BenchmarkError: If the baseline request or any worker failed.
            BenchmarkFloorViolation: If the baseline was below ``min_baseline``.
            BenchmarkScalingViolation: If the concurrent run exceeded
                ``max_ratio`` times the baseline.
        """
        baseline, error = self._timed(send_one)
        if error is not None:
            raise BenchmarkError(
                "concurrent validation unable to send single request to "
                f"benchmark response time: {error}"
            ) from error

        if baseline < self.min_baseline:
            raise BenchmarkFloorViolation(
                "concurrent validation requires a function that waits at least "
                f"{self.min_baseline:.3f}s before responding, function responded "
                f"in {baseline:.3f}s"
            )
        logger.info(
            "Single request response time benchmarked, took %.3fs for 1 request",
            baseline,
        )

        logger.info("Starting %d concurrent workers to send requests", self.fan_out)
        start = self._clock()
        with ThreadPoolExecutor(
            max_workers=self.fan_out, thread_name_prefix="conformance-worker"
        ) as executor:
            futures = [executor.submit(self._timed, send_one) for _ in range(self.fan_out)]
            wait(futures)
        concurrent = self._clock() - start

        errors: List[Optional[str]] = []
        for worker_id, future in enumerate(futures):
            _, worker_error = future.result()
            if worker_error is None:
                logger.debug("Worker #%d done", worker_id)
                errors.append(None)
            else:
                errors.append(str(worker_error))

        sample = BenchmarkSample(
            baseline=baseline, concurrent=concurrent, errors=tuple(errors)
        )

        failures = [
            f"error #{worker_id}: {message}"
            for worker_id, message in enumerate(sample.errors)
            if message is not None
        ]
        if failures:
            raise BenchmarkError(
                "at least one concurrent request failed:\n" + "\n".join(failures)
            )

        if concurrent > self.max_ratio * baseline:
            raise BenchmarkScalingViolation(
                f"function took too long to complete {self.fan_out} concurrent "
                f"requests. {self.fan_out} concurrent request time: "
                f"{concurrent:.3f}s, single request time: {baseline:.3f}s"
            )
        logger.info(
            "Concurrent request response time benchmarked, took %.3fs for %d requests",
            concurrent,
            self.fan_out,
        )
        return sample


def validate_concurrency(
    transport: Transport,
    url: str,
    signature_type: SignatureType,
    benchmark: Optional[ConcurrencyBenchmark] = None,
    corpus: Optional[EventCorpus] = None,
) -> BenchmarkSample:
    """Benchmark the target at *url* using the canned payload for its signature."""
    logger.info("%s validation with concurrent requests...", signature_type.value)
    bench = benchmark or ConcurrencyBenchmark()
    sample = bench.run(concurrency_sender(transport, url, signature_type, corpus))
    logger.info("Concurrency validation passed!")
    return sample

