"""
functions-conformance: Conformance validator for function framework runtimes.

This library starts a function server (a local command or a buildpacks-built
container), sends it HTTP requests and events from a bundled corpus, and
checks that what the function wrote back matches the expected output in
meaning rather than byte-for-byte. It can also benchmark whether the server
handles requests concurrently.

Example:
    >>> from functions_conformance import SignatureType, ValidatorConfig
    >>> config = ValidatorConfig(
    ...     function_type=SignatureType.CLOUD_EVENT, cmd="go run main.go"
    ... )
    >>> config.validate_mapping
    True

Scenario verdicts are values (:class:`ScenarioOutcome`) collected into an
:class:`AggregateReport`; a run that has any failure raises
:class:`ValidationFailure` carrying every failure and the server logs.
"""

__version__ = "1.0.0"

# Core data models
from functions_conformance.models import (
    AggregateReport,
    BenchmarkSample,
    Encoding,
    ScenarioOutcome,
    SignatureType,
    ConformanceError,
    StartupFailure,
    TransportError,
    OutputUnavailable,
    DecodeError,
    BenchmarkError,
    BenchmarkFloorViolation,
    BenchmarkScalingViolation,
    TeardownFailure,
    ValidationFailure,
)

# Configuration
from functions_conformance.config import ValidatorConfig

# Event corpus and equivalence engine
from functions_conformance.events import (
    EquivalenceEngine,
    EventCorpus,
    EventFixture,
    default_corpus,
    validate_event,
)

# Concurrency benchmark
from functions_conformance.benchmark import (
    ConcurrencyBenchmark,
    concurrency_sender,
    validate_concurrency,
)

# External collaborators
from functions_conformance.transport import HttpTransport, Transport
from functions_conformance.server import (
    BuildpacksFunctionServer,
    FunctionServer,
    LocalFunctionServer,
    build_function_server,
)

# Orchestration
from functions_conformance.orchestrator import RunState, ValidationOrchestrator

__all__ = [
    # Version
    "__version__",
    # Models
    "AggregateReport",
    "BenchmarkSample",
    "Encoding",
    "ScenarioOutcome",
    "SignatureType",
    # Exceptions
    "ConformanceError",
    "StartupFailure",
    "TransportError",
    "OutputUnavailable",
    "DecodeError",
    "BenchmarkError",
    "BenchmarkFloorViolation",
    "BenchmarkScalingViolation",
    "TeardownFailure",
    "ValidationFailure",
    # Configuration
    "ValidatorConfig",
    # Events
    "EquivalenceEngine",
    "EventCorpus",
    "EventFixture",
    "default_corpus",
    "validate_event",
    # Benchmark
    "ConcurrencyBenchmark",
    "concurrency_sender",
    "validate_concurrency",
    # Collaborators
    "HttpTransport",
    "Transport",
    "BuildpacksFunctionServer",
    "FunctionServer",
    "LocalFunctionServer",
    "build_function_server",
    # Orchestration
    "RunState",
    "ValidationOrchestrator",
]
