"""Command-line entry point for running a validation.

Example:
    functions-conformance --type=cloudevent --cmd="go run main.go"
    functions-conformance --type=http --builder-source=./fn \\
        --builder-target=HelloWorld --builder-runtime=nodejs18
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from functions_conformance.benchmark import (
    DEFAULT_FAN_OUT,
    DEFAULT_MAX_RATIO,
    DEFAULT_MIN_BASELINE,
)
from functions_conformance.config import (
    DEFAULT_OUTPUT_FILE,
    DEFAULT_STDERR_FILE,
    DEFAULT_STDOUT_FILE,
    DEFAULT_URL,
    ValidatorConfig,
)
from functions_conformance.models import ConformanceError, SignatureType
from functions_conformance.orchestrator import ValidationOrchestrator
from functions_conformance.server import build_function_server
from functions_conformance.transport import HttpTransport

logger = logging.getLogger("functions_conformance.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="functions-conformance",
        description="Validate that a function framework conforms to the functions contract",
    )
    parser.add_argument(
        "--type",
        dest="function_type",
        choices=[s.value for s in SignatureType],
        default=SignatureType.HTTP.value,
        help="Signature type of the function under test (default: %(default)s)",
    )
    parser.add_argument("--cmd", help="Command that starts the function server locally")
    parser.add_argument(
        "--validate-mapping",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Also validate legacy <-> cloud event mapping (default: on)",
    )
    parser.add_argument(
        "--validate-concurrency",
        action="store_true",
        help="Benchmark concurrent request handling instead of the scenario matrix",
    )
    parser.add_argument(
        "--start-delay",
        type=float,
        default=1.0,
        help="Seconds to wait for the server to start (default: %(default)s)",
    )
    parser.add_argument(
        "--output-file",
        default=DEFAULT_OUTPUT_FILE,
        help="File the function writes its output to (default: %(default)s)",
    )
    parser.add_argument(
        "--url",
        default=DEFAULT_URL,
        help="URL the function server listens on (default: %(default)s)",
    )
    parser.add_argument(
        "--stdout-file",
        default=DEFAULT_STDOUT_FILE,
        help="File capturing the server's stdout (default: %(default)s)",
    )
    parser.add_argument(
        "--stderr-file",
        default=DEFAULT_STDERR_FILE,
        help="File capturing the server's stderr (default: %(default)s)",
    )

    concurrency = parser.add_argument_group("concurrency benchmark")
    concurrency.add_argument(
        "--concurrency-fan-out",
        dest="fan_out",
        type=int,
        default=DEFAULT_FAN_OUT,
        help="Number of concurrent requests (default: %(default)s)",
    )
    concurrency.add_argument(
        "--concurrency-max-ratio",
        dest="max_ratio",
        type=float,
        default=DEFAULT_MAX_RATIO,
        help="Largest accepted concurrent/single request time ratio (default: %(default)s)",
    )
    concurrency.add_argument(
        "--concurrency-min-baseline",
        dest="min_baseline",
        type=float,
        default=DEFAULT_MIN_BASELINE,
        help="Seconds a single request must take at least (default: %(default)s)",
    )

    builder = parser.add_argument_group("container build")
    builder.add_argument("--builder-source", help="Function source directory")
    builder.add_argument("--builder-target", help="Function target (entry point)")
    builder.add_argument("--builder-runtime", help="Runtime, e.g. go119 or nodejs18")
    builder.add_argument("--builder-tag", default="latest", help="Builder image tag")
    builder.add_argument("--builder-image", help="Explicit builder image")
    builder.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra container environment variable (repeatable)",
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: %(default)s)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ValidatorConfig:
    """Build the run configuration from parsed arguments.

    Raises:
        pydantic.ValidationError: If the arguments do not form a valid run.
    """
    return ValidatorConfig(
        function_type=SignatureType(args.function_type),
        url=args.url,
        validate_mapping=args.validate_mapping,
        validate_concurrency=args.validate_concurrency,
        cmd=args.cmd,
        source=args.builder_source,
        target=args.builder_target,
        runtime=args.builder_runtime,
        tag=args.builder_tag,
        builder_image=args.builder_image,
        envs=tuple(args.env),
        start_delay=args.start_delay,
        output_file=args.output_file,
        stdout_file=args.stdout_file,
        stderr_file=args.stderr_file,
        fan_out=args.fan_out,
        max_ratio=args.max_ratio,
        min_baseline=args.min_baseline,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Run one validation.

    Returns:
        Exit code (0 when validation passed, 1 otherwise)
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = config_from_args(args)
    except ValidationError as e:
        print(f"ERROR: invalid arguments:\n{e}", file=sys.stderr)
        return 1

    transport = HttpTransport()
    orchestrator = ValidationOrchestrator(
        config, build_function_server(config), transport=transport
    )
    try:
        orchestrator.run()
    except ConformanceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        transport.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
