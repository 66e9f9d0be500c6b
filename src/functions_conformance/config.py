"""Immutable configuration for a validation run."""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from functions_conformance.benchmark import (
    DEFAULT_FAN_OUT,
    DEFAULT_MAX_RATIO,
    DEFAULT_MIN_BASELINE,
)
from functions_conformance.models import SignatureType

DEFAULT_URL = "http://localhost:8080"
DEFAULT_OUTPUT_FILE = "function_output.json"
DEFAULT_STDOUT_FILE = "serverlog_stdout.txt"
DEFAULT_STDERR_FILE = "serverlog_stderr.txt"


class ValidatorConfig(BaseModel):
    """Everything one validation run needs, passed explicitly to the orchestrator."""

    model_config = ConfigDict(frozen=True)

    function_type: SignatureType = Field(
        default=SignatureType.HTTP,
        description="Signature type of the function under test",
    )
    url: str = Field(
        default=DEFAULT_URL,
        min_length=1,
        description="URL the function server listens on",
    )
    validate_mapping: bool = Field(
        default=True,
        description="Also validate cross-encoding mapping (legacy <-> cloud event)",
    )
    validate_concurrency: bool = Field(
        default=False,
        description="Run the concurrency benchmark instead of the scenario matrix",
    )
    cmd: Optional[str] = Field(
        None,
        description="Command that starts a function server locally",
    )
    source: Optional[str] = Field(
        None,
        description="Function source directory to build into a container",
    )
    target: Optional[str] = Field(
        None,
        description="Function target (entry point) for container builds",
    )
    runtime: Optional[str] = Field(
        None,
        description="Language runtime for container builds (e.g. 'go119', 'nodejs18')",
    )
    tag: str = Field(
        default="latest",
        min_length=1,
        description="Builder image tag for container builds",
    )
    builder_image: Optional[str] = Field(
        None,
        description="Explicit builder image, overriding the one derived from the runtime",
    )
    envs: Tuple[str, ...] = Field(
        default=(),
        description="Extra KEY=VALUE environment variables for the container",
    )
    start_delay: float = Field(
        default=1.0,
        ge=0,
        description="Seconds to wait after starting the server before sending requests",
    )
    output_file: str = Field(
        default=DEFAULT_OUTPUT_FILE,
        min_length=1,
        description="File the function under test writes its output to",
    )
    stdout_file: str = Field(
        default=DEFAULT_STDOUT_FILE,
        min_length=1,
        description="Log file capturing the server's stdout",
    )
    stderr_file: str = Field(
        default=DEFAULT_STDERR_FILE,
        min_length=1,
        description="Log file capturing the server's stderr",
    )
    fan_out: int = Field(
        default=DEFAULT_FAN_OUT,
        ge=1,
        description="Number of concurrent requests in the concurrency benchmark",
    )
    max_ratio: float = Field(
        default=DEFAULT_MAX_RATIO,
        gt=0,
        description="Largest accepted concurrent/single request time ratio",
    )
    min_baseline: float = Field(
        default=DEFAULT_MIN_BASELINE,
        ge=0,
        description="Minimum single request time (seconds) for a meaningful benchmark",
    )

    @model_validator(mode="after")
    def _check_server_selection(self) -> "ValidatorConfig":
        if self.cmd and self.source:
            raise ValueError("cmd and source are mutually exclusive")
        if not self.cmd and not self.source:
            raise ValueError("one of cmd or source is required")
        if self.source and not (self.target and self.runtime):
            raise ValueError("container builds require target and runtime")
        return self

    @property
    def run_in_container(self) -> bool:
        return self.source is not None
