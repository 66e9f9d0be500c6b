"""Ways of bringing up the function under test.

Two variants share the :class:`FunctionServer` capability set: a local
process started from a command line, and a container built with buildpacks
and run with docker. The variant is chosen once, from the run configuration.
"""
from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
import signal
import subprocess
import tempfile
import time
import uuid
from pathlib import Path
from typing import IO, Callable, Dict, List, Optional, Protocol, Sequence

from functions_conformance.config import ValidatorConfig
from functions_conformance.models import (
    OutputUnavailable,
    SignatureType,
    StartupFailure,
    TeardownFailure,
)

logger = logging.getLogger("functions_conformance.server")

Teardown = Callable[[], None]

IMAGE = "conformance-test-func"
DEFAULT_BUILDER_URL_TEMPLATE = "gcr.io/gae-runtimes/buildpacks/{language}/builder:{tag}"
GCF_TARGET_PLATFORM = "gcf"
CONTAINER_WORKSPACE = "/workspace"

_RUNTIME_RE = re.compile(r"^([a-z]+)\d*$")


class FunctionServer(Protocol):
    """Capability set the orchestrator needs from a function server."""

    def start(self, stdout_file: str, stderr_file: str, output_file: str) -> Teardown:
        """Bring the server up and return its teardown callable.

        Raises:
            StartupFailure: If the server could not be started.
        """
        ...

    def fetch_output(self) -> bytes:
        """Return the most recent output written by the function.

        Raises:
            OutputUnavailable: If the output cannot be read.
        """
        ...


def _once(fn: Teardown) -> Teardown:
    """Wrap a teardown so that calls after the first are no-ops."""
    called = False

    def teardown() -> None:
        nonlocal called
        if called:
            return
        called = True
        fn()

    return teardown


def _close_quietly(handles: Sequence[Optional[IO[bytes]]]) -> None:
    for handle in handles:
        if handle is not None and not handle.closed:
            handle.close()


class LocalFunctionServer:
    """Runs the function server as a local process group."""

    def __init__(self, cmd: str, start_delay: float = 1.0) -> None:
        self.cmd = cmd
        self.start_delay = start_delay
        self.output_file: Optional[str] = None

    def __repr__(self) -> str:
        return f"LocalFunctionServer(cmd={self.cmd!r})"

    def _popen(self, stdout: IO[bytes], stderr: IO[bytes]) -> "subprocess.Popen[bytes]":
        args = shlex.split(self.cmd)
        if not args:
            raise StartupFailure("empty server command")
        # A new process group lets teardown reach children too: `go run`
        # execs a compiled binary that outlives a plain kill of its parent.
        if os.name == "nt":
            return subprocess.Popen(
                args,
                stdout=stdout,
                stderr=stderr,
                creationflags=subprocess.CREATE_NEW_PROCESS_GROUP,  # type: ignore[attr-defined]
            )
        return subprocess.Popen(args, stdout=stdout, stderr=stderr, start_new_session=True)

    def start(self, stdout_file: str, stderr_file: str, output_file: str) -> Teardown:
        self.output_file = output_file
        stdout: Optional[IO[bytes]] = None
        stderr: Optional[IO[bytes]] = None
        try:
            stdout = open(stdout_file, "wb")
            stderr = open(stderr_file, "wb")
            proc = self._popen(stdout, stderr)
        except (OSError, ValueError) as e:
            _close_quietly([stdout, stderr])
            raise StartupFailure(f"unable to start server {self.cmd!r}: {e}") from e
        except StartupFailure:
            _close_quietly([stdout, stderr])
            raise
        logger.info("Framework server started.")

        time.sleep(self.start_delay)

        returncode = proc.poll()
        if returncode is not None and returncode != 0:
            _close_quietly([stdout, stderr])
            raise StartupFailure(
                f"server {self.cmd!r} exited during startup with code {returncode}"
            )

        def shutdown() -> None:
            try:
                _stop_process(proc)
            finally:
                _close_quietly([stdout, stderr])
            logger.info(
                "Framework server shut down. Wrote logs to %s and %s.",
                stdout_file,
                stderr_file,
            )

        return _once(shutdown)

    def fetch_output(self) -> bytes:
        if self.output_file is None:
            raise OutputUnavailable("server has not been started")
        try:
            return Path(self.output_file).read_bytes()
        except OSError as e:
            raise OutputUnavailable(f"reading output file {self.output_file}: {e}") from e


def _stop_process(proc: "subprocess.Popen[bytes]") -> None:
    """Kill *proc* and its process group.

    Raises:
        TeardownFailure: If the process could not be killed.
    """
    if proc.poll() is not None:
        return
    try:
        if os.name == "nt":
            proc.kill()
        else:
            try:
                pgid = os.getpgid(proc.pid)
            except OSError as e:
                # Kill just the parent since the process group is unknown.
                logger.warning("Failed to get pgid: %s", e)
                proc.kill()
            else:
                os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError as e:
        raise TeardownFailure(f"failed to kill process {proc.pid}: {e}") from e
    try:
        proc.wait(timeout=10)
    except subprocess.TimeoutExpired as e:
        raise TeardownFailure(f"process {proc.pid} did not exit after kill") from e


def _run(args: List[str]) -> "subprocess.CompletedProcess[str]":
    logger.debug("Running %s", " ".join(args))
    return subprocess.run(args, capture_output=True, text=True, check=False)


class BuildpacksFunctionServer:
    """Builds the function into an image with buildpacks and runs it with docker."""

    def __init__(
        self,
        source: str,
        target: str,
        runtime: str,
        signature_type: SignatureType,
        tag: str = "latest",
        builder_image: Optional[str] = None,
        envs: Sequence[str] = (),
        start_delay: float = 1.0,
    ) -> None:
        self.source = source
        self.target = target
        self.runtime = runtime
        self.signature_type = signature_type
        self.tag = tag
        self.builder_image = builder_image
        self.envs = tuple(envs)
        self.start_delay = start_delay
        self.container_name = f"{IMAGE}-{uuid.uuid4().hex[:12]}"
        self.output_file: Optional[str] = None
        self._scratch_dir: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"BuildpacksFunctionServer(source={self.source!r}, "
            f"target={self.target!r}, runtime={self.runtime!r})"
        )

    def buildpack_builder_image(self) -> str:
        """Return the builder image for this runtime.

        Raises:
            ValueError: If the runtime does not look like ``<language><version>``.
        """
        if self.builder_image:
            return self.builder_image
        match = _RUNTIME_RE.match(self.runtime)
        if match is None:
            raise ValueError(
                f"Invalid runtime format {self.runtime!r}; expected a language "
                f"followed by a version, e.g. 'go119' or 'nodejs18'"
            )
        return DEFAULT_BUILDER_URL_TEMPLATE.format(language=match.group(1), tag=self.tag)

    def build_env(self) -> Dict[str, str]:
        return {
            "GOOGLE_FUNCTION_TARGET": self.target,
            "GOOGLE_FUNCTION_SIGNATURE_TYPE": self.signature_type.buildpack_signature,
            "GOOGLE_RUNTIME": self.runtime,
            "X_GOOGLE_TARGET_PLATFORM": GCF_TARGET_PLATFORM,
        }

    def docker_run_command(self) -> List[str]:
        args = [
            "docker",
            "run",
            f"--name={self.container_name}",
            "--network=host",
            f"--env=FUNCTION_TARGET={self.target}",
            f"--env=FUNCTION_SIGNATURE_TYPE={self.signature_type.buildpack_signature}",
        ]
        args.extend(f"--env={env}" for env in self.envs if env)
        args.append(IMAGE)
        return args

    def _build(self) -> None:
        try:
            builder = self.buildpack_builder_image()
        except ValueError as e:
            raise StartupFailure(str(e)) from e

        result = _run(["docker", "pull", builder])
        if result.returncode != 0:
            raise StartupFailure(
                f"failed to pull builder image {builder}: {result.stderr.strip()}"
            )

        args = ["pack", "build", IMAGE, "--builder", builder, "--path", self.source]
        for key, value in self.build_env().items():
            args.extend(["--env", f"{key}={value}"])
        result = _run(args)
        if result.returncode != 0:
            raise StartupFailure(
                f"building function image: {result.stderr.strip() or result.stdout.strip()}"
            )

    def start(self, stdout_file: str, stderr_file: str, output_file: str) -> Teardown:
        self.output_file = output_file
        try:
            self._build()
            proc = subprocess.Popen(
                self.docker_run_command(),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise StartupFailure(f"running function container: {e}") from e

        time.sleep(self.start_delay)
        returncode = proc.poll()
        if returncode is not None and returncode != 0:
            raise StartupFailure(
                f"function container {self.container_name} exited with code {returncode}"
            )
        logger.info("Framework container %r started.", self.container_name)

        def shutdown() -> None:
            errors: List[str] = []
            try:
                self._write_logs(stdout_file, stderr_file)
            except TeardownFailure as e:
                errors.append(str(e))
            try:
                _stop_process(proc)
            except TeardownFailure as e:
                errors.append(str(e))
            result = _run(["docker", "kill", self.container_name])
            if result.returncode != 0 and "is not running" not in result.stderr:
                errors.append(
                    f"failed to kill the container {self.container_name!r}: "
                    f"{result.stderr.strip()}"
                )
            if self._scratch_dir is not None:
                shutil.rmtree(self._scratch_dir, ignore_errors=True)
            if errors:
                raise TeardownFailure("; ".join(errors))
            logger.info(
                "Framework server shut down. Wrote logs to %s and %s.",
                stdout_file,
                stderr_file,
            )

        return _once(shutdown)

    def _write_logs(self, stdout_file: str, stderr_file: str) -> None:
        try:
            with open(stdout_file, "wb") as out, open(stderr_file, "wb") as err:
                result = subprocess.run(
                    ["docker", "logs", self.container_name],
                    stdout=out,
                    stderr=err,
                    check=False,
                )
        except OSError as e:
            raise TeardownFailure(f"failed to retrieve container logs: {e}") from e
        if result.returncode != 0:
            raise TeardownFailure(
                f"failed to retrieve container logs: docker logs exited with {result.returncode}"
            )

    def fetch_output(self) -> bytes:
        if self.output_file is None:
            raise OutputUnavailable("server has not been started")
        if self._scratch_dir is None:
            self._scratch_dir = tempfile.mkdtemp(prefix="conformance-output-")
        source = f"{self.container_name}:{CONTAINER_WORKSPACE}/{self.output_file}"
        result = _run(["docker", "cp", source, self._scratch_dir])
        if result.returncode != 0:
            raise OutputUnavailable(
                f"failed to copy output file from the container: {result.stderr.strip()}"
            )
        path = Path(self._scratch_dir) / Path(self.output_file).name
        try:
            return path.read_bytes()
        except OSError as e:
            raise OutputUnavailable(f"reading copied output file {path}: {e}") from e


def build_function_server(config: ValidatorConfig) -> FunctionServer:
    """Choose the server variant for *config*."""
    if config.run_in_container:
        if not (config.source and config.target and config.runtime):
            raise ValueError("container builds require source, target and runtime")
        return BuildpacksFunctionServer(
            source=config.source,
            target=config.target,
            runtime=config.runtime,
            signature_type=config.function_type,
            tag=config.tag,
            builder_image=config.builder_image,
            envs=config.envs,
            start_delay=config.start_delay,
        )
    if not config.cmd:
        raise ValueError("a local server requires cmd")
    return LocalFunctionServer(cmd=config.cmd, start_delay=config.start_delay)
