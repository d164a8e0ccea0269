"""
Builder Collaborators
=====================
Run the actual image build for a materialised BuildSpec.

BOUNDARY RULES (CRITICAL):
    - Builders ONLY execute and report output.
    - Builders NEVER classify output or touch the artifact.
    - Builders MUST stop the external build process on timeout or
      cancellation, not merely stop waiting for it.

Error signalling:
    BuildTimeoutError        — wall-clock budget exceeded (partial output attached)
    BuildCancelledError      — cancel_event was set during the build
    BuilderUnavailableError  — the build tool / daemon cannot be reached at all
A build that runs and fails is NOT an error: it is a BuilderOutput with a
non-zero exit_code.
"""
import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol

import docker
from docker.errors import APIError, DockerException

from buildfix.core.config import BUILD_COMMAND
from buildfix.core.errors import BuildCancelledError, BuilderUnavailableError, BuildTimeoutError
from buildfix.executor.workspace import BuildSpec

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.2


@dataclass
class BuilderOutput:
    exit_code: int
    stdout: str = ""
    stderr: str = ""


class Builder(Protocol):
    def execute(
        self,
        spec: BuildSpec,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> BuilderOutput:
        ...


# ---------------------------------------------------------------------------
# Subprocess builder
# ---------------------------------------------------------------------------
def _kill_process_tree(proc: subprocess.Popen) -> None:
    """Kill the build and everything it spawned."""
    if proc.poll() is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


class CommandBuilder:
    """
    Runs a templated shell command such as ``docker build``.

    Parameters
    ----------
    command_template : str
        Command with ``{dockerfile}``, ``{context}`` and ``{tag}`` placeholders.
    env : dict | None
        Extra environment for the build process.
    """

    def __init__(self, command_template: str = BUILD_COMMAND, env: Optional[dict] = None) -> None:
        self.command_template = command_template
        self.env = env

    def build_argv(self, spec: BuildSpec) -> list:
        command = self.command_template.format(
            dockerfile=shlex.quote(spec.dockerfile),
            context=shlex.quote(spec.context_dir),
            tag=shlex.quote(spec.tag),
        )
        return shlex.split(command)

    def execute(
        self,
        spec: BuildSpec,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> BuilderOutput:
        argv = self.build_argv(spec)
        env = {**os.environ, **self.env} if self.env else None
        logger.info("Running build command | timeout=%ss | %s", timeout, " ".join(argv))

        try:
            proc = subprocess.Popen(
                argv,
                cwd=spec.context_dir,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise BuilderUnavailableError(f"cannot start build command {argv[0]!r}: {exc}") from exc

        deadline = time.monotonic() + timeout
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=_POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    _kill_process_tree(proc)
                    proc.communicate()
                    logger.warning("Build cancelled; process group %d killed", proc.pid)
                    raise BuildCancelledError("build cancelled by caller")
                if time.monotonic() >= deadline:
                    _kill_process_tree(proc)
                    stdout, stderr = proc.communicate()
                    logger.warning("Build exceeded %ss; process group %d killed", timeout, proc.pid)
                    raise BuildTimeoutError(
                        timeout,
                        stdout.decode("utf-8", errors="replace") + stderr.decode("utf-8", errors="replace"),
                    )

        return BuilderOutput(
            exit_code=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )


# ---------------------------------------------------------------------------
# Docker SDK builder
# ---------------------------------------------------------------------------
class DockerBuilder:
    """
    Builds through the Docker Engine API using the docker SDK.

    The build stream is consumed chunk by chunk; closing it on timeout or
    cancellation drops the connection, which makes the daemon abort the build.
    """

    def __init__(self, client: Optional[docker.DockerClient] = None) -> None:
        self._client = client
        self._owns_client = False

    def _get_client(self, timeout: float) -> docker.DockerClient:
        # Created once per builder; the first build's timeout sets the API timeout
        if self._client is not None:
            return self._client
        try:
            self._client = docker.from_env(timeout=max(1, int(timeout)))
        except DockerException as exc:
            raise BuilderUnavailableError(f"Docker daemon unreachable: {exc}") from exc
        self._owns_client = True
        return self._client

    def close(self) -> None:
        """Close the client this builder created; injected clients are left open."""
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None
            self._owns_client = False

    def execute(
        self,
        spec: BuildSpec,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> BuilderOutput:
        client = self._get_client(timeout)
        deadline = time.monotonic() + timeout
        lines: list = []
        errors: list = []

        logger.info("Starting docker build | tag=%s | timeout=%ss", spec.tag, timeout)
        try:
            stream = client.api.build(
                path=spec.context_dir,
                dockerfile=os.path.relpath(spec.dockerfile, spec.context_dir),
                tag=spec.tag,
                rm=True,
                forcerm=True,
                decode=True,
            )
            try:
                for chunk in stream:
                    if cancel_event is not None and cancel_event.is_set():
                        raise BuildCancelledError("build cancelled by caller")
                    if time.monotonic() >= deadline:
                        raise BuildTimeoutError(timeout, "".join(lines))
                    if "stream" in chunk:
                        lines.append(chunk["stream"])
                    if "error" in chunk:
                        errors.append(chunk["error"].rstrip("\n") + "\n")
            finally:
                close = getattr(stream, "close", None)
                if close is not None:
                    close()

        except APIError as exc:
            # Rejected by the daemon (bad Dockerfile, missing context): a build failure
            errors.append(f"{exc.explanation or exc}\n")
        except DockerException as exc:
            raise BuilderUnavailableError(f"Docker daemon error: {exc}") from exc
        except OSError as exc:
            if time.monotonic() >= deadline:
                raise BuildTimeoutError(timeout, "".join(lines)) from exc
            raise BuilderUnavailableError(f"lost connection to Docker daemon: {exc}") from exc

        return BuilderOutput(
            exit_code=1 if errors else 0,
            stdout="".join(lines),
            stderr="".join(errors),
        )
