"""
Build Executor
==============
Thin runner around the builder collaborator: materialise the artifact,
invoke the build under a hard timeout, return a structured BuildResult.

BOUNDARY RULES (CRITICAL):
    - Executor ONLY observes execution.
    - Executor NEVER fixes the artifact.
    - Executor NEVER classifies errors; the Classifier does.
    - Executor is a pure execution microscope.

TIMEOUTS:
    A build that exceeds its budget becomes a failing BuildResult whose
    output says the build timed out. This turns hangs into classifiable
    text instead of blocking the loop.

OUTPUT BOUND:
    Combined output is cut to its last OUTPUT_TAIL_BYTES. Classifiers only
    need the recent / terminal error text.

PROPAGATES:
    BuildCancelledError and BuilderUnavailableError. Those end the run;
    they are not build failures.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from buildfix.core.config import BUILD_IMAGE_TAG, BUILD_TIMEOUT_SECONDS, OUTPUT_TAIL_BYTES
from buildfix.core.constants import TIMEOUT_EXIT_STATUS
from buildfix.core.errors import BuildTimeoutError
from buildfix.executor.builders import Builder
from buildfix.executor.workspace import materialize
from buildfix.models.build_artifact import BuildArtifact

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Build Result (returned to the Iteration Controller)
# ---------------------------------------------------------------------------
@dataclass
class BuildResult:
    """
    Structured output from a single build attempt.

    Fields
    ------
    exit_status : int
        Builder exit code (0 = success). TIMEOUT_EXIT_STATUS on timeout.
    combined_output : str
        stdout + stderr, truncated to the configured tail size.
    duration_seconds : float
        Wall clock duration including materialisation.
    timed_out : bool
        True if the wall-clock budget was exceeded.
    truncated : bool
        True if output was cut to its tail.
    """
    exit_status: int = -1
    combined_output: str = ""
    duration_seconds: float = 0.0
    timed_out: bool = False
    truncated: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0 and not self.timed_out


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------
_EXCERPT_HEAD_LINES = 5
_EXCERPT_TAIL_LINES = 25


def truncate_output(text: str, limit_bytes: int = OUTPUT_TAIL_BYTES) -> Tuple[str, bool]:
    """
    Keep only the last `limit_bytes` of output, starting on a line boundary.

    Returns
    -------
    (text, truncated)
    """
    data = text.encode("utf-8", errors="replace")
    if limit_bytes <= 0 or len(data) <= limit_bytes:
        return text, False

    tail = data[-limit_bytes:].decode("utf-8", errors="ignore")
    newline = tail.find("\n")
    if 0 <= newline < len(tail) - 1:
        tail = tail[newline + 1:]
    omitted = len(data) - len(tail.encode("utf-8"))
    return f"... ({omitted} bytes truncated) ...\n{tail}", True


def create_log_excerpt(full_log: str,
                       head: int = _EXCERPT_HEAD_LINES,
                       tail: int = _EXCERPT_TAIL_LINES) -> str:
    """
    Create an abbreviated log showing the first and last N lines.

    If the log is short enough, it is returned as-is.
    """
    lines = full_log.splitlines()
    total = len(lines)

    if total <= head + tail:
        return full_log

    omitted = total - head - tail
    return "\n".join(
        lines[:head]
        + [f"... ({omitted} lines omitted) ..."]
        + lines[-tail:]
    )


def _timeout_message(timeout: float) -> str:
    return f"ERROR: build timed out after {int(timeout)}s; the build process was terminated\n"


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------
class BuildRunner:
    """
    Parameters
    ----------
    builder : Builder
        External build collaborator (CommandBuilder, DockerBuilder, or a stub).
    output_limit_bytes : int
        Tail of output kept for classification.
    tag : str
        Image tag passed to the builder.
    """

    def __init__(
        self,
        builder: Builder,
        output_limit_bytes: int = OUTPUT_TAIL_BYTES,
        tag: str = BUILD_IMAGE_TAG,
    ) -> None:
        self.builder = builder
        self.output_limit_bytes = output_limit_bytes
        self.tag = tag

    def run(
        self,
        artifact: BuildArtifact,
        timeout: float = BUILD_TIMEOUT_SECONDS,
        cancel_event: Optional[threading.Event] = None,
    ) -> BuildResult:
        """
        Build `artifact` once.

        Returns
        -------
        BuildResult
            Always returned for builds that ran, failed, or timed out.
        """
        result = BuildResult()
        start_time = time.monotonic()

        with materialize(artifact, tag=self.tag) as spec:
            try:
                output = self.builder.execute(spec, timeout, cancel_event)
                result.exit_status = output.exit_code
                combined = output.stdout
                if output.stderr:
                    if combined and not combined.endswith("\n"):
                        combined += "\n"
                    combined += output.stderr
            except BuildTimeoutError as exc:
                result.exit_status = TIMEOUT_EXIT_STATUS
                result.timed_out = True
                combined = exc.partial_output
                if combined and not combined.endswith("\n"):
                    combined += "\n"
                combined += _timeout_message(timeout)

        result.combined_output, result.truncated = truncate_output(combined, self.output_limit_bytes)
        result.duration_seconds = round(time.monotonic() - start_time, 3)

        logger.info(
            "Build complete | artifact=v%d | exit=%d | time=%.2fs | timed_out=%s | truncated=%s",
            artifact.version, result.exit_status, result.duration_seconds,
            result.timed_out, result.truncated,
        )
        return result
