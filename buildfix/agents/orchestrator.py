"""
Iteration Controller
====================
The central loop of the repair engine.
Drives the Build → Classify → Fix cycle until a terminal state.

State machine:
    Running(i) --build ok------------------------------> Success
    Running(i) --build failed, unmatched---------------> Failed
    Running(i) --matched, fix not applicable-----------> Failed
    Running(i) --matched, fix applied, i == budget-----> PartialSuccess
    Running(i) --matched, fix applied, i <  budget-----> Running(i+1)
    any        --cancelled-----------------------------> Failed (cancelled=True)

Guarantees:
    - Exactly one fix per failing, classified iteration (never zero-with-retry,
      never several), so every change is attributable to one logged cause.
    - At most `max_iterations` build attempts.
    - Single pass: no backtracking to earlier artifact versions.
    - A RunResult with the full iteration log is always returned for build
      failures; only infrastructure faults (BuilderUnavailableError) propagate.
"""
import logging
import threading
import time
from typing import Callable, List, Mapping, Optional, Union

from buildfix.core.config import BUILD_TIMEOUT_SECONDS, DEFAULT_TIER, TIER_BUDGETS
from buildfix.core.constants import ARROW, ComplexityTier, IterationOutcome, RunOutcome
from buildfix.core.errors import BuildCancelledError
from buildfix.executor.build_executor import BuildResult, BuildRunner, create_log_excerpt
from buildfix.fixer.fix_applicator import apply_fix
from buildfix.models.build_artifact import BuildArtifact
from buildfix.models.fix_result import FixResult
from buildfix.models.iteration_record import IterationRecord
from buildfix.models.run_result import RunResult
from buildfix.parser.classification import ClassificationResult, classify
from buildfix.parser.patterns import ErrorPattern, PatternTable, default_pattern_table
from buildfix.services.results_writer import ResultsWriter

logger = logging.getLogger(__name__)

Applicator = Callable[[ErrorPattern, Mapping[str, str], BuildArtifact], FixResult]


def max_iterations_for(tier: Union[ComplexityTier, str], override: Optional[int] = None) -> int:
    """Iteration budget for a tier; an explicit override wins."""
    if override is not None:
        if override < 1:
            raise ValueError("max_iterations must be at least 1")
        return override
    return TIER_BUDGETS[ComplexityTier(tier).value]


class IterationController:
    """
    Runs the bounded repair loop for one artifact.

    Parameters
    ----------
    runner : BuildRunner
        Executes builds. Owned by this run only.
    table : PatternTable | None
        Shared, read-only pattern table (process default if None).
    tier : ComplexityTier | str
        Complexity tier fixing the budget.
    max_iterations : int | None
        Explicit budget overriding the tier.
    timeout : float
        Per-build wall-clock budget in seconds.
    applicator : callable
        Fix applicator; injectable for instrumentation.
    results_writer : ResultsWriter | None
        When given, the run log is persisted after termination.
    """

    def __init__(
        self,
        runner: BuildRunner,
        table: Optional[PatternTable] = None,
        tier: Union[ComplexityTier, str] = DEFAULT_TIER,
        max_iterations: Optional[int] = None,
        timeout: float = BUILD_TIMEOUT_SECONDS,
        applicator: Applicator = apply_fix,
        results_writer: Optional[ResultsWriter] = None,
    ) -> None:
        self.runner = runner
        self.table = table if table is not None else default_pattern_table()
        self.tier = ComplexityTier(tier)
        self.max_iterations = max_iterations_for(self.tier, max_iterations)
        self.timeout = timeout
        self.applicator = applicator
        self.results_writer = results_writer

    # ------------------------------------------------------------------
    # Record helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _record(
        index: int,
        build: Optional[BuildResult],
        artifact: BuildArtifact,
        outcome: IterationOutcome,
        classification: Optional[ClassificationResult] = None,
        fix: Optional[FixResult] = None,
    ) -> IterationRecord:
        pattern = classification.pattern if classification else None
        output = build.combined_output if build else ""
        return IterationRecord(
            index=index,
            raw_output=output,
            exit_status=build.exit_status if build else -1,
            timed_out=build.timed_out if build else False,
            matched_pattern_id=pattern.id if pattern else None,
            category=pattern.category if pattern else None,
            confidence=pattern.confidence if pattern else None,
            captures=dict(classification.captures) if classification else {},
            fix_applied=(fix.patch_applied if fix.success else fix.error_message) if fix else "",
            artifact_changed=fix.changed if fix else False,
            artifact_version=artifact.version,
            artifact_digest=artifact.fingerprint(),
            outcome=outcome,
            error_excerpt="" if outcome == IterationOutcome.SUCCESS else create_log_excerpt(output),
            duration_seconds=build.duration_seconds if build else 0.0,
        )

    def _finish(
        self,
        outcome: RunOutcome,
        iterations: List[IterationRecord],
        artifact: BuildArtifact,
        summary: str,
        cancelled: bool = False,
    ) -> RunResult:
        result = RunResult(
            outcome=outcome,
            iterations=iterations,
            final_artifact=artifact,
            tier=self.tier,
            max_iterations=self.max_iterations,
            cancelled=cancelled,
            summary=summary,
        )
        logger.info(
            "Repair run complete | outcome=%s | iterations=%d/%d | %s",
            outcome.value, result.total_iterations, self.max_iterations, summary,
        )
        if self.results_writer is not None:
            self.results_writer.write_results(result)
        return result

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    def run(
        self,
        artifact: BuildArtifact,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResult:
        """Execute the bounded repair loop and return the terminal RunResult."""
        iterations: List[IterationRecord] = []
        current = artifact
        run_start = time.monotonic()

        logger.info(
            "Starting repair run | tier=%s | budget=%d | timeout=%ss | patterns=%d",
            self.tier.value, self.max_iterations, self.timeout, len(self.table),
        )

        for i in range(1, self.max_iterations + 1):
            if cancel_event is not None and cancel_event.is_set():
                return self._finish(
                    RunOutcome.FAILED, iterations, current,
                    f"Cancelled before iteration {i}.", cancelled=True,
                )

            logger.info("--- Starting Iteration %d/%d (artifact v%d) ---", i, self.max_iterations, current.version)

            # --- (a) Build ---
            try:
                build = self.runner.run(current, timeout=self.timeout, cancel_event=cancel_event)
            except BuildCancelledError:
                logger.warning("Iteration %d: build cancelled", i)
                iterations.append(self._record(i, None, current, IterationOutcome.CANCELLED))
                return self._finish(
                    RunOutcome.FAILED, iterations, current,
                    f"Cancelled during iteration {i}.", cancelled=True,
                )

            if build.succeeded:
                logger.info("Iteration %d: Build PASSED!", i)
                iterations.append(self._record(i, build, current, IterationOutcome.SUCCESS))
                return self._finish(
                    RunOutcome.SUCCESS, iterations, current,
                    f"Build succeeded in {i} iteration(s).",
                )

            # --- (b) Classify ---
            classification = classify(build.combined_output, self.table)
            if not classification.matched:
                logger.warning("Iteration %d: Build FAILED and no pattern matched.", i)
                iterations.append(self._record(
                    i, build, current, IterationOutcome.UNMATCHED_FAILURE, classification,
                ))
                return self._finish(
                    RunOutcome.FAILED, iterations, current,
                    "Build failed with an error no pattern recognises.",
                )

            # --- (c) Fix (exactly one) ---
            pattern = classification.pattern
            fix = self.applicator(pattern, classification.captures, current)
            if not fix.success:
                logger.warning("Iteration %d: fix '%s' not applicable: %s", i, pattern.id, fix.error_message)
                iterations.append(self._record(
                    i, build, current, IterationOutcome.FIX_FAILED, classification, fix,
                ))
                return self._finish(
                    RunOutcome.FAILED, iterations, current,
                    f"Fix for '{pattern.id}' could not be applied: {fix.error_message}",
                )

            current = fix.artifact
            iterations.append(self._record(
                i, build, current, IterationOutcome.FIXED_RETRY, classification, fix,
            ))
            logger.info(
                "Iteration %d: %s [%s] %s %s",
                i, pattern.id, pattern.category.value, ARROW, fix.patch_applied,
            )

        elapsed = time.monotonic() - run_start
        return self._finish(
            RunOutcome.PARTIAL_SUCCESS, iterations, current,
            f"Reached iteration budget ({self.max_iterations}) without a passing build "
            f"after {elapsed:.1f}s.",
        )
