"""
Iteration Record Model
======================
Pydantic model representing one pass of the repair loop.

Represents one loop cycle: Build → Classify → Fix.

Fields:
    index               — loop counter (1-based)
    raw_output          — build output as handed to the classifier (already truncated)
    exit_status         — builder exit status
    timed_out           — True when the runner hit the wall-clock budget
    matched_pattern_id  — id of the pattern that fired, None if unmatched
    category            — ErrorCategory of the matched pattern
    confidence          — Confidence of the matched pattern
    captures            — named groups extracted by the matcher
    fix_applied         — description of the mutation (empty if none)
    artifact_changed    — False when the fix was an idempotent no-op
    artifact_version    — version of the artifact after this iteration
    artifact_digest     — normalised digest of that artifact
    outcome             — success | fixed-retry | unmatched-failure | fix-failed | cancelled
    error_excerpt       — abbreviated log for dashboards and the run log
    duration_seconds    — wall clock of the build attempt

Records are frozen: the loop appends them and never edits them afterwards.
"""
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

from buildfix.core.constants import Confidence, ErrorCategory, IterationOutcome


class IterationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    raw_output: str = ""
    exit_status: int = 0
    timed_out: bool = False
    matched_pattern_id: Optional[str] = None
    category: Optional[ErrorCategory] = None
    confidence: Optional[Confidence] = None
    captures: Dict[str, str] = {}
    fix_applied: str = ""
    artifact_changed: bool = False
    artifact_version: int = 0
    artifact_digest: str = ""
    outcome: IterationOutcome
    error_excerpt: str = ""
    duration_seconds: float = 0.0
