"""
Run Result Model
================
Terminal record produced once by the Iteration Controller.

Fields:
    outcome         — success | partial_success | failed
    iterations      — ordered IterationRecord log
    final_artifact  — last artifact version (best known on partial_success)
    tier            — complexity tier the run was started with
    max_iterations  — iteration budget in force
    cancelled       — True when the caller cancelled the run
    summary         — one-line human readable explanation

Used by:
    - Results writer to produce build-result.json
    - Validator collaborators after a successful run
    - HTTP surface to report attempted fixes
"""
from typing import List

from pydantic import BaseModel, ConfigDict

from buildfix.core.constants import ComplexityTier, RunOutcome
from .build_artifact import BuildArtifact
from .iteration_record import IterationRecord


class RunResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: RunOutcome
    iterations: List[IterationRecord] = []
    final_artifact: BuildArtifact
    tier: ComplexityTier
    max_iterations: int
    cancelled: bool = False
    summary: str = ""

    @property
    def total_iterations(self) -> int:
        return len(self.iterations)

    @property
    def succeeded(self) -> bool:
        return self.outcome == RunOutcome.SUCCESS
