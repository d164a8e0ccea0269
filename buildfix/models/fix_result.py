"""
Fix Result Model
=================
Pydantic model tracking the outcome of one fix application.

Fields:
    pattern_id      — id of the ErrorPattern whose fix was applied
    success         — False when the fix could not be structurally applied
    artifact        — resulting artifact (the unchanged input when success is False)
    patch_applied   — human-readable description of the mutation
    changed         — False when the fix was already present (idempotent no-op)
    error_message   — FixApplicationError text when success is False
"""
from pydantic import BaseModel

from .build_artifact import BuildArtifact


class FixResult(BaseModel):
    pattern_id: str
    success: bool = False
    artifact: BuildArtifact
    patch_applied: str = ""
    changed: bool = False
    error_message: str = ""
