"""
Build Artifact Model
====================
Immutable value holding the build specification under repair.

Fields:
    dockerfile   — Dockerfile text
    files        — sidecar files, context-relative path → content
    context_dir  — build context on the host (None = Dockerfile-only build)
    version      — incremented by every copy-on-write update

Every update returns a new artifact; earlier versions stay intact so a
best-effort artifact is always available after a failed run.
Sidecar paths must stay inside the build context.
"""
import posixpath
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from buildfix.utils.artifact_hash import compute_artifact_hash


def check_sidecar_path(path: str) -> str:
    """Reject sidecar paths that are empty, absolute or climb out of the context."""
    normalised = posixpath.normpath(path.replace("\\", "/")) if path else ""
    if (
        not path.strip()
        or normalised.startswith("/")
        or normalised in (".", "..")
        or normalised.startswith("../")
    ):
        raise ValueError(f"sidecar path {path!r} escapes the build context")
    return path


def check_sidecar_files(files: Dict[str, str]) -> Dict[str, str]:
    for path in files:
        check_sidecar_path(path)
    return files


class BuildArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    dockerfile: str
    files: Dict[str, str] = {}
    context_dir: Optional[str] = None
    version: int = 0

    @field_validator("files")
    @classmethod
    def _sidecars_inside_context(cls, v: Dict[str, str]) -> Dict[str, str]:
        return check_sidecar_files(v)

    def with_dockerfile(self, dockerfile: str) -> "BuildArtifact":
        return self.model_copy(update={"dockerfile": dockerfile, "version": self.version + 1})

    def with_file(self, path: str, content: str) -> "BuildArtifact":
        check_sidecar_path(path)
        files = dict(self.files)
        files[path] = content
        return self.model_copy(update={"files": files, "version": self.version + 1})

    def fingerprint(self) -> str:
        """Digest of the normalised content; equal digests mean equivalent artifacts."""
        return compute_artifact_hash(self.dockerfile, self.files)

    def equivalent_to(self, other: "BuildArtifact") -> bool:
        return self.fingerprint() == other.fingerprint()
