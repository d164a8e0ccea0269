"""
Artifact Hash Utility
=====================
Generate a deterministic digest for a build artifact.

Rules:
    - Normalise line endings to "\\n" and strip trailing whitespace per line.
    - Sidecar files are hashed in sorted path order.
    - SHA-256 truncated to 16 hex chars for compactness.
    - Two artifacts with the same digest are considered equivalent.
"""
import hashlib
from typing import Mapping


def normalize_text(text: str) -> str:
    """Normalise line endings and trailing whitespace; keep one final newline."""
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    body = "\n".join(line.rstrip() for line in lines).strip("\n")
    return body + "\n" if body else ""


def compute_artifact_hash(dockerfile: str, files: Mapping[str, str]) -> str:
    """
    Digest of a Dockerfile plus its sidecar files.

    Parameters
    ----------
    dockerfile : str
        Dockerfile text.
    files : Mapping[str, str]
        Sidecar files keyed by context-relative path.

    Returns
    -------
    str
        16-character hex digest.
    """
    digest = hashlib.sha256()
    digest.update(normalize_text(dockerfile).encode("utf-8"))
    for path in sorted(files):
        digest.update(b"\0")
        digest.update(path.encode("utf-8"))
        digest.update(b"\0")
        digest.update(normalize_text(files[path]).encode("utf-8"))
    return digest.hexdigest()[:16]
