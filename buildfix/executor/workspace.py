"""
Build Workspace
===============
Materialises a BuildArtifact into a throwaway build context.

Layout (inside a fresh temporary directory):
    context/                 — copy of artifact.context_dir (or empty)
    context/<sidecar files>  — artifact.files written on top
    context/Dockerfile.buildfix

The caller's repository is never written to. The temporary directory is
removed when the context manager exits, even if the build raised.
"""
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from buildfix.core.config import BUILD_IMAGE_TAG
from buildfix.core.errors import BuilderUnavailableError
from buildfix.models.build_artifact import BuildArtifact

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile.buildfix"

# Never copied into the build context
_IGNORE_PATTERNS = (
    ".git",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
)


@dataclass(frozen=True)
class BuildSpec:
    """What the builder collaborator receives: paths on disk plus the image tag."""
    context_dir: str
    dockerfile: str
    tag: str = BUILD_IMAGE_TAG


def _safe_join(root: str, relative: str) -> str:
    target = os.path.normpath(os.path.join(root, relative))
    if os.path.isabs(relative) or not target.startswith(os.path.normpath(root) + os.sep):
        raise ValueError(f"sidecar path {relative!r} escapes the build context")
    return target


@contextmanager
def materialize(artifact: BuildArtifact, tag: str = BUILD_IMAGE_TAG) -> Iterator[BuildSpec]:
    """
    Write the artifact to disk for one build attempt.

    Raises
    ------
    BuilderUnavailableError
        If artifact.context_dir is set but does not exist.
    """
    if artifact.context_dir and not os.path.isdir(artifact.context_dir):
        raise BuilderUnavailableError(f"build context {artifact.context_dir} does not exist")

    with tempfile.TemporaryDirectory(prefix="buildfix-") as tmp:
        context = os.path.join(tmp, "context")
        if artifact.context_dir:
            shutil.copytree(
                artifact.context_dir,
                context,
                symlinks=True,
                ignore=shutil.ignore_patterns(*_IGNORE_PATTERNS),
            )
        else:
            os.makedirs(context)

        for relative, content in artifact.files.items():
            target = _safe_join(context, relative)
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "w", encoding="utf-8") as f:
                f.write(content)

        dockerfile = os.path.join(context, DOCKERFILE_NAME)
        with open(dockerfile, "w", encoding="utf-8") as f:
            f.write(artifact.dockerfile)

        logger.debug(
            "Materialised artifact v%d into %s (%d sidecar files)",
            artifact.version, context, len(artifact.files),
        )
        yield BuildSpec(context_dir=context, dockerfile=dockerfile, tag=tag)
