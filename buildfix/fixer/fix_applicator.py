"""
Fix Applicator
==============
Applies the single corrective mutation bound to a matched ErrorPattern.

Contract:
    - Pure: returns a new artifact version, never mutates its input.
    - Total: never raises. A fix that cannot be structurally applied comes
      back as FixResult(success=False) carrying the FixApplicationError text.
    - Idempotent: re-applying a fix that is already present returns the
      input artifact with changed=False.

The Applicator does NOT:
    - Classify output (that's the classifier's job)
    - Run builds (that's the build runner's job)
    - Decide whether to retry (that's the iteration controller's job)
"""
import logging
from typing import Mapping

from buildfix.core.errors import FixApplicationError
from buildfix.models.build_artifact import BuildArtifact
from buildfix.models.fix_result import FixResult
from buildfix.parser.patterns import ErrorPattern

logger = logging.getLogger(__name__)


def apply_fix(
    pattern: ErrorPattern,
    captures: Mapping[str, str],
    artifact: BuildArtifact,
) -> FixResult:
    """
    Apply `pattern`'s fix to `artifact`.

    Parameters
    ----------
    pattern : ErrorPattern
        The pattern that matched this iteration's build output.
    captures : Mapping[str, str]
        Named groups extracted by the pattern's matcher.
    artifact : BuildArtifact
        Current artifact version.

    Returns
    -------
    FixResult
        success=True with the (possibly unchanged) artifact, or success=False
        with the input artifact and an error message.
    """
    try:
        mutation = pattern.fix(captures, artifact)
    except FixApplicationError as exc:
        logger.warning("Fix '%s' could not be applied: %s", pattern.id, exc)
        return FixResult(
            pattern_id=pattern.id,
            success=False,
            artifact=artifact,
            error_message=str(exc),
        )
    except Exception as exc:
        logger.exception("Fix '%s' raised unexpectedly", pattern.id)
        return FixResult(
            pattern_id=pattern.id,
            success=False,
            artifact=artifact,
            error_message=f"{type(exc).__name__}: {exc}",
        )

    changed = not mutation.artifact.equivalent_to(artifact)
    result = FixResult(
        pattern_id=pattern.id,
        success=True,
        artifact=mutation.artifact if changed else artifact,
        patch_applied=mutation.description,
        changed=changed,
    )
    logger.info(
        "Fix '%s' applied | changed=%s | version=%d | %s",
        pattern.id, changed, result.artifact.version, mutation.description,
    )
    return result
