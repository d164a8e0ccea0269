"""
Classification
==============
Maps raw build output to at most one ErrorPattern of the table.

Classification Strategy:
    1. Normalise input (bytes decoded with replacement, None → empty)
    2. Walk the table in priority order
    3. FIRST MATCH WINS, no simultaneous extractions
    4. No match → UNMATCHED, which the controller treats as terminal

Contract:
    - DETERMINISTIC: same output + same table → same result, always.
    - TOTAL: never raises. A matcher that blows up is logged and skipped.
    - No LLM allowed in this layer.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from buildfix.parser.patterns import ErrorPattern, PatternTable

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Classification Result
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ClassificationResult:
    """Immutable result: a matched pattern with its captures, or unmatched."""
    pattern: Optional[ErrorPattern] = None
    captures: Dict[str, str] = field(default_factory=dict)

    @property
    def matched(self) -> bool:
        return self.pattern is not None


UNMATCHED = ClassificationResult()


def _as_text(raw_output: Union[str, bytes, bytearray, None]) -> str:
    if raw_output is None:
        return ""
    if isinstance(raw_output, (bytes, bytearray)):
        return bytes(raw_output).decode("utf-8", errors="replace")
    return str(raw_output)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def classify(
    raw_output: Union[str, bytes, bytearray, None],
    table: PatternTable,
) -> ClassificationResult:
    """
    Find the highest-priority pattern matching the build output.

    Parameters
    ----------
    raw_output : str | bytes | None
        Combined stdout + stderr of the failed build.
    table : PatternTable
        Ordered pattern table; earlier entries take priority.

    Returns
    -------
    ClassificationResult
        The first matching pattern and its captures, or UNMATCHED.
    """
    try:
        text = _as_text(raw_output)
    except Exception as exc:
        logger.warning("Could not decode build output: %s", exc)
        return UNMATCHED

    if not text.strip():
        return UNMATCHED

    for pattern in table:
        try:
            captures = pattern.matcher(text)
        except Exception as exc:
            logger.warning("Matcher '%s' failed: %s", pattern.id, exc, exc_info=True)
            continue
        if captures is not None:
            logger.info(
                "Classified as '%s' | category=%s | confidence=%s | captures=%s",
                pattern.id, pattern.category.value, pattern.confidence.value, captures,
            )
            return ClassificationResult(pattern=pattern, captures=dict(captures))

    logger.info("No pattern matched build output (%d chars)", len(text))
    return UNMATCHED
