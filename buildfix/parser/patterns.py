"""
Pattern Table
=============
Ordered, immutable registry mapping build-error signatures to fixes.

Each ErrorPattern couples:
    - a pure matcher (raw build output → captures or None)
    - an ErrorCategory and a Confidence
    - a fix action from buildfix.fixer.fix_actions bound to its params

Order is priority: when several patterns match the same output, the
earliest one wins. The table is loaded once from YAML at process start
and is never mutated afterwards, so it can be shared between runs.

Configuration errors (empty table, invalid regex, unknown action, unknown
parameter, duplicate id) fail fast with PatternTableError.
"""
import functools
import inspect
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from buildfix.core.config import PATTERN_TABLE_PATH
from buildfix.core.constants import Confidence, ErrorCategory
from buildfix.core.errors import PatternTableError
from buildfix.fixer.fix_actions import FIX_ACTIONS, Mutation
from buildfix.models.build_artifact import BuildArtifact

logger = logging.getLogger(__name__)

DEFAULT_TABLE_PATH = os.path.join(os.path.dirname(__file__), "error_patterns.yaml")

_REGEX_FLAGS: Dict[str, int] = {
    "IGNORECASE": re.IGNORECASE,
    "MULTILINE": re.MULTILINE,
    "DOTALL": re.DOTALL,
}


# ---------------------------------------------------------------------------
# Matcher / Pattern
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class RegexMatcher:
    """Pure regex matcher returning the named groups that participated."""
    regex: re.Pattern

    def __call__(self, text: str) -> Optional[Dict[str, str]]:
        match = self.regex.search(text)
        if match is None:
            return None
        return {k: v for k, v in match.groupdict().items() if v is not None}


@dataclass(frozen=True)
class ErrorPattern:
    """One rule of the table."""
    id: str
    matcher: Callable[[str], Optional[Dict[str, str]]]
    category: ErrorCategory
    confidence: Confidence
    fix: Callable[[Mapping[str, str], BuildArtifact], Mutation]
    action: str = ""
    description: str = ""


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------
class PatternTable:
    """Ordered, read-only sequence of ErrorPatterns."""

    def __init__(self, patterns: Iterable[ErrorPattern]) -> None:
        ordered: Tuple[ErrorPattern, ...] = tuple(patterns)
        if not ordered:
            raise PatternTableError("pattern table is empty")
        seen = set()
        for pattern in ordered:
            if pattern.id in seen:
                raise PatternTableError(f"duplicate pattern id '{pattern.id}'")
            seen.add(pattern.id)
        self._patterns = ordered

    def __iter__(self) -> Iterator[ErrorPattern]:
        return iter(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def __getitem__(self, index: int) -> ErrorPattern:
        return self._patterns[index]

    def get(self, pattern_id: str) -> Optional[ErrorPattern]:
        for pattern in self._patterns:
            if pattern.id == pattern_id:
                return pattern
        return None

    @property
    def ids(self) -> List[str]:
        return [p.id for p in self._patterns]


# ---------------------------------------------------------------------------
# YAML configuration
# ---------------------------------------------------------------------------
class PatternSpec(BaseModel):
    id: str
    regex: str
    category: ErrorCategory
    confidence: Confidence
    action: str
    params: Dict[str, Any] = {}
    flags: List[str] = []
    description: str = ""

    @field_validator("action")
    @classmethod
    def validate_action(cls, v: str) -> str:
        if v not in FIX_ACTIONS:
            raise ValueError(f"unknown fix action '{v}'")
        return v

    @field_validator("flags")
    @classmethod
    def validate_flags(cls, v: List[str]) -> List[str]:
        unknown = [f for f in v if f.upper() not in _REGEX_FLAGS]
        if unknown:
            raise ValueError(f"unknown regex flags {unknown}")
        return [f.upper() for f in v]


def build_pattern(spec: PatternSpec) -> ErrorPattern:
    """Compile a PatternSpec into an ErrorPattern, binding its fix params."""
    flags = 0
    for name in spec.flags:
        flags |= _REGEX_FLAGS[name]
    try:
        regex = re.compile(spec.regex, flags)
    except re.error as exc:
        raise PatternTableError(f"pattern '{spec.id}': invalid regex: {exc}") from exc

    action = FIX_ACTIONS[spec.action]
    try:
        inspect.signature(action).bind_partial(None, None, **spec.params)
    except TypeError as exc:
        raise PatternTableError(f"pattern '{spec.id}': bad params for '{spec.action}': {exc}") from exc

    return ErrorPattern(
        id=spec.id,
        matcher=RegexMatcher(regex),
        category=spec.category,
        confidence=spec.confidence,
        fix=functools.partial(action, **spec.params),
        action=spec.action,
        description=spec.description,
    )


def load_pattern_table(path: Optional[str] = None) -> PatternTable:
    """
    Load and validate a pattern table from YAML.

    Parameters
    ----------
    path : str | None
        YAML file with a top-level ``patterns`` list. Defaults to
        PATTERN_TABLE_PATH, then to the bundled error_patterns.yaml.

    Returns
    -------
    PatternTable
        Patterns in file order (file order is priority order).
    """
    path = path or PATTERN_TABLE_PATH or DEFAULT_TABLE_PATH
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise PatternTableError(f"cannot read pattern table {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PatternTableError(f"invalid YAML in pattern table {path}: {exc}") from exc

    entries = (data or {}).get("patterns") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise PatternTableError(f"{path}: expected a top-level 'patterns' list")

    patterns: List[ErrorPattern] = []
    for position, entry in enumerate(entries):
        try:
            spec = PatternSpec.model_validate(entry)
        except ValidationError as exc:
            raise PatternTableError(f"{path}: entry #{position}: {exc}") from exc
        patterns.append(build_pattern(spec))

    table = PatternTable(patterns)
    logger.info("Loaded %d error patterns from %s", len(table), path)
    return table


@functools.lru_cache(maxsize=1)
def default_pattern_table() -> PatternTable:
    """Process-wide table, constructed once and shared read-only."""
    return load_pattern_table()
