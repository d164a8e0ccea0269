"""
Unit Tests — Pattern Table
==========================
Loading, validation and priority ordering of the YAML error-pattern table.
"""
import re

import pytest

from buildfix.core.constants import Confidence, ErrorCategory
from buildfix.core.errors import PatternTableError
from buildfix.fixer.fix_actions import FIX_ACTIONS, set_env
from buildfix.parser.classification import classify
from buildfix.parser.patterns import (
    ErrorPattern,
    PatternTable,
    RegexMatcher,
    default_pattern_table,
    load_pattern_table,
)


def _write_table(tmp_path, body: str) -> str:
    path = tmp_path / "patterns.yaml"
    path.write_text(body)
    return str(path)


def _pattern(pattern_id: str, regex: str) -> ErrorPattern:
    return ErrorPattern(
        id=pattern_id,
        matcher=RegexMatcher(re.compile(regex)),
        category=ErrorCategory.ENVIRONMENT,
        confidence=Confidence.LOW,
        fix=set_env,
        action="set_env",
    )


# ---------------------------------------------------------------------------
# 1. Bundled table
# ---------------------------------------------------------------------------
class TestDefaultTable:

    def test_loads_bundled_yaml(self):
        table = load_pattern_table()
        assert len(table) == 13
        assert table[0].id == "memory_oom"
        assert table.ids[-1] == "build_timeout"

    def test_every_pattern_uses_a_registered_action(self):
        for pattern in load_pattern_table():
            assert pattern.action in FIX_ACTIONS
            assert callable(pattern.fix)

    def test_default_table_is_shared(self):
        assert default_pattern_table() is default_pattern_table()

    def test_get_by_id(self):
        table = load_pattern_table()
        assert table.get("lockfile_outdated").category == ErrorCategory.DEPENDENCY
        assert table.get("nope") is None

    def test_native_toolchain_outranks_command_not_found(self):
        """'make: not found' matches both; the earlier entry must win."""
        table = load_pattern_table()
        ids = table.ids
        assert ids.index("native_toolchain_missing") < ids.index("command_not_found")

        result = classify("/bin/sh: 1: make: not found", table)
        assert result.pattern.id == "native_toolchain_missing"


# ---------------------------------------------------------------------------
# 2. Configuration errors fail fast
# ---------------------------------------------------------------------------
class TestTableValidation:

    def test_empty_pattern_list(self, tmp_path):
        path = _write_table(tmp_path, "patterns: []\n")
        with pytest.raises(PatternTableError, match="empty"):
            load_pattern_table(path)

    def test_missing_patterns_key(self, tmp_path):
        path = _write_table(tmp_path, "rules: []\n")
        with pytest.raises(PatternTableError, match="patterns"):
            load_pattern_table(path)

    def test_empty_file(self, tmp_path):
        path = _write_table(tmp_path, "")
        with pytest.raises(PatternTableError):
            load_pattern_table(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(PatternTableError, match="cannot read"):
            load_pattern_table(str(tmp_path / "absent.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = _write_table(tmp_path, "patterns: [unclosed\n")
        with pytest.raises(PatternTableError, match="invalid YAML"):
            load_pattern_table(path)

    def test_unknown_action(self, tmp_path):
        path = _write_table(tmp_path, """
patterns:
  - id: mystery
    regex: 'boom'
    category: environment
    confidence: low
    action: summon_wizard
""")
        with pytest.raises(PatternTableError, match="summon_wizard"):
            load_pattern_table(path)

    def test_invalid_regex(self, tmp_path):
        path = _write_table(tmp_path, """
patterns:
  - id: broken
    regex: '(unclosed'
    category: environment
    confidence: low
    action: set_env
""")
        with pytest.raises(PatternTableError, match="invalid regex"):
            load_pattern_table(path)

    def test_unknown_category(self, tmp_path):
        path = _write_table(tmp_path, """
patterns:
  - id: odd
    regex: 'odd'
    category: cosmic_rays
    confidence: low
    action: set_env
""")
        with pytest.raises(PatternTableError):
            load_pattern_table(path)

    def test_unknown_action_parameter(self, tmp_path):
        path = _write_table(tmp_path, """
patterns:
  - id: env
    regex: 'boom'
    category: environment
    confidence: low
    action: set_env
    params:
      colour: blue
""")
        with pytest.raises(PatternTableError, match="bad params"):
            load_pattern_table(path)

    def test_unknown_regex_flag(self, tmp_path):
        path = _write_table(tmp_path, """
patterns:
  - id: env
    regex: 'boom'
    category: environment
    confidence: low
    action: set_env
    flags: [VERBOSEST]
""")
        with pytest.raises(PatternTableError):
            load_pattern_table(path)

    def test_duplicate_ids(self):
        with pytest.raises(PatternTableError, match="duplicate"):
            PatternTable([_pattern("a", "x"), _pattern("a", "y")])

    def test_empty_table_constructor(self):
        with pytest.raises(PatternTableError):
            PatternTable([])

    def test_params_are_bound(self, tmp_path):
        path = _write_table(tmp_path, """
patterns:
  - id: pip_timeout
    regex: 'ReadTimeoutError'
    category: network
    confidence: low
    action: set_env
    params:
      name: PIP_DEFAULT_TIMEOUT
      value: "120"
    flags: [ignorecase]
""")
        table = load_pattern_table(path)
        assert table[0].category == ErrorCategory.NETWORK
        assert classify("readtimeouterror: pypi", table).matched


# ---------------------------------------------------------------------------
# 3. Priority determinism
# ---------------------------------------------------------------------------
class TestPriority:

    def test_earliest_overlapping_pattern_wins(self):
        table = PatternTable([
            _pattern("specific", r"FOO_KEY is not set"),
            _pattern("generic", r"is not set"),
        ])
        for _ in range(5):
            assert classify("error: FOO_KEY is not set", table).pattern.id == "specific"

    def test_reordering_changes_the_winner(self):
        table = PatternTable([
            _pattern("generic", r"is not set"),
            _pattern("specific", r"FOO_KEY is not set"),
        ])
        assert classify("error: FOO_KEY is not set", table).pattern.id == "generic"

    def test_table_is_read_only_sequence(self):
        table = PatternTable([_pattern("a", "x")])
        assert not hasattr(table, "append")
        assert [p.id for p in table] == ["a"]
