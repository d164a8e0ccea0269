"""
Constants
Centralised storage for error categories, confidence levels, tiers and outcomes.
"""
from enum import Enum


class ErrorCategory(str, Enum):
    ENVIRONMENT = "environment"
    MEMORY = "memory"
    FILESYSTEM = "filesystem"
    DEPENDENCY = "dependency"
    NATIVE_MODULE = "native_module"
    SYSTEM_PACKAGE = "system_package"
    PERMISSION = "permission"
    NETWORK = "network"
    TIMEOUT = "timeout"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ComplexityTier(str, Enum):
    """L1 / L2 / L3 project complexity; bounds the retry budget."""
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class IterationOutcome(str, Enum):
    SUCCESS = "success"
    FIXED_RETRY = "fixed-retry"
    UNMATCHED_FAILURE = "unmatched-failure"
    FIX_FAILED = "fix-failed"
    CANCELLED = "cancelled"


class RunOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


ARROW = "→"
PLACEHOLDER_VALUE = "placeholder"
TIMEOUT_EXIT_STATUS = 124
