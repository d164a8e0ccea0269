"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    BUILD_TIMEOUT_SECONDS  — Hard wall-clock limit for one build attempt (default: 600)
    OUTPUT_TAIL_BYTES      — Bytes of build output kept for classification (default: 65536)
    TIER_BUDGET_SIMPLE     — Max iterations for SIMPLE projects (default: 1)
    TIER_BUDGET_MEDIUM     — Max iterations for MEDIUM projects (default: 3)
    TIER_BUDGET_COMPLEX    — Max iterations for COMPLEX projects (default: 5)
    DEFAULT_TIER           — Tier used when the caller does not pick one (default: medium)
    BUILD_COMMAND          — Command template for the subprocess builder
    BUILD_IMAGE_TAG        — Image tag applied to repair builds
    PATTERN_TABLE_PATH     — Alternative YAML error-pattern table
    RESULTS_PATH           — Where the run log is written (default: build-result.json)
    HEALTH_CHECK_ATTEMPTS  — Probes made by the health validator (default: 5)
    HEALTH_CHECK_TIMEOUT   — Per-probe HTTP timeout in seconds (default: 5)
    LOG_DIR                — Directory for daily log files (default: logs)

Iteration Budgets:
    Budgets mirror the L1/L2/L3 complexity tiers. The tier is fixed when a
    run starts; an explicit max_iterations passed by the caller wins over
    the tier budget.

Timeout Philosophy:
    BUILD_TIMEOUT_SECONDS bounds the only long suspension point of the loop.
    A timed-out build is reported as a failing build whose output says so,
    never as a hang.
"""
import os
from dotenv import load_dotenv

load_dotenv()

BUILD_TIMEOUT_SECONDS = int(os.getenv("BUILD_TIMEOUT_SECONDS", 600))
OUTPUT_TAIL_BYTES = int(os.getenv("OUTPUT_TAIL_BYTES", 64 * 1024))

TIER_BUDGETS: dict[str, int] = {
    "simple":  int(os.getenv("TIER_BUDGET_SIMPLE", 1)),
    "medium":  int(os.getenv("TIER_BUDGET_MEDIUM", 3)),
    "complex": int(os.getenv("TIER_BUDGET_COMPLEX", 5)),
}
DEFAULT_TIER = os.getenv("DEFAULT_TIER", "medium").lower()

# {dockerfile}, {context} and {tag} are substituted per build
BUILD_COMMAND = os.getenv(
    "BUILD_COMMAND",
    "docker build --progress=plain -f {dockerfile} -t {tag} {context}",
)
BUILD_IMAGE_TAG = os.getenv("BUILD_IMAGE_TAG", "buildfix-repair:latest")

PATTERN_TABLE_PATH = os.getenv("PATTERN_TABLE_PATH") or None
RESULTS_PATH = os.getenv("RESULTS_PATH", "build-result.json")

HEALTH_CHECK_ATTEMPTS = int(os.getenv("HEALTH_CHECK_ATTEMPTS", 5))
HEALTH_CHECK_TIMEOUT = float(os.getenv("HEALTH_CHECK_TIMEOUT", 5))

LOG_DIR = os.getenv("LOG_DIR", "logs")
