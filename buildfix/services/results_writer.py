"""
Results Writer
==============
Serializes a RunResult into the build-result.json run log.

Schema:
    {
      "outcome": "success" | "partial_success" | "failed",
      "iterations": [
        {"index", "status", "errorCategory", "errorExcerpt",
         "fixApplied", "durationSeconds"}
      ],
      "totalIterations": int,
      "maxIterationsAllowed": int,
      "finalArtifactVersion": int
    }
"""
import json
import logging
import os
from typing import Any, Dict

from buildfix.core.config import RESULTS_PATH
from buildfix.models.run_result import RunResult

logger = logging.getLogger(__name__)


class ResultsWriter:
    """
    Service responsible for persisting the iteration log of a repair run
    as structured JSON for existing tooling.
    """

    def __init__(self, output_path: str = RESULTS_PATH) -> None:
        self.output_path = output_path

    @staticmethod
    def build_payload(result: RunResult) -> Dict[str, Any]:
        return {
            "outcome": result.outcome.value,
            "iterations": [
                {
                    "index": record.index,
                    "status": record.outcome.value,
                    "errorCategory": record.category.value if record.category else None,
                    "errorExcerpt": record.error_excerpt,
                    "fixApplied": record.fix_applied or None,
                    "durationSeconds": record.duration_seconds,
                }
                for record in result.iterations
            ],
            "totalIterations": result.total_iterations,
            "maxIterationsAllowed": result.max_iterations,
            "finalArtifactVersion": result.final_artifact.version,
        }

    def write_results(self, result: RunResult) -> bool:
        """Write the run log. Returns False (and logs) if the file cannot be written."""
        try:
            data = self.build_payload(result)
            abs_output = os.path.abspath(self.output_path)
            logger.info("Writing run log to %s", abs_output)

            parent = os.path.dirname(abs_output)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(abs_output, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            return True

        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to write run log: %s", e, exc_info=True)
            return False
