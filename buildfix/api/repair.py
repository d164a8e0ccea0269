"""
POST /repair
Accepts a Dockerfile (plus optional build context and sidecar files),
runs the bounded repair loop and returns the outcome with its full
iteration log. When the run succeeds and a health URL is supplied, the
health validator is consulted before reporting.

Safety:
    - Iteration budget and per-build timeout are capped server-side
    - Builder unreachable → 503, never a half-empty success
    - Sidecar paths outside the build context → 422
"""
import logging
import uuid
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field, field_validator

from buildfix.agents.orchestrator import IterationController
from buildfix.core.config import BUILD_TIMEOUT_SECONDS, DEFAULT_TIER
from buildfix.core.constants import ComplexityTier
from buildfix.core.errors import BuilderUnavailableError, PatternTableError
from buildfix.executor.build_executor import BuildRunner
from buildfix.executor.builders import CommandBuilder, DockerBuilder
from buildfix.models.build_artifact import BuildArtifact, check_sidecar_files
from buildfix.parser.patterns import default_pattern_table
from buildfix.services.results_writer import ResultsWriter
from buildfix.validation.health_validator import HealthCheckValidator, ValidationReport

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Repair"])

# Hard ceilings regardless of request
_MAX_ITERATIONS = 10
_MAX_TIMEOUT = 1800


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------
class RepairRequest(BaseModel):
    dockerfile: str
    context_dir: Optional[str] = None
    files: Dict[str, str] = {}
    tier: ComplexityTier = ComplexityTier(DEFAULT_TIER)
    max_iterations: Optional[int] = Field(default=None, ge=1)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    builder: Literal["command", "docker"] = "command"
    health_url: Optional[str] = None

    @field_validator("dockerfile")
    @classmethod
    def validate_dockerfile(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("dockerfile must not be empty")
        return v

    @field_validator("files")
    @classmethod
    def validate_files(cls, v: Dict[str, str]) -> Dict[str, str]:
        return check_sidecar_files(v)


class IterationSummary(BaseModel):
    index: int
    status: str
    pattern_id: Optional[str] = None
    category: Optional[str] = None
    fix_applied: str = ""
    duration_seconds: float = 0.0


class RepairResponse(BaseModel):
    run_id: str
    outcome: str                # success / partial_success / failed
    summary: str
    total_iterations: int
    max_iterations: int
    iterations: List[IterationSummary]
    final_dockerfile: str
    final_files: Dict[str, str]
    run_log: dict
    validation: Optional[ValidationReport] = None


def _make_builder(kind: str):
    if kind == "docker":
        return DockerBuilder()
    return CommandBuilder()


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------
@router.post("/repair", response_model=RepairResponse)
async def repair(request: RepairRequest):
    run_id = str(uuid.uuid4())[:12]
    max_iter = min(request.max_iterations, _MAX_ITERATIONS) if request.max_iterations else None
    timeout = min(request.timeout_seconds or BUILD_TIMEOUT_SECONDS, _MAX_TIMEOUT)

    try:
        table = default_pattern_table()
    except PatternTableError as exc:
        logger.error("[REPAIR:%s] Pattern table invalid: %s", run_id, exc)
        raise HTTPException(status_code=500, detail=f"Pattern table invalid: {exc}")

    artifact = BuildArtifact(
        dockerfile=request.dockerfile,
        files=request.files,
        context_dir=request.context_dir,
    )
    builder = _make_builder(request.builder)
    controller = IterationController(
        runner=BuildRunner(builder),
        table=table,
        tier=request.tier,
        max_iterations=max_iter,
        timeout=timeout,
    )

    logger.info(
        "[REPAIR:%s] Starting run | tier=%s | budget=%d | builder=%s",
        run_id, request.tier.value, controller.max_iterations, request.builder,
    )
    try:
        result = await run_in_threadpool(controller.run, artifact)
    except BuilderUnavailableError as exc:
        logger.error("[REPAIR:%s] Builder unavailable: %s", run_id, exc)
        raise HTTPException(status_code=503, detail=f"Builder unavailable: {exc}")
    finally:
        if hasattr(builder, "close"):
            builder.close()

    validation = None
    if result.succeeded and request.health_url:
        validation = await HealthCheckValidator(request.health_url).validate(result)

    return RepairResponse(
        run_id=run_id,
        outcome=result.outcome.value,
        summary=result.summary,
        total_iterations=result.total_iterations,
        max_iterations=result.max_iterations,
        iterations=[
            IterationSummary(
                index=r.index,
                status=r.outcome.value,
                pattern_id=r.matched_pattern_id,
                category=r.category.value if r.category else None,
                fix_applied=r.fix_applied,
                duration_seconds=r.duration_seconds,
            )
            for r in result.iterations
        ],
        final_dockerfile=result.final_artifact.dockerfile,
        final_files=dict(result.final_artifact.files),
        run_log=ResultsWriter.build_payload(result),
        validation=validation,
    )
