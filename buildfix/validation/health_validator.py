"""
Health Validator
================
Post-build validator collaborator: a passing build alone is not enough,
the resulting service must answer its health endpoint.

Only consulted after a run ends in Success. It never feeds back into the
repair loop; application-level failures are reported, not repaired.
"""
import asyncio
import logging
from typing import Iterable, Optional, Protocol

import httpx
from pydantic import BaseModel

from buildfix.core.config import HEALTH_CHECK_ATTEMPTS, HEALTH_CHECK_TIMEOUT
from buildfix.models.run_result import RunResult

logger = logging.getLogger(__name__)

_MAX_BACKOFF = 30.0


class ValidationReport(BaseModel):
    passed: bool
    details: str = ""
    status_code: Optional[int] = None
    attempts: int = 0


class Validator(Protocol):
    async def validate(self, run_result: RunResult) -> ValidationReport:
        ...


class HealthCheckValidator:
    """
    Polls an HTTP endpoint until it returns an expected status code.

    Parameters
    ----------
    url : str
        Health endpoint of the started container.
    expected_status : iterable of int
        Status codes counted as healthy.
    attempts : int
        Maximum number of probes.
    timeout : float
        Per-probe HTTP timeout in seconds.
    backoff : float
        Initial delay between probes; doubles up to 30s.
    transport : httpx.AsyncBaseTransport | None
        Custom transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        url: str,
        expected_status: Iterable[int] = (200,),
        attempts: int = HEALTH_CHECK_ATTEMPTS,
        timeout: float = HEALTH_CHECK_TIMEOUT,
        backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.expected_status = frozenset(expected_status)
        self.attempts = max(1, attempts)
        self.timeout = timeout
        self.backoff = backoff
        self.transport = transport

    async def validate(self, run_result: RunResult) -> ValidationReport:
        if not run_result.succeeded:
            return ValidationReport(
                passed=False,
                details=f"run ended with {run_result.outcome.value}; nothing to validate",
            )

        delay = self.backoff
        last_detail = ""
        last_status: Optional[int] = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, self.attempts + 1):
                try:
                    response = await client.get(self.url)
                    last_status = response.status_code
                    if response.status_code in self.expected_status:
                        logger.info("Health check passed | url=%s | status=%d | attempt=%d",
                                    self.url, response.status_code, attempt)
                        return ValidationReport(
                            passed=True,
                            details=f"HTTP {response.status_code}",
                            status_code=response.status_code,
                            attempts=attempt,
                        )
                    last_detail = f"unexpected HTTP {response.status_code}"
                except httpx.HTTPError as exc:
                    last_detail = f"{type(exc).__name__}: {exc}"

                logger.info("Health check attempt %d/%d failed: %s", attempt, self.attempts, last_detail)
                if attempt < self.attempts:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, _MAX_BACKOFF)

        logger.warning("Health check failed after %d attempts: %s", self.attempts, last_detail)
        return ValidationReport(
            passed=False,
            details=last_detail,
            status_code=last_status,
            attempts=self.attempts,
        )
