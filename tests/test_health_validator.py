"""
Health Validator Tests
======================
HTTP probing with httpx.MockTransport; no network access needed.
"""
import asyncio

import httpx

from buildfix.core.constants import ComplexityTier, RunOutcome
from buildfix.models.build_artifact import BuildArtifact
from buildfix.models.run_result import RunResult
from buildfix.validation.health_validator import HealthCheckValidator

URL = "http://localhost:8080/health"


def _result(outcome=RunOutcome.SUCCESS):
    return RunResult(
        outcome=outcome,
        final_artifact=BuildArtifact(dockerfile="FROM nginx\n"),
        tier=ComplexityTier.SIMPLE,
        max_iterations=1,
    )


def _scripted_transport(*responses):
    calls = []

    def handler(request):
        calls.append(request)
        item = responses[min(len(calls), len(responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return httpx.Response(item)

    return httpx.MockTransport(handler), calls


class TestHealthCheckValidator:

    def test_passes_on_first_healthy_response(self):
        transport, calls = _scripted_transport(200)
        report = asyncio.run(HealthCheckValidator(URL, transport=transport).validate(_result()))
        assert report.passed
        assert report.status_code == 200
        assert report.attempts == 1
        assert str(calls[0].url) == URL

    def test_retries_until_healthy(self):
        transport, calls = _scripted_transport(
            httpx.ConnectError("connection refused"), 503, 200,
        )
        validator = HealthCheckValidator(URL, attempts=5, backoff=0, transport=transport)
        report = asyncio.run(validator.validate(_result()))
        assert report.passed
        assert report.attempts == 3
        assert len(calls) == 3

    def test_gives_up_after_attempts(self):
        transport, calls = _scripted_transport(500)
        validator = HealthCheckValidator(URL, attempts=3, backoff=0, transport=transport)
        report = asyncio.run(validator.validate(_result()))
        assert not report.passed
        assert report.status_code == 500
        assert report.attempts == 3
        assert "500" in report.details

    def test_custom_expected_status(self):
        transport, _ = _scripted_transport(204)
        validator = HealthCheckValidator(URL, expected_status=(200, 204), transport=transport)
        assert asyncio.run(validator.validate(_result())).passed

    def test_unsuccessful_run_is_not_probed(self):
        transport, calls = _scripted_transport(200)
        validator = HealthCheckValidator(URL, transport=transport)
        report = asyncio.run(validator.validate(_result(RunOutcome.PARTIAL_SUCCESS)))
        assert not report.passed
        assert "partial_success" in report.details
        assert calls == []
