"""
Unit Tests — Docker SDK Builder
================================
DockerBuilder against a mocked docker client.
No real Docker daemon is required to run these tests.
"""
import itertools
import threading
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException

from buildfix.core.errors import BuildCancelledError, BuilderUnavailableError, BuildTimeoutError
from buildfix.executor.builders import DockerBuilder
from buildfix.executor.workspace import BuildSpec

SPEC = BuildSpec(
    context_dir="/tmp/buildfix-ctx/context",
    dockerfile="/tmp/buildfix-ctx/context/Dockerfile.buildfix",
    tag="buildfix-repair:test",
)


def _client(chunks=None, side_effect=None):
    client = MagicMock()
    if side_effect is not None:
        client.api.build.side_effect = side_effect
    else:
        client.api.build.return_value = iter(chunks or [])
    return client


class TestDockerBuilder:

    def test_successful_stream(self):
        client = _client([
            {"stream": "Step 1/2 : FROM alpine\n"},
            {"stream": "Successfully built 1234\n"},
        ])
        output = DockerBuilder(client=client).execute(SPEC, timeout=60)

        assert output.exit_code == 0
        assert "Successfully built" in output.stdout
        kwargs = client.api.build.call_args.kwargs
        assert kwargs["path"] == SPEC.context_dir
        assert kwargs["dockerfile"] == "Dockerfile.buildfix"
        assert kwargs["tag"] == SPEC.tag
        assert kwargs["decode"] is True

    def test_error_chunk_fails_the_build(self):
        client = _client([
            {"stream": "Step 3/5 : RUN git clone https://example.com/repo\n"},
            {"error": "/bin/sh: 1: git: not found"},
        ])
        output = DockerBuilder(client=client).execute(SPEC, timeout=60)
        assert output.exit_code == 1
        assert output.stderr == "/bin/sh: 1: git: not found\n"

    def test_api_error_is_a_build_failure(self):
        client = _client(side_effect=APIError("400 Client Error", explanation="dockerfile parse error line 3"))
        output = DockerBuilder(client=client).execute(SPEC, timeout=60)
        assert output.exit_code == 1
        assert "dockerfile parse error" in output.stderr

    def test_daemon_error_is_unavailable(self):
        client = _client(side_effect=DockerException("Error while fetching server API version"))
        with pytest.raises(BuilderUnavailableError):
            DockerBuilder(client=client).execute(SPEC, timeout=60)

    def test_connection_lost_is_unavailable(self):
        client = _client(side_effect=ConnectionError("connection reset"))
        with pytest.raises(BuilderUnavailableError):
            DockerBuilder(client=client).execute(SPEC, timeout=60)

    def test_cancel_event_aborts_stream(self):
        stream = MagicMock()
        stream.__iter__.return_value = iter([{"stream": "Step 1/9\n"}, {"stream": "Step 2/9\n"}])
        client = MagicMock()
        client.api.build.return_value = stream
        event = threading.Event()
        event.set()

        with pytest.raises(BuildCancelledError):
            DockerBuilder(client=client).execute(SPEC, timeout=60, cancel_event=event)
        stream.close.assert_called_once()

    def test_deadline_aborts_stream(self):
        client = _client([{"stream": "Step 1/9\n"}, {"stream": "Step 2/9\n"}])
        with patch("buildfix.executor.builders.time.monotonic", side_effect=itertools.chain([0.0], itertools.repeat(100.0))):
            with pytest.raises(BuildTimeoutError) as exc_info:
                DockerBuilder(client=client).execute(SPEC, timeout=10)
        assert exc_info.value.timeout_seconds == 10

    def test_from_env_failure(self):
        with patch("buildfix.executor.builders.docker.from_env", side_effect=DockerException("no socket")):
            with pytest.raises(BuilderUnavailableError, match="unreachable"):
                DockerBuilder().execute(SPEC, timeout=60)


# ---------------------------------------------------------------------------
# Client lifecycle
# ---------------------------------------------------------------------------
class TestDockerClientLifecycle:

    def test_client_is_reused_across_builds(self):
        client = MagicMock()
        client.api.build.side_effect = lambda **kwargs: iter([{"stream": "ok\n"}])
        with patch("buildfix.executor.builders.docker.from_env", return_value=client) as from_env:
            builder = DockerBuilder()
            builder.execute(SPEC, timeout=60)
            builder.execute(SPEC, timeout=60)

        from_env.assert_called_once_with(timeout=60)
        assert client.api.build.call_count == 2

    def test_close_releases_created_client(self):
        client = _client([{"stream": "ok\n"}])
        with patch("buildfix.executor.builders.docker.from_env", return_value=client):
            builder = DockerBuilder()
            builder.execute(SPEC, timeout=60)
            builder.close()
            builder.close()

        client.close.assert_called_once()

    def test_close_leaves_injected_client_open(self):
        client = _client([{"stream": "ok\n"}])
        builder = DockerBuilder(client=client)
        builder.execute(SPEC, timeout=60)
        builder.close()
        client.close.assert_not_called()

    def test_close_without_build_is_noop(self):
        with patch("buildfix.executor.builders.docker.from_env") as from_env:
            DockerBuilder().close()
        from_env.assert_not_called()
