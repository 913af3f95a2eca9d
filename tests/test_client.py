from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import DockerException

from coreason_runner.engine.client import connect
from coreason_runner.exceptions import EngineConnectionError, is_connection_error
from coreason_runner.models.socket import SocketDetectionResult, SocketKind


@pytest.fixture
def detection() -> SocketDetectionResult:
    return SocketDetectionResult(
        path="/var/run/docker.sock", kind=SocketKind.UNIX_SOCKET, exists=True, accessible=True, source="preferred"
    )


def test_connect_uses_resolved_socket(detection: SocketDetectionResult) -> None:
    with (
        patch("coreason_runner.engine.client.resolve_socket", return_value=detection) as mock_resolve,
        patch("coreason_runner.engine.client.docker.DockerClient") as mock_docker,
    ):
        client, result = connect("/var/run/docker.sock", timeout=30)

    mock_resolve.assert_called_once_with("/var/run/docker.sock")
    mock_docker.assert_called_once_with(base_url="unix:///var/run/docker.sock", timeout=30)
    assert client is mock_docker.return_value
    assert result is detection


def test_connect_failure_is_a_connection_error(detection: SocketDetectionResult) -> None:
    with (
        patch("coreason_runner.engine.client.resolve_socket", return_value=detection),
        patch(
            "coreason_runner.engine.client.docker.DockerClient",
            side_effect=DockerException("Error while fetching server API version"),
        ),
    ):
        with pytest.raises(EngineConnectionError) as exc_info:
            connect()

    assert exc_info.value.socket_path == "/var/run/docker.sock"
    assert "Make sure Docker is running and accessible" in str(exc_info.value)
    assert is_connection_error(exc_info.value)


def test_connect_with_named_pipe() -> None:
    pipe = SocketDetectionResult(
        path="//./pipe/docker_engine",
        kind=SocketKind.NAMED_PIPE,
        exists=True,
        accessible=True,
        source="default_fallback",
    )
    with (
        patch("coreason_runner.engine.client.resolve_socket", return_value=pipe),
        patch("coreason_runner.engine.client.docker.DockerClient", return_value=MagicMock()) as mock_docker,
    ):
        connect()

    assert mock_docker.call_args.kwargs["base_url"] == "npipe:////./pipe/docker_engine"
