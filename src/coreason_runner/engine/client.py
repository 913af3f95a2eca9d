# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


import docker
import requests
from docker.errors import DockerException
from loguru import logger

from coreason_runner.exceptions import EngineConnectionError, format_engine_error
from coreason_runner.models.socket import SocketDetectionResult
from coreason_runner.utils.socket_resolver import resolve_socket


def connect(
    preferred_socket: str | None = None, timeout: int = 60
) -> tuple[docker.DockerClient, SocketDetectionResult]:
    """Resolve the control endpoint and open an SDK client on it.

    The SDK negotiates the API version on construction, so an unreachable
    engine fails here rather than on the first call.

    Raises:
        EngineConnectionError: If the engine cannot be reached through the resolved socket.
    """
    detection = resolve_socket(preferred_socket)
    logger.info(f"Connecting to Docker engine at {detection.path} ({detection.source})")

    try:
        client = docker.DockerClient(base_url=detection.base_url, timeout=timeout)
    except (DockerException, requests.exceptions.ConnectionError) as e:
        message = format_engine_error(e, "connection", "Make sure Docker is running and accessible")
        logger.error(message)
        raise EngineConnectionError(message, socket_path=detection.path) from e

    return client, detection
