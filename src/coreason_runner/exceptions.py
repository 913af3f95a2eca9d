# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


import re

import docker.errors
import requests

CONNECTION_ERROR_PATTERNS = [
    re.compile(r"connect ECONNREFUSED", re.IGNORECASE),
    re.compile(r"connection refused", re.IGNORECASE),
    re.compile(r"connection aborted", re.IGNORECASE),
    re.compile(r"docker daemon", re.IGNORECASE),
    re.compile(r"docker socket", re.IGNORECASE),
    re.compile(r"error while fetching server api version", re.IGNORECASE),
    re.compile(r"ENOENT"),
    re.compile(r"no such file or directory", re.IGNORECASE),
    re.compile(r"permission denied", re.IGNORECASE),
    re.compile(r"pipe not found|the system cannot find the file specified", re.IGNORECASE),
]


class RunnerError(Exception):
    """Base class for every error raised by coreason-runner."""


class InvalidConfigurationError(RunnerError, ValueError):
    """Raised for malformed image references, empty entrypoints and similar input problems."""


class EngineConnectionError(RunnerError):
    """The container engine control endpoint could not be reached."""

    def __init__(self, message: str, socket_path: str | None = None):
        super().__init__(message)
        self.socket_path = socket_path


class ImageProvisioningError(RunnerError):
    """Pulling or locating an image failed."""

    def __init__(self, message: str, image: str):
        super().__init__(message)
        self.image = image


class ImageNotFoundError(ImageProvisioningError):
    """The image is absent locally and the pull policy forbids pulling it."""


class ContainerExecutionError(RunnerError):
    """Orchestration of the container failed (create, start, wait or logs).

    A non-zero exit code is not an error; it is reported through the result.
    """

    def __init__(self, message: str, image: str | None = None):
        super().__init__(message)
        self.image = image


class ContainerTimeoutError(ContainerExecutionError):
    """The container did not exit before its deadline and was killed."""

    def __init__(self, message: str, image: str | None = None, timeout_ms: int | None = None):
        super().__init__(message, image=image)
        self.timeout_ms = timeout_ms


class ExtractionError(RunnerError):
    """Output files could not be recovered from the workspace volume."""

    def __init__(self, message: str, strategies: list[str] | None = None):
        super().__init__(message)
        self.strategies = strategies or []


def is_connection_error(error: BaseException | str) -> bool:
    """Check whether an error means the engine endpoint is unreachable.

    Args:
        error: The exception (or its message) to classify.

    Returns:
        bool: True for refused/missing/forbidden socket and pipe failures.
    """
    if isinstance(error, EngineConnectionError):
        return True
    # an HTTP response means the engine answered
    if isinstance(error, docker.errors.APIError) and error.response is not None:
        return False
    if isinstance(error, requests.exceptions.ConnectionError):
        return True
    if isinstance(error, (ConnectionRefusedError, FileNotFoundError)) and not isinstance(error, RunnerError):
        return True

    message = error if isinstance(error, str) else str(error)
    return any(pattern.search(message) for pattern in CONNECTION_ERROR_PATTERNS)


def format_engine_error(error: BaseException | str, operation: str, context: str | None = None) -> str:
    """Format an engine failure as ``Docker <operation> failed (<context>): <message>``."""
    message = error if isinstance(error, str) else str(error)
    context_str = f" ({context})" if context else ""
    return f"Docker {operation} failed{context_str}: {message}"
