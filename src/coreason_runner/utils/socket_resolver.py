# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


import os
import platform
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from coreason_runner.models.socket import SocketDetectionResult, SocketKind, SocketSource

DEFAULT_SOCKET_PATH = "/var/run/docker.sock"
WINDOWS_PIPE_PATHS = ["//./pipe/docker_engine", "\\\\.\\pipe\\docker_engine"]


def _current_platform() -> str:
    return sys.platform


def _home() -> Path | None:
    try:
        return Path.home()
    except (RuntimeError, KeyError, OSError):
        return None


def socket_candidates(system: str | None = None) -> list[str]:
    """Ordered socket paths to probe for the given ``sys.platform`` value."""
    system = system or _current_platform()

    if system.startswith("linux"):
        return [
            DEFAULT_SOCKET_PATH,
            "/run/docker.sock",
            "/var/snap/docker/current/run/docker.sock",
        ]

    if system == "darwin":
        candidates = [DEFAULT_SOCKET_PATH]
        home = _home()
        if home is not None:
            candidates += [
                str(home / ".docker/run/docker.sock"),
                str(home / ".colima/default/docker.sock"),
                str(home / ".colima/colima/docker.sock"),
            ]
        candidates.append("/Users/docker/.docker/run/docker.sock")
        return candidates

    if system in ("win32", "cygwin"):
        return list(WINDOWS_PIPE_PATHS)

    return [DEFAULT_SOCKET_PATH]


def _default_path(system: str) -> str:
    if system in ("win32", "cygwin"):
        return WINDOWS_PIPE_PATHS[0]
    return DEFAULT_SOCKET_PATH


def check_socket_path(path: str, system: str | None = None) -> SocketDetectionResult:
    """Probe one path. Named pipes cannot be probed cheaply and are assumed present."""
    system = system or _current_platform()

    if system in ("win32", "cygwin"):
        return SocketDetectionResult(
            path=path, kind=SocketKind.NAMED_PIPE, exists=True, accessible=True, source="direct_check"
        )

    try:
        exists = Path(path).exists()
        accessible = exists and os.access(path, os.R_OK)
    except (OSError, ValueError) as e:
        logger.debug(f"Socket probe failed for {path}: {e}")
        return SocketDetectionResult(
            path=path, kind=SocketKind.UNIX_SOCKET, exists=False, accessible=False, source="error"
        )

    return SocketDetectionResult(
        path=path, kind=SocketKind.UNIX_SOCKET, exists=exists, accessible=accessible, source="direct_check"
    )


def _tagged(result: SocketDetectionResult, source: SocketSource) -> SocketDetectionResult:
    return result.model_copy(update={"source": source})


def resolve_socket(preferred: str | None = None) -> SocketDetectionResult:
    """Find the engine control endpoint for this machine.

    Order: the preferred path if it exists and is readable, then the first
    readable platform candidate, then the platform default path regardless of
    whether it exists. Never raises.

    Args:
        preferred: Optional path supplied by the caller.

    Returns:
        SocketDetectionResult: Best-effort answer tagged with its provenance.
    """
    system = _current_platform()

    if preferred:
        result = check_socket_path(preferred, system)
        if result.exists and result.accessible:
            return _tagged(result, "preferred")
        logger.debug(f"Preferred socket {preferred} is not usable, auto-detecting")

    for candidate in socket_candidates(system):
        result = check_socket_path(candidate, system)
        if result.exists and result.accessible:
            return _tagged(result, "platform_auto_detect")

    fallback = _default_path(system)
    logger.warning(f"No accessible Docker socket found, falling back to {fallback}")
    return _tagged(check_socket_path(fallback, system), "default_fallback")


def list_sockets() -> list[SocketDetectionResult]:
    """Probe every candidate, accessible ones first, then existing ones."""
    system = _current_platform()
    paths = socket_candidates(system)
    default = _default_path(system)
    if default not in paths:
        paths.append(default)

    results = [check_socket_path(path, system) for path in paths]
    return sorted(results, key=lambda r: (not r.accessible, not r.exists))


def socket_environment_info() -> dict[str, Any]:
    home = _home()
    return {
        "platform": _current_platform(),
        "arch": platform.machine(),
        "homedir": str(home) if home else None,
        "detected_sockets": [r.model_dump() for r in list_sockets()],
    }
