# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

SocketSource = Literal["preferred", "platform_auto_detect", "default_fallback", "direct_check", "error"]


class SocketKind(str, Enum):
    """Transport used to reach the engine."""

    UNIX_SOCKET = "unix"
    NAMED_PIPE = "named_pipe"


class SocketDetectionResult(BaseModel):
    """Outcome of probing one control endpoint candidate.

    Attributes:
        path: Filesystem path of the socket or named pipe.
        kind: Unix-domain socket or Windows named pipe.
        exists: Whether the path was found (assumed for named pipes).
        accessible: Whether the current user can read it.
        source: Provenance of the answer.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    kind: SocketKind
    exists: bool
    accessible: bool
    source: SocketSource

    @property
    def base_url(self) -> str:
        """URL understood by ``docker.DockerClient``."""
        if self.kind == SocketKind.NAMED_PIPE:
            pipe = self.path.replace("\\", "/").lstrip("/")
            return f"npipe:////{pipe}"
        return f"unix://{self.path}"
