# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


"""Decoder for the engine's multiplexed stdout/stderr frame format.

Each frame is an 8-byte header followed by a payload::

    byte 0     stream id (1 = stdout, 2 = stderr)
    bytes 1-3  reserved
    bytes 4-7  payload length, big-endian uint32
"""

import re
import struct
from typing import Any

from coreason_runner.models.execution import DemultiplexedOutput, ParsedLogFrame

STDOUT = 1
STDERR = 2
HEADER_SIZE = 8

_HEADER = struct.Struct(">BxxxL")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def strip_control_characters(text: str) -> str:
    """Remove control characters except tab, line feed and carriage return."""
    return _CONTROL_CHARS.sub("", text)


def _decode(data: bytes) -> str:
    return strip_control_characters(data.decode("utf-8", errors="replace"))


def parse_frames(buffer: bytes) -> list[ParsedLogFrame]:
    """Parse frames sequentially from the start of ``buffer``.

    Parsing stops silently at a short header, an unknown stream id or a payload
    that runs past the end of the buffer.
    """
    frames: list[ParsedLogFrame] = []
    offset = 0
    length = len(buffer)

    while offset + HEADER_SIZE <= length:
        stream, size = _HEADER.unpack_from(buffer, offset)
        if stream not in (STDOUT, STDERR):
            break

        start = offset + HEADER_SIZE
        end = start + size
        if end > length:
            break

        data = bytes(buffer[start:end])
        frames.append(ParsedLogFrame(stream=stream, data=data, text=_decode(data)))
        offset = end

    return frames


def demultiplex(buffer: bytes) -> DemultiplexedOutput:
    """Split a multiplexed buffer into stdout and stderr, keeping arrival order per stream."""
    frames = parse_frames(buffer)
    stdout = [f for f in frames if f.stream == STDOUT]
    stderr = [f for f in frames if f.stream == STDERR]
    stdout_bytes = b"".join(f.data for f in stdout)
    stderr_bytes = b"".join(f.data for f in stderr)
    return DemultiplexedOutput(
        stdout=stdout_bytes,
        stderr=stderr_bytes,
        stdout_text=_decode(stdout_bytes),
        stderr_text=_decode(stderr_bytes),
    )


def encode_frame(stream: int, payload: bytes) -> bytes:
    """Build a single frame. Used to synthesise engine output."""
    return _HEADER.pack(stream, len(payload)) + payload


def summarize_frames(frames: list[ParsedLogFrame]) -> dict[str, Any]:
    stdout = [f for f in frames if f.stream == STDOUT]
    stderr = [f for f in frames if f.stream == STDERR]
    return {
        "total_frames": len(frames),
        "stdout_frames": len(stdout),
        "stderr_frames": len(stderr),
        "stdout_size": sum(len(f.data) for f in stdout),
        "stderr_size": sum(len(f.data) for f in stderr),
        "first_frame_at": frames[0].timestamp if frames else None,
        "mixed_streams": bool(stdout) and bool(stderr),
    }


def classify_stderr(stderr_text: str) -> dict[str, Any]:
    """Pick the last non-empty stderr line and guess what kind of failure it describes.

    Returns:
        dict: ``has_error``, and when set ``message``, ``error_type`` and ``error_code``.
    """
    lines = [line for line in stderr_text.splitlines() if line.strip()] if stderr_text else []
    if not lines:
        return {"has_error": False}

    message = lines[-1]
    lowered = message.lower()
    error_type: str | None = None
    error_code: str | None = None

    if "no such image" in lowered:
        error_type = "IMAGE_NOT_FOUND"
    elif "permission denied" in lowered:
        error_type = "PERMISSION_ERROR"
    elif "command not found" in lowered or ("not found" in lowered and "sh:" in lowered):
        error_type = "COMMAND_NOT_FOUND"
    else:
        match = re.search(r"exit code (\d+)", lowered)
        if match:
            error_type = "NON_ZERO_EXIT"
            error_code = match.group(1)

    return {"has_error": True, "message": message, "error_type": error_type, "error_code": error_code}
