"""Builders for fake engine payloads shared by the test modules."""

import io
import tarfile
from typing import Any

from coreason_runner.utils.log_stream import STDERR, STDOUT, encode_frame


def build_tar(files: dict[str, bytes], directories: tuple[str, ...] = ()) -> bytes:
    """Build an in-memory tar archive, the way the engine's archive endpoint returns one."""
    stream = io.BytesIO()
    with tarfile.open(fileobj=stream, mode="w") as tar:
        for directory in directories:
            info = tarfile.TarInfo(name=directory)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        for name, content in files.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
    return stream.getvalue()


def build_logs(stdout: bytes = b"", stderr: bytes = b"") -> bytes:
    buffer = b""
    if stdout:
        buffer += encode_frame(STDOUT, stdout)
    if stderr:
        buffer += encode_frame(STDERR, stderr)
    return buffer


def set_logs(client: Any, payload: bytes) -> None:
    client.api._get.return_value.content = payload


class FakeSocket:
    """Stands in for the hijacked socket returned by ``exec_start(socket=True)``."""

    def __init__(self, payload: bytes):
        self._buffer = io.BytesIO(payload)
        self.closed = False

    def recv(self, size: int) -> bytes:
        return self._buffer.read(size)

    def settimeout(self, timeout: float) -> None:
        pass

    def close(self) -> None:
        self.closed = True
