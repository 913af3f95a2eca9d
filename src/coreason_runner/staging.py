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
import shutil
import tempfile
from collections.abc import Iterable
from pathlib import Path, PurePath

import aiofiles  # type: ignore[import-untyped]
import anyio
from loguru import logger

from coreason_runner.models.files import InputFile, SkippedInput, StagedInputs

INPUT_TEMP_PREFIX = "coreason-runner-input-"
OUTPUT_TEMP_PREFIX = "coreason-runner-output-"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_file_name(file_name: str) -> str:
    """Replace every character outside ``[a-zA-Z0-9._-]`` with an underscore."""
    return _UNSAFE_CHARS.sub("_", file_name)


def _safe_basename(name: str) -> str | None:
    # Windows separators too, an input name must never escape the input directory
    base = PurePath(name.replace("\\", "/")).name
    if base in ("", ".", ".."):
        return None
    return base


def cleanup_temp_directory(path: Path | str | None) -> None:
    """Remove a temporary directory tree. Failures are logged, never raised."""
    if path is None:
        return
    try:
        shutil.rmtree(path)
        logger.debug(f"Removed temporary directory {path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to clean up temporary directory {path}: {e}")


class InputStager:
    """Writes input files into a fresh temporary directory for a read-only bind mount."""

    def __init__(self, prefix: str = INPUT_TEMP_PREFIX, temp_root: Path | None = None):
        self.prefix = prefix
        self.temp_root = temp_root

    async def stage(self, inputs: Iterable[InputFile]) -> StagedInputs:
        """Write ``inputs`` under ``<tempdir>/input``.

        A file that cannot be read or written is logged and recorded in
        ``skipped``; the remaining files are still staged.

        Args:
            inputs: Files given in memory or as host paths.

        Returns:
            StagedInputs: The staging directory with names and sizes of written files.
        """
        temp_dir = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.temp_root))
        input_dir = temp_dir / "input"
        try:
            input_dir.mkdir()
        except OSError:
            cleanup_temp_directory(temp_dir)
            raise

        staged = StagedInputs(temp_dir=temp_dir, input_dir=input_dir)
        for item in inputs:
            name = _safe_basename(item.name)
            if name is None:
                logger.warning(f"Skipping input with unusable name {item.name!r}")
                staged.skipped.append(SkippedInput(name=item.name, reason="invalid file name"))
                continue

            try:
                size = await self._write(item, input_dir / name)
            except OSError as e:
                logger.warning(f"Failed to stage input {item.name}: {e}")
                staged.skipped.append(SkippedInput(name=item.name, reason=str(e)))
                continue

            staged.file_names.append(name)
            staged.file_sizes.append(size)

        logger.info(
            f"Staged {len(staged.file_names)} input files ({staged.total_bytes} bytes) in {input_dir}, "
            f"skipped {len(staged.skipped)}"
        )
        return staged

    @staticmethod
    async def _write(item: InputFile, destination: Path) -> int:
        if item.content is not None:
            content = item.content
        elif item.path is not None:
            async with aiofiles.open(item.path, "rb") as f:
                content = await f.read()
        else:
            raise OSError(f"No content for input {item.name}")

        async with aiofiles.open(destination, "wb") as f:
            await f.write(content)
        return len(content)


async def make_temp_directory(prefix: str = OUTPUT_TEMP_PREFIX) -> Path:
    return Path(await anyio.to_thread.run_sync(lambda: tempfile.mkdtemp(prefix=prefix)))
