# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


import base64
import fnmatch
import mimetypes
from pathlib import Path
from typing import Protocol

import aiofiles  # type: ignore[import-untyped]
from loguru import logger

from coreason_runner.models.files import OutputFile, OutputRequest
from coreason_runner.staging import sanitize_file_name

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Engine archives written next to the outputs while copying
_TEMP_ARCHIVE_PREFIXES = ("extract-", "coreason-extract-", "coreason-file-")


class ObjectStorage(Protocol):
    """Protocol for object storage backends (e.g., S3)."""

    async def upload_file(self, file_path: Path, object_name: str, namespace: str | None = None) -> str:
        """Uploads a file to object storage and returns an access URL."""
        ...


def is_temporary_archive(file_name: str) -> bool:
    return file_name.endswith(".tar") and file_name.startswith(_TEMP_ARCHIVE_PREFIXES)


def matches_any(file_name: str, patterns: list[str]) -> bool:
    return any(fnmatch.fnmatchcase(file_name, pattern) for pattern in patterns)


def guess_content_type(file_name: str) -> str:
    mime_type, _ = mimetypes.guess_type(file_name)
    return mime_type or DEFAULT_CONTENT_TYPE


class ArtifactCollector:
    """Turns files extracted from the workspace into ``OutputFile`` records."""

    def __init__(self, storage: ObjectStorage | None = None):
        """Initializes the ArtifactCollector.

        Args:
            storage: Optional ObjectStorage backend for uploading non-image files.
        """
        self.storage = storage

    async def collect(
        self, output_dir: Path, request: OutputRequest | None = None, namespace: str | None = None
    ) -> dict[str, OutputFile]:
        """Read the matching files directly under ``output_dir``.

        Args:
            output_dir: Host directory populated by the extractor.
            request: Glob filter; every file matches when omitted.
            namespace: Key segment for uploads, usually the volume name.

        Returns:
            dict[str, OutputFile]: Files keyed by their sanitised name.
        """
        request = request or OutputRequest()
        if not output_dir.is_dir():
            logger.debug(f"No output directory at {output_dir}")
            return {}

        patterns = request.patterns
        collected: dict[str, OutputFile] = {}
        for path in sorted(output_dir.iterdir()):
            name = path.name
            if not path.is_file() or is_temporary_archive(name):
                continue
            if not matches_any(name, patterns):
                logger.debug(f"Skipping {name}: no match for {patterns}")
                continue

            try:
                collected[sanitize_file_name(name)] = await self.process_file(path, name, namespace)
            except OSError as e:
                logger.warning(f"Failed to read output file {name}: {e}")

        logger.info(f"Collected {len(collected)} output files from {output_dir}")
        return collected

    async def process_file(self, file_path: Path, original_filename: str, namespace: str | None = None) -> OutputFile:
        """Load one file and attach a URL.

        Images get a base64 data URI. Other types are uploaded when a storage
        backend is configured; an upload failure leaves ``url`` empty.

        Raises:
            FileNotFoundError: If the local file path does not exist.
        """
        if not file_path.exists():
            raise FileNotFoundError(f"Output file not found: {file_path}")

        async with aiofiles.open(file_path, "rb") as f:
            content = await f.read()

        content_type = guess_content_type(original_filename)
        output = OutputFile(
            filename=original_filename,
            content=content,
            content_type=content_type,
            size_bytes=len(content),
        )

        if content_type.startswith("image/"):
            encoded = base64.b64encode(content).decode("utf-8")
            output.url = f"data:{content_type};base64,{encoded}"
        elif self.storage:
            try:
                output.url = await self.storage.upload_file(
                    file_path, sanitize_file_name(original_filename), namespace
                )
            except Exception as e:
                logger.warning(f"Upload of {original_filename} failed, returning it inline only: {e}")

        return output
