# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


from typing import Literal

from pydantic import BaseModel, Field

ExtractionStrategy = Literal[
    "per_file",
    "archive_unstripped",
    "archive_stripped",
    "archive_unstructured",
    "directory_absent",
    "empty_archive",
    "no_files",
]


class ExtractionDiagnostics(BaseModel):
    """Trail of what the extractor tried. Informational only.

    Attributes:
        strategy: The branch that produced the result.
        container_path: Absolute in-container path that was read.
        listing_tool: ``find`` or ``ls`` when the listing found files.
        listing: Raw names returned by the listing.
        strip_components: Strip depth used by the stripped pass.
        attempts: Every strategy attempted, in order.
        errors: Non-fatal errors met along the way.
        cleanup_errors: Failures while removing temp files or the helper container.
    """

    strategy: ExtractionStrategy | None = None
    container_path: str | None = None
    listing_tool: str | None = None
    listing: list[str] = Field(default_factory=list)
    strip_components: int | None = None
    attempts: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    cleanup_errors: list[str] = Field(default_factory=list)


class ExtractionResult(BaseModel):
    """Files recovered from a workspace volume.

    Attributes:
        tar_contents: Entries found at the source path (listing or archive members).
        extracted_files: Files materialised in the host destination.
        tar_file_size: Size of the intermediate directory archive, 0 when none was used.
        diagnostics: How the result was obtained.
    """

    tar_contents: list[str] = Field(default_factory=list)
    extracted_files: list[str] = Field(default_factory=list)
    tar_file_size: int = 0
    diagnostics: ExtractionDiagnostics = Field(default_factory=ExtractionDiagnostics)

    @property
    def is_empty(self) -> bool:
        return not self.extracted_files
