# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


from pathlib import Path
from pydantic import BaseModel, Field, model_validator

from coreason_runner.models.execution import ContainerExecutionResult
from coreason_runner.models.extraction import ExtractionResult
from coreason_runner.models.socket import SocketDetectionResult


class InputFile(BaseModel):
    """A file to mount into the container, given in memory or as a host path."""

    name: str
    content: bytes | None = None
    path: Path | None = None

    @model_validator(mode="after")
    def _check_source(self) -> "InputFile":
        if (self.content is None) == (self.path is None):
            raise ValueError("InputFile needs exactly one of 'content' or 'path'")
        return self


class SkippedInput(BaseModel):
    name: str
    reason: str


class StagedInputs(BaseModel):
    """Input files written to a temporary host directory.

    Attributes:
        temp_dir: Root of the temporary directory, removed after the run.
        input_dir: Directory bind-mounted read-only into the container.
        file_names: Names of the files that were written.
        file_sizes: Sizes in bytes, in the same order as ``file_names``.
        skipped: Inputs that could not be written.
    """

    temp_dir: Path
    input_dir: Path
    file_names: list[str] = Field(default_factory=list)
    file_sizes: list[int] = Field(default_factory=list)
    skipped: list[SkippedInput] = Field(default_factory=list)

    @property
    def total_bytes(self) -> int:
        return sum(self.file_sizes)


class OutputRequest(BaseModel):
    """Which files to bring back from the workspace after the run.

    Attributes:
        source_path: In-container directory to read. Relative paths resolve
            against the workspace mount. Defaults to the configured output directory.
        pattern: Comma separated glob patterns matched against file names.
    """

    source_path: str | None = None
    pattern: str = "*"

    @property
    def patterns(self) -> list[str]:
        return [p.strip() for p in self.pattern.split(",") if p.strip()] or ["*"]


class OutputFile(BaseModel):
    """A file collected from the workspace."""

    filename: str
    content: bytes
    content_type: str
    size_bytes: int
    url: str | None = None


class RunOutcome(BaseModel):
    """Everything one invocation produced."""

    result: ContainerExecutionResult
    volume_name: str
    socket: SocketDetectionResult
    inputs: StagedInputs | None = None
    extraction: ExtractionResult | None = None
    files: dict[str, OutputFile] = Field(default_factory=dict)
