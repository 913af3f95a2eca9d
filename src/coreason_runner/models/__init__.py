# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


from coreason_runner.models.execution import (
    ContainerExecutionConfig,
    ContainerExecutionResult,
    DemultiplexedOutput,
    ParsedLogFrame,
    PullPolicy,
)
from coreason_runner.models.extraction import ExtractionDiagnostics, ExtractionResult, ExtractionStrategy
from coreason_runner.models.files import (
    InputFile,
    OutputFile,
    OutputRequest,
    RunOutcome,
    SkippedInput,
    StagedInputs,
)
from coreason_runner.models.resources import CPU_PERIOD, ContainerStats, ResourceLimits
from coreason_runner.models.socket import SocketDetectionResult, SocketKind, SocketSource

__all__ = [
    "CPU_PERIOD",
    "ContainerExecutionConfig",
    "ContainerExecutionResult",
    "ContainerStats",
    "DemultiplexedOutput",
    "ExtractionDiagnostics",
    "ExtractionResult",
    "ExtractionStrategy",
    "InputFile",
    "OutputFile",
    "OutputRequest",
    "ParsedLogFrame",
    "PullPolicy",
    "ResourceLimits",
    "RunOutcome",
    "SkippedInput",
    "SocketDetectionResult",
    "SocketKind",
    "SocketSource",
    "StagedInputs",
]
