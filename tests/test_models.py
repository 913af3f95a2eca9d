# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


import pytest
from pydantic import ValidationError

from coreason_runner.models import (
    ContainerExecutionResult,
    DemultiplexedOutput,
    ExtractionResult,
    OutputRequest,
    ResourceLimits,
)


def test_result_from_output() -> None:
    output = DemultiplexedOutput(stdout=b"hi\n", stderr=b"", stdout_text="hi\n", stderr_text="")

    result = ContainerExecutionResult.from_output(output, 0, duration=1.5)

    assert result.success
    assert result.has_output
    assert result.stdout == "hi\n"
    assert result.stdout_bytes == b"hi\n"
    assert result.duration == 1.5
    assert result.cleanup_errors == []


def test_silent_failure() -> None:
    result = ContainerExecutionResult.from_output(DemultiplexedOutput(), 1)

    assert not result.success
    assert not result.has_output


def test_resource_limits_are_frozen() -> None:
    limits = ResourceLimits(memory=1, cpu_quota=75000, timeout_ms=120000)

    assert limits.cpu_period == 100000
    assert limits.timeout_seconds == 120
    with pytest.raises(ValidationError):
        limits.memory = 2  # type: ignore[misc]


def test_empty_extraction_result() -> None:
    result = ExtractionResult()

    assert result.is_empty
    assert result.tar_file_size == 0
    assert result.diagnostics.strategy is None


def test_output_request_patterns() -> None:
    assert OutputRequest().patterns == ["*"]
    assert OutputRequest(pattern="*.csv, report-*.pdf").patterns == ["*.csv", "report-*.pdf"]
