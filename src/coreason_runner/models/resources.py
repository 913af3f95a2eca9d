# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


from pydantic import BaseModel, ConfigDict

CPU_PERIOD = 100000


class ResourceLimits(BaseModel):
    """Limits applied to one container run.

    Attributes:
        memory: Memory limit in bytes.
        cpu_quota: CPU quota in microseconds per ``cpu_period``.
        cpu_period: Scheduler period, always 100000.
        timeout_ms: Wall-clock deadline for the run in milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    memory: int
    cpu_quota: int
    cpu_period: int = CPU_PERIOD
    timeout_ms: int

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class ContainerStats(BaseModel):
    """One-shot resource usage sample of a running container."""

    cpu_percent: float = 0.0
    memory_bytes: int = 0
    rx_bytes: int | None = None
    tx_bytes: int | None = None
