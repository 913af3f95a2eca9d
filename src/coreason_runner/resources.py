# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


import math
from collections.abc import Iterable

from coreason_runner.models.resources import CPU_PERIOD, ResourceLimits

MIB = 1024 * 1024
GIB = 1024 * MIB

BASE_MEMORY = 256 * MIB
MIN_MEMORY = 512 * MIB
MAX_MEMORY = 4 * GIB

HIGH_CPU_THRESHOLD = 50 * MIB
HIGH_CPU_QUOTA = 150000
LOW_CPU_QUOTA = 75000

BASE_TIMEOUT_MS = 60_000
TIMEOUT_STEP_BYTES = 10 * MIB
TIMEOUT_STEP_MS = 30_000
MIN_TIMEOUT_MS = 120_000
MAX_TIMEOUT_MS = 600_000


def plan_resource_limits(file_sizes: Iterable[int]) -> ResourceLimits:
    """Derive memory, CPU and timeout limits from the sizes of the staged input files.

    Memory is 256MiB plus the larger of twice the total and four times the
    largest file, kept between 512MiB and 4GiB. Inputs above 50MiB get 150% of
    a core, everything else 75%. The timeout is one minute plus 30 seconds per
    started 10MiB, kept between two and ten minutes.

    Args:
        file_sizes: Sizes in bytes; may be empty.

    Returns:
        ResourceLimits: The planned limits.
    """
    sizes = [max(int(size), 0) for size in file_sizes]
    total = sum(sizes)
    largest = max(sizes, default=0)

    memory = min(max(BASE_MEMORY + max(total * 2, largest * 4), MIN_MEMORY), MAX_MEMORY)
    cpu_quota = HIGH_CPU_QUOTA if total > HIGH_CPU_THRESHOLD else LOW_CPU_QUOTA
    timeout_ms = min(
        max(BASE_TIMEOUT_MS + math.ceil(total / TIMEOUT_STEP_BYTES) * TIMEOUT_STEP_MS, MIN_TIMEOUT_MS),
        MAX_TIMEOUT_MS,
    )

    return ResourceLimits(memory=memory, cpu_quota=cpu_quota, cpu_period=CPU_PERIOD, timeout_ms=timeout_ms)
