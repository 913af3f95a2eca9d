# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_runner.models.execution import PullPolicy
from coreason_runner.utils.command import DEFAULT_SHELL, ExecutionMode


class RunnerConfig(BaseSettings):
    """
    Configuration for the container runner.
    """

    socket_path: str | None = None
    pull_policy: PullPolicy = "missing"
    execution_mode: ExecutionMode = "simple"
    simple_mode_shell: str = DEFAULT_SHELL
    engine_timeout: int = 60

    # Workspace volume shared by every run in a session
    workspace_mount_path: str = "/agent/workspace"
    input_mount_path: str = "/agent/input"
    output_directory: str = "output"
    volume_prefix: str = "workspace"
    volume_label: str = "coreason-runner"
    serialize_workspace_access: bool = True

    # Helper container used to read files back out of the volume
    helper_image: str = "alpine:latest"
    helper_startup_delay: float = 0.5
    listing_timeout: float = 2.0

    # Explicit per-run deadline; when unset the planned timeout applies
    timeout_ms: int | None = None
    read_only_rootfs: bool = False
    no_new_privileges: bool = True
    collect_stats: bool = False

    # S3 / Object Storage for collected output files
    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_endpoint_url: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="COREASON_RUNNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
