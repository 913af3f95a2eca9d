# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from coreason_runner.exceptions import InvalidConfigurationError
from coreason_runner.models.resources import ContainerStats
from coreason_runner.utils.command import DEFAULT_SHELL, ExecutionMode, build_invocation

PullPolicy = Literal["always", "missing", "never"]


class ContainerExecutionConfig(BaseModel):
    """Everything needed to run one container.

    Built fresh for each invocation and discarded afterwards.

    Attributes:
        image: Image reference, e.g. ``alpine:latest``.
        entrypoint: Entrypoint override, or None to keep the image default.
        command: Command argument vector.
        environment: ``KEY=VALUE`` strings.
        socket_path: Preferred engine socket path.
        working_dir: Working directory inside the container.
        volumes: Bind specs in ``hostOrVolume:containerPath:mode`` form.
        memory: Memory limit in bytes.
        cpu_quota: CPU quota per 100000us period.
        timeout_ms: Deadline for the wait-for-exit step.
        read_only_rootfs: Mount the root filesystem read-only.
        no_new_privileges: Apply the ``no-new-privileges`` security option.
        auto_remove: Let the engine remove the container on exit. Kept False by
            the orchestrator so logs stay readable after exit.
        pull_policy: ``always``, ``missing`` or ``never``.
        shell_wrapped: True when entrypoint/command came from shell wrapping.
    """

    image: str
    entrypoint: list[str] | None = None
    command: list[str] = Field(default_factory=list)
    environment: list[str] = Field(default_factory=list)
    socket_path: str | None = None
    working_dir: str | None = None
    volumes: list[str] = Field(default_factory=list)
    memory: int | None = None
    cpu_quota: int | None = None
    timeout_ms: int | None = None
    read_only_rootfs: bool = False
    no_new_privileges: bool = False
    auto_remove: bool = False
    pull_policy: PullPolicy = "missing"
    shell_wrapped: bool = False

    @model_validator(mode="after")
    def _check_shell_wrapping(self) -> "ContainerExecutionConfig":
        if self.shell_wrapped and (
            self.entrypoint is None or len(self.entrypoint) != 1 or self.command[:1] != ["-c"]
        ):
            raise ValueError("Shell-wrapped commands must use '<shell> -c <command>'")
        return self

    @classmethod
    def from_command(
        cls,
        image: str,
        command: str | None = None,
        entrypoint: str | None = None,
        mode: ExecutionMode = "simple",
        shell: str = DEFAULT_SHELL,
        **fields: Any,
    ) -> "ContainerExecutionConfig":
        """Build a config from raw command and entrypoint strings.

        Raises:
            InvalidConfigurationError: If the entrypoint string is blank.
        """
        if entrypoint is not None and entrypoint != "" and not entrypoint.strip():
            raise InvalidConfigurationError("Entrypoint cannot be empty if specified")

        invocation = build_invocation(command, entrypoint or None, mode=mode, shell=shell)
        return cls(
            image=image,
            entrypoint=invocation.entrypoint,
            command=invocation.command,
            shell_wrapped=invocation.shell_wrapped,
            **fields,
        )


class ParsedLogFrame(BaseModel):
    """One frame of the engine's multiplexed output stream.

    The protocol carries no timestamp; ``timestamp`` is the parse time.
    """

    model_config = ConfigDict(frozen=True)

    stream: Literal[1, 2]
    data: bytes
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_stdout(self) -> bool:
        return self.stream == 1


class DemultiplexedOutput(BaseModel):
    stdout: bytes = b""
    stderr: bytes = b""
    stdout_text: str = ""
    stderr_text: str = ""


class ContainerExecutionResult(BaseModel):
    """Outcome of a container run.

    Attributes:
        stdout: Decoded standard output.
        stderr: Decoded standard error.
        exit_code: Container exit status.
        success: True when ``exit_code == 0``.
        has_output: True when either stream carried bytes.
        stdout_bytes: Raw stdout payload.
        stderr_bytes: Raw stderr payload.
        duration: Wall-clock seconds from start to exit.
        stats: Optional resource usage sample.
        cleanup_errors: Failures while removing the container, recorded but never raised.
    """

    stdout: str
    stderr: str
    exit_code: int
    success: bool
    has_output: bool
    stdout_bytes: bytes = b""
    stderr_bytes: bytes = b""
    duration: float = 0.0
    stats: ContainerStats | None = None
    cleanup_errors: list[str] = Field(default_factory=list)

    @classmethod
    def from_output(
        cls,
        output: DemultiplexedOutput,
        exit_code: int,
        duration: float = 0.0,
        stats: ContainerStats | None = None,
    ) -> "ContainerExecutionResult":
        return cls(
            stdout=output.stdout_text,
            stderr=output.stderr_text,
            exit_code=exit_code,
            success=exit_code == 0,
            has_output=bool(output.stdout) or bool(output.stderr),
            stdout_bytes=output.stdout,
            stderr_bytes=output.stderr,
            duration=duration,
            stats=stats,
        )
