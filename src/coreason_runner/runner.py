# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


import asyncio
import contextlib
from collections.abc import Iterable
from typing import Any

import anyio
import docker
from loguru import logger

from coreason_runner.artifacts import ArtifactCollector, ObjectStorage
from coreason_runner.config import RunnerConfig
from coreason_runner.engine.client import connect
from coreason_runner.engine.images import PullProgressCallback
from coreason_runner.engine.orchestrator import ENGINE_ERRORS, ContainerOrchestrator, wrap_engine_error
from coreason_runner.models.execution import ContainerExecutionConfig
from coreason_runner.models.files import InputFile, OutputRequest, RunOutcome, StagedInputs
from coreason_runner.models.socket import SocketDetectionResult
from coreason_runner.resources import plan_resource_limits
from coreason_runner.staging import InputStager, cleanup_temp_directory, make_temp_directory
from coreason_runner.storage import S3Storage
from coreason_runner.utils.validation import validate_config
from coreason_runner.volumes.extractor import ArtifactExtractor
from coreason_runner.volumes.workspace import SessionContext, WorkspaceVolumeManager, remove_volume


class ContainerRunnerAsync:
    """Async-native container runner (The Core).

    Runs one container per call against a workspace volume that persists for
    the session, with optional input staging and output recovery.
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        storage: ObjectStorage | None = None,
    ):
        """Initializes the ContainerRunnerAsync service.

        Args:
            config: Runner configuration; read from the environment when omitted.
            storage: Optional backend for uploading collected files. Built from
                the S3 settings when omitted and a bucket is configured.
        """
        self.config = config or RunnerConfig()
        self.storage = storage if storage is not None else S3Storage.from_config(self.config)
        self.volumes = WorkspaceVolumeManager(prefix=self.config.volume_prefix, label=self.config.volume_label)
        self.stager = InputStager()
        self.collector = ArtifactCollector(self.storage)
        self._client: docker.DockerClient | None = None
        self._detection: SocketDetectionResult | None = None
        self._preferred_socket: str | None = None

    async def __aenter__(self) -> "ContainerRunnerAsync":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the engine client, if one was opened."""
        if self._client is not None:
            client, self._client, self._detection = self._client, None, None
            await asyncio.to_thread(client.close)

    async def connect(self, preferred_socket: str | None = None) -> tuple[docker.DockerClient, SocketDetectionResult]:
        """Open (or reuse) the engine client for ``preferred_socket``.

        Raises:
            EngineConnectionError: If the engine is unreachable.
        """
        preferred = preferred_socket or self.config.socket_path
        if self._client is not None and self._detection is not None and preferred == self._preferred_socket:
            return self._client, self._detection

        await self.close()
        client, detection = await asyncio.to_thread(connect, preferred, self.config.engine_timeout)
        self._client, self._detection, self._preferred_socket = client, detection, preferred
        return client, detection

    def build_config(
        self,
        image: str,
        command: str | None = None,
        entrypoint: str | None = None,
        **fields: Any,
    ) -> ContainerExecutionConfig:
        """Build an execution config from raw strings using the configured defaults.

        Args:
            image: Image reference.
            command: Raw command string.
            entrypoint: Raw entrypoint string (ignored in simple mode).
            **fields: Any other ``ContainerExecutionConfig`` field.

        Returns:
            ContainerExecutionConfig: The config, shell-wrapped or tokenized
                according to ``execution_mode``.
        """
        defaults: dict[str, Any] = {
            "pull_policy": self.config.pull_policy,
            "socket_path": self.config.socket_path,
            "read_only_rootfs": self.config.read_only_rootfs,
            "no_new_privileges": self.config.no_new_privileges,
            "timeout_ms": self.config.timeout_ms,
        }
        defaults.update(fields)
        return ContainerExecutionConfig.from_command(
            image,
            command,
            entrypoint=entrypoint,
            mode=self.config.execution_mode,
            shell=self.config.simple_mode_shell,
            **defaults,
        )

    def prepare(
        self, execution: ContainerExecutionConfig, volume_name: str, staged: StagedInputs | None = None
    ) -> ContainerExecutionConfig:
        """Attach the workspace and input mounts, resource limits and deadline."""
        volumes = list(execution.volumes)
        workspace_bind = f"{volume_name}:{self.config.workspace_mount_path}:rw"
        if workspace_bind not in volumes:
            volumes.append(workspace_bind)

        update: dict[str, Any] = {"volumes": volumes}
        limits = plan_resource_limits(staged.file_sizes if staged else [])
        if staged is not None:
            volumes.append(f"{staged.input_dir}:{self.config.input_mount_path}:ro")
            # Explicit limits win over planned ones
            update["memory"] = execution.memory or limits.memory
            update["cpu_quota"] = execution.cpu_quota or limits.cpu_quota

        update["timeout_ms"] = execution.timeout_ms or self.config.timeout_ms or limits.timeout_ms
        return execution.model_copy(update=update)

    async def run(
        self,
        execution: ContainerExecutionConfig,
        *,
        session: SessionContext | None = None,
        inputs: Iterable[InputFile] | None = None,
        output: OutputRequest | None = None,
        on_progress: PullProgressCallback | None = None,
    ) -> RunOutcome:
        """Run one container against the session's workspace volume.

        Args:
            execution: What to run.
            session: Identity that selects the workspace volume.
            inputs: Files to mount read-only at the input mount path.
            output: Files to bring back from the workspace after the run.
            on_progress: Optional image pull progress callback.

        Returns:
            RunOutcome: The execution result plus any collected files.

        Raises:
            InvalidConfigurationError: Malformed image reference or entrypoint.
            EngineConnectionError: The engine is unreachable.
            ImageProvisioningError: The image could not be made available.
            ContainerExecutionError: The container could not be run.
            ContainerTimeoutError: The container outlived its deadline.
            ExtractionError: Requested output could not be recovered.
        """
        validate_config(execution)
        client, detection = await self.connect(execution.socket_path)

        volume_name = self.volumes.name_for(session)
        try:
            await self.volumes.ensure_async(client, volume_name)
        except ENGINE_ERRORS as e:
            raise wrap_engine_error(e, "volume creation", execution.image) from e

        lock: contextlib.AbstractAsyncContextManager[Any] = (
            self.volumes.lock_for(volume_name)
            if self.config.serialize_workspace_access
            else contextlib.nullcontext()
        )

        staged: StagedInputs | None = None
        output_temp = None
        try:
            async with lock:
                input_list = list(inputs or [])
                if input_list:
                    staged = await self.stager.stage(input_list)

                prepared = self.prepare(execution, volume_name, staged)
                orchestrator = ContainerOrchestrator(client, collect_stats=self.config.collect_stats)
                result = await orchestrator.run(prepared, on_progress)
                outcome = RunOutcome(result=result, volume_name=volume_name, socket=detection, inputs=staged)

                if output is not None:
                    output_temp = await make_temp_directory()
                    output_dir = output_temp / "output"
                    source = output.source_path or self.default_output_path
                    extractor = ArtifactExtractor(
                        client,
                        helper_image=self.config.helper_image,
                        startup_delay=self.config.helper_startup_delay,
                        listing_timeout=self.config.listing_timeout,
                    )
                    outcome.extraction = await extractor.extract(
                        volume_name, self.config.workspace_mount_path, source, output_dir
                    )
                    outcome.files = await self.collector.collect(output_dir, output, namespace=volume_name)
        finally:
            cleanup_temp_directory(staged.temp_dir if staged else None)
            cleanup_temp_directory(output_temp)

        return outcome

    @property
    def default_output_path(self) -> str:
        return f"{self.config.workspace_mount_path.rstrip('/')}/{self.config.output_directory.strip('/')}"

    async def reset_workspace(self, session: SessionContext | None = None) -> bool:
        """Delete the session's workspace volume. Returns False if it did not exist."""
        client, _ = await self.connect()
        name = self.volumes.name_for(session)
        try:
            return await asyncio.to_thread(remove_volume, client, name)
        except ENGINE_ERRORS as e:
            logger.error(f"Failed to remove workspace volume {name}: {e}")
            raise wrap_engine_error(e, "volume removal") from e


class ContainerRunner:
    """Sync Facade for ContainerRunnerAsync (The Facade).

    Wraps ContainerRunnerAsync and executes methods via anyio.run.
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        storage: ObjectStorage | None = None,
    ):
        self._async = ContainerRunnerAsync(config, storage)

    def __enter__(self) -> "ContainerRunner":
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    @property
    def config(self) -> RunnerConfig:
        return self._async.config

    def build_config(
        self, image: str, command: str | None = None, entrypoint: str | None = None, **fields: Any
    ) -> ContainerExecutionConfig:
        return self._async.build_config(image, command, entrypoint, **fields)

    def run(
        self,
        execution: ContainerExecutionConfig,
        *,
        session: SessionContext | None = None,
        inputs: Iterable[InputFile] | None = None,
        output: OutputRequest | None = None,
        on_progress: PullProgressCallback | None = None,
    ) -> RunOutcome:
        """Run one container synchronously. See :meth:`ContainerRunnerAsync.run`."""

        async def _run() -> RunOutcome:
            return await self._async.run(
                execution, session=session, inputs=inputs, output=output, on_progress=on_progress
            )

        return anyio.run(_run)

    def reset_workspace(self, session: SessionContext | None = None) -> bool:
        return anyio.run(self._async.reset_workspace, session)

    def close(self) -> None:
        anyio.run(self._async.close)
