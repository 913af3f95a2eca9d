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
import time
from typing import Any

import docker
import requests
from docker.errors import DockerException
from docker.models.containers import Container
from loguru import logger

from coreason_runner.engine.images import ImageProvisioner, PullProgressCallback
from coreason_runner.exceptions import (
    ContainerExecutionError,
    ContainerTimeoutError,
    EngineConnectionError,
    RunnerError,
    format_engine_error,
    is_connection_error,
)
from coreason_runner.models.execution import ContainerExecutionConfig, ContainerExecutionResult
from coreason_runner.models.resources import CPU_PERIOD, ContainerStats
from coreason_runner.resources import plan_resource_limits
from coreason_runner.utils.log_stream import classify_stderr, demultiplex
from coreason_runner.utils.validation import validate_config

ENGINE_ERRORS = (DockerException, requests.exceptions.RequestException)


def wrap_engine_error(error: BaseException, operation: str, image: str | None = None) -> RunnerError:
    """Map an SDK failure to a connection error or an execution error."""
    if is_connection_error(error):
        return EngineConnectionError(
            format_engine_error(error, "connection", "Make sure Docker is running and accessible")
        )
    context = f"Image: {image}" if image else None
    return ContainerExecutionError(format_engine_error(error, operation, context), image=image)


class ContainerOrchestrator:
    """
    Runs one container to completion: create, start, wait, read logs, remove.
    """

    def __init__(
        self,
        client: docker.DockerClient,
        provisioner: ImageProvisioner | None = None,
        collect_stats: bool = False,
    ):
        self.client = client
        self.provisioner = provisioner or ImageProvisioner(client)
        self.collect_stats = collect_stats

    def build_create_kwargs(self, config: ContainerExecutionConfig) -> dict[str, Any]:
        """Translate a config into ``containers.create`` keyword arguments."""
        kwargs: dict[str, Any] = {
            "image": config.image,
            "environment": list(config.environment),
            "tty": False,
            "stdin_open": False,
            # Logs must stay readable after exit, so the engine never removes the container itself
            "auto_remove": False,
        }

        if config.entrypoint:
            kwargs["entrypoint"] = list(config.entrypoint)
        if config.command:
            kwargs["command"] = list(config.command)
        if config.working_dir:
            kwargs["working_dir"] = config.working_dir
        if config.volumes:
            kwargs["volumes"] = list(config.volumes)
        if config.memory:
            kwargs["mem_limit"] = config.memory
        if config.cpu_quota:
            kwargs["cpu_quota"] = config.cpu_quota
            kwargs["cpu_period"] = CPU_PERIOD
        if config.read_only_rootfs:
            kwargs["read_only"] = True
        if config.no_new_privileges:
            kwargs["security_opt"] = ["no-new-privileges"]

        return kwargs

    async def run(
        self,
        config: ContainerExecutionConfig,
        on_progress: PullProgressCallback | None = None,
    ) -> ContainerExecutionResult:
        """Run the container described by ``config`` and return its output.

        The container is removed on every path once it has been created.

        Args:
            config: The execution config.
            on_progress: Optional image pull progress callback.

        Returns:
            ContainerExecutionResult: Demultiplexed output and exit status.

        Raises:
            InvalidConfigurationError: Malformed image reference or entrypoint.
            ImageProvisioningError: The image could not be made available.
            EngineConnectionError: The engine is unreachable.
            ContainerExecutionError: Create, start, wait or log retrieval failed.
            ContainerTimeoutError: The container outlived its deadline.
        """
        validate_config(config)

        try:
            await self.provisioner.ensure_async(config.image, config.pull_policy, on_progress)
        except ENGINE_ERRORS as e:
            raise wrap_engine_error(e, "image provisioning", config.image) from e

        kwargs = self.build_create_kwargs(config)
        logger.info(f"Creating container from {config.image}", image=config.image)
        try:
            container: Container = await asyncio.to_thread(self.client.containers.create, **kwargs)
        except ENGINE_ERRORS as e:
            logger.error(f"Failed to create container from {config.image}: {e}")
            raise wrap_engine_error(e, "container creation", config.image) from e

        try:
            result = await self._execute(container, config)
        finally:
            cleanup_error = await self.remove(container)

        if cleanup_error:
            result.cleanup_errors.append(cleanup_error)
        return result

    async def _execute(self, container: Container, config: ContainerExecutionConfig) -> ContainerExecutionResult:
        try:
            start_time = time.time()
            await asyncio.to_thread(container.start)
            logger.info(f"Started container {container.short_id}")

            stats = await asyncio.to_thread(self.sample_stats, container) if self.collect_stats else None
            exit_code = await self._wait(container, config)
            duration = time.time() - start_time

            raw_logs = await asyncio.to_thread(self.fetch_logs, container)
        except RunnerError:
            raise
        except ENGINE_ERRORS as e:
            logger.error(f"Container {container.short_id} failed: {e}")
            raise wrap_engine_error(e, "container execution", config.image) from e

        output = demultiplex(raw_logs)
        logger.info(f"Container {container.short_id} exited with code {exit_code} after {duration:.2f}s")
        if exit_code != 0:
            diagnosis = classify_stderr(output.stderr_text)
            if diagnosis["has_error"]:
                kind = diagnosis["error_type"] or "UNKNOWN"
                logger.warning(f"Container {container.short_id} failed ({kind}): {diagnosis['message']}")
        return ContainerExecutionResult.from_output(output, exit_code, duration=duration, stats=stats)

    async def _wait(self, container: Container, config: ContainerExecutionConfig) -> int:
        timeout_ms = config.timeout_ms or plan_resource_limits([]).timeout_ms
        try:
            wait_result = await asyncio.wait_for(asyncio.to_thread(container.wait), timeout=timeout_ms / 1000)
        except TimeoutError as e:
            logger.warning(f"Container {container.short_id} exceeded {timeout_ms}ms, killing it")
            try:
                await asyncio.to_thread(container.kill)
            except ENGINE_ERRORS as kill_error:
                logger.warning(f"Failed to kill container {container.short_id}: {kill_error}")
            raise ContainerTimeoutError(
                f"Container execution exceeded {timeout_ms}ms limit", image=config.image, timeout_ms=timeout_ms
            ) from e

        return int(wait_result.get("StatusCode", -1))

    def fetch_logs(self, container: Container) -> bytes:
        """Read the combined stdout/stderr of an exited container as one raw buffer.

        ``Container.logs`` strips the frame headers for non-TTY containers, so
        the multiplexed body is read straight from the logs endpoint. This uses
        ``APIClient`` internals, hence the docker<8 pin.
        """
        api = self.client.api
        response = api._get(
            api._url("/containers/{0}/logs", container.id),
            params={"stdout": 1, "stderr": 1, "timestamps": 0, "follow": 0, "tail": "all"},
        )
        api._raise_for_status(response)
        return bytes(response.content)

    def sample_stats(self, container: Container) -> ContainerStats | None:
        """Take one resource usage sample. Returns None when stats are unavailable."""
        try:
            stats = container.stats(stream=False)
        except ENGINE_ERRORS as e:
            logger.debug(f"Stats unavailable for {container.short_id}: {e}")
            return None

        try:
            cpu = stats.get("cpu_stats", {})
            precpu = stats.get("precpu_stats", {})
            cpu_delta = cpu.get("cpu_usage", {}).get("total_usage", 0) - precpu.get("cpu_usage", {}).get(
                "total_usage", 0
            )
            system_delta = cpu.get("system_cpu_usage", 0) - precpu.get("system_cpu_usage", 0)
            cpu_percent = (cpu_delta / system_delta) * 100 if system_delta > 0 else 0.0

            networks = stats.get("networks") or {}
            rx = sum(n.get("rx_bytes", 0) for n in networks.values()) if networks else None
            tx = sum(n.get("tx_bytes", 0) for n in networks.values()) if networks else None

            return ContainerStats(
                cpu_percent=cpu_percent,
                memory_bytes=stats.get("memory_stats", {}).get("usage", 0) or 0,
                rx_bytes=rx,
                tx_bytes=tx,
            )
        except (TypeError, AttributeError) as e:
            logger.debug(f"Malformed stats payload for {container.short_id}: {e}")
            return None

    async def remove(self, container: Container) -> str | None:
        """Force-remove a container. Returns the failure message instead of raising."""
        try:
            await asyncio.to_thread(container.remove, v=True, force=True)
            logger.debug(f"Removed container {container.short_id}")
            return None
        except Exception as e:  # cleanup failures are recorded, never raised
            logger.warning(f"Failed to remove container {container.short_id}: {e}")
            return f"remove {container.short_id}: {e}"
