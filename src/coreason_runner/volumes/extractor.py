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
import os
import posixpath
import tarfile
import tempfile
import time
from pathlib import Path
from typing import Any

import docker
import requests
from docker.errors import DockerException, NotFound
from docker.models.containers import Container
from loguru import logger

from coreason_runner.engine.images import ImageProvisioner
from coreason_runner.exceptions import ExtractionError
from coreason_runner.models.execution import DemultiplexedOutput
from coreason_runner.models.extraction import ExtractionDiagnostics, ExtractionResult, ExtractionStrategy
from coreason_runner.utils.log_stream import demultiplex
from coreason_runner.volumes.archive import (
    extract_and_flatten,
    extract_structured,
    list_members,
    remove_subdirectories,
    strip_depth,
    write_chunks,
)

ENGINE_ERRORS = (DockerException, requests.exceptions.RequestException)
def resolve_container_path(source_path: str, mount_path: str) -> str:
    """Absolute paths are used as-is; relative ones are joined under the mount path."""
    if source_path.startswith("/"):
        return posixpath.normpath(source_path)
    return posixpath.normpath(posixpath.join(mount_path, source_path))


def _drain_socket(sock: Any, timeout: float) -> bytes:
    """Read a hijacked exec socket until EOF or ``timeout`` seconds of silence."""
    raw = getattr(sock, "_sock", sock)
    if hasattr(raw, "settimeout"):
        raw.settimeout(timeout)

    reader = getattr(sock, "recv", None) or sock.read
    chunks: list[bytes] = []
    try:
        while True:
            chunk = reader(4096)
            if not chunk:
                break
            chunks.append(chunk)
    except (TimeoutError, OSError) as e:
        logger.debug(f"Exec output read stopped early: {e}")
    finally:
        try:
            sock.close()
        except OSError:
            pass
    return b"".join(chunks)


class ArtifactExtractor:
    """Recovers files written to a workspace volume after the writer is gone.

    The volume is mounted read-only into a short-lived helper container and
    files are pulled out through the engine's archive endpoint.
    """

    def __init__(
        self,
        client: docker.DockerClient,
        helper_image: str = "alpine:latest",
        startup_delay: float = 0.5,
        listing_timeout: float = 2.0,
        provisioner: ImageProvisioner | None = None,
    ):
        self.client = client
        self.helper_image = helper_image
        self.startup_delay = startup_delay
        self.listing_timeout = listing_timeout
        self.provisioner = provisioner or ImageProvisioner(client)

    async def extract(
        self,
        volume_name: str,
        volume_mount_path: str,
        source_path: str,
        host_dest_dir: Path,
    ) -> ExtractionResult:
        """Copy the files under ``source_path`` in the volume into ``host_dest_dir``.

        A missing source path yields an empty result.

        Raises:
            ExtractionError: The helper could not be started, the archive could
                not be retrieved or no extraction strategy could read it.
        """
        return await asyncio.to_thread(
            self.extract_sync, volume_name, volume_mount_path, source_path, Path(host_dest_dir)
        )

    def extract_sync(
        self,
        volume_name: str,
        volume_mount_path: str,
        source_path: str,
        host_dest_dir: Path,
    ) -> ExtractionResult:
        container_path = resolve_container_path(source_path, volume_mount_path)
        diagnostics = ExtractionDiagnostics(container_path=container_path)
        helper: Container | None = None

        logger.info(f"Extracting {container_path} from volume {volume_name}", volume=volume_name)
        try:
            helper = self._start_helper(volume_name, volume_mount_path)
            host_dest_dir.mkdir(parents=True, exist_ok=True)

            names = self._list_files(helper, container_path, diagnostics)
            if names:
                return self._copy_individually(helper, container_path, names, host_dest_dir, diagnostics)
            return self._copy_directory(helper, container_path, host_dest_dir, diagnostics)
        finally:
            if helper is not None:
                self._remove_helper(helper, diagnostics)

    def _start_helper(self, volume_name: str, mount_path: str) -> Container:
        try:
            self.provisioner.ensure(self.helper_image, "missing")
            helper: Container = self.client.containers.create(
                self.helper_image,
                command=["sleep", "infinity"],
                volumes=[f"{volume_name}:{mount_path}:ro"],
                network_disabled=True,
                auto_remove=False,
                labels={"managed-by": "coreason-runner", "coreason.role": "extract-helper"},
            )
        except ENGINE_ERRORS as e:
            raise ExtractionError(f"Failed to create helper container: {e}", strategies=["helper"]) from e

        try:
            helper.start()
        except ENGINE_ERRORS as e:
            self._remove_helper(helper, ExtractionDiagnostics())
            raise ExtractionError(f"Failed to start helper container: {e}", strategies=["helper"]) from e

        if self.startup_delay > 0:
            time.sleep(self.startup_delay)
        logger.debug(f"Helper container {helper.short_id} ready")
        return helper

    def _exec(self, helper: Container, cmd: list[str]) -> DemultiplexedOutput:
        api = self.client.api
        exec_id = api.exec_create(helper.id, cmd, stdout=True, stderr=True, tty=False)["Id"]
        sock = api.exec_start(exec_id, tty=False, socket=True)
        return demultiplex(_drain_socket(sock, self.listing_timeout))

    def _list_files(self, helper: Container, container_path: str, diagnostics: ExtractionDiagnostics) -> list[str]:
        """Names of the regular files directly under ``container_path``; empty on any failure."""
        prefix = container_path.rstrip("/") + "/"
        listings = (
            ("find", ["find", container_path, "-maxdepth", "1", "-type", "f"]),
            ("ls", ["ls", "-1p", container_path]),
        )

        for tool, cmd in listings:
            try:
                output = self._exec(helper, cmd)
            except ENGINE_ERRORS as e:
                logger.warning(f"Could not list {container_path} with {tool}: {e}")
                diagnostics.errors.append(f"{tool}: {e}")
                continue

            if output.stderr_text.strip():
                logger.debug(f"{tool} reported: {output.stderr_text.strip()}")

            names: list[str] = []
            for line in output.stdout_text.splitlines():
                entry = line.strip()
                if not entry:
                    continue
                if tool == "ls" and entry.endswith("/"):
                    continue
                entry = entry.removeprefix(prefix)
                name = entry.rsplit("/", 1)[-1]
                if name:
                    names.append(name)

            if names:
                diagnostics.listing_tool = tool
                diagnostics.listing = names
                logger.debug(f"Found {len(names)} files in {container_path} via {tool}: {names}")
                return names

        logger.debug(f"Listing found no files in {container_path}")
        return []

    def _copy_individually(
        self,
        helper: Container,
        container_path: str,
        names: list[str],
        host_dest_dir: Path,
        diagnostics: ExtractionDiagnostics,
    ) -> ExtractionResult:
        diagnostics.attempts.append("per_file")
        extracted: list[str] = []

        for name in names:
            file_path = f"{container_path.rstrip('/')}/{name}"
            fd, tmp_name = tempfile.mkstemp(prefix="coreason-file-", suffix=".tar")
            os.close(fd)
            tmp_path = Path(tmp_name)
            try:
                bits, _ = helper.get_archive(file_path)
                write_chunks(bits, tmp_path)
                # A single-file archive holds the file at its root
                extract_structured(tmp_path, host_dest_dir, strip_components=0)
                extracted.append(name)
            except (*ENGINE_ERRORS, tarfile.TarError, OSError) as e:
                logger.warning(f"Failed to copy {file_path}: {e}")
                diagnostics.errors.append(f"{name}: {e}")
            finally:
                self._unlink(tmp_path, diagnostics)

        diagnostics.strategy = "per_file"
        logger.info(f"Copied {len(extracted)} of {len(names)} files from {container_path}")
        return ExtractionResult(tar_contents=list(names), extracted_files=extracted, diagnostics=diagnostics)

    def _get_directory_archive(
        self, helper: Container, container_path: str, diagnostics: ExtractionDiagnostics
    ) -> Any | None:
        """Archive stream of the directory, or None if it does not exist."""
        for candidate in (container_path, container_path.rstrip("/") + "/"):
            diagnostics.attempts.append(f"get_archive:{candidate}")
            try:
                bits, _ = helper.get_archive(candidate)
                return bits
            except NotFound:
                logger.debug(f"No archive at {candidate}")
            except ENGINE_ERRORS as e:
                raise ExtractionError(
                    f"Failed to retrieve archive of {container_path}: {e}", strategies=diagnostics.attempts
                ) from e
        return None

    def _copy_directory(
        self,
        helper: Container,
        container_path: str,
        host_dest_dir: Path,
        diagnostics: ExtractionDiagnostics,
    ) -> ExtractionResult:
        bits = self._get_directory_archive(helper, container_path, diagnostics)
        if bits is None:
            logger.warning(f"Path {container_path} does not exist in the volume")
            diagnostics.strategy = "directory_absent"
            return ExtractionResult(diagnostics=diagnostics)

        fd, tmp_name = tempfile.mkstemp(prefix="coreason-extract-", suffix=".tar")
        os.close(fd)
        tar_path = Path(tmp_name)
        try:
            try:
                size = write_chunks(bits, tar_path)
            except ENGINE_ERRORS as e:
                raise ExtractionError(
                    f"Failed to read archive of {container_path}: {e}", strategies=diagnostics.attempts
                ) from e

            if size == 0:
                logger.warning(f"Archive of {container_path} is empty")
                diagnostics.strategy = "empty_archive"
                return ExtractionResult(diagnostics=diagnostics)

            try:
                members = list_members(tar_path)
            except tarfile.TarError as e:
                members = []
                diagnostics.errors.append(f"list: {e}")
            logger.debug(f"Archive of {container_path} is {size} bytes: {members}")

            depth = strip_depth(container_path)
            diagnostics.strip_components = depth
            passes: list[tuple[ExtractionStrategy, int | None]] = [("archive_unstripped", 0)]
            if depth > 0:
                passes.append(("archive_stripped", depth))
            passes.append(("archive_unstructured", None))

            readable = False
            for strategy, strip in passes:
                diagnostics.attempts.append(strategy)
                try:
                    files = extract_and_flatten(tar_path, host_dest_dir, strip)
                except (tarfile.TarError, OSError) as e:
                    logger.warning(f"Extraction pass {strategy} failed: {e}")
                    diagnostics.errors.append(f"{strategy}: {e}")
                    remove_subdirectories(host_dest_dir)
                    continue

                readable = True
                if files:
                    diagnostics.strategy = strategy
                    logger.info(f"Extracted {len(files)} files from {container_path} using {strategy}")
                    return ExtractionResult(
                        tar_contents=members, extracted_files=files, tar_file_size=size, diagnostics=diagnostics
                    )
                remove_subdirectories(host_dest_dir)

            if not readable:
                raise ExtractionError(
                    f"Failed to extract archive of {container_path}: {'; '.join(diagnostics.errors)}",
                    strategies=diagnostics.attempts,
                )

            diagnostics.strategy = "no_files"
            logger.info(f"Archive of {container_path} contained no files")
            return ExtractionResult(tar_contents=members, tar_file_size=size, diagnostics=diagnostics)
        finally:
            self._unlink(tar_path, diagnostics)

    @staticmethod
    def _unlink(path: Path, diagnostics: ExtractionDiagnostics) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove temporary archive {path}: {e}")
            diagnostics.cleanup_errors.append(f"{path.name}: {e}")

    @staticmethod
    def _remove_helper(helper: Container, diagnostics: ExtractionDiagnostics) -> None:
        steps = (
            ("stop", lambda: helper.stop(timeout=1)),
            ("remove", lambda: helper.remove(v=True, force=True)),
        )
        for action, call in steps:
            try:
                call()
            except Exception as e:  # cleanup failures are recorded, never raised
                logger.warning(f"Failed to {action} helper container {helper.short_id}: {e}")
                diagnostics.cleanup_errors.append(f"{action} {helper.short_id}: {e}")
