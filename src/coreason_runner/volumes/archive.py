# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


"""In-process tar handling for archives retrieved from the engine."""

import shutil
import tarfile
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from loguru import logger


def strip_depth(container_path: str) -> int:
    """Number of non-empty segments in an in-container path."""
    return len([part for part in container_path.split("/") if part])


def write_chunks(chunks: Iterable[bytes], destination: Path) -> int:
    """Write an archive stream to ``destination`` and return its size in bytes."""
    size = 0
    with open(destination, "wb") as f:
        for chunk in chunks:
            f.write(chunk)
            size += len(chunk)
    return size


def list_members(tar_path: Path) -> list[str]:
    with tarfile.open(tar_path, mode="r") as tar:
        return tar.getnames()


def list_files(root: Path) -> list[str]:
    """Regular files under ``root`` as sorted POSIX paths relative to it."""
    if not root.is_dir():
        return []
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())


def _stripped_name(name: str, strip_components: int) -> str | None:
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts:
        return None
    parts = [part for part in path.parts if part not in ("", ".")]
    if len(parts) <= strip_components:
        return None
    return "/".join(parts[strip_components:])


def _select_members(tar: tarfile.TarFile, strip_components: int) -> list[tarfile.TarInfo]:
    selected: list[tarfile.TarInfo] = []
    for member in tar.getmembers():
        if not (member.isfile() or member.isdir()):
            continue
        name = _stripped_name(member.name, strip_components)
        if name is None:
            continue
        selected.append(member.replace(name=name, deep=False))
    return selected


def extract_structured(tar_path: Path, destination: Path, strip_components: int = 0) -> None:
    """Extract regular files and directories, dropping ``strip_components`` leading segments."""
    with tarfile.open(tar_path, mode="r") as tar:
        members = _select_members(tar, strip_components)
        tar.extractall(destination, members=members, filter="data")


def extract_unstructured(tar_path: Path, destination: Path) -> None:
    """Write every regular file in the archive straight to ``destination`` by base name."""
    with tarfile.open(tar_path, mode="r") as tar:
        for member in tar.getmembers():
            if not member.isfile():
                continue
            name = PurePosixPath(member.name).name
            source = tar.extractfile(member)
            if not name or source is None:
                continue
            with source, open(destination / name, "wb") as target:
                shutil.copyfileobj(source, target)


def remove_subdirectories(root: Path) -> None:
    for entry in root.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry, ignore_errors=True)


def flatten_to_root(root: Path) -> list[str]:
    """Move files found in subdirectories of ``root`` up to ``root`` itself.

    A nested file whose base name is already taken at the root stays where it
    is. Directories left empty are removed.

    Returns:
        list[str]: Files under ``root`` after relocation.
    """
    for relative in list_files(root):
        source = root / relative
        target = root / source.name
        if source == target:
            continue
        if target.exists():
            logger.warning(f"Not relocating {relative}: {source.name} already exists in {root}")
            continue
        shutil.move(str(source), str(target))
        logger.debug(f"Relocated {relative} to {source.name}")

    for directory in sorted((p for p in root.rglob("*") if p.is_dir()), key=lambda p: len(p.parts), reverse=True):
        try:
            directory.rmdir()
        except OSError:
            pass

    return list_files(root)


def extract_and_flatten(tar_path: Path, destination: Path, strip_components: int | None = 0) -> list[str]:
    """Extract an archive into ``destination`` and flatten nested files to its root.

    Args:
        tar_path: Archive on the host.
        destination: Directory to populate.
        strip_components: Leading segments to drop, or None for an unstructured
            extraction that ignores the archive layout entirely.

    Returns:
        list[str]: Files present in ``destination`` afterwards.

    Raises:
        tarfile.TarError: If the archive cannot be read.
    """
    destination.mkdir(parents=True, exist_ok=True)
    if strip_components is None:
        extract_unstructured(tar_path, destination)
    else:
        extract_structured(tar_path, destination, strip_components)
    return flatten_to_root(destination)
