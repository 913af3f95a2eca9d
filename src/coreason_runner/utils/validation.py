# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


import re
from typing import TYPE_CHECKING, NamedTuple

from coreason_runner.exceptions import InvalidConfigurationError

if TYPE_CHECKING:
    from coreason_runner.models.execution import ContainerExecutionConfig

_NAME_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
_REGISTRY = r"(?:[a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)*(?::[0-9]+)?/)?"
_IMAGE_RE = re.compile(
    rf"^{_REGISTRY}{_NAME_COMPONENT}(?:/{_NAME_COMPONENT})*"
    r"(?::[A-Za-z0-9_][A-Za-z0-9._-]{0,127})?"
    r"(?:@sha256:[a-fA-F0-9]{64})?$"
)
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]{0,127}$")
_REGISTRY_SPLIT_RE = re.compile(r"^((?:[a-z0-9-]+\.)+[a-z0-9-]+(?::\d+)?|localhost(?::\d+)?)/(.+)$")


class ImageReference(NamedTuple):
    repository: str
    registry: str | None = None
    tag: str | None = None
    digest: str | None = None

    @property
    def pull_name(self) -> str:
        """Repository name including the registry, as passed to the pull API."""
        return f"{self.registry}/{self.repository}" if self.registry else self.repository


def validate_image_name(image: str) -> list[str]:
    """Return a list of problems with an image reference (empty when valid)."""
    if not image or not image.strip():
        return ["Image name cannot be empty"]

    errors: list[str] = []
    name = image.strip()
    if not _IMAGE_RE.match(name):
        errors.append("Image name contains invalid characters")

    reference = parse_image_reference(name)
    if reference.tag is not None and not _TAG_RE.match(reference.tag):
        errors.append("Image tag contains invalid characters")
    return errors


def parse_image_reference(image: str) -> ImageReference:
    """Split an image reference into registry, repository, tag and digest.

    >>> parse_image_reference("ghcr.io/org/tool:1.2")
    ImageReference(repository='org/tool', registry='ghcr.io', tag='1.2', digest=None)
    """
    registry: str | None = None
    remainder = image.strip()

    match = _REGISTRY_SPLIT_RE.match(remainder)
    if match:
        registry, remainder = match.group(1), match.group(2)

    digest: str | None = None
    if "@" in remainder:
        remainder, digest = remainder.split("@", 1)
        digest = digest.removeprefix("sha256:")

    tag: str | None = None
    if ":" in remainder:
        remainder, tag = remainder.rsplit(":", 1)

    return ImageReference(repository=remainder, registry=registry, tag=tag, digest=digest)


def validate_config(config: "ContainerExecutionConfig") -> None:
    """Raise if the config cannot be handed to the engine.

    Raises:
        InvalidConfigurationError: Malformed image reference or blank entrypoint.
    """
    errors = validate_image_name(config.image)
    if config.entrypoint is not None and not any(part.strip() for part in config.entrypoint):
        errors.append("Entrypoint cannot be empty if specified")
    if errors:
        raise InvalidConfigurationError(f"Invalid container configuration for '{config.image}': {', '.join(errors)}")
