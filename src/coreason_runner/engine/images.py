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
from collections.abc import Callable
from typing import Any

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from loguru import logger

from coreason_runner.exceptions import ImageNotFoundError, ImageProvisioningError
from coreason_runner.models.execution import PullPolicy
from coreason_runner.utils.validation import parse_image_reference

PullProgressCallback = Callable[[dict[str, Any]], None]


class ImageProvisioner:
    """Makes sure an image is present locally according to a pull policy."""

    def __init__(self, client: docker.DockerClient):
        self.client = client

    def exists(self, image: str) -> bool:
        """Inspect the image locally; any failure counts as absent."""
        try:
            self.client.images.get(image)
            return True
        except (ImageNotFound, NotFound):
            return False
        except DockerException as e:
            logger.debug(f"Image inspect failed for {image}: {e}")
            return False

    def pull(self, image: str, on_progress: PullProgressCallback | None = None) -> None:
        """Pull ``image``, forwarding each progress frame to ``on_progress``.

        Raises:
            ImageProvisioningError: If the engine rejects the pull or reports an error frame.
        """
        reference = parse_image_reference(image)
        tag = reference.tag or "latest"
        if reference.digest:
            tag = f"sha256:{reference.digest}"

        logger.info(f"Pulling image {image}")
        try:
            for event in self.client.api.pull(reference.pull_name, tag=tag, stream=True, decode=True):
                if "error" in event:
                    detail = event.get("errorDetail", {}).get("message") or event["error"]
                    raise ImageProvisioningError(f"Failed to pull image {image}: {detail}", image=image)
                if on_progress is not None:
                    on_progress(
                        {
                            "status": event.get("status", ""),
                            "progress": event.get("progress"),
                            "progressDetail": event.get("progressDetail"),
                            "id": event.get("id"),
                        }
                    )
        except (APIError, DockerException) as e:
            logger.error(f"Failed to pull image {image}: {e}")
            raise ImageProvisioningError(f"Failed to pull image {image}: {e}", image=image) from e

        logger.info(f"Pulled image {image}")

    def ensure(
        self,
        image: str,
        policy: PullPolicy = "missing",
        on_progress: PullProgressCallback | None = None,
    ) -> None:
        """Apply the pull policy.

        ``never`` requires a local image, ``always`` pulls unconditionally and
        ``missing`` pulls only when the local inspect fails.

        Raises:
            ImageNotFoundError: Policy is ``never`` and the image is absent.
            ImageProvisioningError: The pull failed.
        """
        if policy == "never":
            if not self.exists(image):
                raise ImageNotFoundError(f"Image {image} not found and pull policy is 'never'", image=image)
            return

        if policy == "always":
            self.pull(image, on_progress)
            return

        if not self.exists(image):
            self.pull(image, on_progress)
        else:
            logger.debug(f"Image {image} already present")

    async def ensure_async(
        self,
        image: str,
        policy: PullPolicy = "missing",
        on_progress: PullProgressCallback | None = None,
    ) -> None:
        await asyncio.to_thread(self.ensure, image, policy, on_progress)
