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
import hashlib
import re
from datetime import date
from uuid import uuid4

import docker
from docker.errors import DockerException, NotFound
from loguru import logger
from pydantic import BaseModel, ConfigDict

from coreason_runner.exceptions import InvalidConfigurationError

_VOLUME_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]+$")


class SessionContext(BaseModel):
    """Identity of the logical session that owns a workspace volume.

    Attributes:
        workflow_id: Workflow identity; combined with the calendar date.
        node_id: Per-node identity, used when no workflow identity is known.
        volume_name: Explicit volume name that bypasses derivation.
        session_date: Date used with ``workflow_id``; today when unset.
    """

    model_config = ConfigDict(frozen=True)

    workflow_id: str | None = None
    node_id: str | None = None
    volume_name: str | None = None
    session_date: date | None = None


class WorkspaceVolumeManager:
    """Names and provisions the persistent volume shared by a session.

    Volumes are never deleted here; teardown is an explicit call to
    :func:`remove_volume`.
    """

    def __init__(self, prefix: str = "workspace", label: str = "coreason-runner"):
        self.prefix = prefix
        self.label = label
        self._random_key: str | None = None
        self._locks: dict[str, asyncio.Lock] = {}

    def session_key(self, session: SessionContext | None = None) -> str:
        """Derive the key hashed into the volume name."""
        session = session or SessionContext()
        if session.workflow_id:
            session_date = session.session_date or date.today()
            return f"{session.workflow_id}-{session_date.isoformat()}"
        if session.node_id:
            return f"node-{session.node_id}"
        if self._random_key is None:
            self._random_key = f"random-{uuid4().hex}"
            logger.warning("No session identity available, workspace volume is scoped to this runner instance")
        return self._random_key

    def name_for(self, session: SessionContext | None = None) -> str:
        """Deterministic volume name for a session, e.g. ``workspace-3f2a9c0d1e4b5a6f``.

        Raises:
            InvalidConfigurationError: If an explicit volume name is not a valid engine name.
        """
        if session is not None and session.volume_name:
            if not _VOLUME_NAME_RE.match(session.volume_name):
                raise InvalidConfigurationError(f"Invalid volume name: {session.volume_name}")
            return session.volume_name

        token = hashlib.sha256(self.session_key(session).encode("utf-8")).hexdigest()[:16]
        return f"{self.prefix}-{token}"

    def ensure(self, client: docker.DockerClient, name: str) -> None:
        """Create the volume unless an inspect finds it already present."""
        try:
            client.volumes.get(name)
            logger.debug(f"Workspace volume {name} exists")
            return
        except NotFound:
            pass
        except DockerException as e:
            logger.debug(f"Volume inspect for {name} failed, creating it: {e}")

        logger.info(f"Creating workspace volume {name}", volume=name)
        client.volumes.create(name=name, labels={"managed-by": self.label})

    async def ensure_async(self, client: docker.DockerClient, name: str) -> None:
        await asyncio.to_thread(self.ensure, client, name)

    def lock_for(self, name: str) -> asyncio.Lock:
        """In-process lock serialising runs that share one volume."""
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock


def remove_volume(client: docker.DockerClient, name: str) -> bool:
    """Delete a workspace volume. Returns False if it did not exist."""
    try:
        client.volumes.get(name).remove()
    except NotFound:
        logger.debug(f"Workspace volume {name} already absent")
        return False
    logger.info(f"Removed workspace volume {name}", volume=name)
    return True
