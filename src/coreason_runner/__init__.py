# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


"""
coreason-runner
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .artifacts import ArtifactCollector, ObjectStorage
from .config import RunnerConfig
from .engine.client import connect
from .engine.images import ImageProvisioner
from .engine.orchestrator import ContainerOrchestrator
from .exceptions import (
    ContainerExecutionError,
    ContainerTimeoutError,
    EngineConnectionError,
    ExtractionError,
    ImageNotFoundError,
    ImageProvisioningError,
    InvalidConfigurationError,
    RunnerError,
    is_connection_error,
)
from .models import (
    ContainerExecutionConfig,
    ContainerExecutionResult,
    ExtractionResult,
    InputFile,
    OutputFile,
    OutputRequest,
    ResourceLimits,
    RunOutcome,
    SocketDetectionResult,
)
from .resources import plan_resource_limits
from .runner import ContainerRunner, ContainerRunnerAsync
from .utils.command import detokenize, tokenize
from .utils.log_stream import demultiplex
from .utils.logger import logger
from .utils.socket_resolver import resolve_socket
from .volumes.extractor import ArtifactExtractor
from .volumes.workspace import SessionContext, WorkspaceVolumeManager

__all__ = [
    "ArtifactCollector",
    "ArtifactExtractor",
    "ContainerExecutionConfig",
    "ContainerExecutionError",
    "ContainerExecutionResult",
    "ContainerOrchestrator",
    "ContainerRunner",
    "ContainerRunnerAsync",
    "ContainerTimeoutError",
    "EngineConnectionError",
    "ExtractionError",
    "ExtractionResult",
    "ImageNotFoundError",
    "ImageProvisioner",
    "ImageProvisioningError",
    "InputFile",
    "InvalidConfigurationError",
    "ObjectStorage",
    "OutputFile",
    "OutputRequest",
    "ResourceLimits",
    "RunOutcome",
    "RunnerConfig",
    "RunnerError",
    "SessionContext",
    "SocketDetectionResult",
    "WorkspaceVolumeManager",
    "connect",
    "demultiplex",
    "detokenize",
    "is_connection_error",
    "logger",
    "plan_resource_limits",
    "resolve_socket",
    "tokenize",
]
