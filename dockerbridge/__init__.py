"""Docker daemon adapter for the SDN network plugin.

Public entry points:
- DockerBridge: owns the daemon connection and caches and runs the
  event pipeline and request dispatcher
- docker_request: helper other components use to query the bridge
"""

from dockerbridge.bridge import DockerBridge
from dockerbridge.dispatcher import docker_request
from dockerbridge.schemas import (
    ContainerEventMetadata,
    DockerRequest,
    DockerRequestType,
    DockerResponse,
    NetworkParams,
    VSDEvent,
    VSDEventType,
)
from dockerbridge.version import __version__

__all__ = [
    "DockerBridge",
    "docker_request",
    "ContainerEventMetadata",
    "DockerRequest",
    "DockerRequestType",
    "DockerResponse",
    "NetworkParams",
    "VSDEvent",
    "VSDEventType",
    "__version__",
]
