"""Bridge exceptions and Docker connectivity classification."""

from __future__ import annotations

import re

import requests

# Error text the docker SDK and its HTTP transport produce when the
# daemon is gone (socket missing, refused, or dropped mid-request).
_CONNECTION_ERROR_PATTERNS = re.compile(
    "|".join([
        r"Cannot connect to the Docker daemon",
        r"Connection refused",
        r"Connection aborted",
        r"Connection reset by peer",
    ])
)


class DockerBridgeError(Exception):
    """Base class for errors returned to bridge callers."""


class NetworkNotFoundError(DockerBridgeError):
    """Network is unknown or its IPAM configuration is missing."""


class InvalidSubnetError(DockerBridgeError):
    """A subnet CIDR could not be parsed."""

    def __init__(self, cidr: str, reason: str = ""):
        self.cidr = cidr
        message = f"Invalid subnet {cidr!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class NetworkOverlapError(DockerBridgeError):
    """Candidate network options and subnet overlap an existing network."""

    def __init__(self, network_id: str = ""):
        self.network_id = network_id
        super().__init__("Network options and subnet overlap with existing network")


class SwarmNotEnabledError(DockerBridgeError):
    """Swarm mode is not active on this node."""

    def __init__(self):
        super().__init__("Swarm is not enabled on this node")


def is_connection_error(exc: BaseException) -> bool:
    """Return True if exc means the Docker daemon is unreachable."""
    if isinstance(exc, requests.exceptions.ConnectionError):
        return True
    return bool(_CONNECTION_ERROR_PATTERNS.search(str(exc)))
