"""Bridge message schemas.

These Pydantic models define the data exchanged between the Docker
bridge and the other components of the network plugin: network options,
container metadata handed to the VSD side, and the typed request/reply
envelopes served by the request dispatcher.
"""

from __future__ import annotations

import asyncio
import hashlib
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# IPAM driver option keys carrying the SDN placement of a network
OPT_ORGANIZATION = "organization"
OPT_DOMAIN = "domain"
OPT_ZONE = "zone"
OPT_SUBNET = "subnet"
OPT_USER = "user"


# --- Network options ---

class NetworkParams(BaseModel):
    """SDN placement of one Docker network.

    Organization/Domain/Zone/SubnetName/User identify the network;
    SubnetCIDR and Gateway describe its addressing and are not part of
    the identity.
    """
    organization: str = ""
    domain: str = ""
    zone: str = ""
    subnet_name: str = ""
    user: str = ""
    subnet_cidr: str = ""
    gateway: str = ""

    @classmethod
    def from_ipam_options(cls, options: dict[str, str] | None) -> "NetworkParams":
        """Build params from a network's IPAM driver options."""
        options = options or {}
        return cls(
            organization=options.get(OPT_ORGANIZATION, ""),
            domain=options.get(OPT_DOMAIN, ""),
            zone=options.get(OPT_ZONE, ""),
            subnet_name=options.get(OPT_SUBNET, ""),
            user=options.get(OPT_USER, ""),
        )

    def identity(self) -> tuple[str, str, str, str, str]:
        return (self.organization, self.domain, self.zone, self.subnet_name, self.user)

    def same_network_opts(self, other: "NetworkParams") -> bool:
        """True if both describe the same SDN network (addressing ignored)."""
        return self.identity() == other.identity()

    def pool_id(self) -> str:
        """Deterministic pool identifier derived from the identity fields."""
        digest = hashlib.md5(usedforsecurity=False)
        for value in self.identity():
            # Length prefix keeps ("ab", "c") distinct from ("a", "bc")
            encoded = value.encode("utf-8")
            digest.update(f"{len(encoded)}:".encode("ascii"))
            digest.update(encoded)
        return digest.hexdigest()


class ContainerEventMetadata(BaseModel):
    """Container attach details forwarded to the VSD side."""
    name: str
    uuid: str
    policy_group: str = ""
    orchestration_id: str = ""
    ip_address: str = ""
    network_params: NetworkParams


# --- Downstream (VSD) hand-off ---

class VSDEventType(str, Enum):
    """Events the bridge emits toward the VSD client."""
    UPDATE_CONTAINER = "update_container"


class VSDEvent(BaseModel):
    """Envelope placed on the VSD ingress queue."""
    event_type: VSDEventType
    payload: ContainerEventMetadata


# --- Request dispatcher protocol ---

class DockerRequestType(str, Enum):
    """Request kinds served by the Docker bridge."""
    CHECK_NETWORK_LIST = "check_network_list"
    NETWORK_ID_INSPECT = "network_id_inspect"
    POOL_ID_NETWORK_OPTS = "pool_id_network_opts"
    CONTAINER_LIST = "container_list"
    GET_OPTS_ALL_NETWORKS = "get_opts_all_networks"
    IS_SWARM_ENABLED = "is_swarm_enabled"
    IS_SWARM_MANAGER = "is_swarm_manager"
    IS_SERVICE_IP = "is_service_ip"


class DockerResponse(BaseModel):
    """Reply published once per request."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: Any = None
    error: Exception | None = None


class DockerRequest(BaseModel):
    """Typed request with its own reply future.

    The request type is a plain str so that callers sending an unknown
    kind reach the dispatcher (which logs and drops it) instead of
    failing validation here.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    request_type: str
    payload: Any = None
    reply: asyncio.Future = Field(default_factory=lambda: asyncio.get_running_loop().create_future())
