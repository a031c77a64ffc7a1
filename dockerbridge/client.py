"""Docker query operations used by the network plugin.

All daemon calls go through DockerConnection.execute() so they survive
daemon restarts. Results are the raw dicts of the docker low-level API.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Any

from dockerbridge.cache import NetworkParamsTable
from dockerbridge.config import settings
from dockerbridge.connection import DockerConnection
from dockerbridge.errors import (
    InvalidSubnetError,
    NetworkNotFoundError,
    NetworkOverlapError,
    SwarmNotEnabledError,
)
from dockerbridge.schemas import NetworkParams

logger = logging.getLogger(__name__)

SWARM_STATE_ACTIVE = "active"


def _parse_subnet(cidr: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
    try:
        return ipaddress.ip_network(cidr, strict=False)
    except ValueError as e:
        raise InvalidSubnetError(cidr, str(e)) from e


def _subnets_overlap(a, b) -> bool:
    """True if either network address falls inside the other subnet."""
    if a.version != b.version:
        return False
    return a.network_address in b or b.network_address in a


def _ipam(network: dict[str, Any]) -> tuple[dict[str, str], list[dict[str, Any]]]:
    ipam = network.get("IPAM") or {}
    return ipam.get("Options") or {}, ipam.get("Config") or []


class DockerQueryClient:
    """Query facade over the Docker daemon.

    Also keeps NetworkParamsTable current: every successful inspect by
    network ID writes the result back into the table.
    """

    def __init__(
        self,
        connection: DockerConnection,
        network_params: NetworkParamsTable,
        network_type: str | None = None,
    ):
        self.connection = connection
        self.network_params = network_params
        self.network_type = network_type or settings.network_type

    # --- Containers ---

    async def list_containers(self) -> list[dict[str, Any]]:
        """List running containers."""
        containers = await self.connection.execute(lambda c: c.api.containers())
        logger.debug(f"number of containers in docker ps = {len(containers)}")
        return containers

    async def inspect_container(self, container_id: str) -> dict[str, Any]:
        return await self.connection.execute(lambda c: c.api.inspect_container(container_id))

    # --- Networks ---

    async def list_networks(self) -> list[dict[str, Any]]:
        """List networks created with the plugin's driver."""
        return await self.connection.execute(
            lambda c: c.api.networks(filters={"driver": self.network_type})
        )

    async def inspect_network(self, network_id: str) -> dict[str, Any]:
        """Inspect a network, requiring IPAM options and config.

        Raises:
            NetworkNotFoundError: If the network has no IPAM options or config
        """
        network = await self.connection.execute(lambda c: c.api.inspect_network(network_id))
        options, config = _ipam(network)
        if not options or not config:
            raise NetworkNotFoundError(
                f"error reading network {network_id} information from docker"
            )
        return network

    async def get_network_opts_from_network_id(self, network_id: str) -> NetworkParams:
        """Resolve a network ID to NetworkParams and cache the result."""
        network = await self.inspect_network(network_id)
        options, config = _ipam(network)
        params = NetworkParams.from_ipam_options(options)
        params.subnet_cidr = config[0].get("Subnet", "")
        params.gateway = config[0].get("Gateway", "")
        self.network_params.put(network_id, params)
        return params

    async def get_network_opts_from_pool_id(self, pool_id: str) -> NetworkParams:
        """Find the plugin network whose identity hashes to pool_id.

        Raises:
            NetworkNotFoundError: If no network matches
        """
        for network in await self.list_networks():
            options, config = _ipam(network)
            if not options or not config:
                continue
            params = NetworkParams.from_ipam_options(options)
            params.subnet_cidr = config[0].get("Subnet", "")
            if params.pool_id() == pool_id:
                return params
        raise NetworkNotFoundError("network options with matching poolID not found")

    async def check_network_list(self, candidate: NetworkParams) -> bool:
        """Check a candidate network against existing plugin networks.

        Returns:
            False when no existing network has the same options and an
            overlapping subnet

        Raises:
            InvalidSubnetError: If any CIDR fails to parse
            NetworkOverlapError: If an existing network has the same
                options and an overlapping subnet
        """
        networks = await self.list_networks()
        new_subnet = _parse_subnet(candidate.subnet_cidr)

        for network in networks:
            options, config = _ipam(network)
            existing = NetworkParams.from_ipam_options(options)

            overlapping = False
            for nw_config in config:
                existing_subnet = _parse_subnet(nw_config.get("Subnet", ""))
                if _subnets_overlap(new_subnet, existing_subnet):
                    overlapping = True

            if overlapping and existing.same_network_opts(candidate):
                raise NetworkOverlapError(network.get("Id", ""))

        return False

    async def build_network_info_cache(self) -> None:
        """Load NetworkParams for every plugin network into the table."""
        for network in await self.list_networks():
            options, config = _ipam(network)
            params = NetworkParams.from_ipam_options(options)
            for nw_config in config:
                params.subnet_cidr = nw_config.get("Subnet", "")
                params.gateway = nw_config.get("Gateway", "")
            self.network_params.put(network["Id"], params)
        logger.info(f"Cached network options for {len(self.network_params)} network(s)")

    def get_opts_all_networks(self) -> dict[str, NetworkParams]:
        return self.network_params.snapshot()

    # --- Swarm ---

    async def _swarm_info(self) -> dict[str, Any]:
        info = await self.connection.execute(lambda c: c.api.info())
        return info.get("Swarm") or {}

    async def is_swarm_enabled(self) -> bool:
        swarm = await self._swarm_info()
        return swarm.get("LocalNodeState") == SWARM_STATE_ACTIVE

    async def is_swarm_manager(self) -> bool:
        """True if this node can manage the swarm.

        Raises:
            SwarmNotEnabledError: If the node is not part of a swarm
        """
        swarm = await self._swarm_info()
        if swarm.get("LocalNodeState") != SWARM_STATE_ACTIVE:
            raise SwarmNotEnabledError()
        return bool(swarm.get("ControlAvailable", False))

    async def list_services(self) -> list[dict[str, Any]]:
        return await self.connection.execute(lambda c: c.api.services())
