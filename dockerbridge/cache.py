"""In-memory caches of Docker network state.

NetworkParamsTable maps Docker network IDs to their SDN NetworkParams.
ServiceIPTable maps pool IDs to the set of swarm service virtual IPs
allocated on that network. Neither is persisted; both are rebuilt from
the daemon.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Iterable

from dockerbridge.schemas import NetworkParams

logger = logging.getLogger(__name__)

NetworkResolver = Callable[[str], Awaitable[NetworkParams]]


class NetworkParamsTable:
    """Thread-safe network ID -> NetworkParams mapping.

    Values are copied on the way in and out so no caller ever holds a
    reference to a stored entry.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._table: dict[str, NetworkParams] = {}

    def get(self, network_id: str) -> NetworkParams | None:
        with self._lock:
            params = self._table.get(network_id)
        return params.model_copy() if params is not None else None

    def put(self, network_id: str, params: NetworkParams) -> None:
        with self._lock:
            self._table[network_id] = params.model_copy()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._table)

    def snapshot(self) -> dict[str, NetworkParams]:
        with self._lock:
            return {network_id: params.model_copy() for network_id, params in self._table.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._table)


class ServiceIPTable:
    """Pool ID -> set of service virtual IPs.

    A rebuild clears and repopulates the table under one lock, and
    lookups take the same lock, so readers see either the previous
    generation or the complete new one.
    """

    def __init__(self, params_table: NetworkParamsTable):
        self._params_table = params_table
        self._lock = asyncio.Lock()
        self._table: dict[str, set[str]] = {}

    async def get_set(self, pool_id: str) -> set[str] | None:
        async with self._lock:
            ips = self._table.get(pool_id)
            return set(ips) if ips is not None else None

    async def is_service_ip(self, params: NetworkParams, ip: str) -> bool:
        """True only if ip is a service VIP on the network described by params."""
        async with self._lock:
            return ip in self._table.get(params.pool_id(), ())

    async def rebuild_from(
        self,
        services: Iterable[dict[str, Any]],
        resolver: NetworkResolver,
    ) -> None:
        """Replace the table with the VIPs of the given swarm services.

        Args:
            services: Service dicts as returned by the Docker services API
            resolver: Coroutine that fetches (and caches) NetworkParams
                for a network ID missing from the params table

        Raises:
            Whatever resolver raises. The table is left holding the
            entries added before the failure; the next rebuild starts
            from scratch.
        """
        async with self._lock:
            self._table.clear()
            for service in services:
                endpoint = service.get("Endpoint") or {}
                for vip in endpoint.get("VirtualIPs") or []:
                    address = vip.get("Addr", "")
                    if not address:
                        continue
                    network_id = vip.get("NetworkID", "")
                    params = self._params_table.get(network_id)
                    if params is None:
                        params = await resolver(network_id)
                    # Swarm reports VIPs in CIDR form (10.0.0.2/24)
                    ip = address.split("/", 1)[0]
                    self._table.setdefault(params.pool_id(), set()).add(ip)
            logger.debug(f"Service IP table rebuilt with {len(self._table)} pool(s)")
