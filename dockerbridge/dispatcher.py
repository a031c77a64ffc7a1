"""Typed request dispatcher for the Docker bridge.

Other plugin components reach the bridge only through this module.
They enqueue a DockerRequest carrying its own reply future and await
exactly one DockerResponse. Each request is served on its own task so
a request blocked on a daemon outage does not hold up the others.

Unknown request kinds are logged and dropped without a reply; callers
are expected to bound their wait (see docker_request()).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from dockerbridge.cache import ServiceIPTable
from dockerbridge.client import DockerQueryClient
from dockerbridge.schemas import (
    ContainerEventMetadata,
    DockerRequest,
    DockerRequestType,
    DockerResponse,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any]]

# Data returned alongside an error, per request kind. An overlap check
# that fails for any reason reports an overlap.
_ERROR_DATA: dict[DockerRequestType, Any] = {
    DockerRequestType.CHECK_NETWORK_LIST: True,
    DockerRequestType.IS_SWARM_ENABLED: False,
    DockerRequestType.IS_SWARM_MANAGER: False,
    DockerRequestType.IS_SERVICE_IP: False,
}


async def docker_request(
    requests: asyncio.Queue,
    request_type: DockerRequestType,
    payload: Any = None,
    timeout: float | None = None,
) -> DockerResponse:
    """Send a request to the bridge and wait for its reply.

    Raises:
        asyncio.TimeoutError: If timeout is set and no reply arrives
    """
    request = DockerRequest(request_type=request_type, payload=payload)
    await requests.put(request)
    if timeout is None:
        return await request.reply
    return await asyncio.wait_for(request.reply, timeout)


class RequestDispatcher:
    """Serves DockerRequests from a queue until the stop signal is set."""

    def __init__(
        self,
        query_client: DockerQueryClient,
        service_ips: ServiceIPTable,
        requests: asyncio.Queue,
        stop_event: asyncio.Event,
    ):
        self.query_client = query_client
        self.service_ips = service_ips
        self.requests = requests
        self.stop_event = stop_event
        self._inflight: set[asyncio.Task] = set()
        self._handlers: dict[DockerRequestType, Handler] = {
            DockerRequestType.CHECK_NETWORK_LIST: self.query_client.check_network_list,
            DockerRequestType.NETWORK_ID_INSPECT: self.query_client.get_network_opts_from_network_id,
            DockerRequestType.POOL_ID_NETWORK_OPTS: self.query_client.get_network_opts_from_pool_id,
            DockerRequestType.CONTAINER_LIST: self._container_list,
            DockerRequestType.GET_OPTS_ALL_NETWORKS: self._opts_all_networks,
            DockerRequestType.IS_SWARM_ENABLED: self._is_swarm_enabled,
            DockerRequestType.IS_SWARM_MANAGER: self._is_swarm_manager,
            DockerRequestType.IS_SERVICE_IP: self._is_service_ip,
        }

    async def run(self) -> None:
        """Receive requests until stop_event is set."""
        stop_wait = asyncio.create_task(self.stop_event.wait())
        try:
            while not self.stop_event.is_set():
                get_request = asyncio.create_task(self.requests.get())
                done, _ = await asyncio.wait(
                    {get_request, stop_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                if get_request not in done:
                    get_request.cancel()
                    break
                task = asyncio.create_task(self.handle(get_request.result()))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)
        finally:
            stop_wait.cancel()
        logger.info("Request dispatcher stopped")

    async def handle(self, request: DockerRequest) -> None:
        """Serve one request and publish its reply."""
        logger.debug(f"Received a docker request {request.request_type}")
        try:
            kind = DockerRequestType(request.request_type)
        except ValueError:
            logger.error(f"Unknown docker request type {request.request_type!r}, dropping")
            return

        try:
            data = await self._handlers[kind](request.payload)
            response = DockerResponse(data=data)
        except Exception as e:
            logger.error(f"Docker request {kind.value} failed: {e}")
            response = DockerResponse(data=_ERROR_DATA.get(kind), error=e)

        if request.reply.done():
            # Caller gave up waiting
            logger.debug(f"Reply for {kind.value} discarded, caller no longer waiting")
            return
        request.reply.set_result(response)
        logger.debug(f"Served docker request {kind.value}")

    async def _container_list(self, _payload: Any) -> list[dict[str, Any]]:
        return await self.query_client.list_containers()

    async def _opts_all_networks(self, _payload: Any):
        return self.query_client.get_opts_all_networks()

    async def _is_swarm_enabled(self, _payload: Any) -> bool:
        return await self.query_client.is_swarm_enabled()

    async def _is_swarm_manager(self, _payload: Any) -> bool:
        return await self.query_client.is_swarm_manager()

    async def _is_service_ip(self, payload: ContainerEventMetadata) -> bool:
        return await self.service_ips.is_service_ip(payload.network_params, payload.ip_address)

    async def drain(self) -> None:
        """Wait for in-flight requests to finish."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
