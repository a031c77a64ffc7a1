"""Docker bridge lifecycle.

DockerBridge is the context object the plugin process constructs once.
It owns the daemon connection and both caches, and runs the concurrent
pieces that share them:

    ┌──────────────────┐   requests   ┌───────────────────┐
    │ plugin components│─────────────▶│ RequestDispatcher │──┐
    └──────────────────┘◀─── replies ─└───────────────────┘  │
                                                             ▼
    ┌──────────────────┐  connect ev. ┌───────────────────┐  ┌──────────────────┐
    │ NetworkEvent-    │─────────────▶│ ContainerEvent-   │─▶│ DockerQueryClient│
    │ Listener         │              │ Processor (pool)  │  │ + caches         │
    └──────────────────┘              └─────────┬─────────┘  └────────┬─────────┘
                                                │ VSD events          │
                                                ▼                     ▼
                                         vsd_queue            DockerConnection
"""

from __future__ import annotations

import asyncio
import logging

from dockerbridge.cache import NetworkParamsTable, ServiceIPTable
from dockerbridge.client import DockerQueryClient
from dockerbridge.config import Settings, settings as default_settings
from dockerbridge.connection import ClientFactory, DockerConnection
from dockerbridge.dispatcher import RequestDispatcher
from dockerbridge.errors import SwarmNotEnabledError
from dockerbridge.events.docker_events import NetworkEventListener
from dockerbridge.events.processor import ContainerEventProcessor

logger = logging.getLogger(__name__)


class DockerBridge:
    """Bridges the Docker daemon to the plugin's SDN control plane.

    Args:
        requests: Queue of DockerRequest objects from other components
        vsd_queue: Queue receiving VSDEvent records
        stop_event: Set by the host process to shut the bridge down
        config: Settings to use (defaults to the module settings)
        client_factory: Builds docker clients, for tests
    """

    def __init__(
        self,
        requests: asyncio.Queue,
        vsd_queue: asyncio.Queue,
        stop_event: asyncio.Event | None = None,
        config: Settings | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.settings = config or default_settings
        self.stop_event = stop_event or asyncio.Event()
        network_type = self.settings.network_type

        self.connection = DockerConnection(
            endpoint=self.settings.docker_socket,
            client_factory=client_factory,
            reconnect_interval=self.settings.reconnect_interval,
            timeout=self.settings.docker_timeout,
        )
        self.network_params = NetworkParamsTable()
        self.service_ips = ServiceIPTable(self.network_params)
        self.query_client = DockerQueryClient(self.connection, self.network_params, network_type)
        self.listener = NetworkEventListener(self.connection, network_type)
        self.processor = ContainerEventProcessor(
            self.query_client,
            self.network_params,
            vsd_queue,
            workers=self.settings.event_workers,
            queue_size=self.settings.event_queue_size,
        )
        self.dispatcher = RequestDispatcher(
            self.query_client, self.service_ips, requests, self.stop_event
        )
        self._listener_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None

    async def refresh_service_ips(self) -> bool:
        """Rebuild the service IP table if this node is a swarm manager.

        Nodes that are not managers, or have left the swarm, get an
        empty table.

        Returns:
            True if the table was rebuilt from the swarm's services
        """
        resolver = self.query_client.get_network_opts_from_network_id
        try:
            manager = await self.query_client.is_swarm_manager()
        except SwarmNotEnabledError:
            manager = False
        if not manager:
            await self.service_ips.rebuild_from([], resolver)
            return False

        services = await self.query_client.list_services()
        await self.service_ips.rebuild_from(services, resolver)
        return True

    async def _service_ip_refresh_loop(self) -> None:
        interval = self.settings.service_ip_refresh_interval
        while not self.stop_event.is_set():
            try:
                await self.refresh_service_ips()
            except Exception as e:
                logger.error(f"Building service IP cache failed: {e}")
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def _warm_network_cache(self) -> None:
        try:
            await self.query_client.build_network_info_cache()
        except Exception as e:
            logger.error(f"Fetching network list from docker failed with error {e}")

    async def start(self) -> None:
        """Run the bridge until the stop signal is set."""
        logger.info("Starting docker bridge")
        await self.connection.connect()
        await self._warm_network_cache()

        self.processor.start()
        self._refresh_task = asyncio.create_task(
            self._service_ip_refresh_loop(), name="service-ip-refresh"
        )
        self._listener_task = asyncio.create_task(
            self.listener.start(self.processor.submit), name="docker-events"
        )
        try:
            await self.dispatcher.run()
        finally:
            await self.shutdown()

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self.stop_event.set()

    async def shutdown(self) -> None:
        """Stop background tasks and let in-flight work finish."""
        self.stop_event.set()
        await self.listener.stop()
        # The listener may be parked waiting for recovery; the refresh
        # loop sees the stop signal and finishes its current rebuild.
        if self._listener_task is not None:
            self._listener_task.cancel()
            await asyncio.gather(self._listener_task, return_exceptions=True)
        if self._refresh_task is not None:
            await asyncio.gather(self._refresh_task, return_exceptions=True)
        await self.processor.stop(drain=True)
        await self.dispatcher.drain()
        await self.connection.close()
        logger.info("Docker bridge stopped")
