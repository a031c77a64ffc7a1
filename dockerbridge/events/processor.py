"""Container metadata enrichment for network connect events.

Connect events are queued to a fixed pool of workers so that a slow
container inspect never stalls the event stream. A full queue makes
submit wait; no event is discarded. Each worker inspects
the attached container, builds a ContainerEventMetadata record and
hands it to the VSD ingress queue. Failures drop the one event.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from dockerbridge.cache import NetworkParamsTable
from dockerbridge.client import DockerQueryClient
from dockerbridge.config import settings
from dockerbridge.events.base import NetworkConnectEvent
from dockerbridge.schemas import ContainerEventMetadata, VSDEvent, VSDEventType

logger = logging.getLogger(__name__)

POLICY_GROUP_ENV = "NUAGE-POLICY-GROUP"
ORCHESTRATION_ID_ENV = "MESOS_TASK_ID"


def check_env_var(key: str, env_vars: list[str] | None) -> tuple[str, bool]:
    """Find `key` in a KEY=value list.

    Returns:
        (value, True) for the first variable whose name is exactly key,
        ("", False) if there is none
    """
    for variable in env_vars or []:
        name, sep, value = variable.partition("=")
        if sep and name == key:
            return value, True
    return "", False


def check_policy_group(env_vars: list[str] | None) -> tuple[str, bool]:
    return check_env_var(POLICY_GROUP_ENV, env_vars)


def check_orchestration_id(env_vars: list[str] | None) -> tuple[str, bool]:
    return check_env_var(ORCHESTRATION_ID_ENV, env_vars)


def container_ip_on_network(inspect: dict[str, Any], network_id: str) -> str:
    """IP address the container holds on the given network, or ""."""
    networks = (inspect.get("NetworkSettings") or {}).get("Networks") or {}
    for nw_config in networks.values():
        if (nw_config or {}).get("NetworkID") == network_id:
            return nw_config.get("IPAddress", "")
    return ""


class ContainerEventProcessor:
    """Bounded worker pool turning connect events into VSD updates."""

    def __init__(
        self,
        query_client: DockerQueryClient,
        network_params: NetworkParamsTable,
        vsd_queue: asyncio.Queue,
        workers: int | None = None,
        queue_size: int | None = None,
    ):
        self.query_client = query_client
        self.network_params = network_params
        self.vsd_queue = vsd_queue
        self.worker_count = workers or settings.event_workers
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size or settings.event_queue_size)
        self._workers: list[asyncio.Task] = []

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"event-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.debug(f"Started {self.worker_count} event workers")

    async def submit(self, event: NetworkConnectEvent) -> None:
        """Queue an event for the workers, waiting while the queue is full."""
        await self._queue.put(event)

    async def _worker(self, index: int) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.process_event(event)
            except Exception:
                logger.exception(f"Worker {index} failed processing event for {event.container_id}")
            finally:
                self._queue.task_done()

    async def process_event(self, event: NetworkConnectEvent) -> ContainerEventMetadata | None:
        """Enrich one connect event and forward it to the VSD queue.

        Returns:
            The forwarded metadata, or None if the event was dropped
        """
        try:
            inspect = await self.query_client.inspect_container(event.container_id)
        except Exception as e:
            logger.error(f"Inspect on container {event.container_id} failed with error {e}")
            return None

        network_params = self.network_params.get(event.network_id)
        if network_params is None:
            logger.error(f"Network {event.network_id} not found in local cache")
            return None

        env_vars = (inspect.get("Config") or {}).get("Env") or []
        policy_group, _ = check_policy_group(env_vars)
        orchestration_id, _ = check_orchestration_id(env_vars)

        metadata = ContainerEventMetadata(
            name=inspect.get("Name", "").replace("/", ""),
            uuid=inspect.get("Id", ""),
            policy_group=policy_group,
            orchestration_id=orchestration_id,
            ip_address=container_ip_on_network(inspect, event.network_id),
            network_params=network_params,
        )
        await self.vsd_queue.put(VSDEvent(event_type=VSDEventType.UPDATE_CONTAINER, payload=metadata))
        logger.debug(f"Forwarded container {metadata.name} ({metadata.ip_address}) to VSD queue")
        return metadata

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        if drain:
            await self.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
