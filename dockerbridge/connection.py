"""Resilient Docker daemon connection.

DockerConnection owns the live docker SDK client and the recovery
protocol every other component relies on:

- execute() runs a blocking SDK call in a worker thread. If the call
  fails because the daemon is unreachable, the caller waits for
  recovery and the call is retried against the new client. Other
  errors propagate to the caller unchanged.
- recover() is single-flight. All callers that fail against the same
  client generation wait on one shared reconnect task. Callers whose
  failure predates the current generation retry immediately.

The client is replaced on reconnect, never mutated, so operations
receive the client as an argument and must not hold on to it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

import docker
import requests

from dockerbridge.config import settings
from dockerbridge.errors import is_connection_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClientFactory = Callable[..., docker.DockerClient]


class DockerConnection:
    """Docker client handle with transparent reconnect-and-retry.

    Attributes:
        endpoint: Docker daemon URL (e.g. unix:///var/run/docker.sock)
        generation: Incremented every time the client is replaced
    """

    def __init__(
        self,
        endpoint: str | None = None,
        client_factory: ClientFactory | None = None,
        reconnect_interval: float | None = None,
        timeout: int | None = None,
    ):
        self.endpoint = endpoint or settings.docker_socket
        self.reconnect_interval = (
            settings.reconnect_interval if reconnect_interval is None else reconnect_interval
        )
        self.timeout = timeout or settings.docker_timeout
        self._client_factory = client_factory or docker.DockerClient
        self._client: docker.DockerClient | None = None
        self.generation = 0
        self.recoveries = 0
        self._recovery: asyncio.Task | None = None

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            raise RuntimeError("Docker connection not established, call connect() first")
        return self._client

    def _new_client(self) -> docker.DockerClient:
        return self._client_factory(base_url=self.endpoint, timeout=self.timeout)

    async def connect(self) -> docker.DockerClient:
        """Establish the initial client.

        Raises:
            docker.errors.DockerException: If the client cannot be created
        """
        try:
            self._client = await asyncio.to_thread(self._new_client)
        except docker.errors.DockerException as e:
            logger.error(f"Connecting to docker daemon at {self.endpoint} failed: {e}")
            raise
        logger.debug(f"Connected to docker daemon at {self.endpoint}")
        return self._client

    @staticmethod
    def probe(client: docker.DockerClient) -> bool:
        """Blocking liveness check: True if the daemon answers a ping."""
        try:
            return bool(client.ping())
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            logger.debug(f"Docker ping failed: {e}")
            return False

    async def execute(self, operation: Callable[[docker.DockerClient], T]) -> T:
        """Run operation(client) in a thread, retrying across reconnects.

        Connectivity failures are never surfaced: the call blocks until
        the daemon is reachable again. Any other exception is raised
        to the caller without retry.
        """
        while True:
            generation = self.generation
            client = self.client
            try:
                return await asyncio.to_thread(operation, client)
            except Exception as e:
                if not is_connection_error(e):
                    raise
                logger.error(f"Docker call failed, daemon unreachable: {e}")
            await self.recover(generation)

    async def recover(self, generation: int | None = None) -> None:
        """Wait until a client newer than `generation` is usable.

        Args:
            generation: The client generation the caller saw fail. When
                omitted the current generation is assumed.
        """
        if generation is None:
            generation = self.generation
        if generation != self.generation:
            # Someone already replaced the client the caller failed on
            return
        if self._recovery is None or self._recovery.done():
            self._recovery = asyncio.create_task(self._reconnect_loop())
        # Shield so one cancelled waiter does not abort recovery for all
        await asyncio.shield(self._recovery)

    async def _reconnect_loop(self) -> None:
        self.recoveries += 1

        if self._client is not None and await asyncio.to_thread(self.probe, self._client):
            logger.info("Docker daemon still answers ping, resuming")
            return

        logger.error(
            f"Lost connection to docker daemon at {self.endpoint}, "
            f"retrying every {self.reconnect_interval}s"
        )
        while True:
            try:
                client = await asyncio.to_thread(self._new_client)
            except Exception as e:
                logger.debug(f"Reconnect attempt failed: {e}")
            else:
                if await asyncio.to_thread(self.probe, client):
                    self._replace_client(client)
                    logger.info("Docker connection is now active")
                    return
                self._close_quietly(client)
            await asyncio.sleep(self.reconnect_interval)

    def _replace_client(self, client: docker.DockerClient) -> None:
        old, self._client = self._client, client
        self.generation += 1
        if old is not None:
            self._close_quietly(old)

    @staticmethod
    def _close_quietly(client: Any) -> None:
        try:
            client.close()
        except Exception as e:
            logger.debug(f"Closing stale docker client failed: {e}")

    async def close(self) -> None:
        if self._recovery is not None and not self._recovery.done():
            self._recovery.cancel()
        if self._client is not None:
            self._close_quietly(self._client)
            self._client = None
