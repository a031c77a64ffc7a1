"""Docker Events API listener for network connect events.

This module subscribes to the daemon's event stream with a server-side
filter for network connect events and forwards those on plugin networks
to a callback.

The docker SDK event stream is a blocking generator, so a background
thread reads it into a queue that the async loop drains. When the
stream fails or ends the listener waits for the shared connection to
recover and subscribes again from scratch. Events raised while the
daemon was unreachable are not replayed.
"""
from __future__ import annotations

import asyncio
import logging
import queue
import threading
from datetime import datetime, timezone
from typing import Any

import docker

from dockerbridge.config import settings
from dockerbridge.connection import DockerConnection
from dockerbridge.events.base import EventCallback, EventListener, NetworkConnectEvent

logger = logging.getLogger(__name__)

EVENT_FILTERS = {
    "type": "network",
    "event": "connect",
}

# Sentinel marking the end of an event stream
_END_OF_STREAM = object()


class NetworkEventListener(EventListener):
    """Listens to the Docker Events API for network connect events.

    This listener:
    1. Subscribes to network connect events through the shared connection
    2. Keeps only events whose network driver is the plugin's
    3. Converts them to NetworkConnectEvent objects
    4. Invokes the callback for each one (the callback must not block)
    """

    def __init__(self, connection: DockerConnection, network_type: str | None = None):
        self.connection = connection
        self.network_type = network_type or settings.network_type
        self._running = False
        self._stop_event = asyncio.Event()
        self._thread_stop = threading.Event()
        self._event_queue: queue.Queue = queue.Queue()
        self._reader_thread: threading.Thread | None = None
        self._stream: Any = None
        self.subscriptions = 0

    async def start(self, callback: EventCallback) -> None:
        """Start listening for network connect events."""
        self._running = True
        self._stop_event.clear()

        try:
            while self._running and not self._stop_event.is_set():
                generation = self.connection.generation
                try:
                    await self._listen_loop(callback)
                except docker.errors.DockerException as e:
                    logger.error(f"Subscribing to docker events failed: {e}")
                    await asyncio.sleep(self.connection.reconnect_interval)
                    continue
                except Exception as e:
                    logger.error(f"Unexpected error in Docker event listener: {e}")
                    await asyncio.sleep(self.connection.reconnect_interval)
                    continue
                if not self._running or self._stop_event.is_set():
                    break
                logger.warning("Docker event stream lost, waiting for connection recovery")
                await self.connection.recover(generation)
        except asyncio.CancelledError:
            logger.info("Docker event listener cancelled")
            raise
        finally:
            self._running = False
            logger.info("Docker event listener stopped")

    def _event_reader_thread(self, events, event_queue: queue.Queue) -> None:
        """Background thread that reads Docker events and queues them."""
        try:
            for event in events:
                if self._thread_stop.is_set():
                    break
                event_queue.put(event)
        except Exception as e:
            if not self._thread_stop.is_set():
                event_queue.put(e)
        finally:
            event_queue.put(_END_OF_STREAM)

    async def _listen_loop(self, callback: EventCallback) -> None:
        """Consume one subscription until it fails, ends, or we stop."""
        events = await self.connection.execute(
            lambda c: c.events(decode=True, filters=EVENT_FILTERS)
        )
        self.subscriptions += 1
        logger.info("Subscribed to docker network connect events")

        self._thread_stop.clear()
        self._event_queue = queue.Queue()
        self._stream = events
        self._reader_thread = threading.Thread(
            target=self._event_reader_thread,
            args=(events, self._event_queue),
            daemon=True,
        )
        self._reader_thread.start()

        try:
            while self._running and not self._stop_event.is_set():
                try:
                    event = await asyncio.to_thread(self._event_queue.get, timeout=1.0)
                except queue.Empty:
                    continue

                if event is _END_OF_STREAM:
                    logger.warning("Docker events stream ended")
                    return
                if isinstance(event, Exception):
                    logger.error(f"Docker events stream failed: {event}")
                    return

                connect_event = self._parse_event(event)
                if connect_event is None:
                    continue
                try:
                    await callback(connect_event)
                except Exception as e:
                    logger.error(f"Error in event callback: {e}")
        finally:
            self._close_stream()

    def _parse_event(self, event: dict) -> NetworkConnectEvent | None:
        """Parse a Docker event into a NetworkConnectEvent.

        Returns:
            NetworkConnectEvent for connect events on plugin networks,
            None otherwise
        """
        if event.get("Type") != "network" or event.get("Action") != "connect":
            return None

        actor = event.get("Actor") or {}
        attributes = actor.get("Attributes") or {}
        if attributes.get("type") != self.network_type:
            return None

        timestamp_ns = event.get("timeNano", 0)
        if timestamp_ns:
            timestamp = datetime.fromtimestamp(timestamp_ns / 1e9, tz=timezone.utc)
        else:
            timestamp = datetime.now(timezone.utc)

        logger.debug(f"got docker event {event}")
        return NetworkConnectEvent(
            network_id=actor.get("ID", ""),
            container_id=attributes.get("container", ""),
            network_name=attributes.get("name", ""),
            driver=attributes.get("type", ""),
            timestamp=timestamp,
            attributes=dict(attributes),
        )

    def _close_stream(self) -> None:
        self._thread_stop.set()
        if self._stream is not None:
            try:
                self._stream.close()
            except Exception as e:
                logger.debug(f"Closing docker event stream failed: {e}")
            self._stream = None
        if self._reader_thread and self._reader_thread.is_alive():
            self._reader_thread.join(timeout=2.0)

    async def stop(self) -> None:
        """Stop listening for events."""
        logger.info("Stopping Docker event listener...")
        self._running = False
        self._stop_event.set()
        self._thread_stop.set()

    def is_running(self) -> bool:
        return self._running
