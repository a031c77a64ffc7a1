"""Base interface for Docker event listeners.

This module defines the event type produced by listeners and the
abstract interface they implement.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable


@dataclass
class NetworkConnectEvent:
    """A container was connected to a plugin network.

    Attributes:
        network_id: Docker network ID (the event actor)
        container_id: ID of the container that was attached
        network_name: Docker network name
        driver: Network driver reported by the event
        timestamp: When the event occurred
        attributes: Raw actor attributes from the daemon
    """

    network_id: str
    container_id: str
    network_name: str
    driver: str
    timestamp: datetime
    attributes: dict[str, str] = field(default_factory=dict)


# Type alias for event callbacks
EventCallback = Callable[[NetworkConnectEvent], Awaitable[None]]


class EventListener(ABC):
    """Abstract base class for Docker event listeners.

    Implementations should:
    1. Filter events down to the plugin's own networks
    2. Parse daemon events into NetworkConnectEvent objects
    3. Resubscribe after losing the daemon connection
    4. Be cancellable via the stop() method
    """

    @abstractmethod
    async def start(self, callback: EventCallback) -> None:
        """Start listening for events.

        Runs until stop() is called, invoking callback for every
        matching event.
        """

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening and release resources."""

    @abstractmethod
    def is_running(self) -> bool:
        """Check if the listener is currently running."""
