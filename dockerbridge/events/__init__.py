"""Docker event handling for real-time container attach updates.

This package watches the daemon's event stream for containers joining
plugin networks and turns those events into metadata records for the
VSD side:
- NetworkEventListener: subscribes to network connect events
- ContainerEventProcessor: enriches events on a bounded worker pool
"""

from dockerbridge.events.base import EventCallback, EventListener, NetworkConnectEvent
from dockerbridge.events.docker_events import NetworkEventListener
from dockerbridge.events.processor import (
    ContainerEventProcessor,
    check_env_var,
    check_orchestration_id,
    check_policy_group,
)

__all__ = [
    "EventCallback",
    "EventListener",
    "NetworkConnectEvent",
    "NetworkEventListener",
    "ContainerEventProcessor",
    "check_env_var",
    "check_orchestration_id",
    "check_policy_group",
]
