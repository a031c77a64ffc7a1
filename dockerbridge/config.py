"""Docker bridge configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings


# Driver name Docker reports for plugin networks, keyed by plugin version.
# v1 is the legacy socket plugin, v2 the managed plugin.
DEFAULT_NETWORK_TYPES = {
    "v1": "nuage",
    "v2": "nuage/nuage:latest",
}


class Settings(BaseSettings):
    """Bridge settings loaded from environment variables."""

    # Identifies this node in structured log output
    node_name: str = ""

    # Docker settings
    docker_socket: str = "unix:///var/run/docker.sock"
    docker_timeout: int = 60  # seconds per API call

    # Plugin version selects which network driver string we filter on
    plugin_version: str = "v2"
    docker_network_types: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_NETWORK_TYPES)
    )

    # Connection recovery
    reconnect_interval: float = 3.0  # seconds between reconnect attempts

    # Service IP table refresh (swarm managers only)
    service_ip_refresh_interval: float = 30.0

    # Event processing worker pool
    event_workers: int = 8
    event_queue_size: int = 1024

    # Logging configuration
    log_format: str = "json"  # "json" or "text"
    log_level: str = "INFO"

    @property
    def network_type(self) -> str:
        """Docker driver name for the configured plugin version."""
        try:
            return self.docker_network_types[self.plugin_version]
        except KeyError:
            raise ValueError(
                f"Unknown plugin version {self.plugin_version!r}, "
                f"expected one of {sorted(self.docker_network_types)}"
            ) from None

    class Config:
        env_prefix = "DOCKERBRIDGE_"


settings = Settings()
