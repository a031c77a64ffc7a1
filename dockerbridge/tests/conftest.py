"""Shared pytest fixtures for bridge tests."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from dockerbridge.cache import NetworkParamsTable
from dockerbridge.client import DockerQueryClient
from dockerbridge.connection import DockerConnection
from dockerbridge.schemas import NetworkParams

NETWORK_TYPE = "nuage"


def connection_error() -> requests.exceptions.ConnectionError:
    return requests.exceptions.ConnectionError(
        "('Connection aborted.', ConnectionRefusedError(111, 'Connection refused'))"
    )


def make_network(network_id: str, subnet: str, gateway: str = "", **options) -> dict:
    """Network dict shaped like the docker low-level API output."""
    ipam_options = {
        "organization": "Acme",
        "domain": "dom1",
        "zone": "zone1",
        "subnet": "sub1",
        "user": "admin",
    }
    ipam_options.update(options)
    return {
        "Id": network_id,
        "Driver": NETWORK_TYPE,
        "IPAM": {
            "Driver": NETWORK_TYPE,
            "Options": ipam_options,
            "Config": [{"Subnet": subnet, "Gateway": gateway}],
        },
    }


@pytest.fixture
def params() -> NetworkParams:
    return NetworkParams(
        organization="Acme",
        domain="dom1",
        zone="zone1",
        subnet_name="sub1",
        user="admin",
        subnet_cidr="10.0.0.0/24",
        gateway="10.0.0.1",
    )


@pytest.fixture
def docker_client() -> MagicMock:
    """Mock docker.DockerClient; tests configure client.api.* return values."""
    client = MagicMock(name="DockerClient")
    client.ping.return_value = True
    return client


@pytest.fixture
def client_factory(docker_client):
    return MagicMock(return_value=docker_client)


@pytest.fixture
async def connection(client_factory) -> DockerConnection:
    conn = DockerConnection(
        endpoint="unix:///var/run/docker.sock",
        client_factory=client_factory,
        reconnect_interval=0,
    )
    await conn.connect()
    return conn


@pytest.fixture
def params_table() -> NetworkParamsTable:
    return NetworkParamsTable()


@pytest.fixture
def query_client(connection, params_table) -> DockerQueryClient:
    return DockerQueryClient(connection, params_table, network_type=NETWORK_TYPE)
