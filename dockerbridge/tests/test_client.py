"""Tests for the docker query client.

These tests verify:
1. Network overlap detection (containment, identity match, fail closed)
2. Network lookups by ID and pool ID, and cache population
3. Swarm state checks
"""

import pytest

from conftest import NETWORK_TYPE, connection_error, make_network
from dockerbridge.errors import (
    InvalidSubnetError,
    NetworkNotFoundError,
    NetworkOverlapError,
    SwarmNotEnabledError,
)


# --- Overlap detection ---

@pytest.mark.asyncio
async def test_overlap_with_same_options_and_contained_subnet(query_client, docker_client, params):
    docker_client.api.networks.return_value = [make_network("n1", "10.0.0.0/24")]
    candidate = params.model_copy(update={"subnet_cidr": "10.0.0.0/25"})

    with pytest.raises(NetworkOverlapError):
        await query_client.check_network_list(candidate)

    docker_client.api.networks.assert_called_with(filters={"driver": NETWORK_TYPE})


@pytest.mark.asyncio
async def test_overlap_when_candidate_contains_existing(query_client, docker_client, params):
    docker_client.api.networks.return_value = [make_network("n1", "10.0.0.128/25")]
    candidate = params.model_copy(update={"subnet_cidr": "10.0.0.0/16"})

    with pytest.raises(NetworkOverlapError):
        await query_client.check_network_list(candidate)


@pytest.mark.asyncio
async def test_no_overlap_for_disjoint_subnet(query_client, docker_client, params):
    docker_client.api.networks.return_value = [make_network("n1", "10.0.0.0/24")]
    candidate = params.model_copy(update={"subnet_cidr": "10.1.0.0/24"})

    assert await query_client.check_network_list(candidate) is False


@pytest.mark.asyncio
async def test_no_overlap_for_different_options(query_client, docker_client, params):
    docker_client.api.networks.return_value = [
        make_network("n1", "10.0.0.0/24", organization="Other")
    ]
    candidate = params.model_copy(update={"subnet_cidr": "10.0.0.0/24"})

    assert await query_client.check_network_list(candidate) is False


@pytest.mark.asyncio
async def test_overlap_check_rejects_bad_candidate_cidr(query_client, docker_client, params):
    docker_client.api.networks.return_value = []
    candidate = params.model_copy(update={"subnet_cidr": "not-a-subnet"})

    with pytest.raises(InvalidSubnetError):
        await query_client.check_network_list(candidate)


@pytest.mark.asyncio
async def test_overlap_check_rejects_bad_existing_cidr(query_client, docker_client, params):
    docker_client.api.networks.return_value = [make_network("n1", "10.0.0.300/24")]

    with pytest.raises(InvalidSubnetError):
        await query_client.check_network_list(params)


# --- Network lookups ---

@pytest.mark.asyncio
async def test_get_network_opts_from_network_id_caches(query_client, docker_client, params_table):
    docker_client.api.inspect_network.return_value = make_network("n1", "10.0.0.0/24", "10.0.0.1")

    result = await query_client.get_network_opts_from_network_id("n1")

    assert result.organization == "Acme"
    assert result.subnet_cidr == "10.0.0.0/24"
    assert result.gateway == "10.0.0.1"
    assert params_table.get("n1") == result


@pytest.mark.asyncio
async def test_inspect_network_without_ipam_is_not_found(query_client, docker_client, params_table):
    network = make_network("n1", "10.0.0.0/24")
    network["IPAM"]["Config"] = []
    docker_client.api.inspect_network.return_value = network

    with pytest.raises(NetworkNotFoundError):
        await query_client.get_network_opts_from_network_id("n1")

    assert params_table.get("n1") is None
    docker_client.api.inspect_network.assert_called_once_with("n1")


@pytest.mark.asyncio
async def test_pool_id_resolution_first_match(query_client, docker_client, params):
    no_ipam = make_network("n0", "10.9.0.0/24")
    no_ipam["IPAM"]["Options"] = None
    docker_client.api.networks.return_value = [
        no_ipam,
        make_network("n1", "10.0.0.0/24", organization="Other"),
        make_network("n2", "10.0.0.0/24"),
        make_network("n3", "10.5.0.0/24"),
    ]

    result = await query_client.get_network_opts_from_pool_id(params.pool_id())

    assert result.same_network_opts(params)
    assert result.subnet_cidr == "10.0.0.0/24"


@pytest.mark.asyncio
async def test_pool_id_resolution_not_found(query_client, docker_client):
    docker_client.api.networks.return_value = [make_network("n1", "10.0.0.0/24")]

    with pytest.raises(NetworkNotFoundError):
        await query_client.get_network_opts_from_pool_id("0" * 32)


@pytest.mark.asyncio
async def test_build_network_info_cache(query_client, docker_client, params_table):
    docker_client.api.networks.return_value = [
        make_network("n1", "10.0.0.0/24", "10.0.0.1"),
        make_network("n2", "10.1.0.0/24", "10.1.0.1", zone="zone2"),
    ]

    await query_client.build_network_info_cache()

    assert sorted(params_table.keys()) == ["n1", "n2"]
    assert params_table.get("n2").zone == "zone2"
    assert params_table.get("n2").gateway == "10.1.0.1"
    assert query_client.get_opts_all_networks() == params_table.snapshot()


@pytest.mark.asyncio
async def test_list_containers_retries_through_outage(query_client, docker_client):
    docker_client.api.containers.side_effect = [connection_error(), [{"Id": "c1"}]]

    containers = await query_client.list_containers()

    assert containers == [{"Id": "c1"}]
    assert docker_client.api.containers.call_count == 2


# --- Swarm ---

@pytest.mark.asyncio
async def test_swarm_manager(query_client, docker_client):
    docker_client.api.info.return_value = {
        "Swarm": {"LocalNodeState": "active", "ControlAvailable": True}
    }

    assert await query_client.is_swarm_enabled() is True
    assert await query_client.is_swarm_manager() is True


@pytest.mark.asyncio
async def test_swarm_worker(query_client, docker_client):
    docker_client.api.info.return_value = {
        "Swarm": {"LocalNodeState": "active", "ControlAvailable": False}
    }

    assert await query_client.is_swarm_manager() is False


@pytest.mark.asyncio
async def test_swarm_not_enabled(query_client, docker_client):
    docker_client.api.info.return_value = {"Swarm": {"LocalNodeState": "inactive"}}

    assert await query_client.is_swarm_enabled() is False
    with pytest.raises(SwarmNotEnabledError):
        await query_client.is_swarm_manager()


@pytest.mark.asyncio
async def test_default_network_type_comes_from_settings(connection, params_table):
    from dockerbridge.client import DockerQueryClient
    from dockerbridge.config import settings

    client = DockerQueryClient(connection, params_table)

    assert client.network_type == settings.network_type
