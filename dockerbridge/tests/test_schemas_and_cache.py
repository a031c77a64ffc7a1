"""Tests for network options, pool IDs and the bridge caches.

These tests verify:
1. Pool IDs depend only on the identity fields
2. NetworkParamsTable stores copies and snapshots consistently
3. ServiceIPTable rebuilds wholesale and answers membership lookups
"""

import asyncio

import pytest

from dockerbridge.cache import NetworkParamsTable, ServiceIPTable
from dockerbridge.errors import NetworkNotFoundError
from dockerbridge.schemas import NetworkParams


# --- Pool IDs ---

def test_pool_id_is_deterministic(params):
    assert params.pool_id() == params.pool_id()
    assert len(params.pool_id()) == 32


def test_pool_id_ignores_construction_order():
    a = NetworkParams(organization="A", domain="B", zone="C", subnet_name="D", user="E")
    b = NetworkParams(user="E", subnet_name="D", zone="C", domain="B", organization="A")

    assert a.pool_id() == b.pool_id()


def test_pool_id_ignores_addressing(params):
    other = params.model_copy(update={"subnet_cidr": "192.168.0.0/16", "gateway": ""})

    assert other.pool_id() == params.pool_id()
    assert other.same_network_opts(params)


def test_pool_id_differs_for_shifted_fields():
    a = NetworkParams(organization="ab", domain="c")
    b = NetworkParams(organization="a", domain="bc")

    assert a.pool_id() != b.pool_id()


def test_from_ipam_options_handles_missing_options():
    params = NetworkParams.from_ipam_options(None)

    assert params.identity() == ("", "", "", "", "")


def test_from_ipam_options_maps_keys():
    params = NetworkParams.from_ipam_options(
        {"organization": "Acme", "domain": "d", "zone": "z", "subnet": "s", "user": "u"}
    )

    assert params.subnet_name == "s"
    assert params.identity() == ("Acme", "d", "z", "s", "u")


# --- NetworkParamsTable ---

def test_params_table_round_trip(params):
    table = NetworkParamsTable()
    table.put("net1", params)

    assert table.get("net1") == params
    assert table.get("missing") is None


def test_params_table_stores_copies(params):
    table = NetworkParamsTable()
    table.put("net1", params)

    params.zone = "changed"
    fetched = table.get("net1")
    fetched.domain = "changed"

    assert table.get("net1").zone == "zone1"
    assert table.get("net1").domain == "dom1"


def test_params_table_put_replaces_whole_value(params):
    table = NetworkParamsTable()
    table.put("net1", params)
    table.put("net1", NetworkParams(organization="Other"))

    assert table.get("net1") == NetworkParams(organization="Other")


def test_params_table_keys_and_snapshot(params):
    table = NetworkParamsTable()
    table.put("net1", params)
    table.put("net2", NetworkParams(organization="Other"))

    assert sorted(table.keys()) == ["net1", "net2"]
    snapshot = table.snapshot()
    assert snapshot["net1"] == params
    assert len(table) == 2


# --- ServiceIPTable ---

def _service(*vips):
    return {"Endpoint": {"VirtualIPs": [{"NetworkID": n, "Addr": a} for n, a in vips]}}


async def _unexpected_resolver(network_id):
    raise AssertionError(f"resolver called for {network_id}")


@pytest.mark.asyncio
async def test_service_ip_lookup(params):
    table = NetworkParamsTable()
    table.put("net1", params)
    service_ips = ServiceIPTable(table)

    await service_ips.rebuild_from(
        [_service(("net1", "10.0.0.2/24"), ("net1", ""))], _unexpected_resolver
    )

    assert await service_ips.is_service_ip(params, "10.0.0.2")
    assert not await service_ips.is_service_ip(params, "10.0.0.3")
    assert not await service_ips.is_service_ip(NetworkParams(organization="Unknown"), "10.0.0.2")
    assert await service_ips.get_set(params.pool_id()) == {"10.0.0.2"}


@pytest.mark.asyncio
async def test_service_ip_rebuild_clears_previous_entries(params):
    table = NetworkParamsTable()
    other = NetworkParams(organization="Other")
    table.put("net1", params)
    table.put("net2", other)
    service_ips = ServiceIPTable(table)

    await service_ips.rebuild_from([_service(("net1", "10.0.0.2"))], _unexpected_resolver)
    await service_ips.rebuild_from([_service(("net2", "10.1.0.2"))], _unexpected_resolver)

    assert await service_ips.get_set(params.pool_id()) is None
    assert await service_ips.get_set(other.pool_id()) == {"10.1.0.2"}


@pytest.mark.asyncio
async def test_service_ip_rebuild_resolves_unknown_networks(params):
    table = NetworkParamsTable()
    service_ips = ServiceIPTable(table)
    resolved = []

    async def resolver(network_id):
        resolved.append(network_id)
        table.put(network_id, params)
        return params

    await service_ips.rebuild_from(
        [_service(("net9", "10.0.0.7/24")), _service(("net9", "10.0.0.8/24"))], resolver
    )

    assert resolved == ["net9"]
    assert await service_ips.get_set(params.pool_id()) == {"10.0.0.7", "10.0.0.8"}


@pytest.mark.asyncio
async def test_service_ip_rebuild_failure_propagates(params):
    service_ips = ServiceIPTable(NetworkParamsTable())

    async def resolver(network_id):
        raise NetworkNotFoundError(network_id)

    with pytest.raises(NetworkNotFoundError):
        await service_ips.rebuild_from([_service(("gone", "10.0.0.2"))], resolver)


@pytest.mark.asyncio
async def test_service_ip_readers_wait_for_rebuild(params):
    """A lookup issued mid-rebuild sees the completed table."""
    table = NetworkParamsTable()
    service_ips = ServiceIPTable(table)
    release = asyncio.Event()

    async def slow_resolver(network_id):
        await release.wait()
        table.put(network_id, params)
        return params

    rebuild = asyncio.create_task(
        service_ips.rebuild_from([_service(("net1", "10.0.0.2"))], slow_resolver)
    )
    await asyncio.sleep(0)
    lookup = asyncio.create_task(service_ips.is_service_ip(params, "10.0.0.2"))
    await asyncio.sleep(0)
    assert not lookup.done()

    release.set()
    await rebuild

    assert await lookup is True
