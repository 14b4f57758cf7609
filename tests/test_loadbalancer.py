"""Tests for the allocation reconciler (Get / Ensure / Update / EnsureDeleted)."""

import threading

import pytest

from pnap_ccm.core.ip_blocks import BlockFilter
from pnap_ccm.core.loadbalancer import (
    LoadBalancerReconciler,
    ServiceLocks,
    derive_service_ip,
    ip_in_block,
)
from pnap_ccm.core.nodes import parse_selector
from pnap_ccm.exceptions import ConfigurationError, ConflictError, ValidationError
from pnap_ccm.schemas.provider import IpBlock
from pnap_ccm.schemas.service import Node, Service

from .conftest import CLUSTER_ID, LOCATION, NETWORK_ID

SERVICE_TAGS = {
    "usage": "cloud-provider-phoenixnap-auto",
    "cluster": CLUSTER_ID,
    "service": "ns1.svc-a",
}


class TestServiceAddress:
    def test_first_block(self):
        assert derive_service_ip("10.0.0.0/29") == "10.0.0.3"

    def test_offset_from_network_address(self):
        assert derive_service_ip("192.168.1.8/29") == "192.168.1.11"

    def test_host_bits_are_ignored(self):
        assert derive_service_ip("10.0.0.5/29") == "10.0.0.3"

    def test_too_small_block(self):
        with pytest.raises(ValidationError):
            derive_service_ip("10.0.0.0/30")

    def test_unparseable_cidr(self):
        with pytest.raises(ValidationError):
            derive_service_ip("not-a-cidr")

    def test_ip_in_block(self):
        block = IpBlock(id="b1", cidr="10.0.0.0/29")
        assert ip_in_block("10.0.0.3", block)
        assert not ip_in_block("10.0.0.9", block)

    def test_ip_in_block_invalid_ip(self):
        with pytest.raises(ValidationError):
            ip_in_block("10.0.0.300", IpBlock(id="b1", cidr="10.0.0.0/29"))


class TestConstruction:
    def test_location_required(self, registry, network, announcer, store):
        with pytest.raises(ConfigurationError):
            LoadBalancerReconciler(registry, network, announcer, store, NETWORK_ID, location="")

    def test_network_required(self, registry, network, announcer, store):
        with pytest.raises(ConfigurationError):
            LoadBalancerReconciler(registry, network, announcer, store, "", location=LOCATION)


class TestEnsureLoadBalancer:
    def test_end_to_end_first_allocation(self, reconciler, provider, store, announcer, make_service, nodes):
        service = make_service()

        status = reconciler.ensure_load_balancer(service, nodes)

        assert [i.ip for i in status.ingress] == ["10.0.0.3"]
        assert store.get_service("ns1", "svc-a").load_balancer_ip == "10.0.0.3"

        assert len(provider.blocks) == 1
        block = next(iter(provider.blocks.values()))
        assert block["cidr"] == "10.0.0.0/29"
        assert block["location"] == LOCATION
        assert provider.block_tags(block["id"]) == SERVICE_TAGS
        assert block["assignedResourceId"] == NETWORK_ID
        assert block["assignedResourceType"] == "public-network"

        ip, servers = announcer.announcement("ns1", "svc-a")
        assert ip == "10.0.0.3"
        assert servers == ["srv-1", "srv-2", "srv-3"]

    def test_idempotent_when_bound(self, reconciler, provider, store, make_service, nodes):
        reconciler.ensure_load_balancer(make_service(), nodes)
        writes_before = len(provider.writes())

        bound = store.get_service("ns1", "svc-a")
        status = reconciler.ensure_load_balancer(bound, nodes)

        assert [i.ip for i in status.ingress] == ["10.0.0.3"]
        assert len(provider.writes()) == writes_before
        assert len(provider.blocks) == 1

    def test_reuses_existing_unattached_block(self, reconciler, provider, make_service, nodes):
        existing = provider.add_block(tags=SERVICE_TAGS)

        status = reconciler.ensure_load_balancer(make_service(), nodes)

        assert [i.ip for i in status.ingress] == ["10.0.0.3"]
        assert list(provider.blocks) == [existing["id"]]
        assert existing["assignedResourceId"] == NETWORK_ID

    def test_keeps_recorded_ip_inside_block(self, reconciler, provider, store, make_service, nodes):
        provider.add_block(tags=SERVICE_TAGS)
        service = make_service(load_balancer_ip="10.0.0.5")

        status = reconciler.ensure_load_balancer(service, nodes)

        assert [i.ip for i in status.ingress] == ["10.0.0.5"]
        assert store.get_service("ns1", "svc-a").load_balancer_ip == "10.0.0.5"

    def test_recorded_ip_outside_block(self, reconciler, provider, make_service, nodes):
        block = provider.add_block(tags=SERVICE_TAGS)
        service = make_service(load_balancer_ip="192.168.0.3")
        provider.requests.clear()

        with pytest.raises(ValidationError):
            reconciler.ensure_load_balancer(service, nodes)
        assert provider.writes() == []
        assert block["assignedResourceId"] is None
        assert block["status"] == "unassigned"

    def test_unparseable_recorded_ip_leaves_block_unattached(self, reconciler, provider, make_service, nodes):
        block = provider.add_block(tags=SERVICE_TAGS)
        service = make_service(load_balancer_ip="10.0.0.300")
        provider.requests.clear()

        with pytest.raises(ValidationError):
            reconciler.ensure_load_balancer(service, nodes)
        assert provider.writes() == []
        assert block["assignedResourceId"] is None

    def test_recorded_ip_without_block(self, reconciler, provider, make_service, nodes):
        service = make_service(load_balancer_ip="10.0.0.3")

        with pytest.raises(ValidationError):
            reconciler.ensure_load_balancer(service, nodes)
        assert provider.blocks == {}

    def test_duplicate_active_blocks(self, reconciler, provider, make_service, nodes):
        provider.add_block(tags=SERVICE_TAGS)
        provider.add_block(tags=SERVICE_TAGS)
        provider.requests.clear()

        with pytest.raises(ConflictError):
            reconciler.ensure_load_balancer(make_service(), nodes)
        assert provider.writes() == []

    def test_block_assigned_elsewhere(self, reconciler, provider, make_service, nodes):
        provider.add_block(tags=SERVICE_TAGS, status="assigned", assigned_to="other-net")

        with pytest.raises(ConflictError):
            reconciler.ensure_load_balancer(make_service(), nodes)

    def test_location_annotation(self, reconciler, provider, make_service, nodes):
        service = make_service(annotations={"phoenixnap.com/ip-location": "PHX"})

        reconciler.ensure_load_balancer(service, nodes)

        block = next(iter(provider.blocks.values()))
        assert block["location"] == "PHX"

    def test_deleted_block_is_not_reused(self, reconciler, provider, make_service, nodes):
        provider.add_block(tags={**SERVICE_TAGS, "delete": "true"})

        status = reconciler.ensure_load_balancer(make_service(), nodes)

        assert [i.ip for i in status.ingress] == ["10.0.0.11"]
        assert len(provider.blocks) == 2

    def test_services_get_distinct_blocks(self, reconciler, make_service, nodes):
        first = reconciler.ensure_load_balancer(make_service(name="svc-a"), nodes)
        second = reconciler.ensure_load_balancer(make_service(name="svc-b"), nodes)

        assert first.ingress[0].ip == "10.0.0.3"
        assert second.ingress[0].ip == "10.0.0.11"

    def test_node_selector_limits_announced_servers(self, reconciler, announcer, make_service, nodes):
        reconciler.node_selector = parse_selector("role=worker")

        reconciler.ensure_load_balancer(make_service(), nodes)

        _, servers = announcer.announcement("ns1", "svc-a")
        assert servers == ["srv-1", "srv-2"]


class TestGetLoadBalancer:
    def test_no_recorded_ip(self, reconciler, make_service):
        status, exists = reconciler.get_load_balancer(make_service())

        assert status is None
        assert exists is False

    def test_bound_service(self, reconciler, store, make_service, nodes):
        reconciler.ensure_load_balancer(make_service(), nodes)

        status, exists = reconciler.get_load_balancer(store.get_service("ns1", "svc-a"))

        assert exists is True
        assert [i.ip for i in status.ingress] == ["10.0.0.3"]

    def test_recorded_ip_without_block(self, reconciler, make_service):
        with pytest.raises(ValidationError):
            reconciler.get_load_balancer(make_service(load_balancer_ip="10.0.0.3"))

    def test_recorded_ip_not_in_block(self, reconciler, provider, make_service):
        provider.add_block(tags=SERVICE_TAGS, status="assigned", assigned_to=NETWORK_ID)

        with pytest.raises(ValidationError):
            reconciler.get_load_balancer(make_service(load_balancer_ip="10.1.0.3"))

    def test_block_not_attached(self, reconciler, provider, make_service):
        provider.add_block(tags=SERVICE_TAGS)

        with pytest.raises(ValidationError):
            reconciler.get_load_balancer(make_service(load_balancer_ip="10.0.0.3"))

    def test_block_attached_elsewhere(self, reconciler, provider, make_service):
        provider.add_block(tags=SERVICE_TAGS, status="assigned", assigned_to="other-net")

        with pytest.raises(ConflictError):
            reconciler.get_load_balancer(make_service(load_balancer_ip="10.0.0.3"))

    def test_too_many_blocks(self, reconciler, provider, make_service):
        provider.add_block(tags=SERVICE_TAGS, status="assigned", assigned_to=NETWORK_ID)
        provider.add_block(tags=SERVICE_TAGS)

        with pytest.raises(ConflictError):
            reconciler.get_load_balancer(make_service(load_balancer_ip="10.0.0.3"))

    def test_is_read_only(self, reconciler, provider, store, make_service, nodes):
        reconciler.ensure_load_balancer(make_service(), nodes)
        writes_before = len(provider.writes())

        reconciler.get_load_balancer(store.get_service("ns1", "svc-a"))

        assert len(provider.writes()) == writes_before


class TestUpdateLoadBalancer:
    def test_forwards_selected_nodes(self, reconciler, announcer, store, make_service, nodes):
        reconciler.ensure_load_balancer(make_service(), nodes)

        reconciler.update_load_balancer(store.get_service("ns1", "svc-a"), nodes[:1])

        assert announcer.announcement("ns1", "svc-a") == ("10.0.0.3", ["srv-1"])

    def test_missing_provider_id(self, reconciler, announcer, store, make_service, nodes):
        reconciler.ensure_load_balancer(make_service(), nodes)

        with pytest.raises(ValidationError):
            reconciler.update_load_balancer(
                store.get_service("ns1", "svc-a"),
                [Node(name="worker-9", labels={"role": "worker"})],
            )
        _, servers = announcer.announcement("ns1", "svc-a")
        assert servers == ["srv-1", "srv-2", "srv-3"]

    def test_bad_node_outside_selector_is_ignored(self, reconciler, announcer, store, make_service, nodes):
        reconciler.node_selector = parse_selector("role=worker")
        reconciler.ensure_load_balancer(make_service(), nodes)

        reconciler.update_load_balancer(
            store.get_service("ns1", "svc-a"),
            nodes + [Node(name="edge-1", labels={"role": "edge"}, provider_id="other://x")],
        )

        assert announcer.announcement("ns1", "svc-a") == ("10.0.0.3", ["srv-1", "srv-2"])

    def test_no_remote_calls(self, reconciler, provider, make_service, nodes):
        provider.requests.clear()

        reconciler.update_load_balancer(make_service(), nodes)

        assert provider.requests == []


class TestEnsureLoadBalancerDeleted:
    def test_stages_deletion(self, reconciler, provider, registry, store, announcer, make_service, nodes):
        reconciler.ensure_load_balancer(make_service(), nodes)
        bound = store.get_service("ns1", "svc-a")

        reconciler.ensure_load_balancer_deleted(bound)

        block = next(iter(provider.blocks.values()))
        assert provider.block_tags(block["id"]) == {**SERVICE_TAGS, "delete": "true"}
        assert block["assignedResourceId"] == NETWORK_ID
        assert store.get_service("ns1", "svc-a").load_balancer_ip is None
        assert announcer.announcement("ns1", "svc-a") is None

        assert registry.find(bound, BlockFilter.ACTIVE) == []
        assert len(registry.find(bound, BlockFilter.DELETED)) == 1

    def test_no_block_is_success(self, reconciler, provider, make_service):
        provider.requests.clear()

        reconciler.ensure_load_balancer_deleted(make_service())

        assert provider.writes() == []

    def test_repeated_delete_is_idempotent(self, reconciler, provider, store, make_service, nodes):
        reconciler.ensure_load_balancer(make_service(), nodes)
        service = store.get_service("ns1", "svc-a")
        reconciler.ensure_load_balancer_deleted(service)
        writes_before = len(provider.writes())

        reconciler.ensure_load_balancer_deleted(service)

        assert len(provider.writes()) == writes_before

    def test_bare_service_identity(self, reconciler, provider, nodes, make_service):
        reconciler.ensure_load_balancer(make_service(), nodes)

        reconciler.ensure_load_balancer_deleted(Service(namespace="ns1", name="svc-a"))

        block = next(iter(provider.blocks.values()))
        assert provider.block_tags(block["id"])["delete"] == "true"

    def test_bare_service_removes_service_address(self, reconciler, announcer, monkeypatch, make_service, nodes):
        reconciler.ensure_load_balancer(make_service(), nodes)
        removed = []
        monkeypatch.setattr(announcer, "remove_service", lambda ns, name, ip: removed.append((ns, name, ip)))

        reconciler.ensure_load_balancer_deleted(Service(namespace="ns1", name="svc-a"))

        assert removed == [("ns1", "svc-a", "10.0.0.3")]

    def test_duplicate_blocks_conflict(self, reconciler, provider, make_service):
        provider.add_block(tags=SERVICE_TAGS)
        provider.add_block(tags=SERVICE_TAGS)

        with pytest.raises(ConflictError):
            reconciler.ensure_load_balancer_deleted(make_service())

    def test_round_trip_gets_fresh_block(self, reconciler, provider, store, make_service, nodes):
        reconciler.ensure_load_balancer(make_service(), nodes)
        reconciler.ensure_load_balancer_deleted(store.get_service("ns1", "svc-a"))

        status = reconciler.ensure_load_balancer(store.get_service("ns1", "svc-a"), nodes)

        assert [i.ip for i in status.ingress] == ["10.0.0.11"]
        assert len(provider.blocks) == 2
        deleted = [b for b in provider.blocks.values() if "delete" in provider.block_tags(b["id"])]
        assert [b["cidr"] for b in deleted] == ["10.0.0.0/29"]


class TestLoadBalancerName:
    def test_name_encodes_tags(self, reconciler):
        service = Service(namespace="ns1", name="svc-a")
        assert reconciler.get_load_balancer_name(service) == (
            "usage=cloud-provider-phoenixnap-auto:service=ns1.svc-a:cluster=c1"
        )


class TestServiceLocks:
    def test_released_key_is_dropped(self):
        locks = ServiceLocks()
        with locks.hold("ns1/svc-a"):
            assert list(locks._locks) == ["ns1/svc-a"]
        with locks.hold("ns1/svc-a"):
            pass
        assert locks._locks == {}

    def test_same_key_waits_for_holder(self):
        locks = ServiceLocks()
        entered = threading.Event()

        def contender():
            with locks.hold("ns1/svc-a"):
                entered.set()

        with locks.hold("ns1/svc-a"):
            thread = threading.Thread(target=contender)
            thread.start()
            assert not entered.wait(0.1)
            with locks.hold("ns1/svc-b"):
                pass
        assert entered.wait(5)
        thread.join(5)

        assert locks._locks == {}

    def test_released_after_error(self):
        locks = ServiceLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("ns1/svc-a"):
                raise RuntimeError("boom")
        assert locks._locks == {}

    def test_reconciler_does_not_accumulate_locks(self, reconciler, make_service):
        for i in range(50):
            reconciler.ensure_load_balancer_deleted(make_service(name=f"svc-{i}"))

        assert reconciler._locks._locks == {}
