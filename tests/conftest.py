"""Shared fixtures: a fake provider and the broker components wired to it."""

import pytest
from fastapi.testclient import TestClient

from pnap_ccm.config import LoadBalancerConfig
from pnap_ccm.core.announcers import L2Announcer
from pnap_ccm.core.client import PhoenixNAPClient
from pnap_ccm.core.gc import GarbageCollector
from pnap_ccm.core.ip_blocks import IPBlockRegistry
from pnap_ccm.core.loadbalancer import LoadBalancerReconciler
from pnap_ccm.core.network import NetworkAttachmentManager
from pnap_ccm.core.services import InMemoryServiceStore
from pnap_ccm.core.tags import REQUIRED_TAGS, TagStore
from pnap_ccm.schemas.service import Node, Service

from .fake_provider import FakePhoenixNAP

CLUSTER_ID = "c1"
NETWORK_ID = "net1"
LOCATION = "ASH"


@pytest.fixture
def provider():
    return FakePhoenixNAP()


@pytest.fixture
def client(provider):
    http = TestClient(provider.app)
    yield PhoenixNAPClient(http)
    http.close()


@pytest.fixture
def declared_tags(client):
    """Declare the tag vocabulary, as cloud initialization does"""
    TagStore(client).ensure_tags(REQUIRED_TAGS)


@pytest.fixture
def store():
    return InMemoryServiceStore(system_namespace_uid=CLUSTER_ID)


@pytest.fixture
def registry(client, declared_tags):
    return IPBlockRegistry(client, CLUSTER_ID)


@pytest.fixture
def network(client):
    return NetworkAttachmentManager(client)


@pytest.fixture
def announcer():
    return L2Announcer(LoadBalancerConfig(scheme="pnap-l2", network_id=NETWORK_ID))


@pytest.fixture
def reconciler(registry, network, announcer, store):
    return LoadBalancerReconciler(
        registry=registry,
        network=network,
        announcer=announcer,
        services=store,
        network_id=NETWORK_ID,
        location=LOCATION,
    )


@pytest.fixture
def gc(registry, network):
    return GarbageCollector(registry, network, NETWORK_ID, interval_seconds=0.05)


@pytest.fixture
def make_service(store):
    """Create a service in the store and return it"""

    def _make(namespace="ns1", name="svc-a", load_balancer_ip=None, annotations=None):
        service = Service(
            namespace=namespace,
            name=name,
            load_balancer_ip=load_balancer_ip,
            annotations=annotations or {},
        )
        store.upsert_service(service)
        return service

    return _make


@pytest.fixture
def nodes():
    return [
        Node(name="worker-1", labels={"role": "worker"}, provider_id="phoenixnap://srv-1"),
        Node(name="worker-2", labels={"role": "worker"}, provider_id="srv-2"),
        Node(name="cp-1", labels={"role": "control-plane"}, provider_id="phoenixnap://srv-3"),
    ]
