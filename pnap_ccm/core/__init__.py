"""
Core business logic modules
"""

from .client import PhoenixNAPClient, ClientCredentialsAuth
from .tags import TagStore, REQUIRED_TAGS
from .ip_blocks import IPBlockRegistry, BlockFilter
from .network import NetworkAttachmentManager
from .nodes import LabelSelector, parse_selector, filter_nodes, server_id_from_provider_id
from .announcers import Announcer, L2Announcer, NoopAnnouncer, new_announcer
from .services import ServiceStore, InMemoryServiceStore
from .loadbalancer import LoadBalancerReconciler, derive_service_ip
from .gc import GarbageCollector

__all__ = [
    # Provider client
    "PhoenixNAPClient",
    "ClientCredentialsAuth",
    # Tags
    "TagStore",
    "REQUIRED_TAGS",
    # IP blocks
    "IPBlockRegistry",
    "BlockFilter",
    # Network
    "NetworkAttachmentManager",
    # Nodes
    "LabelSelector",
    "parse_selector",
    "filter_nodes",
    "server_id_from_provider_id",
    # Announcers
    "Announcer",
    "L2Announcer",
    "NoopAnnouncer",
    "new_announcer",
    # Services
    "ServiceStore",
    "InMemoryServiceStore",
    # Reconciler
    "LoadBalancerReconciler",
    "derive_service_ip",
    # Garbage collector
    "GarbageCollector",
]
