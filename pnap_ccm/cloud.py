# pnap_ccm/cloud.py
"""
Cloud Provider
Wires the provider client, the reconciler and the garbage collector
together from the settings
"""

import logging
from typing import Optional

from .config import LoadBalancerConfig, Settings, parse_load_balancer_setting
from .core.announcers import Announcer, new_announcer
from .core.client import PhoenixNAPClient
from .core.gc import GarbageCollector
from .core.ip_blocks import IPBlockRegistry
from .core.loadbalancer import LoadBalancerReconciler
from .core.network import NetworkAttachmentManager
from .core.nodes import parse_selector
from .core.services import SYSTEM_NAMESPACE, InMemoryServiceStore, ServiceStore
from .core.tags import REQUIRED_TAGS, TagStore

logger = logging.getLogger(__name__)


class CloudProvider:
    """
    Composition root of the broker

    Not usable until initialize() has run. When PNAP_LOAD_BALANCER
    is empty the load balancer is disabled and no collector runs.
    """

    def __init__(
        self,
        settings: Settings,
        client: PhoenixNAPClient,
        services: ServiceStore
    ):
        self.settings = settings
        self.client = client
        self.services = services
        self.lb_config: Optional[LoadBalancerConfig] = None
        self.announcer: Optional[Announcer] = None
        self.registry: Optional[IPBlockRegistry] = None
        self.load_balancer: Optional[LoadBalancerReconciler] = None
        self.gc: Optional[GarbageCollector] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: Optional[PhoenixNAPClient] = None,
        services: Optional[ServiceStore] = None
    ) -> "CloudProvider":
        """
        Build and initialize a cloud provider

        Raises:
            ConfigurationError: If the settings are incomplete or invalid
            RemoteError: If the tag vocabulary cannot be declared
        """
        for line in settings.summary_lines():
            logger.info(line)

        client = client or PhoenixNAPClient.from_settings(settings)
        services = services or InMemoryServiceStore(settings.PNAP_CLUSTER_ID)
        cloud = cls(settings, client, services)
        cloud.initialize()
        return cloud

    @property
    def load_balancer_enabled(self) -> bool:
        return self.load_balancer is not None

    def initialize(self) -> None:
        """Initialize the load balancer services"""
        self.lb_config = parse_load_balancer_setting(self.settings.PNAP_LOAD_BALANCER)
        if self.lb_config is None:
            logger.info("no loadbalancer implementation config, load balancer disabled")
            return

        node_selector = parse_selector(self.settings.PNAP_SERVICE_NODE_SELECTOR)
        announcer = new_announcer(self.lb_config)

        cluster_id = self.services.get_namespace_uid(SYSTEM_NAMESPACE)
        registry = IPBlockRegistry(self.client, cluster_id)
        network = NetworkAttachmentManager(self.client)

        load_balancer = LoadBalancerReconciler(
            registry=registry,
            network=network,
            announcer=announcer,
            services=self.services,
            network_id=self.lb_config.network_id,
            location=self.settings.PNAP_LOCATION,
            ip_location_annotation=self.settings.PNAP_ANNOTATION_IP_LOCATION,
            node_selector=node_selector,
        )
        gc = GarbageCollector(
            registry=registry,
            network=network,
            network_id=self.lb_config.network_id,
            interval_seconds=self.settings.GC_INTERVAL_SECONDS,
        )

        TagStore(self.client).ensure_tags(REQUIRED_TAGS)

        self.announcer = announcer
        self.registry = registry
        self.load_balancer = load_balancer
        self.gc = gc
        logger.info(f"Initialize of cloud provider complete (cluster {cluster_id})")

    def start(self) -> None:
        if self.gc is not None:
            self.gc.start()

    def stop(self) -> None:
        if self.gc is not None:
            self.gc.stop(timeout=self.settings.HTTP_TIMEOUT_SECONDS)

    def close(self) -> None:
        self.stop()
        self.client.close()
