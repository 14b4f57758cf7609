# pnap_ccm/core/loadbalancer.py
"""
Allocation Reconciler
Drives each LoadBalancer service from Unbound through Pending to Bound
and stages its IP block for deletion when the service goes away
"""

import ipaddress
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Sequence, Tuple

from ..config import DEFAULT_ANNOTATION_IP_LOCATION
from ..exceptions import ConfigurationError, ConflictError, ValidationError
from ..schemas.provider import IpBlock
from ..schemas.service import LoadBalancerStatus, Node, Service
from .announcers import Announcer
from .ip_blocks import BlockFilter, IPBlockRegistry
from .network import NetworkAttachmentManager, is_attached_to
from .nodes import LabelSelector, filter_nodes, server_id_from_provider_id
from .services import ServiceStore
from .tags import CLUSTER_TAG, SERVICE_TAG, USAGE_TAG, USAGE_VALUE

logger = logging.getLogger(__name__)

# network address and gateway come first, the service gets the next usable one
SERVICE_IP_OFFSET = 3


def parse_ip(value: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(value.strip())
    except ipaddress.AddressValueError as e:
        raise ValidationError(f"invalid IP address '{value}': {e}") from e


def parse_cidr(value: str) -> ipaddress.IPv4Network:
    try:
        return ipaddress.IPv4Network(value, strict=False)
    except (ipaddress.AddressValueError, ipaddress.NetmaskValueError, ValueError) as e:
        raise ValidationError(f"invalid CIDR '{value}': {e}") from e


def derive_service_ip(cidr: str) -> str:
    """
    The service address of a block: network address + 3

    10.0.0.0/29 always yields 10.0.0.3.

    Raises:
        ValidationError: If the CIDR does not parse or is too small
    """
    network = parse_cidr(cidr)
    if network.num_addresses <= SERVICE_IP_OFFSET + 1:
        raise ValidationError(f"IP block {cidr} is too small to hold a service address")
    return str(network.network_address + SERVICE_IP_OFFSET)


def ip_in_block(ip: str, block: IpBlock) -> bool:
    return parse_ip(ip) in parse_cidr(block.cidr)


class ServiceLocks:
    """
    One lock per service key, so a service has a single writer

    Entries are reference counted and dropped once no caller holds
    or waits on them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]


class LoadBalancerReconciler:
    """
    Reconciles LoadBalancer services against the provider

    Responsibilities:
    1. Find or create the one active IP block of a service
    2. Attach it to the configured public network
    3. Record the derived IP on the service
    4. Hand the service to the announcer backend
    5. Stage deletion by tagging; the garbage collector finishes it
    """

    def __init__(
        self,
        registry: IPBlockRegistry,
        network: NetworkAttachmentManager,
        announcer: Announcer,
        services: ServiceStore,
        network_id: str,
        location: str,
        ip_location_annotation: str = DEFAULT_ANNOTATION_IP_LOCATION,
        node_selector: Optional[LabelSelector] = None
    ):
        if not location:
            raise ConfigurationError("a default location (PNAP_LOCATION) is required for load balancers")
        if not network_id:
            raise ConfigurationError("a target network id is required for load balancers")

        self.registry = registry
        self.network = network
        self.announcer = announcer
        self.services = services
        self.network_id = network_id
        self.location = location
        self.ip_location_annotation = ip_location_annotation
        self.node_selector = node_selector or LabelSelector()
        self._locks = ServiceLocks()

    # === Reconcile operations ===

    def get_load_balancer(self, service: Service) -> Tuple[Optional[LoadBalancerStatus], bool]:
        """
        Report whether the service has a load balancer and its status

        Returns:
            (None, False) when the service records no IP

        Raises:
            ValidationError: Recorded IP invalid, not in its block, no block,
                or block not attached
            ConflictError: Several active blocks, or block attached elsewhere
        """
        with self._locks.hold(service.key):
            recorded = service.recorded_ip
            if not recorded:
                logger.debug(f"GetLoadBalancer(): {service.key} has no recorded IP")
                return None, False

            block = self._active_block(service)
            if block is None:
                raise ValidationError(
                    f"service {service.key} records IP {recorded} but no active IP block exists"
                )
            self._verify_binding(service, recorded, block)

            logger.debug(f"GetLoadBalancer(): {service.key} bound to {recorded} in {block.cidr}")
            return LoadBalancerStatus.for_ip(recorded), True

    def ensure_load_balancer(self, service: Service, nodes: Sequence[Node]) -> LoadBalancerStatus:
        """
        Make sure the service has an attached block and a recorded IP

        Idempotent: a bound service is returned unchanged without
        any remote write.
        """
        logger.info(f"EnsureLoadBalancer(): service {service.key}")
        with self._locks.hold(service.key):
            recorded = service.recorded_ip
            block = self._active_block(service)

            if block is not None and recorded and self._is_bound(recorded, block):
                logger.debug(f"EnsureLoadBalancer(): {service.key} already bound to {recorded}")
                return LoadBalancerStatus.for_ip(recorded)

            if block is None:
                if recorded:
                    raise ValidationError(
                        f"service {service.key} records IP {recorded} but no active IP block exists"
                    )
                block = self.registry.create(service, self._location_for(service))

            if recorded and not ip_in_block(recorded, block):
                raise ValidationError(
                    f"recorded IP {recorded} of {service.key} is not in its IP block {block.cidr}"
                )
            ip = recorded or derive_service_ip(block.cidr)

            self.network.ensure_attached(block, self.network_id)

            self._record_ip(service, ip)
            self.announcer.add_service(
                service.namespace,
                service.name,
                ip,
                filter_nodes(nodes, self.node_selector)
            )
            logger.info(f"EnsureLoadBalancer(): {service.key} bound to {ip} in {block.cidr}")
            return LoadBalancerStatus.for_ip(ip)

    def update_load_balancer(self, service: Service, nodes: Sequence[Node]) -> None:
        """
        Forward the selected nodes to the announcer

        Raises:
            ValidationError: If any selected node has no valid provider ID;
                nothing is forwarded in that case
        """
        logger.info(f"UpdateLoadBalancer(): service {service.key}")
        with self._locks.hold(service.key):
            selected = filter_nodes(nodes, self.node_selector)
            for node in selected:
                if not node.provider_id:
                    raise ValidationError(f"no provider ID given for node {node.name}")
                server_id_from_provider_id(node.provider_id)
            self.announcer.update_service(service.namespace, service.name, selected)

    def ensure_load_balancer_deleted(self, service: Service) -> None:
        """
        Release the service's IP

        Clears the recorded IP (failures are logged, not raised) and
        adds the delete tag to the active block. Detaching and deleting
        the block is left to the garbage collector.
        """
        logger.info(f"EnsureLoadBalancerDeleted(): remove: {service.key}")
        with self._locks.hold(service.key):
            self._clear_ip(service)

            block = self._active_block(service)
            if block is None:
                logger.info(f"EnsureLoadBalancerDeleted(): no active IP block for {service.key}, nothing to delete")
                if service.recorded_ip:
                    self.announcer.remove_service(service.namespace, service.name, service.recorded_ip)
                return

            self.registry.mark_deleted(block)
            self.announcer.remove_service(
                service.namespace,
                service.name,
                service.recorded_ip or derive_service_ip(block.cidr)
            )
            logger.info(f"EnsureLoadBalancerDeleted(): IP block {block.id} of {service.key} staged for deletion")

    def get_load_balancer_name(self, service: Service) -> str:
        return (
            f"{USAGE_TAG}={USAGE_VALUE}:"
            f"{SERVICE_TAG}={service.tag_value}:"
            f"{CLUSTER_TAG}={self.registry.cluster_id}"
        )

    # === Helpers ===

    def _active_block(self, service: Service) -> Optional[IpBlock]:
        """
        The single active block of a service, None if there is none

        Raises:
            ConflictError: If more than one active block exists
        """
        blocks = self.registry.find(service, BlockFilter.ACTIVE)
        if len(blocks) > 1:
            ids = ", ".join(b.id for b in blocks)
            raise ConflictError(f"too many active IP blocks found for service {service.key}: {ids}")
        return blocks[0] if blocks else None

    def _is_bound(self, recorded: str, block: IpBlock) -> bool:
        try:
            contained = ip_in_block(recorded, block)
        except ValidationError:
            return False
        return contained and is_attached_to(block, self.network_id)

    def _verify_binding(self, service: Service, recorded: str, block: IpBlock) -> None:
        if not ip_in_block(recorded, block):
            raise ValidationError(
                f"recorded IP {recorded} of {service.key} is not in its IP block {block.cidr}"
            )
        if is_attached_to(block, self.network_id):
            return
        if block.assigned_resource_id:
            raise ConflictError(
                f"IP block {block.id} of {service.key} is assigned to "
                f"{block.assigned_resource_id}, expected network {self.network_id}"
            )
        raise ValidationError(
            f"IP block {block.id} of {service.key} is not attached to network {self.network_id}"
        )

    def _location_for(self, service: Service) -> str:
        return service.annotations.get(self.ip_location_annotation) or self.location

    def _record_ip(self, service: Service, ip: str) -> None:
        """Write the IP on the latest version of the service"""
        latest = self.services.get_service(service.namespace, service.name)
        if latest is None:
            raise ValidationError(f"failed to get latest for service {service.key}")
        if latest.recorded_ip == ip:
            return
        self.services.update_service(latest.model_copy(update={"load_balancer_ip": ip}))
        logger.info(f"Assigned IP {ip} to service {service.key}")

    def _clear_ip(self, service: Service) -> None:
        try:
            latest = self.services.get_service(service.namespace, service.name)
            if latest is None or not latest.recorded_ip:
                return
            self.services.update_service(latest.model_copy(update={"load_balancer_ip": None}))
            logger.info(f"Cleared IP {latest.recorded_ip} from service {service.key}")
        except Exception as e:
            logger.warning(f"Failed to clear IP of service {service.key}, continuing: {e}")
