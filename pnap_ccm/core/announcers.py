# pnap_ccm/core/announcers.py
"""
Announcer backends
Make an assigned load balancer IP reachable from the cluster nodes.
The backend is picked from the scheme of PNAP_LOAD_BALANCER.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ..config import LoadBalancerConfig
from ..exceptions import ConfigurationError
from ..schemas.service import Node
from .nodes import server_id_from_provider_id

logger = logging.getLogger(__name__)


@runtime_checkable
class Announcer(Protocol):
    """Operations every announcer backend provides"""

    def add_service(self, namespace: str, name: str, ip: str, nodes: Sequence[Node]) -> None:
        ...

    def update_service(self, namespace: str, name: str, nodes: Sequence[Node]) -> None:
        ...

    def remove_service(self, namespace: str, name: str, ip: str) -> None:
        ...


class NoopAnnouncer:
    """
    Does nothing; announcement is left to an external BGP or ARP speaker
    """

    def __init__(self, config: LoadBalancerConfig):
        self.config = config

    def add_service(self, namespace: str, name: str, ip: str, nodes: Sequence[Node]) -> None:
        logger.debug(f"noop announcer: add {namespace}/{name} {ip}")

    def update_service(self, namespace: str, name: str, nodes: Sequence[Node]) -> None:
        logger.debug(f"noop announcer: update {namespace}/{name}")

    def remove_service(self, namespace: str, name: str, ip: str) -> None:
        logger.debug(f"noop announcer: remove {namespace}/{name} {ip}")


class L2Announcer:
    """
    Layer-2 announcer for blocks attached to a public network

    The provider routes the attached block into the public network;
    this backend keeps the table of which IP is served by which
    servers so it can be inspected and logged.
    """

    def __init__(self, config: LoadBalancerConfig):
        self.config = config
        self._lock = threading.Lock()
        self._services: Dict[str, Tuple[str, List[str]]] = {}

    @staticmethod
    def _key(namespace: str, name: str) -> str:
        return f"{namespace}/{name}"

    def add_service(self, namespace: str, name: str, ip: str, nodes: Sequence[Node]) -> None:
        servers = [server_id_from_provider_id(n.provider_id) for n in nodes if n.provider_id]
        with self._lock:
            self._services[self._key(namespace, name)] = (ip, servers)
        logger.info(
            f"L2 announce {ip} for {namespace}/{name} on network "
            f"{self.config.network_id} via {len(servers)} servers"
        )

    def update_service(self, namespace: str, name: str, nodes: Sequence[Node]) -> None:
        servers = [server_id_from_provider_id(n.provider_id) for n in nodes]
        key = self._key(namespace, name)
        with self._lock:
            current = self._services.get(key)
            if current is None:
                logger.debug(f"L2 update for unknown service {key}, ignoring")
                return
            self._services[key] = (current[0], servers)
        logger.info(f"L2 servers for {key} updated: {len(servers)} servers")

    def remove_service(self, namespace: str, name: str, ip: str) -> None:
        key = self._key(namespace, name)
        with self._lock:
            removed = self._services.pop(key, None)
        if removed is not None:
            logger.info(f"L2 stopped announcing {removed[0]} for {key}")

    def announcement(self, namespace: str, name: str) -> Optional[Tuple[str, List[str]]]:
        """(ip, server ids) currently announced for a service"""
        with self._lock:
            current = self._services.get(self._key(namespace, name))
        if current is None:
            return None
        return current[0], list(current[1])


ANNOUNCERS: Dict[str, Callable[[LoadBalancerConfig], Announcer]] = {
    "pnap-l2": L2Announcer,
    "empty": NoopAnnouncer,
}


def new_announcer(config: LoadBalancerConfig) -> Announcer:
    """
    Create the announcer selected by the config scheme

    Raises:
        ConfigurationError: If the scheme is unknown
    """
    factory = ANNOUNCERS.get(config.scheme)
    if factory is None:
        raise ConfigurationError(
            f"unknown load balancer implementation '{config.scheme}', "
            f"expected one of: {', '.join(sorted(ANNOUNCERS))}"
        )
    logger.info(f"loadbalancer implementation enabled: {config.scheme}")
    return factory(config)
