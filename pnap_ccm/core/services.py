# pnap_ccm/core/services.py
"""
Service store
Where service objects live and where the assigned IP is recorded
"""

import logging
import threading
from typing import Dict, List, Optional, Protocol, Tuple

from ..exceptions import ConfigurationError, ValidationError
from ..schemas.service import Service

logger = logging.getLogger(__name__)

SYSTEM_NAMESPACE = "kube-system"


class ServiceStore(Protocol):
    """Access to service objects and the cluster identity"""

    def get_service(self, namespace: str, name: str) -> Optional[Service]:
        ...

    def upsert_service(self, service: Service) -> Service:
        ...

    def update_service(self, service: Service) -> Service:
        ...

    def get_namespace_uid(self, name: str) -> str:
        ...

    def list_services(self) -> List[Service]:
        ...


class InMemoryServiceStore:
    """
    Thread-safe service store held in process memory

    Used by the HTTP surface: reconcile requests upsert the service
    record and the broker writes the assigned IP back here.
    """

    def __init__(self, system_namespace_uid: str = ""):
        self._lock = threading.Lock()
        self._namespaces: Dict[str, str] = {}
        if system_namespace_uid:
            self._namespaces[SYSTEM_NAMESPACE] = system_namespace_uid
        self._services: Dict[Tuple[str, str], Service] = {}

    def get_namespace_uid(self, name: str) -> str:
        with self._lock:
            uid = self._namespaces.get(name)
        if uid is None and name == SYSTEM_NAMESPACE:
            raise ConfigurationError("PNAP_CLUSTER_ID (UID of the kube-system namespace) is required")
        if uid is None:
            raise ValidationError(f"namespace {name} not found")
        return uid

    def get_service(self, namespace: str, name: str) -> Optional[Service]:
        with self._lock:
            service = self._services.get((namespace, name))
        return service.model_copy(deep=True) if service else None

    def upsert_service(self, service: Service) -> Service:
        with self._lock:
            self._services[(service.namespace, service.name)] = service.model_copy(deep=True)
        return service

    def update_service(self, service: Service) -> Service:
        """
        Replace an existing service record

        Raises:
            ValidationError: If the service does not exist
        """
        key = (service.namespace, service.name)
        with self._lock:
            if key not in self._services:
                raise ValidationError(f"service {service.key} not found")
            self._services[key] = service.model_copy(deep=True)
        logger.debug(f"Updated service {service.key}")
        return service

    def list_services(self) -> List[Service]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._services.values()]
