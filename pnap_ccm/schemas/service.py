# pnap_ccm/schemas/service.py
"""
Service and Node schemas
Mirror the parts of the cluster objects the broker reads and writes
"""

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_DNS_LABEL = re.compile(r'^[a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?$')


def _validate_dns_label(v: str) -> str:
    if not _DNS_LABEL.match(v):
        raise ValueError(
            'must be lowercase alphanumeric with optional hyphens, '
            'cannot start/end with hyphen, max 63 chars'
        )
    return v


class Service(BaseModel):
    """
    A LoadBalancer service
    (namespace, name) is the identity; load_balancer_ip is the
    recorded IP the broker writes back
    """
    namespace: str = Field(..., examples=["default"])
    name: str = Field(..., examples=["web"])
    load_balancer_ip: Optional[str] = Field(
        None,
        description="Recorded load balancer IP, empty when none is assigned",
        examples=["10.0.0.3"]
    )
    annotations: Dict[str, str] = Field(default_factory=dict)

    @field_validator('namespace', 'name')
    @classmethod
    def validate_identity(cls, v: str) -> str:
        return _validate_dns_label(v)

    @property
    def key(self) -> str:
        """namespace/name, used in logs and as the lock key"""
        return f"{self.namespace}/{self.name}"

    @property
    def tag_value(self) -> str:
        """namespace.name, used as the value of the service tag"""
        return f"{self.namespace}.{self.name}"

    @property
    def recorded_ip(self) -> str:
        return (self.load_balancer_ip or "").strip()


class Node(BaseModel):
    """A cluster node that can carry load balancer traffic"""
    name: str
    labels: Dict[str, str] = Field(default_factory=dict)
    provider_id: str = Field(
        "",
        description="phoenixnap://<server-id> or <server-id>",
        examples=["phoenixnap://5f3a0c0e9c1d2b0001a0b1c2"]
    )


class LoadBalancerIngress(BaseModel):
    ip: str


class LoadBalancerStatus(BaseModel):
    ingress: List[LoadBalancerIngress] = Field(default_factory=list)

    @classmethod
    def for_ip(cls, ip: str) -> "LoadBalancerStatus":
        return cls(ingress=[LoadBalancerIngress(ip=ip)])


# === API request/response bodies ===

class EnsureLoadBalancerRequest(BaseModel):
    """Body of PUT /loadbalancers/{namespace}/{name}"""
    load_balancer_ip: Optional[str] = None
    annotations: Dict[str, str] = Field(default_factory=dict)
    nodes: List[Node] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "load_balancer_ip": None,
                "annotations": {"phoenixnap.com/ip-location": "ASH"},
                "nodes": [
                    {
                        "name": "worker-1",
                        "labels": {"node-role.kubernetes.io/worker": ""},
                        "provider_id": "phoenixnap://5f3a0c0e9c1d2b0001a0b1c2"
                    }
                ]
            }
        }
    )


class UpdateLoadBalancerRequest(BaseModel):
    """Body of PATCH /loadbalancers/{namespace}/{name}"""
    nodes: List[Node] = Field(default_factory=list)


class LoadBalancerResponse(BaseModel):
    namespace: str
    name: str
    exists: bool
    status: Optional[LoadBalancerStatus] = None
    load_balancer_name: Optional[str] = None
