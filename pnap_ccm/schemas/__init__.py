"""
Pydantic Schemas for the load balancer IP broker
Organized by domain: provider wire models, services, API responses
"""

from .base import BaseResponse, ErrorResponse, HealthResponse
from .provider import (
    IpBlock,
    IpBlockCreate,
    IpBlockStatus,
    PublicNetworkIpBlock,
    Tag,
    TagAssignment,
    TagAssignmentRequest,
    TagCreate,
    PUBLIC_NETWORK_RESOURCE,
)
from .service import (
    Service,
    Node,
    LoadBalancerIngress,
    LoadBalancerStatus,
    EnsureLoadBalancerRequest,
    UpdateLoadBalancerRequest,
    LoadBalancerResponse,
)

__all__ = [
    # Base
    "BaseResponse",
    "ErrorResponse",
    "HealthResponse",
    # Provider
    "IpBlock",
    "IpBlockCreate",
    "IpBlockStatus",
    "PublicNetworkIpBlock",
    "Tag",
    "TagAssignment",
    "TagAssignmentRequest",
    "TagCreate",
    "PUBLIC_NETWORK_RESOURCE",
    # Service
    "Service",
    "Node",
    "LoadBalancerIngress",
    "LoadBalancerStatus",
    "EnsureLoadBalancerRequest",
    "UpdateLoadBalancerRequest",
    "LoadBalancerResponse",
]
