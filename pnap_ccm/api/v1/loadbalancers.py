# pnap_ccm/api/v1/loadbalancers.py
"""
Load Balancer API Endpoints
Called by the controller framework to reconcile LoadBalancer services
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...cloud import CloudProvider
from ...core.loadbalancer import LoadBalancerReconciler
from ...schemas.base import BaseResponse, ErrorResponse
from ...schemas.service import (
    EnsureLoadBalancerRequest,
    LoadBalancerResponse,
    Service,
    UpdateLoadBalancerRequest,
)
from .deps import get_cloud, get_load_balancer

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    409: {"description": "Ambiguous IP block state", "model": ErrorResponse},
    422: {"description": "Inconsistent IP block state", "model": ErrorResponse},
    502: {"description": "Provider API failure", "model": ErrorResponse},
}


def _service_not_found(namespace: str, name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": f"Service {namespace}/{name} not found",
            "error_code": "SERVICE_NOT_FOUND"
        }
    )


@router.get(
    "/{namespace}/{name}",
    response_model=LoadBalancerResponse,
    responses={404: {"description": "Service not found", "model": ErrorResponse}, **ERROR_RESPONSES},
    summary="Get load balancer",
    description="Report whether the service has a bound load balancer IP"
)
def get_load_balancer_status(
    namespace: str,
    name: str,
    cloud: CloudProvider = Depends(get_cloud),
    lb: LoadBalancerReconciler = Depends(get_load_balancer)
):
    service = cloud.services.get_service(namespace, name)
    if service is None:
        raise _service_not_found(namespace, name)

    lb_status, exists = lb.get_load_balancer(service)
    return LoadBalancerResponse(
        namespace=namespace,
        name=name,
        exists=exists,
        status=lb_status,
        load_balancer_name=lb.get_load_balancer_name(service)
    )


@router.put(
    "/{namespace}/{name}",
    response_model=LoadBalancerResponse,
    responses=ERROR_RESPONSES,
    summary="Ensure load balancer",
    description="Reserve, attach and record the service IP if needed"
)
def ensure_load_balancer(
    namespace: str,
    name: str,
    request: EnsureLoadBalancerRequest,
    cloud: CloudProvider = Depends(get_cloud),
    lb: LoadBalancerReconciler = Depends(get_load_balancer)
):
    existing = cloud.services.get_service(namespace, name)
    recorded_ip = request.load_balancer_ip
    if recorded_ip is None and existing is not None:
        recorded_ip = existing.load_balancer_ip

    service = Service(
        namespace=namespace,
        name=name,
        load_balancer_ip=recorded_ip,
        annotations=request.annotations
    )
    cloud.services.upsert_service(service)

    lb_status = lb.ensure_load_balancer(service, request.nodes)
    return LoadBalancerResponse(
        namespace=namespace,
        name=name,
        exists=True,
        status=lb_status,
        load_balancer_name=lb.get_load_balancer_name(service)
    )


@router.patch(
    "/{namespace}/{name}",
    response_model=BaseResponse,
    responses={404: {"description": "Service not found", "model": ErrorResponse}, **ERROR_RESPONSES},
    summary="Update load balancer nodes",
    description="Forward the current node set to the announcer backend"
)
def update_load_balancer(
    namespace: str,
    name: str,
    request: UpdateLoadBalancerRequest,
    cloud: CloudProvider = Depends(get_cloud),
    lb: LoadBalancerReconciler = Depends(get_load_balancer)
):
    service = cloud.services.get_service(namespace, name)
    if service is None:
        raise _service_not_found(namespace, name)

    lb.update_load_balancer(service, request.nodes)
    return BaseResponse(message=f"Load balancer nodes of {service.key} updated")


@router.delete(
    "/{namespace}/{name}",
    response_model=BaseResponse,
    responses=ERROR_RESPONSES,
    summary="Ensure load balancer deleted",
    description="Release the service IP; the IP block is removed by the garbage collector"
)
def ensure_load_balancer_deleted(
    namespace: str,
    name: str,
    cloud: CloudProvider = Depends(get_cloud),
    lb: LoadBalancerReconciler = Depends(get_load_balancer)
):
    service = cloud.services.get_service(namespace, name)
    if service is None:
        service = Service(namespace=namespace, name=name)

    lb.ensure_load_balancer_deleted(service)
    return BaseResponse(message=f"Load balancer of {service.key} released")
