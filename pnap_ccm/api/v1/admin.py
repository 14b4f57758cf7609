# pnap_ccm/api/v1/admin.py
"""
Admin API Endpoints
Inspect the cluster's IP blocks and drive the garbage collector by hand
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...cloud import CloudProvider
from ...core.ip_blocks import BlockFilter
from ...schemas.base import ErrorResponse
from ...schemas.provider import IpBlock
from ...schemas.service import Service
from .deps import get_cloud, verify_admin_token

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_load_balancer(cloud: CloudProvider) -> None:
    if cloud.registry is None or cloud.gc is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "Load balancer support is disabled (PNAP_LOAD_BALANCER is empty)",
                "error_code": "LOAD_BALANCER_DISABLED"
            }
        )


@router.get(
    "/blocks",
    response_model=List[IpBlock],
    responses={502: {"description": "Provider API failure", "model": ErrorResponse}},
    summary="List IP blocks",
    description="List the IP blocks of this cluster, filtered by deletion state"
)
def list_blocks(
    state: BlockFilter = Query(BlockFilter.ANY, description="active, deleted or any"),
    cloud: CloudProvider = Depends(get_cloud),
    _: bool = Depends(verify_admin_token)
):
    _require_load_balancer(cloud)
    return cloud.registry.find(None, state)


@router.post(
    "/gc/sweep",
    summary="Run garbage collection",
    description="Run one garbage collector sweep now and return its counts"
)
def run_gc_sweep(
    cloud: CloudProvider = Depends(get_cloud),
    _: bool = Depends(verify_admin_token)
):
    _require_load_balancer(cloud)
    stats = cloud.gc.sweep()
    logger.info(f"Manual GC sweep: {stats}")
    return stats


@router.get(
    "/services",
    response_model=List[Service],
    summary="List services",
    description="Services known to the in-memory service store"
)
def list_services(
    cloud: CloudProvider = Depends(get_cloud),
    _: bool = Depends(verify_admin_token)
):
    return cloud.services.list_services()
