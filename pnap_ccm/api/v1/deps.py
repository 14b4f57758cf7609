# pnap_ccm/api/v1/deps.py
"""
Shared FastAPI dependencies
"""

import logging

from fastapi import Depends, Header, HTTPException, Request, status

from ...cloud import CloudProvider
from ...core.loadbalancer import LoadBalancerReconciler

logger = logging.getLogger(__name__)


def get_cloud(request: Request) -> CloudProvider:
    """The cloud provider built during application startup"""
    return request.app.state.cloud


def get_load_balancer(cloud: CloudProvider = Depends(get_cloud)) -> LoadBalancerReconciler:
    """The reconciler, or 503 when load balancing is disabled"""
    if cloud.load_balancer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "Load balancer support is disabled (PNAP_LOAD_BALANCER is empty)",
                "error_code": "LOAD_BALANCER_DISABLED"
            }
        )
    return cloud.load_balancer


def verify_admin_token(
    x_admin_token: str = Header(..., alias="X-Admin-Token"),
    cloud: CloudProvider = Depends(get_cloud)
):
    """
    Verify admin authentication token

    In production, replace with proper JWT/OAuth2 authentication
    """
    if x_admin_token != cloud.settings.ADMIN_SECRET:
        logger.warning("Invalid admin token attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Invalid or missing admin token",
                "error_code": "UNAUTHORIZED"
            },
            headers={"WWW-Authenticate": "Bearer"}
        )
    return True
