# pnap_ccm/core/network.py
"""
Network Attachment Manager
Attaches IP blocks to, and detaches them from, a public network
"""

import logging

from ..exceptions import ConflictError
from ..schemas.provider import PUBLIC_NETWORK_RESOURCE, IpBlock
from .client import PhoenixNAPClient

logger = logging.getLogger(__name__)


def is_attached_to(block: IpBlock, network_id: str) -> bool:
    """Check if the block's assigned resource is the given public network"""
    return (
        block.assigned_resource_type == PUBLIC_NETWORK_RESOURCE
        and block.assigned_resource_id == network_id
    )


class NetworkAttachmentManager:
    """
    Manages the binding between IP blocks and public networks

    A block is bound to at most one resource at a time.
    """

    def __init__(self, client: PhoenixNAPClient):
        self.client = client

    def ensure_attached(self, block: IpBlock, network_id: str) -> bool:
        """
        Attach the block to the network unless it already is

        Returns:
            True if an attach call was issued

        Raises:
            ConflictError: If the block is assigned to something else
        """
        if is_attached_to(block, network_id):
            logger.debug(f"IP block {block.id} already attached to network {network_id}")
            return False

        if block.assigned_resource_id:
            raise ConflictError(
                f"IP block {block.id} ({block.cidr}) is assigned to "
                f"{block.assigned_resource_type or 'resource'} {block.assigned_resource_id}, "
                f"not to network {network_id}"
            )

        self.client.attach_ip_block(network_id, block.id)
        logger.info(f"Attached IP block {block.id} ({block.cidr}) to network {network_id}")
        return True

    def detach(self, block: IpBlock, network_id: str) -> None:
        """
        Detach the block from the network

        Safe to call again while a previous detach is still settling.
        """
        self.client.detach_ip_block(network_id, block.id)
        logger.info(f"Detach requested for IP block {block.id} ({block.cidr}) from network {network_id}")
