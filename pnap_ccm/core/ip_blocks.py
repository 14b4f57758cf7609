# pnap_ccm/core/ip_blocks.py
"""
IP Block Registry
Finds, creates and re-tags the IP blocks reserved for services.
The provider's tags are the only record of which block belongs to
which service.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

from ..schemas.provider import IpBlock
from ..schemas.service import Service
from .client import PhoenixNAPClient
from .tags import (
    CLUSTER_TAG,
    DELETE_TAG,
    DELETE_VALUE,
    SERVICE_TAG,
    USAGE_TAG,
    USAGE_VALUE,
)

logger = logging.getLogger(__name__)

SERVICE_BLOCK_CIDR = "/29"
BLOCK_DESCRIPTION = "phoenixNAP Kubernetes CCM auto-generated for Load Balancer"


class BlockFilter(str, Enum):
    """Which blocks find() returns, by presence of the delete tag"""
    ACTIVE = "active"
    DELETED = "deleted"
    ANY = "any"


def tags_of(block: IpBlock) -> Dict[str, str]:
    """Tag name -> value of a block, missing values as empty strings"""
    return {name: value or "" for name, value in block.tag_map().items()}


def service_tag_value(service: Service) -> str:
    """Value of the service tag: namespace.name"""
    return service.tag_value


def is_marked_deleted(block: IpBlock) -> bool:
    return DELETE_TAG in block.tag_map()


class IPBlockRegistry:
    """
    IP Block Registry scoped to one cluster

    Responsibilities:
    1. Query blocks by tag predicate
    2. Create a block for a service and tag it
    3. Stage deletion with the delete tag
    """

    def __init__(self, client: PhoenixNAPClient, cluster_id: str):
        self.client = client
        self.cluster_id = cluster_id

    def base_tags(self) -> Dict[str, str]:
        """Tags every block of this cluster carries"""
        return {USAGE_TAG: USAGE_VALUE, CLUSTER_TAG: self.cluster_id}

    def service_tags(self, service: Service) -> Dict[str, str]:
        tags = self.base_tags()
        tags[SERVICE_TAG] = service_tag_value(service)
        return tags

    def find(
        self,
        service: Optional[Service],
        mode: BlockFilter = BlockFilter.ACTIVE
    ) -> List[IpBlock]:
        """
        Find blocks of this cluster, optionally only those of one service

        Args:
            service: Limit to this service; None means cluster-wide
            mode: Filter on presence of the delete tag

        Returns:
            Every match. More than one active block for a service is an
            invariant violation the caller must report.
        """
        predicate = self.service_tags(service) if service is not None else self.base_tags()
        blocks = self.client.list_ip_blocks(predicate)

        if mode == BlockFilter.ACTIVE:
            blocks = [b for b in blocks if not is_marked_deleted(b)]
        elif mode == BlockFilter.DELETED:
            blocks = [b for b in blocks if is_marked_deleted(b)]

        scope = service.key if service is not None else f"cluster {self.cluster_id}"
        logger.debug(f"Found {len(blocks)} {mode.value} IP blocks for {scope}")
        return blocks

    def get(self, block_id: str) -> Optional[IpBlock]:
        return self.client.get_ip_block(block_id)

    def create(
        self,
        service: Service,
        location: str,
        cidr_block_size: str = SERVICE_BLOCK_CIDR
    ) -> IpBlock:
        """
        Reserve a new block for a service and tag it

        The tags go out with the create request and are then written
        again as a full tag set.
        """
        tags = self.service_tags(service)
        block = self.client.create_ip_block(
            location=location,
            cidr_block_size=cidr_block_size,
            description=BLOCK_DESCRIPTION,
            tags=tags,
        )
        logger.info(f"Created IP block {block.id} ({block.cidr}) in {location} for {service.key}")

        block = self.client.put_ip_block_tags(block.id, tags)
        return block

    def mark_deleted(self, block: IpBlock) -> IpBlock:
        """
        Add the delete tag, keeping all other tags

        No-op when the block already carries it.
        """
        if is_marked_deleted(block):
            return block
        tags = tags_of(block)
        tags[DELETE_TAG] = DELETE_VALUE
        updated = self.client.put_ip_block_tags(block.id, tags)
        logger.info(f"Marked IP block {block.id} ({block.cidr}) for deletion")
        return updated

    def delete(self, block: IpBlock) -> None:
        self.client.delete_ip_block(block.id)
        logger.info(f"Deleted IP block {block.id} ({block.cidr})")
