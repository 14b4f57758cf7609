# pnap_ccm/core/tags.py
"""
Tag Store Adapter
Tag names must exist as standalone resources before a value
can be assigned to an IP block
"""

import logging
from typing import Iterable, List

from .client import PhoenixNAPClient

logger = logging.getLogger(__name__)

# Reserved tag vocabulary
USAGE_TAG = "usage"
USAGE_VALUE = "cloud-provider-phoenixnap-auto"
CLUSTER_TAG = "cluster"
SERVICE_TAG = "service"
DELETE_TAG = "delete"
DELETE_VALUE = "true"

REQUIRED_TAGS = [USAGE_TAG, CLUSTER_TAG, SERVICE_TAG, DELETE_TAG]


class TagStore:
    """Declares the tag vocabulary on the provider"""

    def __init__(self, client: PhoenixNAPClient):
        self.client = client

    def ensure_tags(self, names: Iterable[str]) -> List[str]:
        """
        Make sure every tag name exists, creating only the missing ones

        Not atomic: if creating one tag fails, the ones created before
        it stay created. A later call skips them.

        Returns:
            Names that were created by this call

        Raises:
            RemoteError: If listing or creating tags fails
        """
        existing = {tag.name for tag in self.client.list_tags()}
        missing = []
        for name in names:
            if name not in existing and name not in missing:
                missing.append(name)

        for name in missing:
            self.client.create_tag(name, description="Managed by the phoenixNAP cloud provider")
            logger.info(f"Created tag definition: {name}")

        if not missing:
            logger.debug("All tag definitions already exist")
        return missing
