# pnap_ccm/schemas/provider.py
"""
Wire models of the phoenixNAP Tag, IP and Network APIs
Field names are snake_case in Python and camelCase on the wire
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class IpBlockStatus(str, Enum):
    """IP block status as reported by the provider"""
    CREATING = "creating"
    ASSIGNING = "assigning"
    ERROR_ASSIGNING = "error assigning"
    ASSIGNED = "assigned"
    UNASSIGNING = "unassigning"
    ERROR_UNASSIGNING = "error unassigning"
    UNASSIGNED = "unassigned"


# assignedResourceType of a block attached to a public network
PUBLIC_NETWORK_RESOURCE = "public-network"


class ProviderModel(BaseModel):
    """Base for provider wire models"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# === Tag API ===

class Tag(ProviderModel):
    """A tag definition; must exist before it can be assigned"""
    id: Optional[str] = None
    name: str
    is_billing_tag: bool = False
    description: Optional[str] = None


class TagCreate(ProviderModel):
    name: str
    is_billing_tag: bool = False
    description: Optional[str] = None


# === IP API ===

class TagAssignment(ProviderModel):
    """A tag name/value pair as attached to a resource"""
    id: Optional[str] = None
    name: str
    value: Optional[str] = None
    is_billing_tag: Optional[bool] = None
    created_by: Optional[str] = None


class TagAssignmentRequest(ProviderModel):
    name: str
    value: Optional[str] = None


class IpBlock(ProviderModel):
    """
    A reserved address block

    assigned_resource_id / assigned_resource_type describe what the
    block is currently attached to (for us: a public network)
    """
    id: str
    location: str = ""
    cidr_block_size: str = ""
    cidr: str = ""
    ip_version: Optional[str] = None
    status: str = IpBlockStatus.UNASSIGNED.value
    assigned_resource_id: Optional[str] = None
    assigned_resource_type: Optional[str] = None
    description: Optional[str] = None
    tags: List[TagAssignment] = Field(default_factory=list)
    is_bring_your_own: Optional[bool] = None
    created_on: Optional[str] = None

    def tag_map(self) -> Dict[str, Optional[str]]:
        """Tags as a name -> value mapping"""
        return {tag.name: tag.value for tag in self.tags}


class IpBlockCreate(ProviderModel):
    location: str
    cidr_block_size: str
    description: Optional[str] = None
    tags: List[TagAssignmentRequest] = Field(default_factory=list)


# === Network API ===

class PublicNetworkIpBlock(ProviderModel):
    """Body of the attach call: the block to add to a public network"""
    id: str
