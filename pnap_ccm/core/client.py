# pnap_ccm/core/client.py
"""
phoenixNAP API Client
Handles communication with the Tag, IP and Network APIs
"""

import logging
import time
from typing import Any, Dict, Generator, List, Optional, Sequence

import httpx

from ..config import Settings
from ..exceptions import ConfigurationError, RemoteError
from ..schemas.provider import (
    IpBlock,
    IpBlockCreate,
    PublicNetworkIpBlock,
    Tag,
    TagAssignmentRequest,
    TagCreate,
)

logger = logging.getLogger(__name__)

TAGS_PATH = "/tag-manager/v1/tags"
IP_BLOCKS_PATH = "/ips/v1/ip-blocks"
PUBLIC_NETWORKS_PATH = "/networks/v1/public-networks"

TOKEN_SCOPES = ["bmc", "bmc.read", "tags", "tags.read"]


class ClientCredentialsAuth(httpx.Auth):
    """
    OAuth2 client-credentials flow for the phoenixNAP auth server

    The bearer token is cached and refreshed shortly before it expires.
    """

    requires_response_body = True

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scopes: Sequence[str] = TOKEN_SCOPES,
        leeway_seconds: float = 30.0
    ):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = list(scopes)
        self.leeway_seconds = leeway_seconds
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def _token_expired(self) -> bool:
        return self._token is None or time.monotonic() >= self._expires_at

    def _build_token_request(self) -> httpx.Request:
        return httpx.Request(
            "POST",
            self.token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": " ".join(self.scopes),
            },
        )

    def _update_token(self, response: httpx.Response) -> None:
        if response.status_code != 200:
            raise RemoteError(response.status_code, f"token request failed: {response.text}")
        payload = response.json()
        self._token = payload["access_token"]
        expires_in = float(payload.get("expires_in", 300))
        self._expires_at = time.monotonic() + max(expires_in - self.leeway_seconds, 0.0)
        logger.debug("Obtained provider access token")

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self._token_expired():
            token_response = yield self._build_token_request()
            self._update_token(token_response)

        request.headers["Authorization"] = f"Bearer {self._token}"
        response = yield request

        if response.status_code == 401:
            # token revoked server side; fetch a fresh one once
            token_response = yield self._build_token_request()
            self._update_token(token_response)
            request.headers["Authorization"] = f"Bearer {self._token}"
            yield request


class PhoenixNAPClient:
    """
    HTTP Client for the phoenixNAP APIs used by the broker

    Features:
    - One injected httpx.Client (tests pass a FastAPI TestClient)
    - Provider errors mapped to RemoteError
    """

    def __init__(self, http: httpx.Client):
        self.http = http

    @classmethod
    def from_settings(cls, settings: Settings) -> "PhoenixNAPClient":
        """
        Build a client with OAuth2 client-credentials authentication

        Raises:
            ConfigurationError: If client credentials are missing
        """
        if not settings.PNAP_CLIENT_ID:
            raise ConfigurationError("PNAP_CLIENT_ID is required")
        if not settings.PNAP_CLIENT_SECRET:
            raise ConfigurationError("PNAP_CLIENT_SECRET is required")

        http = httpx.Client(
            base_url=settings.PNAP_API_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            headers={"User-Agent": f"pnap-ccm/{settings.APP_VERSION}"},
            auth=ClientCredentialsAuth(
                token_url=settings.PNAP_TOKEN_URL,
                client_id=settings.PNAP_CLIENT_ID,
                client_secret=settings.PNAP_CLIENT_SECRET,
            ),
        )
        logger.info(f"phoenixNAP client initialized: {settings.PNAP_API_BASE_URL}")
        return cls(http)

    def close(self) -> None:
        self.http.close()

    def _make_request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Any = None
    ) -> Any:
        """Make HTTP request to the provider and decode the JSON body"""
        logger.debug(f"{method} {path}")
        try:
            response = self.http.request(method, path, json=json, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            body = e.response.text
            logger.error(f"HTTP {e.response.status_code} on {method} {path}: {body}")
            raise RemoteError(e.response.status_code, body) from e
        except httpx.RequestError as e:
            logger.error(f"Connection error on {method} {path}: {e}")
            raise RemoteError(None, f"cannot reach provider: {e}") from e

        if not response.content:
            return None
        return response.json()

    # === Tag API ===

    def list_tags(self) -> List[Tag]:
        data = self._make_request("GET", TAGS_PATH)
        return [Tag.model_validate(item) for item in data or []]

    def create_tag(self, name: str, description: Optional[str] = None) -> Tag:
        body = TagCreate(name=name, is_billing_tag=False, description=description)
        data = self._make_request("POST", TAGS_PATH, json=body.to_wire())
        return Tag.model_validate(data)

    # === IP API ===

    def list_ip_blocks(self, tags: Optional[Dict[str, str]] = None) -> List[IpBlock]:
        """
        List IP blocks carrying all of the given tags

        Tags are sent as repeated tag=<name>.<value> query parameters
        """
        params = [("tag", f"{name}.{value}") for name, value in (tags or {}).items()]
        data = self._make_request("GET", IP_BLOCKS_PATH, params=params)
        return [IpBlock.model_validate(item) for item in data or []]

    def get_ip_block(self, block_id: str) -> Optional[IpBlock]:
        """Get one IP block, None if it does not exist"""
        try:
            data = self._make_request("GET", f"{IP_BLOCKS_PATH}/{block_id}")
        except RemoteError as e:
            if e.status_code == 404:
                return None
            raise
        return IpBlock.model_validate(data)

    def create_ip_block(
        self,
        location: str,
        cidr_block_size: str,
        description: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None
    ) -> IpBlock:
        body = IpBlockCreate(
            location=location,
            cidr_block_size=cidr_block_size,
            description=description,
            tags=_tag_requests(tags or {}),
        )
        data = self._make_request("POST", IP_BLOCKS_PATH, json=body.to_wire())
        return IpBlock.model_validate(data)

    def delete_ip_block(self, block_id: str) -> None:
        self._make_request("DELETE", f"{IP_BLOCKS_PATH}/{block_id}")

    def put_ip_block_tags(self, block_id: str, tags: Dict[str, str]) -> IpBlock:
        """Replace the complete tag set of a block"""
        body = [request.to_wire() for request in _tag_requests(tags)]
        data = self._make_request("PUT", f"{IP_BLOCKS_PATH}/{block_id}/tags", json=body)
        return IpBlock.model_validate(data)

    # === Network API ===

    def attach_ip_block(self, network_id: str, block_id: str) -> None:
        body = PublicNetworkIpBlock(id=block_id)
        self._make_request(
            "POST",
            f"{PUBLIC_NETWORKS_PATH}/{network_id}/ip-blocks",
            json=body.to_wire()
        )

    def detach_ip_block(self, network_id: str, block_id: str) -> None:
        self._make_request("DELETE", f"{PUBLIC_NETWORKS_PATH}/{network_id}/ip-blocks/{block_id}")


def _tag_requests(tags: Dict[str, str]) -> List[TagAssignmentRequest]:
    return [TagAssignmentRequest(name=name, value=value) for name, value in tags.items()]
