# pnap_ccm/config.py
"""
Application Configuration
Uses pydantic-settings for environment variable management
"""

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple, Type
from urllib.parse import urlparse

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .exceptions import ConfigurationError

DEFAULT_ANNOTATION_IP_LOCATION = "phoenixnap.com/ip-location"

# keys of the JSON provider config file -> settings fields
_CONFIG_FILE_KEYS = {
    "clientID": "PNAP_CLIENT_ID",
    "clientSecret": "PNAP_CLIENT_SECRET",
    "base-url": "PNAP_API_BASE_URL",
    "loadbalancer": "PNAP_LOAD_BALANCER",
    "location": "PNAP_LOCATION",
    "annotationIPLocation": "PNAP_ANNOTATION_IP_LOCATION",
    "serviceNodeSelector": "PNAP_SERVICE_NODE_SELECTOR",
    "clusterID": "PNAP_CLUSTER_ID",
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    Create a .env file for local development

    Environment variables always win over values passed in
    explicitly (e.g. from the JSON provider config file).
    """

    # === Application ===
    APP_NAME: str = "PhoenixNAP Load Balancer IP Broker"
    APP_VERSION: str = "1.0.0"
    ENV: str = "development"  # development, staging, production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # === API ===
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    ADMIN_SECRET: str = "change-me-admin-secret"

    # === Provider credentials ===
    PNAP_CLIENT_ID: str = ""
    PNAP_CLIENT_SECRET: str = ""
    PNAP_API_BASE_URL: str = "https://api.phoenixnap.com"
    PNAP_TOKEN_URL: str = "https://auth.phoenixnap.com/auth/realms/BMC/protocol/openid-connect/token"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # === Load balancer ===
    PNAP_LOCATION: str = ""
    PNAP_LOAD_BALANCER: str = ""  # e.g. pnap-l2://<network-id>
    PNAP_ANNOTATION_IP_LOCATION: str = DEFAULT_ANNOTATION_IP_LOCATION
    PNAP_SERVICE_NODE_SELECTOR: str = ""
    PNAP_CLUSTER_ID: str = ""  # UID of the kube-system namespace

    # === Garbage collection ===
    GC_INTERVAL_SECONDS: float = 60.0

    # === Provider config file ===
    PNAP_CONFIG_FILE: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.ENV.lower() == "development"

    @property
    def load_balancer_enabled(self) -> bool:
        return bool(self.PNAP_LOAD_BALANCER.strip())

    def summary_lines(self) -> List[str]:
        """
        Describe the effective configuration for the startup log,
        masking the client secret
        """
        lines = []
        if self.PNAP_CLIENT_SECRET:
            lines.append("client secret: '<masked>'")
        else:
            lines.append("client secret: ''")
        lines.append(f"client id: '{self.PNAP_CLIENT_ID}'")
        if self.load_balancer_enabled:
            lines.append(f"load balancer config: '{self.PNAP_LOAD_BALANCER}'")
        else:
            lines.append("load balancer config: disabled")
        lines.append(f"location: '{self.PNAP_LOCATION}'")
        lines.append(f"IP location annotation: '{self.PNAP_ANNOTATION_IP_LOCATION}'")
        lines.append(f"service node selector: '{self.PNAP_SERVICE_NODE_SELECTOR}'")
        lines.append(f"api base url: '{self.PNAP_API_BASE_URL}'")
        lines.append(f"gc interval: {self.GC_INTERVAL_SECONDS}s")
        return lines


@dataclass(frozen=True)
class LoadBalancerConfig:
    """Parsed form of PNAP_LOAD_BALANCER (scheme://network-id/path)"""
    scheme: str
    network_id: str
    path: str = ""


def parse_load_balancer_setting(value: str) -> Optional[LoadBalancerConfig]:
    """
    Parse the load balancer selector URI

    Returns:
        None when the setting is empty (load balancing disabled)

    Raises:
        ConfigurationError: If the URI has no scheme or no network host
    """
    value = (value or "").strip()
    if not value:
        return None

    try:
        parsed = urlparse(value)
    except ValueError as e:
        raise ConfigurationError(f"invalid load balancer config '{value}': {e}") from e

    if not parsed.scheme or "://" not in value:
        raise ConfigurationError(
            f"invalid load balancer config '{value}': expected scheme://network-id[/path]"
        )
    if not parsed.netloc:
        raise ConfigurationError(
            f"invalid load balancer config '{value}': missing network id host segment"
        )

    return LoadBalancerConfig(
        scheme=parsed.scheme,
        network_id=parsed.netloc,
        path=parsed.path.lstrip("/"),
    )


def load_settings(config_file: Optional[str] = None) -> Settings:
    """
    Build settings from an optional JSON provider config file,
    with environment variables overriding file values

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    path = config_file or Settings().PNAP_CONFIG_FILE
    if not path:
        return Settings()

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"failed to read configuration file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"failed to process json of configuration file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"configuration file {path} must contain a JSON object")

    values = {
        field: raw[key]
        for key, field in _CONFIG_FILE_KEYS.items()
        if raw.get(key) not in (None, "")
    }
    return Settings(**values)


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance
    Use this to get settings throughout the application
    """
    return load_settings()
