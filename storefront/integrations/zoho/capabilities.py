"""
Endpoint capabilities for each Zoho surface.

Which base URL, organisation parameter and paths each surface uses is
declared in config/zoho_capabilities.yml and resolved once at startup,
so no client discovers endpoints at request time.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from storefront.integrations.contracts.interfaces import Surface

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITIES_PATH = Path(__file__).resolve().parents[3] / "config" / "zoho_capabilities.yml"


class SurfaceCapabilities(BaseModel):
    """Base URL, organisation parameter and named endpoints of one surface"""

    base_url: str
    org_param: Optional[str] = None
    org_in_header: bool = False
    endpoints: Dict[str, str] = Field(default_factory=dict)

    def path(self, name: str, **params: str) -> str:
        if name not in self.endpoints:
            raise KeyError(f"Endpoint '{name}' is not declared for this surface")
        return self.endpoints[name].format(**params)


class CapabilitiesConfig(BaseModel):
    version: int = 1
    surfaces: Dict[Surface, SurfaceCapabilities]

    def for_surface(self, surface: Surface) -> SurfaceCapabilities:
        try:
            return self.surfaces[surface]
        except KeyError:
            raise KeyError(f"No capabilities configured for surface '{surface.value}'") from None


def load_capabilities(config_path: Optional[Path] = None) -> CapabilitiesConfig:
    """
    Load and validate the capability config from YAML

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config doesn't match schema
    """
    config_path = config_path or DEFAULT_CAPABILITIES_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Capabilities file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    try:
        config = CapabilitiesConfig(**config_data)
    except ValidationError as e:
        logger.error(f"Capabilities validation failed: {e}")
        raise
    logger.info(f"Loaded Zoho capabilities v{config.version} from {config_path}")
    return config
