"""
Settings loader for the storefront backend
"""

import os
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError
import logging

from storefront.integrations.contracts.interfaces import Surface

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


class OAuthCredentials(BaseModel):
    """Refresh-token credentials for one Zoho surface"""

    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)


class PricingConfig(BaseModel):
    """Tax and shipping rules used to compute order totals"""

    tax_rate: float = Field(default=0.0875, ge=0.0, le=1.0)
    free_shipping_threshold: float = Field(default=100.0, ge=0.0)
    flat_shipping_fee: float = Field(default=9.99, ge=0.0)
    currency: str = "USD"


class StorefrontSettings(BaseModel):
    """Complete runtime configuration"""

    credentials: Dict[Surface, OAuthCredentials] = Field(default_factory=dict)
    organization_ids: Dict[Surface, str] = Field(default_factory=dict)
    accounts_base_url: str = "https://accounts.zoho.com"
    token_safety_margin_seconds: int = Field(default=60, ge=0)
    max_token_refreshes_per_hour: int = Field(default=10, ge=1)
    vendor_timeout_seconds: float = Field(default=30.0, gt=0)

    pricing: PricingConfig = Field(default_factory=PricingConfig)
    invoice_payment_terms_days: int = Field(default=0, ge=0)
    zoho_tax_id: str = ""
    send_invoice_email: bool = False
    display_filter_labels: List[str] = Field(default_factory=lambda: ["display_in_app"])
    # 0 keeps the snapshot until the next successful sync replaces it.
    cache_ttl_seconds: int = Field(default=0, ge=0)
    stale_after_hours: float = Field(default=24.0, gt=0)

    sync_secret: str = ""
    zoho_webhook_secret: str = ""
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    payment_link_secret: str = ""
    public_base_url: str = "http://localhost:8000"
    allow_unsigned_webhooks: bool = False

    redis_url: str = ""
    integrations_mode: str = ""
    slack_token: str = ""
    slack_channel: str = ""
    admin_email: str = ""
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])

    def credentials_for(self, surface: Surface) -> OAuthCredentials:
        return self.credentials.get(surface) or OAuthCredentials()

    def organization_id(self, surface: Surface) -> str:
        return self.organization_ids.get(surface, "")

    @property
    def use_real_integrations(self) -> bool:
        mode = self.integrations_mode.strip().lower()
        if mode in {"real", "live"}:
            return True
        if mode in {"mock", "test"}:
            return False
        return self.credentials_for(Surface.INVENTORY).configured


_ORG_ENV = {
    Surface.INVENTORY: "ZOHO_INVENTORY_ORGANIZATION_ID",
    Surface.COMMERCE: "ZOHO_STORE_ID",
    Surface.CRM: "ZOHO_CRM_ORG_ID",
    Surface.DESK: "ZOHO_DESK_ORG_ID",
}


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _surface_credentials(env: Mapping[str, str], surface: Surface) -> OAuthCredentials:
    prefix = f"ZOHO_{surface.value.upper()}_"

    def pick(name: str) -> str:
        return env.get(prefix + name) or env.get("ZOHO_" + name, "")

    return OAuthCredentials(
        client_id=pick("CLIENT_ID"),
        client_secret=pick("CLIENT_SECRET"),
        refresh_token=pick("REFRESH_TOKEN"),
    )


def load_settings(env: Optional[Mapping[str, str]] = None) -> StorefrontSettings:
    """
    Build settings from environment variables

    Args:
        env: Mapping to read from. Defaults to os.environ (after load_dotenv)

    Returns:
        Validated StorefrontSettings object

    Raises:
        ValidationError: If a value doesn't match the schema
    """
    env = os.environ if env is None else env

    data = {
        "credentials": {s: _surface_credentials(env, s) for s in Surface},
        "organization_ids": {s: env.get(var, "") for s, var in _ORG_ENV.items() if env.get(var)},
        "accounts_base_url": env.get("ZOHO_ACCOUNTS_BASE", "https://accounts.zoho.com"),
        "pricing": {
            "tax_rate": env.get("TAX_RATE", 0.0875),
            "free_shipping_threshold": env.get("FREE_SHIPPING_THRESHOLD", 100),
            "flat_shipping_fee": env.get("FLAT_SHIPPING_FEE", 9.99),
            "currency": env.get("CURRENCY", "USD"),
        },
        "invoice_payment_terms_days": env.get("INVOICE_PAYMENT_TERMS_DAYS", 0),
        "send_invoice_email": env.get("SEND_INVOICE_EMAIL", "").lower() in _TRUTHY,
        "zoho_tax_id": env.get("ZOHO_TAX_ID", ""),
        "cache_ttl_seconds": env.get("CACHE_TTL_SECONDS", 0),
        "vendor_timeout_seconds": env.get("VENDOR_TIMEOUT_SECONDS", 30),
        "sync_secret": env.get("SYNC_SECRET") or env.get("CRON_SECRET", ""),
        "zoho_webhook_secret": env.get("ZOHO_WEBHOOK_SECRET", ""),
        "stripe_secret_key": env.get("STRIPE_SECRET_KEY", ""),
        "stripe_webhook_secret": env.get("STRIPE_WEBHOOK_SECRET", ""),
        "payment_link_secret": env.get("PAYMENT_LINK_SECRET", ""),
        "public_base_url": env.get("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        "allow_unsigned_webhooks": env.get("ALLOW_UNSIGNED_WEBHOOKS", "").lower() in _TRUTHY,
        "redis_url": env.get("REDIS_URL", ""),
        "integrations_mode": env.get("INTEGRATIONS_MODE", ""),
        "slack_token": env.get("SLACK_TOKEN", ""),
        "slack_channel": env.get("SLACK_CHANNEL", ""),
        "admin_email": env.get("ADMIN_EMAIL", ""),
    }
    if env.get("DISPLAY_FILTER_LABELS"):
        data["display_filter_labels"] = _split(env["DISPLAY_FILTER_LABELS"])
    if env.get("ZOHO_DISPLAY_IN_APP_FIELD_ID"):
        labels = data.get("display_filter_labels") or ["display_in_app"]
        data["display_filter_labels"] = labels + [env["ZOHO_DISPLAY_IN_APP_FIELD_ID"].strip()]
    if env.get("CORS_ALLOW_ORIGINS"):
        data["cors_allow_origins"] = _split(env["CORS_ALLOW_ORIGINS"])

    try:
        settings = StorefrontSettings(**data)
    except ValidationError as e:
        logger.error(f"Settings validation failed: {e}")
        raise
    logger.info(
        "Loaded settings: real_integrations=%s redis=%s",
        settings.use_real_integrations,
        bool(settings.redis_url),
    )
    return settings
