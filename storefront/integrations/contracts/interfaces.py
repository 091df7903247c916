from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Surface(str, Enum):
    COMMERCE = "commerce"
    INVENTORY = "inventory"
    CRM = "crm"
    DESK = "desk"


class CheckoutType(str, Enum):
    GUEST = "guest"
    CREATE_ACCOUNT = "create_account"
    EXISTING_CUSTOMER = "existing_customer"


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------

@dataclass
class AccessToken:
    surface: Surface
    value: str
    expires_at: datetime

    def is_valid(self, margin_seconds: float, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now < self.expires_at - timedelta(seconds=margin_seconds)

    def __repr__(self) -> str:
        return f"AccessToken(surface={self.surface.value!r}, expires_at={self.expires_at.isoformat()!r})"


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

@dataclass
class WebhookEvent:
    vendor: str
    event_type: str
    data: Dict[str, Any] = field(default_factory=dict)
    event_id: Optional[str] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class WebhookAck:
    received: bool
    event_type: Optional[str] = None
    handled: bool = False
    errors: list = field(default_factory=list)
