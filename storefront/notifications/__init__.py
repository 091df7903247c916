"""Customer emails and operational alerts."""

from .email import EmailNotifier
from .ops_alerts import OpsAlerter

__all__ = ["EmailNotifier", "OpsAlerter"]
