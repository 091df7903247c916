import json
import logging
from collections import deque
from typing import Any, Deque, Dict, Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

logger = logging.getLogger(__name__)


class OpsAlerter:
    """
    Posts operational alerts (failed syncs, failed checkouts, webhook handler
    errors) to a Slack channel. Alerts sharing a `thread_key` (usually a
    checkout request id) are grouped in one thread.

    Without a token/channel it only logs.
    """

    def __init__(self, token: str = "", channel: str = "", client: WebClient = None, history_size: int = 200):
        self.channel = channel
        if client is None and token and channel:
            client = WebClient(token=token)
        self.client = client
        self._thread_cache: Dict[str, str] = {}
        self.sent: Deque[Dict[str, Any]] = deque(maxlen=history_size)

    @property
    def enabled(self) -> bool:
        return self.client is not None and bool(self.channel)

    @staticmethod
    def _format(category: str, message: str, context: Optional[Dict[str, Any]]) -> str:
        text = f"[{category}] {message}"
        if context:
            text += "\n```" + json.dumps(context, default=str, indent=2)[:2500] + "```"
        return text

    def alert(self, category: str, message: str, context: Optional[Dict[str, Any]] = None, thread_key: str = None):
        text = self._format(category, message, context)
        logger.warning("Ops alert %s: %s", category, message)
        self.sent.append({"category": category, "message": message, "context": context or {}})
        if not self.enabled:
            return None

        try:
            kwargs = {"channel": self.channel, "text": text}
            thread_ts = self._thread_cache.get(thread_key) if thread_key else None
            if thread_ts:
                kwargs["thread_ts"] = thread_ts
            response = self.client.chat_postMessage(**kwargs)
            data = response.data
            if thread_key and not thread_ts and data.get("ts"):
                self._thread_cache[thread_key] = data["ts"]
            return data
        except SlackApiError as e:
            # Alert delivery must never break the flow that raised the alert.
            logger.error("Slack alert delivery failed: %s", self._extract_slack_error(e))
            return None

    @staticmethod
    def _extract_slack_error(exc: Exception) -> str:
        response = getattr(exc, "response", None)
        if isinstance(response, dict):
            return str(response.get("error", "unknown_error"))
        try:
            return str(response["error"])  # type: ignore[index]
        except (KeyError, TypeError):
            return str(exc)
