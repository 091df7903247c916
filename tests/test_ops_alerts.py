from slack_sdk.errors import SlackApiError

from storefront.notifications.ops_alerts import OpsAlerter


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeSlackClient:
    def __init__(self, fail=False):
        self.messages = []
        self._counter = 0
        self.fail = fail

    def _next_ts(self):
        self._counter += 1
        return str(self._counter)

    def chat_postMessage(self, channel: str, text: str, thread_ts: str = None):
        if self.fail:
            raise SlackApiError("channel_not_found", {"ok": False, "error": "channel_not_found"})
        ts = self._next_ts()
        payload = {"channel": channel, "text": text, "ts": ts}
        if thread_ts:
            payload["thread_ts"] = thread_ts
        self.messages.append(payload)
        return FakeResponse(payload)


def test_alerts_with_same_key_share_a_thread():
    fake = FakeSlackClient()
    alerter = OpsAlerter(channel="C1", client=fake)

    alerter.alert("checkout", "Checkout failed at invoice_creation", {"request_id": "req-1"}, thread_key="req-1")
    alerter.alert("checkout", "Retry failed", thread_key="req-1")
    alerter.alert("product_sync", "Product sync failed")

    assert fake.messages[0]["text"].startswith("[checkout] Checkout failed at invoice_creation")
    assert '"request_id": "req-1"' in fake.messages[0]["text"]
    assert fake.messages[1]["thread_ts"] == "1"
    assert "thread_ts" not in fake.messages[2]


def test_without_client_only_records():
    alerter = OpsAlerter()

    assert alerter.enabled is False
    assert alerter.alert("webhook", "handler failed") is None
    assert list(alerter.sent) == [{"category": "webhook", "message": "handler failed", "context": {}}]


def test_slack_errors_do_not_propagate():
    alerter = OpsAlerter(channel="C1", client=FakeSlackClient(fail=True))

    assert alerter.alert("checkout", "boom") is None
    assert OpsAlerter._extract_slack_error(SlackApiError("x", {"error": "invalid_auth"})) == "invalid_auth"


def test_alert_history_is_bounded():
    alerter = OpsAlerter(history_size=2)

    for i in range(3):
        alerter.alert("webhook", f"failure {i}")

    assert [a["message"] for a in alerter.sent] == ["failure 1", "failure 2"]
