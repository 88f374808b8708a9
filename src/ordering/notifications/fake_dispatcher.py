"""Fake notification dispatcher: records notifications for test assertions."""

from ordering.notifications.port import NotificationDispatcher


class DispatchFailed(Exception):
    pass


class FakeNotificationDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed"):
        """Configure the fake dispatcher behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def dispatch(self, event_type: str, payload: dict, audience: list[str]) -> None:
        if not self.should_succeed:
            raise DispatchFailed(self.failure_reason)
        self.sent.append({"event_type": event_type, "payload": payload, "audience": list(audience)})

    def of_type(self, event_type) -> list[dict]:
        event_type = getattr(event_type, "value", event_type)
        return [n for n in self.sent if n["event_type"] == event_type]

    def reset(self):
        """Clear recorded notifications (useful between tests)."""
        self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"
