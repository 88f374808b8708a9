"""Notification dispatcher adapters."""


def build_dispatcher(kind: str = "log"):
    """Construct a dispatcher adapter by name.

    Adapters are created per call and handed to the order core explicitly;
    there is no process-wide instance.
    """
    if kind == "log":
        from ordering.notifications.log_dispatcher import LoggingNotificationDispatcher

        return LoggingNotificationDispatcher()
    if kind == "fake":
        from ordering.notifications.fake_dispatcher import FakeNotificationDispatcher

        return FakeNotificationDispatcher()
    raise ValueError(f"Unknown notification dispatcher: {kind}")
