"""Ordering parameters read from the domain's `[custom]` configuration."""

import os
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class OrderingSettings:
    return_window: timedelta = timedelta(hours=48)
    otp_ttl: timedelta = timedelta(minutes=10)
    low_stock_threshold: int = 10
    default_delivery_radius_km: float = 60.0
    notification_dispatcher: str = "log"

    @classmethod
    def from_config(cls, config) -> "OrderingSettings":
        """Build settings from a Protean domain config, falling back to defaults."""
        custom = {}
        if config is not None:
            custom = config.get("custom") or config

        defaults = cls()
        return cls(
            return_window=timedelta(
                hours=float(custom.get("RETURN_WINDOW_HOURS", defaults.return_window.total_seconds() / 3600))
            ),
            otp_ttl=timedelta(minutes=float(custom.get("OTP_TTL_MINUTES", defaults.otp_ttl.total_seconds() / 60))),
            low_stock_threshold=int(custom.get("LOW_STOCK_THRESHOLD", defaults.low_stock_threshold)),
            default_delivery_radius_km=float(
                custom.get("DEFAULT_DELIVERY_RADIUS_KM", defaults.default_delivery_radius_km)
            ),
            notification_dispatcher=os.environ.get(
                "NOTIFICATION_DISPATCHER",
                custom.get("NOTIFICATION_DISPATCHER", defaults.notification_dispatcher),
            ),
        )
