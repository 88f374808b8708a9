"""Delivery verification codes.

A six-digit code is issued when an agent is dispatched and checked lazily
when the agent closes the delivery. Nothing sweeps expired codes.
"""

import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from ordering.clock import Clock, SystemClock
from ordering.errors import InvalidOTP

CODE_LENGTH = 6


@dataclass(frozen=True)
class DeliveryCode:
    code: str
    expires_at: datetime


def random_code() -> str:
    return f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}"


class DeliveryVerifier:
    def __init__(self, clock: Clock | None = None, ttl: timedelta = timedelta(minutes=10), generator=random_code):
        self._clock = clock or SystemClock()
        self._ttl = ttl
        self._generate = generator

    def issue(self) -> DeliveryCode:
        return DeliveryCode(code=self._generate(), expires_at=self._clock.now() + self._ttl)

    def verify(self, stored_code, expires_at, presented) -> None:
        """Raise InvalidOTP unless `presented` matches an unexpired stored code."""
        if not stored_code or expires_at is None:
            raise InvalidOTP("missing")
        presented = str(presented or "").strip()
        if not presented.isascii() or not hmac.compare_digest(str(stored_code).encode(), presented.encode()):
            raise InvalidOTP("mismatch")
        if not self._clock.now() < expires_at:
            raise InvalidOTP("expired")
