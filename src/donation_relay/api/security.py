"""Credential checks and webhook rate limiting for the HTTP surface."""

from __future__ import annotations

import hmac
import time
from typing import Any, Callable, Dict, Optional, Tuple

from ..errors import AdminDisabled, AuthInvalid, AuthRequired


def extract_credential(x_api_key: Optional[str], authorization: Optional[str]) -> Optional[str]:
    """Prefer ``X-API-Key``; fall back to ``Authorization: Bearer <key>``."""

    if x_api_key and x_api_key.strip():
        return x_api_key.strip()
    if authorization:
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    return None


def verify_credential(provided: Optional[str], expected: str) -> None:
    if not provided:
        raise AuthRequired()
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise AuthInvalid()


def verify_master_key(provided: Optional[str], master_key: Optional[str]) -> None:
    if not master_key:
        raise AdminDisabled("MASTER_KEY is not configured")
    verify_credential(provided, master_key)


class RateLimiter:
    """Token bucket per key; runs on the event loop so needs no locking."""

    def __init__(
        self,
        capacity: float,
        refill_per_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = float(capacity)
        self.refill = float(refill_per_s)
        self._buckets: Dict[Any, Tuple[float, float]] = {}
        self._clock = clock

    def consume(self, key: Any, cost: float = 1.0) -> bool:
        now = self._clock()
        tokens, ts = self._buckets.get(key, (self.capacity, now))
        tokens = min(self.capacity, tokens + (now - ts) * self.refill)
        if tokens >= cost:
            tokens -= cost
            ok = True
        else:
            ok = False
        self._buckets[key] = (tokens, now)
        return ok

    def forget(self, key: Any) -> None:
        self._buckets.pop(key, None)
