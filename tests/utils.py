from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from donation_relay.config import Settings
from donation_relay.models import Donation, Platform


def make_settings(tmp_path: Path | None = None, **overrides) -> Settings:
    data = {
        "API_HOST": "127.0.0.1",
        "API_PORT": 9000,
        "TENANTS_FILE": str((tmp_path or Path(".")) / "tenants.json"),
        "MASTER_KEY": "master-secret",
        "DEFAULT_MAX_QUEUE_SIZE": 3,
        "ACTIVE_TIMEOUT_SEC": 60,
        "JANITOR_INTERVAL_SEC": 10,
        "WEBHOOK_RATE_CAPACITY": 100,
        "WEBHOOK_RATE_REFILL_PER_SEC": 10,
        "LOG_LEVEL": "INFO",
    }
    data.update(overrides)
    return Settings.model_validate(data)


def make_donation(
    donor: str = "Alice",
    amount: int | str = 10000,
    platform: Platform = Platform.SAWERIA,
    message: str = "hi",
) -> Donation:
    return Donation(platform=platform, donor_name=donor, amount=Decimal(str(amount)), message=message)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
