"""Shared domain models for donations, queue entries and tenants."""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


DEFAULT_DONOR_NAME = "Anonymous"


class Platform(str, Enum):
    """Donation platforms the relay understands."""

    SAWERIA = "saweria"
    SOCIABUZZ = "sociabuzz"
    TRAKTEER = "trakteer"
    TAKO = "tako"
    BAGIBAGI = "bagibagi"


def _json_amount(value: Decimal) -> Union[int, float]:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class Donation(BaseModel):
    """Normalized donation record."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    donor_name: str = Field(default=DEFAULT_DONOR_NAME, description="Display name of the donor")
    amount: Decimal = Field(..., ge=0, description="Donation amount in the platform currency")
    message: str = Field(default="", description="Donor message")
    transaction_id: Optional[str] = None
    koin_count: Optional[int] = None
    is_verified: Optional[bool] = None
    is_anonymous: Optional[bool] = None

    @field_serializer("amount")
    def _serialize_amount(self, value: Decimal) -> Union[int, float]:
        return _json_amount(value)

    def with_override(self, donor_name: Optional[str], message: Optional[str]) -> "Donation":
        """Return a copy with presentation fields replaced."""

        update = {}
        if donor_name:
            update["donor_name"] = donor_name
        if message is not None:
            update["message"] = message
        return self.model_copy(update=update)


def display_name(donation: Donation) -> str:
    """Name used when comparing donations for duplicate suppression."""

    if donation.is_anonymous:
        return DEFAULT_DONOR_NAME
    return donation.donor_name.strip() or DEFAULT_DONOR_NAME


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_entry_id(donation: Donation, timestamp: datetime) -> str:
    """Collision-resistant (not cryptographic) identifier for a queued donation."""

    salt = secrets.token_hex(4)
    raw = f"{donation.platform.value}|{donation.donor_name}|{donation.amount}|{timestamp.timestamp()}|{salt}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


@dataclass(slots=True)
class QueueEntry:
    """Donation waiting for the active slot."""

    donation: Donation
    enqueued_at: datetime = field(default_factory=utcnow)
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = make_entry_id(self.donation, self.enqueued_at)


@dataclass(slots=True)
class ProcessedRecord:
    """Dedupe ledger entry."""

    platform: Platform
    donor_name: str
    amount: Decimal
    timestamp: float


@dataclass(slots=True)
class TenantStats:
    total_received: int = 0
    total_queued: int = 0
    total_processed: int = 0
    last_activity: Optional[datetime] = None

    def touch(self) -> None:
        self.last_activity = utcnow()

    def as_dict(self) -> dict:
        return {
            "total_received": self.total_received,
            "total_queued": self.total_queued,
            "total_processed": self.total_processed,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
        }


class DonationOverride(BaseModel):
    """Tenant-level replacement of the donor name and message shown to the poller."""

    enabled: bool = False
    donor_name: Optional[str] = Field(default=None, max_length=100)
    message: Optional[str] = Field(default=None, max_length=500)

    def apply(self, donation: Donation) -> Donation:
        if not self.enabled:
            return donation
        return donation.with_override(self.donor_name, self.message)


class TenantConfig(BaseModel):
    """Persisted registration of one tenant."""

    name: str = Field(..., min_length=1, max_length=100)
    api_key: str
    max_queue_size: int = Field(10, gt=0, le=1000)
    created_at: datetime = Field(default_factory=utcnow)
    override: DonationOverride = Field(default_factory=DonationOverride)
