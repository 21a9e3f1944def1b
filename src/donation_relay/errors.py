"""Error taxonomy shared by the pipeline and the HTTP surface."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for request-local failures with an HTTP mapping."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.code)
        self.detail = detail


class UnrecognizedPayload(RelayError):
    code = "INVALID_DONATION_DATA"
    status_code = 400


class InvalidAmount(RelayError):
    code = "INVALID_AMOUNT"
    status_code = 400


class InvalidPlatform(RelayError):
    code = "INVALID_PLATFORM"
    status_code = 400


class QueueFull(RelayError):
    code = "QUEUE_FULL"
    status_code = 429


class RateLimited(RelayError):
    code = "RATE_LIMITED"
    status_code = 429


class PayloadTooLarge(RelayError):
    code = "PAYLOAD_TOO_LARGE"
    status_code = 413


class TenantNotFound(RelayError):
    code = "USER_NOT_FOUND"
    status_code = 404


class TenantAlreadyExists(RelayError):
    code = "USER_EXISTS"
    status_code = 409


class NoDonation(RelayError):
    code = "NO_DONATION"
    status_code = 404


class AuthRequired(RelayError):
    code = "AUTH_REQUIRED"
    status_code = 401


class AuthInvalid(RelayError):
    code = "AUTH_INVALID"
    status_code = 403


class AdminDisabled(RelayError):
    code = "ADMIN_DISABLED"
    status_code = 503
