"""FastAPI surface for webhook intake and game-server polling."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import Settings, get_settings
from ..donation.admission import AdmissionPipeline
from ..donation.classifier import detect, unwrap_envelope
from ..donation.samples import sample_payload
from ..errors import NoDonation, PayloadTooLarge, RateLimited, RelayError, UnrecognizedPayload
from ..models import DonationOverride, QueueEntry, TenantConfig
from ..queue import DonationStore
from ..tenants import TenantRegistry
from .security import RateLimiter, extract_credential, verify_credential, verify_master_key

logger = logging.getLogger(__name__)


def _entry_to_dict(entry: QueueEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "enqueued_at": entry.enqueued_at.isoformat(),
        "donation": entry.donation.model_dump(mode="json"),
    }


def _tenant_to_dict(key: str, config: TenantConfig, include_secret: bool = False) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "key": key,
        "name": config.name,
        "max_queue_size": config.max_queue_size,
        "created_at": config.created_at.isoformat(),
        "override": config.override.model_dump(),
    }
    if include_secret:
        body["api_key"] = config.api_key
    return body


class TenantRegistration(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    max_queue_size: Optional[int] = Field(default=None, gt=0, le=1000)
    override: Optional[DonationOverride] = None


class RelayServer:
    """Wraps the FastAPI application exposing the relay endpoints."""

    def __init__(
        self,
        store: DonationStore,
        registry: TenantRegistry,
        settings: Optional[Settings] = None,
        pipeline: Optional[AdmissionPipeline] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._registry = registry
        self._pipeline = pipeline or AdmissionPipeline(
            store, tenant_exists=lambda key: registry.get(key) is not None
        )
        self._rate_limiter = rate_limiter or RateLimiter(
            self._settings.webhook_rate_capacity,
            self._settings.webhook_rate_refill_per_sec,
        )
        self._started = time.monotonic()
        self._app = FastAPI(title="Donation Relay", version="1.0.0")
        self._register_error_handlers()
        self._register_routes()

    @property
    def app(self) -> FastAPI:
        return self._app

    # -- helpers -----------------------------------------------------------

    def _authorize(self, key: str, x_api_key: Optional[str], authorization: Optional[str]) -> TenantConfig:
        config = self._registry.require(key)
        verify_credential(extract_credential(x_api_key, authorization), config.api_key)
        return config

    def _authorize_admin(self, x_master_key: Optional[str]) -> None:
        master = self._settings.master_key
        verify_master_key(x_master_key, master.get_secret_value() if master else None)

    async def _read_body(self, request: Request) -> bytes:
        """Read the body, stopping as soon as it exceeds ``max_body_bytes``."""

        limit = self._settings.max_body_bytes
        declared = request.headers.get("content-length")
        if declared is not None and declared.strip().isdigit() and int(declared) > limit:
            raise PayloadTooLarge(f"declared {declared} bytes")

        chunks: list[bytes] = []
        received = 0
        async for chunk in request.stream():
            received += len(chunk)
            if received > limit:
                raise PayloadTooLarge(f"more than {limit} bytes")
            chunks.append(chunk)
        return b"".join(chunks)

    async def _read_json(self, request: Request) -> Any:
        body = await self._read_body(request)
        if not body.strip():
            raise UnrecognizedPayload("empty body")
        try:
            return json.loads(body)
        except (ValueError, RecursionError) as exc:
            # ValueError covers JSONDecodeError, UnicodeDecodeError and oversized integers
            raise UnrecognizedPayload("body is not usable JSON") from exc

    # -- wiring --------------------------------------------------------------

    def _register_error_handlers(self) -> None:
        @self._app.exception_handler(RelayError)
        async def relay_error(request: Request, exc: RelayError) -> JSONResponse:  # noqa: ANN202
            return JSONResponse({"error": exc.code}, status_code=exc.status_code)

        @self._app.exception_handler(Exception)
        async def internal_error(request: Request, exc: Exception) -> JSONResponse:  # noqa: ANN202
            logger.exception("api.internal_error", exc_info=exc)
            return JSONResponse({"error": "INTERNAL_ERROR"}, status_code=500)

    def _register_routes(self) -> None:
        app = self._app

        @app.get("/health", status_code=status.HTTP_200_OK)
        async def health() -> Dict[str, Any]:  # noqa: ANN202 - FastAPI response
            return {"status": "ok", "uptime_sec": round(time.monotonic() - self._started, 3)}

        @app.get("/stats")
        async def stats() -> Dict[str, Any]:  # noqa: ANN202 - FastAPI response
            totals = {"total_received": 0, "total_queued": 0, "total_processed": 0}
            active = 0
            queued = 0
            for key in self._store.tenants():
                tenant_stats = self._store.stats(key)
                totals["total_received"] += tenant_stats.total_received
                totals["total_queued"] += tenant_stats.total_queued
                totals["total_processed"] += tenant_stats.total_processed
                active += int(self._store.has_active(key))
                queued += self._store.queue_size(key)
            return {
                "uptime_sec": round(time.monotonic() - self._started, 3),
                "tenants_registered": len(self._registry.list_tenants()),
                "tenants_tracked": len(self._store),
                "active_donations": active,
                "queued_donations": queued,
                **totals,
            }

        @app.post("/donation/{key}/webhook")
        async def webhook(key: str, request: Request) -> Dict[str, Any]:  # noqa: ANN202
            config = self._registry.require(key)
            if not self._rate_limiter.consume(key):
                logger.warning("webhook.rate_limited", extra={"tenant": key})
                raise RateLimited()
            payload = await self._read_json(request)
            result = await self._pipeline.admit(key, payload, config.max_queue_size)
            return result.as_response()

        @app.get("/donation/{key}/data")
        async def donation_data(
            key: str,
            x_api_key: Optional[str] = Header(default=None),
            authorization: Optional[str] = Header(default=None),
        ) -> Response:
            config = self._authorize(key, x_api_key, authorization)
            active = self._store.get_active(key)
            if active is None:
                return Response(status_code=status.HTTP_204_NO_CONTENT)
            shown = config.override.apply(active)
            logger.info(
                "poll.sent",
                extra={"tenant": key, "donor": shown.donor_name, "amount": str(shown.amount)},
            )
            return JSONResponse(shown.model_dump(mode="json"))

        @app.delete("/donation/{key}/clear")
        async def clear_donation(
            key: str,
            x_api_key: Optional[str] = Header(default=None),
            authorization: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:  # noqa: ANN202
            self._authorize(key, x_api_key, authorization)
            had_active, promoted, queue_size = await self._store.clear_and_promote(key)
            if not had_active:
                raise NoDonation()
            logger.info("poll.cleared", extra={"tenant": key, "promoted": promoted, "queue_size": queue_size})
            return {"success": True, "promoted": promoted, "queue_size": queue_size}

        @app.get("/donation/{key}/status")
        async def tenant_status(
            key: str,
            x_api_key: Optional[str] = Header(default=None),
            authorization: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:  # noqa: ANN202
            config = self._authorize(key, x_api_key, authorization)
            snapshot = await self._store.snapshot(key)
            return {
                "has_active": snapshot.active is not None,
                "active": snapshot.active.model_dump(mode="json") if snapshot.active else None,
                "active_since": snapshot.active_since.isoformat() if snapshot.active_since else None,
                "queue_size": self._store.queue_size(key),
                "queue_limit": config.max_queue_size,
                "queue_preview": [_entry_to_dict(entry) for entry in snapshot.queue],
                "stats": snapshot.stats.as_dict(),
                "override_enabled": config.override.enabled,
            }

        @app.post("/donation/{key}/force-clear")
        async def force_clear(
            key: str,
            x_api_key: Optional[str] = Header(default=None),
            authorization: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:  # noqa: ANN202
            self._authorize(key, x_api_key, authorization)
            dropped = await self._store.force_clear_locked(key)
            logger.warning("poll.force_cleared", extra={"tenant": key, "dropped": dropped})
            return {"success": True, "cleared_queue": dropped}

        @app.post("/donation/{key}/test/{platform}")
        async def inject_test(
            key: str,
            platform: str,
            x_api_key: Optional[str] = Header(default=None),
            authorization: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:  # noqa: ANN202
            if not self._settings.enable_test_endpoints:
                return JSONResponse({"error": "NOT_FOUND"}, status_code=status.HTTP_404_NOT_FOUND)
            config = self._authorize(key, x_api_key, authorization)
            payload = sample_payload(platform)
            result = await self._pipeline.admit(key, payload, config.max_queue_size)
            body = result.as_response()
            body["donation"] = result.donation.model_dump(mode="json") if result.donation else None
            logger.info("webhook.test_injected", extra={"tenant": key, "platform": platform})
            return body

        @app.post("/donation/{key}/debug")
        async def debug_classification(
            key: str,
            request: Request,
            x_api_key: Optional[str] = Header(default=None),
            authorization: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:  # noqa: ANN202
            self._authorize(key, x_api_key, authorization)
            received = await self._read_json(request)
            unwrapped, empty = unwrap_envelope(received)
            result = None if empty else detect(unwrapped)
            return {
                "received": received,
                "parsed": result.donation.model_dump(mode="json") if result else None,
                "rule": result.rule if result else None,
                "valid": bool(result and result.donation.amount > 0),
            }

        @app.post("/admin/tenants", status_code=status.HTTP_201_CREATED)
        async def register_tenant(
            payload: TenantRegistration,
            x_master_key: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:  # noqa: ANN202
            self._authorize_admin(x_master_key)
            key, config = self._registry.register(
                payload.name,
                max_queue_size=payload.max_queue_size or self._settings.default_max_queue_size,
                override=payload.override,
            )
            return _tenant_to_dict(key, config, include_secret=True)

        @app.get("/admin/tenants")
        async def list_tenants(x_master_key: Optional[str] = Header(default=None)) -> Dict[str, Any]:  # noqa: ANN202
            self._authorize_admin(x_master_key)
            tenants = self._registry.list_tenants()
            return {"tenants": [_tenant_to_dict(key, config) for key, config in tenants.items()]}

        @app.delete("/admin/tenants/{key}")
        async def delete_tenant(key: str, x_master_key: Optional[str] = Header(default=None)) -> Dict[str, Any]:  # noqa: ANN202
            self._authorize_admin(x_master_key)
            self._registry.delete(key)
            await self._store.force_clear_locked(key)
            self._store.drop_tenant(key)
            self._rate_limiter.forget(key)
            return {"success": True}

        @app.put("/admin/tenants/{key}/override")
        async def update_override(
            key: str,
            override: DonationOverride,
            x_master_key: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:  # noqa: ANN202
            self._authorize_admin(x_master_key)
            config = self._registry.update_override(key, override)
            return _tenant_to_dict(key, config)
