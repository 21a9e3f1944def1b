"""Application bootstrap and lifecycle management."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import uvicorn

from .api.server import RelayServer
from .config import Settings, get_settings
from .janitor import Janitor
from .logging import configure_logging
from .queue import DonationStore
from .tenants import TenantRegistry

logger = logging.getLogger(__name__)


class DonationRelayApp:
    """Coordinates the donation store, janitor and API layers."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        configure_logging(self._settings.log_level)

        self._store = DonationStore(
            duplicate_window=self._settings.duplicate_window_sec,
            history_retention=self._settings.history_retention_sec,
            history_max_entries=self._settings.history_max_entries,
        )
        self._registry = TenantRegistry(self._settings.tenants_file)
        self._server = RelayServer(self._store, self._registry, self._settings)
        self._janitor = Janitor(
            self._store,
            interval=self._settings.janitor_interval_sec,
            active_timeout=self._settings.active_timeout_sec,
        )

        self._api_task: Optional[asyncio.Task[None]] = None
        self._api_server: Optional[uvicorn.Server] = None

    @property
    def store(self) -> DonationStore:
        return self._store

    @property
    def registry(self) -> TenantRegistry:
        return self._registry

    @property
    def server(self) -> RelayServer:
        return self._server

    async def start(self) -> None:
        tenants = self._registry.list_tenants()
        logger.info(
            "relay.starting",
            extra={"tenants": len(tenants), "tenants_file": str(self._registry.path)},
        )
        if self._settings.master_key is None:
            logger.warning("relay.admin_disabled")
        await self._janitor.start()
        self._api_task = asyncio.create_task(self._run_api(), name="relay-api")

    async def stop(self) -> None:
        if self._api_server:
            self._api_server.should_exit = True
        if self._api_task:
            try:
                await self._api_task
            except asyncio.CancelledError:
                pass

        await self._janitor.stop()
        logger.info("relay.stopped")

    async def _run_api(self) -> None:
        config = uvicorn.Config(
            self._server.app,
            host=self._settings.api_host,
            port=self._settings.api_port,
            log_level=self._settings.log_level.value.lower(),
            loop="asyncio",
            lifespan="off",
        )
        self._api_server = uvicorn.Server(config)
        try:
            await self._api_server.serve()
        except asyncio.CancelledError:
            pass
