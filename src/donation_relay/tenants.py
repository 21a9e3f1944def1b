"""Tenant registration persisted as a JSON document."""

from __future__ import annotations

import json
import logging
import os
import secrets
import string
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from .errors import TenantAlreadyExists, TenantNotFound
from .models import DonationOverride, TenantConfig

logger = logging.getLogger(__name__)

_KEY_ALPHABET = string.ascii_uppercase + string.digits
_TENANTS_ADAPTER = TypeAdapter(dict[str, TenantConfig])


def generate_tenant_key() -> str:
    """Return a key shaped like ``1PJQ-WNSE-ZAN7-OKNW``."""

    groups = ("".join(secrets.choice(_KEY_ALPHABET) for _ in range(4)) for _ in range(4))
    return "-".join(groups)


def generate_api_key() -> str:
    return secrets.token_urlsafe(32)


class TenantRegistry:
    """Read-mostly tenant store.

    The file is re-read whenever its modification time changes, so edits made
    by another process (or by hand) are picked up on the next lookup.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._tenants: dict[str, TenantConfig] = {}
        self._mtime: Optional[float] = None

    @property
    def path(self) -> Path:
        return self._path

    def _reload_if_changed(self) -> None:
        try:
            mtime = self._path.stat().st_mtime
        except FileNotFoundError:
            if self._mtime is not None:
                logger.warning("tenants.file_missing", extra={"path": str(self._path)})
            self._tenants = {}
            self._mtime = None
            return
        if mtime == self._mtime:
            return
        try:
            raw = self._path.read_bytes()
            self._tenants = _TENANTS_ADAPTER.validate_json(raw) if raw.strip() else {}
        except ValidationError as exc:
            # keep serving the last good copy
            logger.error("tenants.invalid_file", extra={"path": str(self._path), "error": str(exc)})
            return
        self._mtime = mtime
        logger.debug("tenants.loaded", extra={"count": len(self._tenants)})

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        document = {key: config.model_dump(mode="json") for key, config in self._tenants.items()}
        fd, tmp_name = tempfile.mkstemp(prefix=".tenants-", suffix=".json", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self._mtime = self._path.stat().st_mtime

    def get(self, key: str) -> Optional[TenantConfig]:
        self._reload_if_changed()
        return self._tenants.get(key)

    def require(self, key: str) -> TenantConfig:
        config = self.get(key)
        if config is None:
            raise TenantNotFound(key)
        return config

    def list_tenants(self) -> dict[str, TenantConfig]:
        self._reload_if_changed()
        return dict(self._tenants)

    def register(
        self,
        name: str,
        max_queue_size: int = 10,
        override: Optional[DonationOverride] = None,
        key: Optional[str] = None,
    ) -> tuple[str, TenantConfig]:
        self._reload_if_changed()
        if key is None:
            key = generate_tenant_key()
            while key in self._tenants:
                key = generate_tenant_key()
        elif key in self._tenants:
            raise TenantAlreadyExists(key)
        config = TenantConfig(
            name=name,
            api_key=generate_api_key(),
            max_queue_size=max_queue_size,
            override=override or DonationOverride(),
        )
        self._tenants[key] = config
        self._save()
        logger.info("tenants.registered", extra={"tenant": key, "tenant_name": name})
        return key, config

    def delete(self, key: str) -> None:
        self._reload_if_changed()
        if self._tenants.pop(key, None) is None:
            raise TenantNotFound(key)
        self._save()
        logger.info("tenants.deleted", extra={"tenant": key})

    def update_override(self, key: str, override: DonationOverride) -> TenantConfig:
        config = self.require(key)
        updated = config.model_copy(update={"override": override})
        self._tenants[key] = updated
        self._save()
        logger.info("tenants.override_updated", extra={"tenant": key, "enabled": override.enabled})
        return updated
