import json
import os
import re

import pytest

from donation_relay.errors import TenantAlreadyExists, TenantNotFound
from donation_relay.models import DonationOverride
from donation_relay.tenants import TenantRegistry, generate_tenant_key


def test_generated_keys_have_grouped_shape() -> None:
    assert re.fullmatch(r"[A-Z0-9]{4}(-[A-Z0-9]{4}){3}", generate_tenant_key())


def test_missing_file_means_no_tenants(tmp_path) -> None:
    registry = TenantRegistry(tmp_path / "tenants.json")
    assert registry.get("NOPE") is None
    assert registry.list_tenants() == {}
    with pytest.raises(TenantNotFound):
        registry.require("NOPE")


def test_register_persists_to_disk(tmp_path) -> None:
    path = tmp_path / "nested" / "tenants.json"
    registry = TenantRegistry(path)
    key, config = registry.register("Game One", max_queue_size=4)

    assert config.max_queue_size == 4
    assert config.api_key
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document[key]["name"] == "Game One"

    reopened = TenantRegistry(path)
    assert reopened.require(key).api_key == config.api_key


def test_register_with_explicit_key(tmp_path) -> None:
    registry = TenantRegistry(tmp_path / "tenants.json")
    registry.register("Game", key="1PJQ-WNSE-ZAN7-OKNW")
    with pytest.raises(TenantAlreadyExists):
        registry.register("Again", key="1PJQ-WNSE-ZAN7-OKNW")


def test_delete(tmp_path) -> None:
    registry = TenantRegistry(tmp_path / "tenants.json")
    key, _ = registry.register("Game")
    registry.delete(key)
    assert registry.get(key) is None
    with pytest.raises(TenantNotFound):
        registry.delete(key)


def test_update_override(tmp_path) -> None:
    registry = TenantRegistry(tmp_path / "tenants.json")
    key, _ = registry.register("Game")
    override = DonationOverride(enabled=True, donor_name="BLOKMARKET", message="order now")
    updated = registry.update_override(key, override)
    assert updated.override.enabled is True
    assert TenantRegistry(registry.path).require(key).override.donor_name == "BLOKMARKET"


def test_external_edits_are_picked_up(tmp_path) -> None:
    path = tmp_path / "tenants.json"
    registry = TenantRegistry(path)
    key, _ = registry.register("Game", max_queue_size=2)

    document = json.loads(path.read_text(encoding="utf-8"))
    document[key]["max_queue_size"] = 7
    path.write_text(json.dumps(document), encoding="utf-8")
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 5))

    assert registry.require(key).max_queue_size == 7


def test_invalid_file_keeps_last_good_copy(tmp_path) -> None:
    path = tmp_path / "tenants.json"
    registry = TenantRegistry(path)
    key, _ = registry.register("Game")

    path.write_text("{not json", encoding="utf-8")
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 5))

    assert registry.get(key) is not None
