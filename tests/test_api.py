from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from donation_relay.api.server import RelayServer
from donation_relay.errors import TenantNotFound
from donation_relay.models import DonationOverride
from donation_relay.queue import DonationStore
from donation_relay.tenants import TenantRegistry

from .utils import make_settings

SAWERIA = {"version": "1.0", "donator_name": "Alice", "amount_raw": 10000, "message": "hi"}


@pytest.fixture
def registry(tmp_path) -> TenantRegistry:
    return TenantRegistry(tmp_path / "tenants.json")


@pytest.fixture
def tenant(registry: TenantRegistry) -> tuple[str, str]:
    key, config = registry.register("Game", max_queue_size=2)
    return key, config.api_key


@pytest.fixture
def store() -> DonationStore:
    return DonationStore()


def build_client(tmp_path, store: DonationStore, registry: TenantRegistry, **overrides) -> TestClient:
    settings = make_settings(tmp_path, **overrides)
    server = RelayServer(store, registry, settings)
    return TestClient(server.app)


@pytest.fixture
def client(tmp_path, store: DonationStore, registry: TenantRegistry):
    with build_client(tmp_path, store, registry) as test_client:
        yield test_client


def auth(api_key: str) -> dict[str, str]:
    return {"X-API-Key": api_key}


def test_health_and_stats(client: TestClient, tenant) -> None:
    assert client.get("/health").json()["status"] == "ok"
    stats = client.get("/stats").json()
    assert stats["tenants_registered"] == 1
    assert stats["active_donations"] == 0


def test_unknown_tenant(client: TestClient) -> None:
    response = client.post("/donation/NOPE/webhook", json=SAWERIA)
    assert response.status_code == 404
    assert response.json() == {"error": "USER_NOT_FOUND"}


def test_webhook_poll_clear_flow(client: TestClient, tenant) -> None:
    key, api_key = tenant

    first = client.post(f"/donation/{key}/webhook", json=SAWERIA)
    assert first.status_code == 200
    assert first.json() == {"success": True, "queued": False}

    second = client.post(
        f"/donation/{key}/webhook",
        json={"supporter": "Bob", "email_supporter": "b@x.com", "currency": "IDR", "amount": 5000},
    )
    assert second.json() == {"success": True, "queued": True, "queue_position": 1}

    data = client.get(f"/donation/{key}/data", headers=auth(api_key))
    assert data.status_code == 200
    assert data.json() == {
        "platform": "saweria",
        "donor_name": "Alice",
        "amount": 10000,
        "message": "hi",
        "transaction_id": None,
        "koin_count": None,
        "is_verified": None,
        "is_anonymous": None,
    }

    cleared = client.delete(f"/donation/{key}/clear", headers=auth(api_key))
    assert cleared.json() == {"success": True, "promoted": True, "queue_size": 0}
    assert client.get(f"/donation/{key}/data", headers=auth(api_key)).json()["platform"] == "sociabuzz"

    assert client.delete(f"/donation/{key}/clear", headers=auth(api_key)).json()["promoted"] is False
    assert client.get(f"/donation/{key}/data", headers=auth(api_key)).status_code == 204


def test_clear_without_donation(client: TestClient, tenant) -> None:
    key, api_key = tenant
    response = client.delete(f"/donation/{key}/clear", headers=auth(api_key))
    assert response.status_code == 404
    assert response.json() == {"error": "NO_DONATION"}


def test_rejections(client: TestClient, tenant) -> None:
    key, _ = tenant
    bad = client.post(f"/donation/{key}/webhook", json={"foo": "bar"})
    assert bad.status_code == 400
    assert bad.json() == {"error": "INVALID_DONATION_DATA"}

    not_json = client.post(
        f"/donation/{key}/webhook", content=b"not json", headers={"Content-Type": "application/json"}
    )
    assert not_json.json() == {"error": "INVALID_DONATION_DATA"}

    zero = client.post(f"/donation/{key}/webhook", json={**SAWERIA, "amount_raw": 0})
    assert zero.status_code == 400
    assert zero.json() == {"error": "INVALID_AMOUNT"}


def test_queue_full(client: TestClient, tenant) -> None:
    key, _ = tenant
    for name in ("A", "B", "C"):
        response = client.post(f"/donation/{key}/webhook", json={**SAWERIA, "donator_name": name})
        assert response.status_code == 200
    overflow = client.post(f"/donation/{key}/webhook", json={**SAWERIA, "donator_name": "D"})
    assert overflow.status_code == 429
    assert overflow.json() == {"error": "QUEUE_FULL"}


def test_duplicate_is_soft_accept(client: TestClient, tenant, store: DonationStore) -> None:
    key, _ = tenant
    client.post(f"/donation/{key}/webhook", json=SAWERIA)
    retry = client.post(f"/donation/{key}/webhook", json=SAWERIA)
    assert retry.status_code == 200
    assert retry.json()["duplicate"] is True
    assert store.queue_size(key) == 0


def test_empty_envelope(client: TestClient, tenant) -> None:
    key, _ = tenant
    response = client.post(f"/donation/{key}/webhook", json={"data": []})
    assert response.json() == {"success": True, "queued": False, "empty": True}


def test_credentials_are_required(client: TestClient, tenant) -> None:
    key, api_key = tenant
    missing = client.get(f"/donation/{key}/data")
    assert missing.status_code == 401
    assert missing.json() == {"error": "AUTH_REQUIRED"}

    wrong = client.get(f"/donation/{key}/data", headers=auth("nope"))
    assert wrong.status_code == 403
    assert wrong.json() == {"error": "AUTH_INVALID"}

    bearer = client.get(f"/donation/{key}/data", headers={"Authorization": f"Bearer {api_key}"})
    assert bearer.status_code == 204


def test_override_replaces_presentation(client: TestClient, tenant, registry: TenantRegistry) -> None:
    key, api_key = tenant
    registry.update_override(key, DonationOverride(enabled=True, donor_name="BLOKMARKET", message="ORDER"))
    client.post(f"/donation/{key}/webhook", json=SAWERIA)
    body = client.get(f"/donation/{key}/data", headers=auth(api_key)).json()
    assert body["donor_name"] == "BLOKMARKET"
    assert body["message"] == "ORDER"
    assert body["amount"] == 10000


def test_status_and_force_clear(client: TestClient, tenant) -> None:
    key, api_key = tenant
    client.post(f"/donation/{key}/webhook", json=SAWERIA)
    client.post(f"/donation/{key}/webhook", json={**SAWERIA, "donator_name": "Bob"})

    status = client.get(f"/donation/{key}/status", headers=auth(api_key)).json()
    assert status["has_active"] is True
    assert status["queue_size"] == 1
    assert status["queue_limit"] == 2
    assert status["queue_preview"][0]["donation"]["donor_name"] == "Bob"
    assert status["stats"]["total_received"] == 2

    forced = client.post(f"/donation/{key}/force-clear", headers=auth(api_key)).json()
    assert forced == {"success": True, "cleared_queue": 1}
    assert client.get(f"/donation/{key}/data", headers=auth(api_key)).status_code == 204


@pytest.mark.parametrize("platform", ["saweria", "sociabuzz", "trakteer", "tako", "bagibagi"])
def test_test_injection_round_trips_each_platform(client: TestClient, tenant, platform: str) -> None:
    key, api_key = tenant
    response = client.post(f"/donation/{key}/test/{platform}", headers=auth(api_key))
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["donation"]["platform"] == platform
    assert client.get(f"/donation/{key}/data", headers=auth(api_key)).json()["platform"] == platform


def test_test_injection_unknown_platform(client: TestClient, tenant) -> None:
    key, api_key = tenant
    response = client.post(f"/donation/{key}/test/kofi", headers=auth(api_key))
    assert response.status_code == 400
    assert response.json() == {"error": "INVALID_PLATFORM"}


def test_debug_does_not_admit(client: TestClient, tenant, store: DonationStore) -> None:
    key, api_key = tenant
    body = client.post(f"/donation/{key}/debug", json=SAWERIA, headers=auth(api_key)).json()
    assert body["valid"] is True
    assert body["rule"] == "saweria-version"
    assert body["parsed"]["donor_name"] == "Alice"
    assert store.has_active(key) is False


def test_rate_limited(tmp_path, store: DonationStore, registry: TenantRegistry, tenant) -> None:
    key, _ = tenant
    with build_client(
        tmp_path, store, registry, WEBHOOK_RATE_CAPACITY=2, WEBHOOK_RATE_REFILL_PER_SEC=0.0001
    ) as client:
        codes = [
            client.post(f"/donation/{key}/webhook", json={**SAWERIA, "donator_name": f"D{idx}"}).status_code
            for idx in range(3)
        ]
    assert codes == [200, 200, 429]


def test_body_size_limit(tmp_path, store: DonationStore, registry: TenantRegistry, tenant) -> None:
    key, _ = tenant
    with build_client(tmp_path, store, registry, MAX_BODY_BYTES=64) as client:
        response = client.post(f"/donation/{key}/webhook", json={**SAWERIA, "message": "x" * 200})
    assert response.status_code == 413
    assert response.json() == {"error": "PAYLOAD_TOO_LARGE"}


def test_admin_tenant_lifecycle(client: TestClient) -> None:
    headers = {"X-Master-Key": "master-secret"}
    assert client.get("/admin/tenants").status_code == 401
    assert client.get("/admin/tenants", headers={"X-Master-Key": "wrong"}).status_code == 403

    created = client.post("/admin/tenants", json={"name": "New Game"}, headers=headers)
    assert created.status_code == 201
    body = created.json()
    assert body["max_queue_size"] == 3
    key, api_key = body["key"], body["api_key"]

    listed = client.get("/admin/tenants", headers=headers).json()["tenants"]
    assert [tenant["key"] for tenant in listed] == [key]
    assert "api_key" not in listed[0]

    client.post(f"/donation/{key}/webhook", json=SAWERIA)
    assert client.get(f"/donation/{key}/data", headers=auth(api_key)).status_code == 200

    override = client.put(
        f"/admin/tenants/{key}/override",
        json={"enabled": True, "donor_name": "Sponsor"},
        headers=headers,
    )
    assert override.json()["override"]["donor_name"] == "Sponsor"

    assert client.delete(f"/admin/tenants/{key}", headers=headers).json() == {"success": True}
    assert client.post(f"/donation/{key}/webhook", json=SAWERIA).status_code == 404


def test_admin_disabled_without_master_key(tmp_path, store: DonationStore, registry: TenantRegistry) -> None:
    with build_client(tmp_path, store, registry, MASTER_KEY=None) as client:
        response = client.get("/admin/tenants", headers={"X-Master-Key": "anything"})
    assert response.status_code == 503


def test_amount_serializes_fractional_values(client: TestClient, tenant, store: DonationStore) -> None:
    key, api_key = tenant
    client.post(f"/donation/{key}/webhook", json={"type": "tako", "supporter_name": "Fi", "amount": "2.5"})
    assert store.get_active(key).amount == Decimal("2.5")
    assert client.get(f"/donation/{key}/data", headers=auth(api_key)).json()["amount"] == 2.5


def test_unusable_json_is_rejected_not_internal(client: TestClient, tenant) -> None:
    key, _ = tenant
    huge_int = b'{"version": "1.0", "donator_name": "Alice", "amount_raw": ' + b"9" * 5000 + b"}"
    deep = b'{"version": "1.0", "donator_name": "Alice", "etc": ' + b"[" * 20000 + b"]" * 20000 + b"}"

    for body in (huge_int, deep):
        response = client.post(
            f"/donation/{key}/webhook", content=body, headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "INVALID_DONATION_DATA"}


def test_body_limit_rejects_declared_length(tmp_path, store: DonationStore, registry: TenantRegistry, tenant) -> None:
    key, _ = tenant
    with build_client(tmp_path, store, registry, MAX_BODY_BYTES=64) as client:
        response = client.post(
            f"/donation/{key}/webhook",
            content=b"{}",
            headers={"Content-Type": "application/json", "Content-Length": "999999"},
        )
    assert response.status_code == 413


def test_body_limit_applies_to_chunked_uploads(
    tmp_path, store: DonationStore, registry: TenantRegistry, tenant
) -> None:
    key, _ = tenant

    def chunks():
        for _ in range(50):
            yield b" " * 32

    with build_client(tmp_path, store, registry, MAX_BODY_BYTES=64) as client:
        response = client.post(
            f"/donation/{key}/webhook", content=chunks(), headers={"Content-Type": "application/json"}
        )
    assert response.status_code == 413
    assert response.json() == {"error": "PAYLOAD_TOO_LARGE"}
    assert store.has_active(key) is False


@pytest.mark.asyncio
async def test_admission_rechecks_registry_under_lock(
    tmp_path, store: DonationStore, registry: TenantRegistry, tenant
) -> None:
    key, _ = tenant
    server = RelayServer(store, registry, settings=make_settings(tmp_path))
    registry.delete(key)

    with pytest.raises(TenantNotFound):
        await server._pipeline.admit(key, SAWERIA, max_queue_size=2)
    assert key not in store.tenants()
    assert len(store) == 0
