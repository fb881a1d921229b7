import asyncio
from types import SimpleNamespace

import pytest

from opsconsole.services import m365 as m365_service


def _settings(**overrides):
    values = {
        "microsoft_tenant_id": "tenant",
        "microsoft_client_id": "client",
        "microsoft_client_secret": "secret",
        "graph_timeout_seconds": 5.0,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class DummyResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


def _client_factory(responses: dict, captured: dict):
    class DummyClient:
        def __init__(self, *args, **kwargs) -> None:
            captured["timeout"] = kwargs.get("timeout")

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def post(self, url: str, data: dict):
            captured.setdefault("posts", []).append({"url": url, "data": data})
            return responses[url]

        async def get(self, url: str, headers: dict):
            captured.setdefault("gets", []).append(url)
            captured["headers"] = headers
            return responses[url]

    return DummyClient


def test_acquire_access_token_requires_configuration(monkeypatch):
    monkeypatch.setattr(
        m365_service, "get_settings", lambda: _settings(microsoft_client_id=None, microsoft_client_secret="")
    )

    with pytest.raises(m365_service.M365ConfigurationError) as excinfo:
        asyncio.run(m365_service.acquire_access_token())

    assert excinfo.value.missing == ["MICROSOFT_CLIENT_ID", "MICROSOFT_CLIENT_SECRET"]


def test_acquire_access_token_uses_client_credentials(monkeypatch):
    captured: dict = {}
    token_url = "https://login.microsoftonline.com/tenant/oauth2/v2.0/token"
    monkeypatch.setattr(m365_service, "get_settings", lambda: _settings())
    monkeypatch.setattr(
        m365_service.httpx,
        "AsyncClient",
        _client_factory({token_url: DummyResponse(payload={"access_token": "token-123"})}, captured),
    )

    token = asyncio.run(m365_service.acquire_access_token())

    assert token == "token-123"
    [post] = captured["posts"]
    assert post["data"]["grant_type"] == "client_credentials"
    assert post["data"]["scope"] == "https://graph.microsoft.com/.default"
    assert captured["timeout"] == 5.0


def test_acquire_access_token_failure(monkeypatch):
    token_url = "https://login.microsoftonline.com/tenant/oauth2/v2.0/token"
    monkeypatch.setattr(m365_service, "get_settings", lambda: _settings())
    monkeypatch.setattr(
        m365_service.httpx,
        "AsyncClient",
        _client_factory({token_url: DummyResponse(status_code=401, text="bad secret")}, {}),
    )

    with pytest.raises(m365_service.M365Error):
        asyncio.run(m365_service.acquire_access_token())


def test_graph_reads_follow_next_link(monkeypatch):
    captured: dict = {}
    first = "https://graph.example/users"
    second = "https://graph.example/users?page=2"
    monkeypatch.setattr(m365_service, "get_settings", lambda: _settings())
    monkeypatch.setattr(
        m365_service.httpx,
        "AsyncClient",
        _client_factory(
            {
                first: DummyResponse(payload={"value": [{"id": "1"}], "@odata.nextLink": second}),
                second: DummyResponse(payload={"value": [{"id": "2"}]}),
            },
            captured,
        ),
    )

    items = asyncio.run(m365_service._graph_get_all("token", first, permission="User.Read.All"))

    assert items == [{"id": "1"}, {"id": "2"}]
    assert captured["gets"] == [first, second]
    assert captured["headers"]["Authorization"] == "Bearer token"


def test_graph_forbidden_names_permission(monkeypatch):
    url = "https://graph.example/devices"
    monkeypatch.setattr(m365_service, "get_settings", lambda: _settings())
    monkeypatch.setattr(
        m365_service.httpx, "AsyncClient", _client_factory({url: DummyResponse(status_code=403)}, {})
    )

    with pytest.raises(m365_service.M365Error, match="DeviceManagementManagedDevices.Read.All"):
        asyncio.run(
            m365_service._graph_get_all(
                "token", url, permission="DeviceManagementManagedDevices.Read.All"
            )
        )


def test_sync_users_skips_manually_deleted(make_store):
    store = make_store(
        {
            "directory_users": [
                {"id": "d1", "aad_id": "aad-1", "email": "old@example.com", "deleted_manually": False},
                {"id": "d2", "aad_id": "aad-2", "email": "gone@example.com", "deleted_manually": True},
            ]
        }
    )
    users = [
        {"id": "aad-1", "displayName": "Jane", "mail": "jane@example.com", "accountEnabled": True},
        {"id": "aad-2", "displayName": "Gone", "mail": "gone@example.com"},
        {"id": "aad-3", "displayName": "New", "mail": "", "userPrincipalName": "new@corp.com"},
        {"displayName": "No id"},
    ]

    result = asyncio.run(m365_service.sync_users_to_directory(store, users))

    assert (result.synced, result.errors, result.total) == (2, 1, 4)
    rows = {row["aad_id"]: row for row in store.tables["directory_users"]}
    assert rows["aad-1"]["id"] == "d1"
    assert rows["aad-1"]["email"] == "jane@example.com"
    assert rows["aad-2"]["email"] == "gone@example.com"
    assert rows["aad-3"]["email"] is None
    assert rows["aad-3"]["deleted_manually"] is False
    assert rows["aad-3"]["id"]


def test_sync_devices_maps_graph_fields(make_store):
    store = make_store()
    devices = [
        {
            "id": "dev-1",
            "deviceName": "JANE-PC",
            "operatingSystem": "Windows",
            "serialNumber": "SN123",
            "physicalMemoryInBytes": 16 * 1024 ** 3,
            "totalStorageSpaceInBytes": 255 * 1024 ** 3,
            "complianceState": "compliant",
            "userPrincipalName": "jane@corp.com",
        },
        {"id": "dev-2", "deviceName": "Phone", "operatingSystem": "iOS", "complianceState": "noncompliant"},
    ]

    result = asyncio.run(m365_service.sync_devices_to_inventory(store, devices, branch="Head Office"))

    assert (result.synced, result.errors, result.total) == (2, 0, 2)
    first, second = store.tables["hardware_inventory"]
    assert first["device_type"] == "Desktop"
    assert first["ram_gb"] == 16
    assert first["storage_gb"] == 255
    assert first["status"] == "active"
    assert first["branch"] == "Head Office"
    assert first["m365_user_principal_name"] == "jane@corp.com"
    assert second["device_type"] == "Phone"
    assert second["status"] == "inactive"
    assert second["ram_gb"] is None


def test_map_device_type_and_bytes_to_gb():
    assert m365_service.map_device_type(None) == "Other"
    assert m365_service.map_device_type("macOS") == "Desktop"
    assert m365_service.map_device_type("Android") == "Phone"
    assert m365_service.map_device_type("iPadOS") == "Tablet"
    assert m365_service.map_device_type("ChromeOS") == "Desktop"
    assert m365_service.bytes_to_gb(0) is None
    assert m365_service.bytes_to_gb(1536 * 1024 ** 2) == 2


def test_full_sync_records_user_phase_failure(make_store, monkeypatch):
    store = make_store()
    audit_calls: list[tuple] = []

    async def fake_token():
        return "token"

    async def fake_devices(token):
        return [{"id": "dev-1", "deviceName": "PC", "operatingSystem": "Windows"}]

    async def fake_users(token):
        raise m365_service.M365Error("Access denied. Ensure the app has User.Read.All permission.")

    async def fake_licenses(token):
        return [{"skuId": "sku-1", "skuPartNumber": "ENTERPRISEPACK"}, {"skuId": "sku-2", "skuPartNumber": "EMS"}]

    monkeypatch.setattr(m365_service, "acquire_access_token", fake_token)
    monkeypatch.setattr(m365_service, "fetch_devices", fake_devices)
    monkeypatch.setattr(m365_service, "fetch_users", fake_users)
    monkeypatch.setattr(m365_service, "fetch_licenses", fake_licenses)
    monkeypatch.setattr(
        m365_service, "log_audit_event", lambda *args, **kwargs: audit_calls.append((args, kwargs))
    )

    summary = asyncio.run(m365_service.run_sync(store, "full_sync", actor="127.0.0.1"))

    assert summary.devices.synced == 1
    assert summary.licenses.total == 2
    assert summary.users is None
    assert summary.errors == ["Access denied. Ensure the app has User.Read.All permission."]
    [(args, kwargs)] = audit_calls
    assert args == ("M365 SYNC", "full_sync")
    assert kwargs["actor"] == "127.0.0.1"
    assert kwargs["licenses_total"] == 2


def test_sync_users_action_propagates_failure(make_store, monkeypatch):
    async def fake_token():
        return "token"

    async def fake_users(token):
        raise m365_service.M365Error("boom")

    monkeypatch.setattr(m365_service, "acquire_access_token", fake_token)
    monkeypatch.setattr(m365_service, "fetch_users", fake_users)

    with pytest.raises(m365_service.M365Error):
        asyncio.run(m365_service.run_sync(make_store(), "sync_users"))

    with pytest.raises(ValueError):
        asyncio.run(m365_service.run_sync(make_store(), "delete_everything"))


def test_fetch_licenses_reads_subscribed_skus(monkeypatch):
    captured: dict = {}
    url = "https://graph.microsoft.com/v1.0/subscribedSkus"
    monkeypatch.setattr(m365_service, "get_settings", lambda: _settings())
    monkeypatch.setattr(
        m365_service.httpx,
        "AsyncClient",
        _client_factory({url: DummyResponse(payload={"value": [{"skuId": "sku-1"}]})}, captured),
    )

    licenses = asyncio.run(m365_service.fetch_licenses("token"))

    assert licenses == [{"skuId": "sku-1"}]
    assert captured["gets"] == [url]


def test_sync_licenses_counts_without_touching_store(make_store, monkeypatch):
    store = make_store()

    async def fake_token():
        return "token"

    async def fake_licenses(token):
        return [{"skuId": "sku-1"}, {"skuId": "sku-2"}, {"skuId": "sku-3"}]

    monkeypatch.setattr(m365_service, "acquire_access_token", fake_token)
    monkeypatch.setattr(m365_service, "fetch_licenses", fake_licenses)

    summary = asyncio.run(m365_service.run_sync(store, "sync_licenses"))

    assert summary.licenses.total == 3
    assert summary.devices is None
    assert summary.users is None
    assert store.tables.get("directory_users", []) == []
    assert store.tables.get("hardware_inventory", []) == []


def test_license_failure_aborts_only_sync_licenses(make_store, monkeypatch):
    async def fake_token():
        return "token"

    async def fake_devices(token):
        return []

    async def fake_users(token):
        return []

    async def failing_licenses(token):
        raise m365_service.M365Error("Access denied. Ensure the app has Organization.Read.All permission.")

    monkeypatch.setattr(m365_service, "acquire_access_token", fake_token)
    monkeypatch.setattr(m365_service, "fetch_devices", fake_devices)
    monkeypatch.setattr(m365_service, "fetch_users", fake_users)
    monkeypatch.setattr(m365_service, "fetch_licenses", failing_licenses)

    with pytest.raises(m365_service.M365Error, match="Organization.Read.All"):
        asyncio.run(m365_service.run_sync(make_store(), "sync_licenses"))

    summary = asyncio.run(m365_service.run_sync(make_store(), "full_sync"))
    assert summary.licenses is None
    assert summary.users.total == 0
    assert summary.errors == ["Access denied. Ensure the app has Organization.Read.All permission."]
