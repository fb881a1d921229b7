import asyncio
import base64

import pytest

from opsconsole.security.encryption import decrypt_secret, encrypt_secret, is_encrypted
from opsconsole.services import credentials as credentials_service
from opsconsole.services.credentials import VpnRdpCredential


def _undecryptable() -> str:
    return ":".join(
        base64.b64encode(part).decode("ascii") for part in (b"\0" * 12, b"\0" * 16, b"data")
    )


def _credential(
    credential_id: str,
    username: str,
    service_type: str = "VPN",
    email: str | None = "jane@example.com",
    created_at: str | None = None,
    updated_at: str | None = None,
) -> VpnRdpCredential:
    return VpnRdpCredential(
        id=credential_id,
        username=username,
        password=None,
        service_type=service_type,
        email=email,
        notes=None,
        created_at=created_at,
        updated_at=updated_at,
    )


def test_store_credential_encrypts_password(make_store):
    store = make_store()

    credential_id = asyncio.run(
        credentials_service.store_credential(
            store,
            username=" jdoe ",
            password="s3cret",
            service_type="VPN",
            email=" jane@example.com ",
        )
    )

    [row] = store.tables["vpn_rdp_credentials"]
    assert row["id"] == credential_id
    assert row["username"] == "jdoe"
    assert row["email"] == "jane@example.com"
    assert is_encrypted(row["password"])
    assert row["password"] != "s3cret"
    assert decrypt_secret(row["password"]) == "s3cret"


def test_store_credential_rejects_unknown_service(make_store):
    with pytest.raises(ValueError):
        asyncio.run(
            credentials_service.store_credential(
                make_store(), username="jdoe", password="x", service_type="SSH"
            )
        )


def test_fetch_credentials_decrypts_and_orders(make_store):
    store = make_store(
        {
            "vpn_rdp_credentials": [
                {"id": "2", "username": "zed", "password": encrypt_secret("pw-z"), "service_type": "RDP"},
                {"id": "1", "username": "amy", "password": "plain", "service_type": "VPN"},
                {"id": "3", "username": "bob", "password": _undecryptable(), "service_type": "VPN"},
            ]
        }
    )

    credentials = asyncio.run(credentials_service.fetch_credentials(store))

    assert [(c.username, c.password) for c in credentials] == [
        ("amy", "plain"),
        ("bob", credentials_service.ENCRYPTED_PASSWORD_PLACEHOLDER),
        ("zed", "pw-z"),
    ]

    vpn_only = asyncio.run(credentials_service.fetch_credentials(store, "VPN"))
    assert [c.username for c in vpn_only] == ["amy", "bob"]


@pytest.mark.parametrize("password", ["abcd:efgh:ijkl", "user:pass:word", "a:b:c"])
def test_plaintext_with_two_colons_passes_through(make_store, password):
    store = make_store(
        {"vpn_rdp_credentials": [{"id": "1", "username": "amy", "password": password, "service_type": "VPN"}]}
    )

    [credential] = asyncio.run(credentials_service.fetch_credentials(store))

    assert not is_encrypted(password)
    assert credential.password == password
    assert decrypt_secret(password) == password


def test_is_encrypted_requires_well_formed_parts():
    assert is_encrypted(encrypt_secret("pw"))
    assert is_encrypted(_undecryptable())
    assert not is_encrypted(None)
    assert not is_encrypted("")
    # 8-byte IV
    assert not is_encrypted("AAAAAAAAAAA=:AAAAAAAAAAAAAAAAAAAAAA==:ZGF0YQ==")


def test_fetch_credentials_with_email_skips_missing_email(make_store):
    store = make_store(
        {
            "vpn_rdp_credentials": [
                {"id": "1", "username": "amy", "service_type": "VPN", "email": "amy@example.com"},
                {"id": "2", "username": "bob", "service_type": "VPN", "email": None},
            ]
        }
    )

    credentials = asyncio.run(credentials_service.fetch_credentials_with_email(store))

    assert [c.id for c in credentials] == ["1"]


def test_fetch_credentials_wraps_store_failure(make_store):
    store = make_store().fail("vpn_rdp_credentials")

    with pytest.raises(credentials_service.CredentialLookupError):
        asyncio.run(credentials_service.fetch_credentials(store))


def test_consolidate_users_by_email_groups_case_insensitively():
    grouped = credentials_service.consolidate_users_by_email(
        [
            _credential("1", "jdoe", "VPN", "Jane@Example.com", "2024-03-01T00:00:00Z", "2024-03-02T00:00:00Z"),
            _credential("2", "jdoe-rdp", "RDP", "jane@example.com ", "2024-01-01T00:00:00Z", "2024-05-01T00:00:00Z"),
            _credential("3", "amy", "VPN", "amy@example.com"),
            _credential("4", "ghost", "VPN", None),
            _credential("5", "jdoe", "RDP", "JANE@example.com"),
        ]
    )

    assert [user.email for user in grouped] == ["amy@example.com", "Jane@Example.com"]
    jane = grouped[1]
    assert jane.id == "1"
    assert [c.id for c in jane.vpn_credentials] == ["1"]
    assert [c.id for c in jane.rdp_credentials] == ["2", "5"]
    assert jane.has_vpn and jane.has_rdp
    assert jane.created_at == "2024-01-01T00:00:00Z"
    assert jane.updated_at == "2024-05-01T00:00:00Z"
    assert credentials_service.get_grouped_credentials_summary(jane) == "1 VPN + 2 RDP"
    assert credentials_service.get_all_usernames(jane) == ["jdoe", "jdoe-rdp"]
    assert credentials_service.get_grouped_credentials_summary(grouped[0]) == "1 VPN"


def test_display_password():
    assert credentials_service.display_password(None) == "—"
    assert credentials_service.display_password("", fallback="n/a") == "n/a"
    assert (
        credentials_service.display_password(credentials_service.ENCRYPTED_PASSWORD_PLACEHOLDER)
        == credentials_service.ENCRYPTED_PASSWORD_DISPLAY
    )
    assert credentials_service.display_password("hunter2") == "hunter2"
