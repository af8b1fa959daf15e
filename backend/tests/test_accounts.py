"""
Tests for profile self-service and admin account management.
"""

import pytest
from httpx import AsyncClient

from staybook.domain.enums import AccountStatus, Role

from conftest import PASSWORD, headers_for

ACCOUNTS = "/api/v1/admin/accounts"


@pytest.mark.asyncio
async def test_update_own_profile(client: AsyncClient, guest):
    response = await client.patch(
        "/api/v1/users/me", json={"first_name": "Georgina", "phone": "+351 900 000 000"},
        headers=headers_for(guest),
    )
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["first_name"] == "Georgina"
    assert user["phone"] == "+351 900 000 000"
    assert user["role"] == "user"


@pytest.mark.asyncio
async def test_password_change_needs_current_password(client: AsyncClient, guest):
    response = await client.patch(
        "/api/v1/users/me", json={"new_password": "brandnewpass1"}, headers=headers_for(guest)
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Current password is incorrect"

    response = await client.patch(
        "/api/v1/users/me",
        json={"current_password": "wrong-password", "new_password": "brandnewpass1"},
        headers=headers_for(guest),
    )
    assert response.status_code == 400

    response = await client.patch(
        "/api/v1/users/me",
        json={"current_password": PASSWORD, "new_password": "brandnewpass1"},
        headers=headers_for(guest),
    )
    assert response.status_code == 200

    login = await client.post(
        "/api/v1/auth/login", json={"email": "guest@example.com", "password": "brandnewpass1"}
    )
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_admin_creates_host_account(client: AsyncClient, admin):
    response = await client.post(ACCOUNTS, json={
        "first_name": "New",
        "last_name": "Host",
        "email": "New.Host@Example.com",
        "password": "hostpassword1",
    }, headers=headers_for(admin))
    assert response.status_code == 201
    user = response.json()["user"]
    assert user["email"] == "new.host@example.com"
    assert user["role"] == Role.HOST.value
    assert user["account_status"] == AccountStatus.ACTIVE.value

    duplicate = await client.post(ACCOUNTS, json={
        "first_name": "Again",
        "last_name": "Host",
        "email": "new.host@example.com",
        "password": "hostpassword1",
    }, headers=headers_for(admin))
    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_admin_lists_accounts_by_role(client: AsyncClient, admin, guest, host, other_host):
    response = await client.get(ACCOUNTS, params={"role": "host"}, headers=headers_for(admin))
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert {user["email"] for user in body["users"]} == {"host@example.com", "other.host@example.com"}

    everyone = await client.get(ACCOUNTS, headers=headers_for(admin))
    assert everyone.json()["total"] == 4


@pytest.mark.asyncio
async def test_admin_activates_pending_account(client: AsyncClient, admin, make_account):
    pending = await make_account(
        "pending@example.com", role=Role.HOST, account_status=AccountStatus.PENDING_VERIFICATION
    )
    blocked = await client.get("/api/v1/users/me", headers=headers_for(pending))
    assert blocked.status_code == 403

    response = await client.patch(
        f"{ACCOUNTS}/{pending.id}", json={"account_status": "active"}, headers=headers_for(admin)
    )
    assert response.status_code == 200
    assert response.json()["user"]["account_status"] == "active"

    allowed = await client.get("/api/v1/users/me", headers=headers_for(pending))
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_deleted_account_is_locked_out(client: AsyncClient, admin, guest):
    response = await client.delete(f"{ACCOUNTS}/{guest.id}", headers=headers_for(admin))
    assert response.status_code == 200
    assert response.json()["user"]["account_status"] == "deleted"

    response = await client.get("/api/v1/users/me", headers=headers_for(guest))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_cannot_demote_or_delete_self(client: AsyncClient, admin):
    response = await client.patch(
        f"{ACCOUNTS}/{admin.id}", json={"role": "host"}, headers=headers_for(admin)
    )
    assert response.status_code == 400

    response = await client.delete(f"{ACCOUNTS}/{admin.id}", headers=headers_for(admin))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_account_is_404(client: AsyncClient, admin):
    response = await client.patch(
        f"{ACCOUNTS}/9999", json={"account_status": "suspended"}, headers=headers_for(admin)
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_only_admins_manage_accounts(client: AsyncClient, host, guest):
    for account in (host, guest):
        response = await client.get(ACCOUNTS, headers=headers_for(account))
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_host_with_listings_keeps_role(client: AsyncClient, admin, host, other_host, property_listing):
    for role in ("user", "admin"):
        response = await client.patch(
            f"{ACCOUNTS}/{host.id}", json={"role": role}, headers=headers_for(admin)
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Host still owns listings and cannot change role"

    owner = await client.get(f"/api/v1/listings/{property_listing.id}")
    assert owner.json()["listing"]["host_id"] == host.id
    assert host.role == Role.HOST.value

    # status changes and role changes of hosts without listings are unaffected
    response = await client.patch(
        f"{ACCOUNTS}/{host.id}", json={"account_status": "suspended"}, headers=headers_for(admin)
    )
    assert response.status_code == 200

    response = await client.patch(
        f"{ACCOUNTS}/{other_host.id}", json={"role": "user"}, headers=headers_for(admin)
    )
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "user"
