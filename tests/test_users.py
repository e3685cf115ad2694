import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_signup_success(client: AsyncClient):
    """Successful signup returns 201 and correct user data (no password in response)"""
    payload = {
        "email": "newuser123@example.com",
        "password": "strongpass123",
    }
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == payload["email"]
    assert "id" in data
    assert "password" not in data
    assert data["role"] == "viewer"


@pytest.mark.asyncio
async def test_signup_defaults_to_viewer(client: AsyncClient):
    payload = {"email": "plain@example.com", "password": "strongpass123"}
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 201
    assert response.json()["role"] == "viewer"


@pytest.mark.asyncio
async def test_signup_duplicate_email(client: AsyncClient):
    """Duplicate email returns 409 Conflict"""
    payload = {
        "email": "duplicate@example.com",
        "role": "viewer",
        "password": "pass12345678",
    }
    await client.post("/profile/signup", json=payload)
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 409
    assert response.json()["detail"] == "User already exists"


@pytest.mark.asyncio
async def test_signup_invalid_data(client: AsyncClient):
    """Invalid payload returns 422 Unprocessable Entity"""
    payload = {"email": "not-an-email", "password": "short"}
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 422
    assert "detail" in response.json()


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient):
    """Login returns 200 with access_token"""
    payload = {
        "email": "loginuser@example.com",
        "password": "validpass123",
        "role": "viewer",
    }
    await client.post("/profile/signup", json=payload)

    login_payload = {"email": payload["email"], "password": payload["password"]}
    response = await client.post("/profile/login", json=login_payload)

    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert isinstance(data["access_token"], str)
    assert len(data["access_token"]) > 20


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient):
    payload = {"email": "wrongpass@example.com", "password": "validpass123"}
    await client.post("/profile/signup", json=payload)

    response = await client.post(
        "/profile/login", json={"email": payload["email"], "password": "nope12345"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_delete_user_as_admin(client: AsyncClient, auth_headers_admin):
    """Admin can delete another user"""
    user_payload = {
        "email": "todelete@example.com",
        "password": "pass12345678",
        "role": "viewer",
    }
    signup_resp = await client.post("/profile/signup", json=user_payload)
    user_id = signup_resp.json()["id"]

    delete_response = await client.delete(
        f"/profile/{user_id}", headers=auth_headers_admin
    )
    assert delete_response.status_code == 200

    get_response = await client.get(f"/profile/{user_id}", headers=auth_headers_admin)
    assert get_response.status_code == 404


@pytest.mark.asyncio
async def test_delete_user_as_manager_fails(client: AsyncClient, auth_headers_manager):
    """Managers can create projects but not manage users"""
    payload = {
        "email": "protected@example.com",
        "role": "viewer",
        "password": "pass12345678",
    }
    signup_resp = await client.post("/profile/signup", json=payload)
    user_id = signup_resp.json()["id"]

    response = await client.delete(f"/profile/{user_id}", headers=auth_headers_manager)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient):
    response = await client.delete(
        "/profile/1", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_signup_ignores_requested_role(client: AsyncClient):
    payload = {
        "email": "sneaky@example.com",
        "password": "strongpass123",
        "role": "admin",
    }
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 201
    assert response.json()["role"] == "viewer"


@pytest.mark.asyncio
async def test_admin_can_change_role(client: AsyncClient, auth_headers_admin):
    signup_resp = await client.post(
        "/profile/signup",
        json={"email": "promote@example.com", "password": "pass12345678"},
    )
    user_id = signup_resp.json()["id"]

    response = await client.patch(
        f"/profile/{user_id}/role", json={"role": "manager"}, headers=auth_headers_admin
    )

    assert response.status_code == 200
    assert response.json()["role"] == "manager"


@pytest.mark.asyncio
async def test_change_role_requires_manage_users(
    client: AsyncClient, auth_headers_manager, auth_headers_viewer
):
    signup_resp = await client.post(
        "/profile/signup",
        json={"email": "stay@example.com", "password": "pass12345678"},
    )
    user_id = signup_resp.json()["id"]

    for headers in (auth_headers_manager, auth_headers_viewer):
        response = await client.patch(
            f"/profile/{user_id}/role", json={"role": "admin"}, headers=headers
        )
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_cannot_change_own_role(client: AsyncClient, test_admin, auth_headers_admin):
    response = await client.patch(
        f"/profile/{test_admin.id}/role", json={"role": "viewer"}, headers=auth_headers_admin
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_change_role_rejects_unknown_role(client: AsyncClient, auth_headers_admin):
    response = await client.patch(
        "/profile/1/role", json={"role": "superuser"}, headers=auth_headers_admin
    )
    assert response.status_code == 422
