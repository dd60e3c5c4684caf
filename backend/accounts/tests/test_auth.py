import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from studios.models import Studio
from studios.services import create_studio_for_user

User = get_user_model()


@pytest.fixture
def client():
    return APIClient()


@pytest.fixture
def photographer(db):
    user = User.objects.create_user(
        username="maya@example.com",
        email="maya@example.com",
        password="examplepass",
        first_name="Maya",
        last_name="Shutter",
    )
    create_studio_for_user(user, business_name="Maya Shutter Photo")
    return user


def test_register_creates_photographer_with_studio(db, client):
    payload = {
        "email": "New@Example.com",
        "password": "password123",
        "first_name": "Nina",
        "last_name": "Frame",
        "business_name": "Nina Frame Studio",
    }
    response = client.post("/api/auth/register/", payload, format="json")

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["business_name"] == "Nina Frame Studio"
    assert "access" in body and "refresh" in body

    studio = Studio.objects.get(owner__email="new@example.com")
    assert studio.slug == "nina-frame-studio"
    assert studio.contact_email == "new@example.com"
    assert body["user"]["studio_id"] == studio.id


def test_register_without_business_name_uses_display_name(db, client):
    response = client.post(
        "/api/auth/register/",
        {"email": "solo@example.com", "password": "password123", "first_name": "Solo", "last_name": "Shooter"},
        format="json",
    )

    assert response.status_code == 201
    assert Studio.objects.get(owner__email="solo@example.com").business_name == "Solo Shooter"


def test_register_with_existing_email_is_rejected(db, client, photographer):
    response = client.post(
        "/api/auth/register/",
        {"email": "MAYA@example.com", "password": "password123"},
        format="json",
    )

    assert response.status_code == 400
    assert "email" in response.json()
    assert Studio.objects.count() == 1


def test_login_returns_tokens_and_user_payload(db, client, photographer):
    response = client.post(
        "/api/auth/login/",
        {"email": "maya@example.com", "password": "examplepass"},
        format="json",
    )

    assert response.status_code == 200
    data = response.json()
    assert set(data.keys()) == {"access", "refresh", "user"}
    assert data["user"]["business_name"] == "Maya Shutter Photo"


def test_login_with_wrong_password_is_rejected(db, client, photographer):
    response = client.post(
        "/api/auth/login/",
        {"email": "maya@example.com", "password": "nope"},
        format="json",
    )

    assert response.status_code == 401


def test_me_endpoint_returns_authenticated_user(db, client, photographer):
    login_response = client.post(
        "/api/auth/login/",
        {"email": "maya@example.com", "password": "examplepass"},
        format="json",
    )
    access = login_response.json()["access"]

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
    response = client.get("/api/auth/me/")

    assert response.status_code == 200
    assert response.json()["studio_id"] == photographer.studio.id


def test_me_endpoint_requires_authentication(db, client):
    response = client.get("/api/auth/me/")
    assert response.status_code == 401


def test_me_patch_keeps_username_in_sync(db, client, photographer):
    client.force_authenticate(user=photographer)

    response = client.patch(
        "/api/auth/me/",
        {"display_name": "Maya S.", "email": "hello@mayashutter.com"},
        format="json",
    )

    assert response.status_code == 200
    assert response.json()["display_name"] == "Maya S."
    photographer.refresh_from_db()
    assert photographer.username == "hello@mayashutter.com"
    assert photographer.studio.contact_email == "hello@mayashutter.com"


def test_me_patch_keeps_custom_studio_contact(db, client, photographer):
    Studio.objects.filter(owner=photographer).update(contact_email="bookings@mayashutter.com")
    client.force_authenticate(user=photographer)

    response = client.patch("/api/auth/me/", {"email": "maya@mayashutter.com"}, format="json")

    assert response.status_code == 200
    assert Studio.objects.get(owner=photographer).contact_email == "bookings@mayashutter.com"


def test_change_password_updates_password(db, client, photographer):
    client.force_authenticate(user=photographer)
    wrong = client.post(
        "/api/auth/change-password/",
        {"current_password": "wrongpass", "new_password": "newsecurepass"},
        format="json",
    )
    assert wrong.status_code == 400
    assert "current_password" in wrong.json()

    response = client.post(
        "/api/auth/change-password/",
        {"current_password": "examplepass", "new_password": "newsecurepass"},
        format="json",
    )

    assert response.status_code == 204
    photographer.refresh_from_db()
    assert photographer.check_password("newsecurepass")
