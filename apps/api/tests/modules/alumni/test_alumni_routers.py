"""
HTTP tests for the public and admin alumni routers.

Requests go through the real application with the database dependency
pointed at the in-memory SQLite session factory and real JWTs for admin
calls.
"""

from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from alumni_api.core.database import get_db
from alumni_api.core.redis import get_redis
from alumni_api.core.security import create_access_token
from alumni_api.main import app

PUBLIC = "/api/v1/alumni"
ADMIN = "/api/v1/admin/alumni"

REGISTRATION = {
    "name": "Priya Nair",
    "email": "priya.nair@test.com",
    "batch_year": 2012,
    "category": "engineering",
    "organization": "ISRO",
    "current_designation": "Scientist",
}


@pytest_asyncio.fixture
async def client(session_maker, mock_redis, sent_emails):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: mock_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin_id):
    token = create_access_token(admin_id, "moderator@test.com", "admin", name="Moderator")
    return {"Authorization": f"Bearer {token}"}


async def _register(client, **overrides):
    response = await client.post(f"{PUBLIC}/register", json={**REGISTRATION, **overrides})
    assert response.status_code == 201
    return response.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"


class TestPublicRegistration:
    """Tests for POST /alumni/register and /alumni/verify."""

    @pytest.mark.asyncio
    async def test_register(self, client, sent_emails):
        body = await _register(client)

        assert body["slug"] == "priya-nair"
        assert body["approval_status"] == "pending"
        assert body["verification_email_sent"] is True
        sent_emails["verification"].assert_called_once()

    @pytest.mark.asyncio
    async def test_register_validation_envelope(self, client):
        response = await client.post(
            f"{PUBLIC}/register",
            json={**REGISTRATION, "email": "not-an-email", "batch_year": 1850},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert set(body["fields"]) == {"email", "batch_year"}

    @pytest.mark.asyncio
    async def test_verify_token_once(self, client, sent_emails):
        body = await _register(client)
        token = sent_emails["verification"].call_args.kwargs["token"]

        first = await client.post(f"{PUBLIC}/verify", json={"token": token})
        assert first.status_code == 200
        assert first.json()["id"] == body["id"]
        assert first.json()["email_verified_at"] is not None

        second = await client.post(f"{PUBLIC}/verify", json={"token": token})
        assert second.status_code == 400
        assert second.json()["detail"] == {
            "error": "INVALID_TOKEN",
            "message": "Invalid or expired verification link.",
        }

    @pytest.mark.asyncio
    async def test_resend_answers_the_same_for_unknown_email(self, client, sent_emails):
        await _register(client)
        sent_emails["verification"].reset_mock()

        known = await client.post(
            f"{PUBLIC}/resend-verification", json={"email": "priya.nair@test.com"}
        )
        unknown = await client.post(
            f"{PUBLIC}/resend-verification", json={"email": "nobody@test.com"}
        )

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        sent_emails["verification"].assert_called_once()

    @pytest.mark.asyncio
    async def test_resend_rate_limited(self, client, mock_redis):
        mock_redis.get.return_value = "3"
        mock_redis.ttl.return_value = 900

        response = await client.post(
            f"{PUBLIC}/resend-verification", json={"email": "priya.nair@test.com"}
        )

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "900"
        assert response.json()["detail"]["error"] == "RATE_LIMIT_EXCEEDED"


class TestAdminAuth:
    """Admin endpoints require an administrator's access token."""

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get(ADMIN, headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "INVALID_TOKEN"

    @pytest.mark.asyncio
    async def test_subject_must_be_uuid(self, client):
        token = create_access_token("moderator-7", "moderator@test.com", "admin")

        response = await client.get(ADMIN, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "INVALID_TOKEN_CLAIMS"

    @pytest.mark.asyncio
    async def test_non_admin_role(self, client):
        token = create_access_token(uuid4(), "staff@test.com", "staff")

        response = await client.get(ADMIN, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "ADMIN_ACCESS_REQUIRED"


class TestAdminModeration:
    """Moderation through the admin API."""

    @pytest.mark.asyncio
    async def test_approve_requires_verification(self, client, admin_headers, admin_id):
        body = await _register(client)
        alumni_id = body["id"]

        refused = await client.post(f"{ADMIN}/{alumni_id}/approve", headers=admin_headers)
        assert refused.status_code == 409
        assert refused.json()["detail"]["error"] == "EMAIL_NOT_VERIFIED"

        verified = await client.post(f"{ADMIN}/{alumni_id}/verify-email", headers=admin_headers)
        assert verified.status_code == 200
        assert verified.json()["email_verified_at"] is not None
        assert verified.json()["is_email_verified"] is True

        approved = await client.post(f"{ADMIN}/{alumni_id}/approve", headers=admin_headers)
        assert approved.status_code == 200
        assert approved.json()["approval_status"] == "approved"
        assert approved.json()["approved_by"] == str(admin_id)
        assert approved.json()["notification_sent"] is True

        profile = await client.get(f"{PUBLIC}/priya-nair")
        assert profile.status_code == 200
        assert profile.json()["organization"] == "ISRO"
        assert "email" not in profile.json()
        assert "approved_by" not in profile.json()
        assert profile.json()["related"] == []

    @pytest.mark.asyncio
    async def test_reject_without_body(self, client, admin_headers):
        alumni_id = (await _register(client))["id"]
        await client.post(f"{ADMIN}/{alumni_id}/verify-email", headers=admin_headers)

        response = await client.post(f"{ADMIN}/{alumni_id}/reject", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["approval_status"] == "rejected"
        assert response.json()["rejection_reason"] == ""

    @pytest.mark.asyncio
    async def test_unknown_record(self, client, admin_headers):
        response = await client.post(f"{ADMIN}/{uuid4()}/approve", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_bulk_approve(self, client, admin_headers):
        verified_id = (await _register(client))["id"]
        unverified_id = (await _register(client, email="other@test.com"))["id"]
        missing_id = str(uuid4())
        await client.post(f"{ADMIN}/{verified_id}/verify-email", headers=admin_headers)

        response = await client.post(
            f"{ADMIN}/bulk-approve",
            json={"ids": [verified_id, unverified_id, missing_id]},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["approved_count"] == 1
        assert body["skipped_count"] == 2
        assert body["results"] == [
            {"outcome": "approved", "id": verified_id},
            {"outcome": "skipped", "id": unverified_id, "reason": "EMAIL_NOT_VERIFIED"},
            {"outcome": "skipped", "id": missing_id, "reason": "NOT_FOUND"},
        ]

    @pytest.mark.asyncio
    async def test_listing_and_stats(self, client, admin_headers):
        first = (await _register(client))["id"]
        await _register(client, name="Rahul Mehta", email="rahul@test.com")
        await client.post(f"{ADMIN}/{first}/verify-email", headers=admin_headers)

        listing = await client.get(
            ADMIN, params={"verified": "yes", "status": "pending"}, headers=admin_headers
        )
        assert listing.status_code == 200
        assert [item["id"] for item in listing.json()["items"]] == [first]
        assert listing.json()["stats"]["total_count"] == 2
        assert listing.json()["batch_years"] == [2012]

        stats = await client.get(f"{ADMIN}/stats", headers=admin_headers)
        assert stats.json() == {
            "total_count": 2,
            "pending_count": 2,
            "approved_count": 0,
            "rejected_count": 0,
            "unverified_count": 1,
        }

    @pytest.mark.asyncio
    async def test_edit_and_delete(self, client, admin_headers):
        alumni_id = (await _register(client))["id"]

        edited = await client.patch(
            f"{ADMIN}/{alumni_id}",
            json={"name": "Priya N. Menon", "location": "Bengaluru"},
            headers=admin_headers,
        )
        assert edited.status_code == 200
        assert edited.json()["slug"] == "priya-nair"
        assert edited.json()["location"] == "Bengaluru"

        cleared = await client.patch(
            f"{ADMIN}/{alumni_id}", json={"name": None}, headers=admin_headers
        )
        assert cleared.status_code == 422

        deleted = await client.delete(f"{ADMIN}/{alumni_id}", headers=admin_headers)
        assert deleted.status_code == 204

        missing = await client.get(f"{ADMIN}/{alumni_id}", headers=admin_headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_deactivated_profile_leaves_directory(self, client, admin_headers):
        alumni_id = (await _register(client))["id"]
        await client.post(f"{ADMIN}/{alumni_id}/verify-email", headers=admin_headers)
        await client.post(f"{ADMIN}/{alumni_id}/approve", headers=admin_headers)

        response = await client.post(
            f"{ADMIN}/{alumni_id}/active", json={"is_active": False}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        directory = await client.get(PUBLIC)
        assert directory.json()["total"] == 0
        assert (await client.get(f"{PUBLIC}/priya-nair")).status_code == 404

        facets = await client.get(f"{PUBLIC}/facets")
        assert facets.json()["total"] == 0
        assert facets.json()["featured"] == []
