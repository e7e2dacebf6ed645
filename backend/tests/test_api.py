"""
VoiceConnect Backend: API Endpoint Tests
==========================================

What:  End-to-end tests through the ASGI app: routing, dependencies,
       the response envelope and the exception handlers.
How:   HTTPX AsyncClient over ASGITransport against a fresh SQLite schema.
       The Drive-backed audio pipeline is patched where uploads happen.

What we test:
    ✅ Register / login / refresh / logout and the auth error envelope
    ✅ 400 "Validation failed" with per-field errors for bad bodies
    ✅ Duplicate connection requests answer 400, auto-accept answers 200
    ✅ Multipart post creation answers 201; a non-finite duration answers 400
    ✅ limit/skip outside 1..100 / >= 0 answer 400 "Validation failed"
    ✅ Profile privacy: private_contact only for revealed connections
    ✅ Unknown routes answer 404 "Route not found: <path>"
    ✅ /health, /api and the X-Request-ID header
"""

from unittest.mock import AsyncMock, patch

import pytest

from voiceconnect.services.audio_service import AudioService, ProcessedAudio, audio_service


class TestAuthEndpoints:

    @pytest.mark.asyncio
    async def test_register(self, test_client):
        response = await test_client.post(
            "/api/auth/register",
            json={"username": "alice", "email": "Alice@Example.com", "password": "secret123"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "User registered successfully"
        user = body["data"]["user"]
        assert user["username"] == "alice"
        assert user["email"] == "alice@example.com"
        assert "password_hash" not in user
        assert "google_drive_token" not in user
        assert body["data"]["access_token"]
        assert body["data"]["refresh_token"]

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, test_client, user_factory):
        await user_factory("alice")

        response = await test_client.post(
            "/api/auth/register",
            json={"username": "alice2", "email": "alice@example.com", "password": "secret123"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Email already registered"
        assert body["details"]["field"] == "email"

    @pytest.mark.asyncio
    async def test_register_invalid_body(self, test_client):
        response = await test_client.post(
            "/api/auth/register",
            json={"username": "a!", "email": "not-an-email", "password": "123"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert body["error"] == "validation_error"
        fields = {e["field"] for e in body["errors"]}
        assert {"body.username", "body.email", "body.password"} <= fields

    @pytest.mark.asyncio
    async def test_login(self, test_client, user_factory):
        await user_factory("alice", password="secret123")

        response = await test_client.post(
            "/api/auth/login", json={"email": "ALICE@example.com", "password": "secret123"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["user"]["username"] == "alice"
        assert response.json()["data"]["user"]["last_login"] is not None

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, test_client, user_factory):
        await user_factory("alice", password="secret123")

        response = await test_client.post(
            "/api/auth/login", json={"email": "alice@example.com", "password": "nope"}
        )

        assert response.status_code == 401
        body = response.json()
        assert body == {
            "success": False,
            "message": "Invalid credentials",
            "error": "authentication_error",
            "request_id": response.headers["X-Request-ID"],
        }

    @pytest.mark.asyncio
    async def test_refresh(self, test_client, user_factory):
        await user_factory("alice")
        login = await test_client.post(
            "/api/auth/login", json={"email": "alice@example.com", "password": "secret123"}
        )
        tokens = login.json()["data"]

        response = await test_client.post(
            "/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert response.status_code == 200
        assert response.json()["data"]["token_type"] == "bearer"

        # An access token is not a refresh token
        response = await test_client.post(
            "/api/auth/refresh", json={"refresh_token": tokens["access_token"]}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_refresh_without_token(self, test_client):
        response = await test_client.post("/api/auth/refresh", json={})
        assert response.status_code == 401
        assert response.json()["message"] == "Refresh token required"

    @pytest.mark.asyncio
    async def test_missing_bearer_token(self, test_client):
        response = await test_client.get("/api/users/me")
        assert response.status_code == 401
        assert response.json()["message"] == "Access denied. No token provided."

    @pytest.mark.asyncio
    async def test_invalid_bearer_token(self, test_client):
        response = await test_client.get(
            "/api/users/me", headers={"Authorization": "Bearer not.a.jwt"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token."

    @pytest.mark.asyncio
    async def test_logout(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")
        response = await test_client.post("/api/auth/logout", headers=auth_headers(alice))
        assert response.status_code == 200
        assert response.json()["message"] == "Logout successful"


class TestUserEndpoints:

    @pytest.mark.asyncio
    async def test_me(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice", display_name="Alice")

        response = await test_client.get("/api/users/me", headers=auth_headers(alice))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["display_name"] == "Alice"
        assert data["google_drive_connected"] is False
        assert data["pending_requests"] == 0
        assert data["settings"]["contact_reveal_policy"] == "manual"

    @pytest.mark.asyncio
    async def test_update_me(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")

        response = await test_client.put(
            "/api/users/me",
            headers=auth_headers(alice),
            json={"bio": "Podcaster", "settings": {"auto_accept_connections": True}},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["bio"] == "Podcaster"
        assert data["settings"]["auto_accept_connections"] is True

    @pytest.mark.asyncio
    async def test_private_contact_hidden_from_strangers(
        self, test_client, user_factory, auth_headers
    ):
        alice = await user_factory("alice")
        bob = await user_factory("bob", private_contact="bob@signal.example")

        response = await test_client.get(f"/api/users/{bob.id}", headers=auth_headers(alice))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["username"] == "bob"
        assert data.get("private_contact") is None
        assert data["connection"]["is_connected"] is False

    @pytest.mark.asyncio
    async def test_search_requires_two_characters(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")
        response = await test_client.get(
            "/api/users/search", params={"q": "a"}, headers=auth_headers(alice)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_avatar_upload_not_implemented(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")
        response = await test_client.post(
            "/api/users/me/avatar",
            headers=auth_headers(alice),
            files={"avatar": ("me.png", b"\x89PNG", "image/png")},
        )
        assert response.status_code == 501


class TestConnectionEndpoints:

    @pytest.mark.asyncio
    async def test_request_then_duplicate(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")
        bob = await user_factory("bob")

        first = await test_client.post(
            f"/api/connections/{bob.id}/request",
            headers=auth_headers(alice),
            json={"message": "Hello"},
        )
        assert first.status_code == 201
        assert first.json()["data"]["status"] == "pending"

        duplicate = await test_client.post(
            f"/api/connections/{bob.id}/request", headers=auth_headers(alice)
        )
        assert duplicate.status_code == 400
        assert duplicate.json()["message"] == "Connection already pending"

    @pytest.mark.asyncio
    async def test_auto_accept_answers_200(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")
        bob = await user_factory("bob", auto_accept_connections=True)

        response = await test_client.post(
            f"/api/connections/{bob.id}/request", headers=auth_headers(alice)
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Connection established"

        mine = await test_client.get("/api/connections/me", headers=auth_headers(bob))
        assert mine.json()["data"]["total"] == 1

    @pytest.mark.asyncio
    async def test_accept_request(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        sent = await test_client.post(
            f"/api/connections/{bob.id}/request", headers=auth_headers(alice)
        )
        request_id = sent.json()["data"]["id"]

        pending = await test_client.get("/api/connections/pending", headers=auth_headers(bob))
        assert pending.json()["data"]["total"] == 1

        response = await test_client.put(
            f"/api/connections/{request_id}",
            headers=auth_headers(bob),
            json={"status": "accepted"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "accepted"

    @pytest.mark.asyncio
    async def test_invalid_response_status(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        sent = await test_client.post(
            f"/api/connections/{bob.id}/request", headers=auth_headers(alice)
        )

        response = await test_client.put(
            f"/api/connections/{sent.json()['data']['id']}",
            headers=auth_headers(bob),
            json={"status": "maybe"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"


class TestPostEndpoints:

    @pytest.mark.asyncio
    async def test_create_post_multipart(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")
        audio = ProcessedAudio(
            storage_type="google_drive",
            file_id="drive-1",
            url="https://www.googleapis.com/drive/v3/files/drive-1?alt=media",
            duration=42,
            format="webm",
            file_size=7,
        )

        with patch.object(audio_service, "process_upload", AsyncMock(return_value=audio)) as upload:
            response = await test_client.post(
                "/api/posts",
                headers=auth_headers(alice),
                files={"audio": ("clip.webm", b"webm...", "audio/webm")},
                data={"title": "First post", "tags": "hello,world", "duration": "42"},
            )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["title"] == "First post"
        assert data["tags"] == ["hello", "world"]
        assert data["audio"]["duration"] == 42
        assert upload.await_args.kwargs["client_duration"] == 42.0

        explore = await test_client.get("/api/posts/explore")
        assert explore.json()["data"]["total"] == 1

    @pytest.mark.asyncio
    async def test_create_post_without_drive(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")

        response = await test_client.post(
            "/api/posts",
            headers=auth_headers(alice),
            files={"audio": ("clip.webm", b"webm...", "audio/webm")},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Google Drive not connected"

    @pytest.mark.asyncio
    async def test_unknown_post(self, test_client):
        response = await test_client.get("/api/posts/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404
        assert response.json()["message"] == "Post not found"

    @pytest.mark.asyncio
    async def test_non_finite_duration_is_a_validation_error(
        self, test_client, user_factory, auth_headers, drive_token
    ):
        alice = await user_factory("alice", google_drive_token=drive_token)

        with patch("voiceconnect.services.audio_service.magic.from_buffer", return_value="audio/webm"), \
             patch.object(AudioService, "probe_duration", return_value=None):
            response = await test_client.post(
                "/api/posts",
                headers=auth_headers(alice),
                files={"audio": ("clip.webm", b"webm...", "audio/webm")},
                data={"duration": "nan"},
            )

        assert response.status_code == 400
        assert response.json()["message"] == "Unable to determine audio duration"


class TestPagination:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params, field",
        [
            ({"limit": 0}, "query.limit"),
            ({"limit": 101}, "query.limit"),
            ({"skip": -1}, "query.skip"),
        ],
    )
    async def test_out_of_range_is_rejected(self, test_client, params, field):
        response = await test_client.get("/api/posts/explore", params=params)

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert [e["field"] for e in body["errors"]] == [field]

    @pytest.mark.asyncio
    async def test_bounds_are_inclusive(self, test_client):
        response = await test_client.get("/api/posts/explore", params={"limit": 100, "skip": 0})

        assert response.status_code == 200
        assert response.json()["data"]["limit"] == 100


class TestNotificationEndpoints:

    @pytest.mark.asyncio
    async def test_unread_count_and_read_all(self, test_client, user_factory, auth_headers):
        alice = await user_factory("alice")

        count = await test_client.get("/api/notifications/unread-count", headers=auth_headers(alice))
        assert count.json()["data"]["count"] == 0

        read_all = await test_client.put("/api/notifications/read-all", headers=auth_headers(alice))
        assert read_all.json()["data"]["updated"] == 0


class TestServiceEndpoints:

    @pytest.mark.asyncio
    async def test_unknown_route(self, test_client):
        response = await test_client.get("/api/nope")
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Route not found: /api/nope"

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["google_drive"] == "configured"

    @pytest.mark.asyncio
    async def test_api_index(self, test_client):
        response = await test_client.get("/api")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["endpoints"]["posts"] == "/api/posts"
        assert data["docs"] == "/docs"

    @pytest.mark.asyncio
    async def test_request_id_header(self, test_client):
        response = await test_client.get("/api", headers={"X-Request-ID": "abc12345"})
        assert response.headers["X-Request-ID"] == "abc12345"

        generated = await test_client.get("/api")
        assert len(generated.headers["X-Request-ID"]) == 8
