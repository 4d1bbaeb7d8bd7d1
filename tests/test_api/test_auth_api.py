from fastapi import status

TEST_PASSWORD = "Password123"


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


class TestRegistration:
    """Test account registration."""

    def test_register_returns_token_and_profile(self, test_client):
        response = test_client.post(
            "/api/auth/register",
            json={"username": "alice", "email": "Alice@Example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "User registered successfully"
        assert body["data"]["token_type"] == "bearer"
        assert body["data"]["user"]["email"] == "alice@example.com"
        assert "password_hash" not in body["data"]["user"]

    def test_duplicate_username_is_409(self, test_client, register_user):
        register_user("alice")

        response = test_client.post(
            "/api/auth/register",
            json={"username": "alice", "email": "other@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_weak_password_is_400(self, test_client):
        response = test_client.post(
            "/api/auth/register",
            json={"username": "alice", "email": "alice@example.com", "password": "lowercase1"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["details"]["field"] == "password"

    def test_missing_fields_are_400(self, test_client):
        response = test_client.post("/api/auth/register", json={"username": "alice"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["message"].startswith("Validation failed")


class TestLogin:
    def test_login_with_camel_case_identifier(self, test_client, register_user):
        register_user("alice")

        response = test_client.post(
            "/api/auth/login",
            json={"usernameOrEmail": "alice@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["user"]["username"] == "alice"

    def test_wrong_password_is_401(self, test_client, register_user):
        register_user("alice")

        response = test_client.post(
            "/api/auth/login",
            json={"username_or_email": "alice", "password": "Wrong12345"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"


class TestSession:
    def test_me_requires_token(self, test_client):
        response = test_client.get("/api/auth/me")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_me(self, test_client, register_user):
        token, user = register_user("alice")

        response = test_client.get("/api/auth/me", headers=auth_headers(token))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["id"] == user["id"]

    def test_update_profile(self, test_client, register_user):
        token, _ = register_user("alice")

        response = test_client.patch(
            "/api/auth/me",
            json={"displayName": "Alice", "bio": "Vinyl only"},
            headers=auth_headers(token),
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["display_name"] == "Alice"
        assert data["bio"] == "Vinyl only"

    def test_logout_revokes_token(self, test_client, register_user):
        token, _ = register_user("alice")

        assert test_client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200

        response = test_client.get("/api/auth/me", headers=auth_headers(token))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_refresh(self, test_client, register_user):
        token, _ = register_user("alice")

        response = test_client.post("/api/auth/refresh", headers=auth_headers(token))
        new_token = response.json()["data"]["token"]

        assert response.status_code == status.HTTP_200_OK
        assert test_client.get("/api/auth/me", headers=auth_headers(new_token)).status_code == 200
        assert test_client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


class TestDeleteAccount:
    def test_delete_account_keeps_album_stats(self, test_client, register_user):
        alice_token, _ = register_user("alice")
        bob_token, _ = register_user("bob")
        album_id = "mock-lastfm-1"
        test_client.post(
            "/api/ratings", json={"albumId": album_id, "rating": 5}, headers=auth_headers(alice_token)
        )
        test_client.post(
            "/api/ratings", json={"albumId": album_id, "rating": 3}, headers=auth_headers(bob_token)
        )
        before = test_client.get(f"/api/albums/{album_id}").json()["data"]

        response = test_client.delete("/api/auth/account", headers=auth_headers(alice_token))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["ratings_count"] == 1
        after = test_client.get(f"/api/albums/{album_id}").json()["data"]
        assert after["average_rating"] == before["average_rating"] == 4.0
        assert after["rating_count"] == 2
        assert test_client.get("/api/auth/me", headers=auth_headers(alice_token)).status_code == 401
