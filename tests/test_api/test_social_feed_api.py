from fastapi import status

ALBUMS = ["mock-lastfm-1", "mock-lastfm-2", "mock-lastfm-3", "mock-lastfm-4"]


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


class TestFollowEndpoints:
    """Test the social graph endpoints."""

    def test_follow_and_unfollow(self, test_client, register_user):
        alice_token, alice = register_user("alice")
        _, bob = register_user("bob")

        followed = test_client.post(
            "/api/social/follow", json={"userId": bob["id"]}, headers=auth_headers(alice_token)
        )
        assert followed.status_code == status.HTTP_201_CREATED

        followers = test_client.get(f"/api/social/followers/{bob['id']}").json()["data"]
        assert [u["username"] for u in followers] == ["alice"]

        removed = test_client.delete(f"/api/social/follow/{bob['id']}", headers=auth_headers(alice_token))
        again = test_client.delete(f"/api/social/follow/{bob['id']}", headers=auth_headers(alice_token))

        assert removed.json()["data"] == {"removed": True}
        assert again.status_code == status.HTTP_200_OK
        assert again.json()["data"] == {"removed": False}

    def test_self_follow_is_400(self, test_client, register_user):
        token, alice = register_user("alice")

        response = test_client.post(
            "/api/social/follow", json={"user_id": alice["id"]}, headers=auth_headers(token)
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "INVALID_OPERATION"

    def test_duplicate_follow_is_409(self, test_client, register_user):
        token, _ = register_user("alice")
        _, bob = register_user("bob")
        payload = {"userId": bob["id"]}

        test_client.post("/api/social/follow", json=payload, headers=auth_headers(token))
        response = test_client.post("/api/social/follow", json=payload, headers=auth_headers(token))

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_follow_unknown_user_is_404(self, test_client, register_user):
        token, _ = register_user("alice")

        response = test_client.post(
            "/api/social/follow",
            json={"userId": "00000000-0000-0000-0000-000000000000"},
            headers=auth_headers(token),
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_profile_with_viewer(self, test_client, register_user):
        alice_token, _ = register_user("alice")
        _, bob = register_user("bob")
        test_client.post("/api/social/follow", json={"userId": bob["id"]}, headers=auth_headers(alice_token))

        anonymous = test_client.get(f"/api/social/profile/{bob['id']}").json()["data"]
        viewed = test_client.get(
            f"/api/social/profile/{bob['id']}", headers=auth_headers(alice_token)
        ).json()["data"]

        assert anonymous["follower_count"] == 1
        assert "is_following" not in anonymous
        assert viewed["is_following"] is True

    def test_is_following_and_mutual(self, test_client, register_user):
        alice_token, alice = register_user("alice")
        bob_token, bob = register_user("bob")
        test_client.post("/api/social/follow", json={"userId": bob["id"]}, headers=auth_headers(alice_token))
        test_client.post("/api/social/follow", json={"userId": alice["id"]}, headers=auth_headers(bob_token))

        check = test_client.get(
            f"/api/social/is-following/{bob['id']}", headers=auth_headers(alice_token)
        ).json()["data"]
        mutual = test_client.get("/api/social/mutual", headers=auth_headers(alice_token)).json()["data"]

        assert check == {"user_id": bob["id"], "is_following": True}
        assert [u["id"] for u in mutual] == [bob["id"]]

    def test_search_users(self, test_client, register_user):
        alice_token, _ = register_user("alice")
        register_user("alicia")
        register_user("bob")

        anonymous = test_client.get("/api/social/search", params={"q": "ali"}).json()["data"]
        viewed = test_client.get(
            "/api/social/search", params={"q": "alicia"}, headers=auth_headers(alice_token)
        ).json()["data"]

        assert {u["username"] for u in anonymous} == {"alice", "alicia"}
        assert viewed[0]["is_following"] is False


class TestFeedEndpoints:
    def test_feed_requires_auth(self, test_client):
        assert test_client.get("/api/feed").status_code == status.HTTP_401_UNAUTHORIZED

    def test_empty_feed_without_followees(self, test_client, register_user):
        token, _ = register_user("alice")

        feed = test_client.get("/api/feed", headers=auth_headers(token)).json()["data"]

        assert feed["activities"] == []
        assert feed["has_more"] is False
        assert feed["total"] == 0

    def test_feed_shows_followee_activity_newest_first(self, test_client, register_user):
        alice_token, _ = register_user("alice")
        bob_token, bob = register_user("bob")
        test_client.post("/api/social/follow", json={"userId": bob["id"]}, headers=auth_headers(alice_token))
        test_client.post("/api/ratings", json={"albumId": ALBUMS[0], "rating": 5}, headers=auth_headers(bob_token))
        test_client.post(
            "/api/reviews", json={"albumId": ALBUMS[1], "content": "Lunatic"}, headers=auth_headers(bob_token)
        )

        feed = test_client.get("/api/feed", headers=auth_headers(alice_token)).json()["data"]

        assert [a["type"] for a in feed["activities"]] == ["review", "rating"]
        assert feed["activities"][0]["data"] == {"type": "review", "content_preview": "Lunatic"}
        assert feed["activities"][1]["data"] == {"type": "rating", "rating": 5}
        assert feed["activities"][1]["user"]["username"] == "bob"

    def test_rerating_does_not_add_feed_events(self, test_client, register_user):
        alice_token, _ = register_user("alice")
        bob_token, bob = register_user("bob")
        test_client.post("/api/social/follow", json={"userId": bob["id"]}, headers=auth_headers(alice_token))
        for value in (4, 5):
            test_client.post(
                "/api/ratings", json={"albumId": ALBUMS[0], "rating": value}, headers=auth_headers(bob_token)
            )

        feed = test_client.get("/api/feed", headers=auth_headers(alice_token)).json()["data"]

        assert len(feed["activities"]) == 1
        assert feed["activities"][0]["data"]["rating"] == 4

    def test_feed_pagination(self, test_client, register_user):
        alice_token, _ = register_user("alice")
        bob_token, bob = register_user("bob")
        test_client.post("/api/social/follow", json={"userId": bob["id"]}, headers=auth_headers(alice_token))
        for album_id in ALBUMS:
            test_client.post(
                "/api/ratings", json={"albumId": album_id, "rating": 3}, headers=auth_headers(bob_token)
            )

        first = test_client.get("/api/feed", params={"limit": 3}, headers=auth_headers(alice_token)).json()["data"]
        second = test_client.get(
            "/api/feed", params={"limit": 3, "page": 2}, headers=auth_headers(alice_token)
        ).json()["data"]

        assert len(first["activities"]) == 3
        assert first["has_more"] is True
        assert second["page"] == 2
        assert second["offset"] == 3
        assert len(second["activities"]) == 1
        assert second["has_more"] is False
        seen = {a["id"] for a in first["activities"]} | {a["id"] for a in second["activities"]}
        assert len(seen) == 4

    def test_feed_limit_out_of_range(self, test_client, register_user):
        token, _ = register_user("alice")

        response = test_client.get("/api/feed", params={"limit": 101}, headers=auth_headers(token))

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_user_feed_and_stats(self, test_client, register_user):
        token, alice = register_user("alice")
        for album_id in ALBUMS[:2]:
            test_client.post("/api/ratings", json={"albumId": album_id, "rating": 2}, headers=auth_headers(token))

        feed = test_client.get(f"/api/feed/user/{alice['id']}", params={"limit": 1}).json()["data"]
        stats = test_client.get(f"/api/feed/stats/{alice['id']}").json()["data"]

        assert feed["total"] == 2
        assert feed["has_more"] is True
        assert stats == {"user_id": alice["id"], "activity_count": 2, "has_activities": True}

    def test_user_feed_by_page_number(self, test_client, register_user):
        token, alice = register_user("alice")
        for album_id in ALBUMS[:3]:
            test_client.post("/api/ratings", json={"albumId": album_id, "rating": 4}, headers=auth_headers(token))

        feed = test_client.get(
            f"/api/feed/user/{alice['id']}", params={"limit": 2, "page": 2}
        ).json()["data"]

        assert feed["page"] == 2
        assert feed["offset"] == 2
        assert len(feed["activities"]) == 1
        assert feed["activities"][0]["album"]["external_id"] == ALBUMS[0]

    def test_user_feed_unknown_user(self, test_client):
        response = test_client.get("/api/feed/user/missing-user")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_recent_activity_by_type(self, test_client, register_user):
        token, _ = register_user("alice")
        test_client.post("/api/ratings", json={"albumId": ALBUMS[0], "rating": 5}, headers=auth_headers(token))
        test_client.post(
            "/api/reviews", json={"albumId": ALBUMS[0], "content": "Yes"}, headers=auth_headers(token)
        )

        everything = test_client.get("/api/feed/recent").json()["data"]
        reviews = test_client.get("/api/feed/recent", params={"type": "review"}).json()["data"]
        invalid = test_client.get("/api/feed/recent", params={"type": "follow"})

        assert len(everything["activities"]) == 2
        assert [a["type"] for a in reviews["activities"]] == ["review"]
        assert invalid.status_code == status.HTTP_400_BAD_REQUEST
