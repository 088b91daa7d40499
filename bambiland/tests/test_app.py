import unittest
from unittest import mock

from sqlalchemy.exc import IntegrityError

from harness import ApiTestCase, db_down

from bambiland.db import MediaPostRecord
from bambiland.feed import CANDIDATE_POST_LIMIT, DEFAULT_TIERS


class AuthApiTests(ApiTestCase):
    def test_register_and_login(self):
        response = self.client.post(
            "/api/auth/register",
            json={"username": "dawn", "email": "dawn@example.com", "password": "secret123"},
        )
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["message"], "User account created successfully")
        self.assertEqual(payload["user"]["role"], "user")
        self.assertNotIn("password_hash", payload["user"])

        login = self.client.post(
            "/api/auth/login",
            json={"username": "dawn@example.com", "password": "secret123"},
        )
        self.assertEqual(login.status_code, 200)
        self.assertEqual(login.json()["token_type"], "bearer")
        self.assertIn(self.settings.session_cookie_name, login.cookies)

        session = self.client.get("/api/auth/session")
        self.assertEqual(session.json()["user"]["name"], "dawn")

        self.client.post("/api/auth/logout")
        self.assertIsNone(self.client.get("/api/auth/session").json()["user"])

    def test_register_validation(self):
        missing = self.client.post("/api/auth/register", json={"username": "x"})
        self.assertEqual(missing.status_code, 400)

        short = self.client.post(
            "/api/auth/register",
            json={"username": "x", "email": "x@example.com", "password": "123"},
        )
        self.assertEqual(short.status_code, 400)

    def test_register_duplicates(self):
        self.make_user("dawn")
        by_name = self.client.post(
            "/api/auth/register",
            json={"username": "dawn", "email": "new@example.com", "password": "secret123"},
        )
        self.assertEqual(by_name.status_code, 409)
        self.assertEqual(by_name.json()["detail"], "Username already exists")

        by_email = self.client.post(
            "/api/auth/register",
            json={"username": "other", "email": "dawn@example.com", "password": "secret123"},
        )
        self.assertEqual(by_email.status_code, 409)
        self.assertEqual(by_email.json()["detail"], "Email already exists")

    def test_login_rejects_bad_password(self):
        self.make_user("dawn")
        response = self.client.post(
            "/api/auth/login", json={"username": "dawn", "password": "wrong-one"}
        )
        self.assertEqual(response.status_code, 401)

    def test_dev_user_acts_as_session(self):
        self.settings.dev_user_id = "dev-user"
        session = self.client.get("/api/auth/session").json()
        self.assertEqual(session["user"]["id"], "dev-user")
        self.assertEqual(session["user"]["role"], "user")


class MembershipApiTests(ApiTestCase):
    def test_tiers_default_when_table_empty(self):
        tiers = self.client.get("/api/membership/tiers").json()["tiers"]
        self.assertEqual([t["slug"] for t in tiers], ["free", "silver", "gold"])
        self.assertEqual([t["rank"] for t in tiers], [0, 1, 2])

    def test_me_uses_cookie_tier_without_subscription(self):
        response = self.client.get("/api/membership/me", params={"cookieTier": "gold"})
        self.assertEqual(response.json()["tier"], {"slug": "gold", "name": "Gold", "rank": 2})

        default = self.client.get("/api/membership/me").json()
        self.assertEqual(default["tier"]["slug"], "free")

    def test_subscribe_records_subscription_and_cookie(self):
        for tier in DEFAULT_TIERS:
            self.db.save_tier(tier)
        user = self.make_user()
        response = self.client.post(
            "/api/membership/subscribe",
            json={"tier_id": "silver"},
            headers=self.auth_headers(user),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True, "tier_id": "silver", "devTierSlug": "silver"})
        self.assertEqual(response.cookies.get("devTierId"), "silver")
        self.assertEqual(self.db.get_active_tier(user.id).slug, "silver")

        me = self.client.get("/api/membership/me", headers=self.auth_headers(user))
        self.assertEqual(me.json()["tier"]["rank"], 1)

        counts = self.client.get("/api/membership/counts").json()["counts"]
        self.assertEqual(counts, {"free": 0, "silver": 1, "gold": 0})

    def test_subscribe_requires_string_tier(self):
        response = self.client.post("/api/membership/subscribe", json={"tier_id": 3})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Missing or invalid tier_id")


class FeedApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        for tier in DEFAULT_TIERS:
            self.db.save_tier(tier)
        self.creator = self.make_user("creator")
        self.viewer = self.make_user("viewer")
        self.free_post = self._post("Free set", created_at=1000.0)
        self.gold_post = self._post("Gold set", required_tier_id="gold", created_at=2000.0)
        self.priced_post = self._post("Paid set", price_cents=499, created_at=3000.0)
        self._post("Draft", is_published=False, created_at=4000.0)

    def _post(self, title, *, owner=None, is_published=True, created_at, **kwargs):
        return self.db.create_media_post(
            MediaPostRecord(
                id="",
                user_id=(owner or self.creator).id,
                title=title,
                is_published=is_published,
                created_at=created_at,
                **kwargs,
            ),
            [{"url": f"https://cdn.test/{title}.jpg", "type": "image"}],
        )

    def _feed(self, user=None, **params):
        headers = self.auth_headers(user) if user else {}
        response = self.client.get("/api/feed", params=params, headers=headers)
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_free_viewer_sees_free_and_locked_priced_posts(self):
        feed = self._feed(self.viewer)
        posts = {post["id"]: post for post in feed["posts"]}
        self.assertEqual(
            [post["id"] for post in feed["posts"]],
            [self.priced_post.id, self.free_post.id],
        )
        self.assertTrue(posts[self.priced_post.id]["locked"])
        self.assertEqual(posts[self.priced_post.id]["assets"], [])
        self.assertTrue(posts[self.free_post.id]["can_view"])
        self.assertEqual(len(posts[self.free_post.id]["assets"]), 1)
        self.assertIsNone(feed["userTierId"])

    def test_gold_subscriber_sees_gold_posts(self):
        self.db.set_active_subscription(self.viewer.id, "gold")
        feed = self._feed(self.viewer)
        self.assertIn(self.gold_post.id, [post["id"] for post in feed["posts"]])
        self.assertEqual(feed["userTierId"], "gold")

    def test_purchase_unlocks_priced_post(self):
        self.client.post(
            f"/api/posts/{self.priced_post.id}/purchase",
            headers=self.auth_headers(self.viewer),
        )
        feed = self._feed(self.viewer)
        priced = next(p for p in feed["posts"] if p["id"] == self.priced_post.id)
        self.assertTrue(priced["can_view"])
        self.assertEqual(len(priced["assets"]), 1)

    def test_dev_tier_cookie_sets_rank(self):
        self.client.cookies.set("devTierId", "gold")
        feed = self._feed(self.viewer)
        self.assertEqual(feed["userTierId"], "gold")
        self.assertIn(self.gold_post.id, [post["id"] for post in feed["posts"]])

    def test_owner_and_admin_can_view_priced_posts(self):
        owner_feed = self._feed(self.creator)
        priced = next(p for p in owner_feed["posts"] if p["id"] == self.priced_post.id)
        self.assertFalse(priced["locked"])

        admin = self.make_user("boss", role="admin")
        admin_feed = self._feed(admin, viewTier="silver")
        self.assertEqual(admin_feed["userTierId"], "silver")
        self.assertNotIn(self.gold_post.id, [post["id"] for post in admin_feed["posts"]])
        self.assertTrue(all(post["can_view"] for post in admin_feed["posts"]))

    def test_follow_filter(self):
        other = self.make_user("other")
        other_post = self._post("Other set", owner=other, created_at=5000.0)
        self.db.follow(self.viewer.id, other.id)
        feed = self._feed(self.viewer)
        self.assertEqual([post["id"] for post in feed["posts"]], [other_post.id])

    def test_pagination_and_limit_clamp(self):
        first = self._feed(self.viewer, limit=1)
        self.assertEqual(len(first["posts"]), 1)
        self.assertTrue(first["hasMore"])
        self.assertEqual(first["nextPage"], 2)

        second = self._feed(self.viewer, limit=1, page=2)
        self.assertFalse(second["hasMore"])
        self.assertIsNone(second["nextPage"])

        clamped = self._feed(self.viewer, limit=500, page=0)
        self.assertEqual(clamped["limit"], 50)
        self.assertEqual(clamped["page"], 1)

    def test_fallback_serves_sample_posts(self):
        with mock.patch.object(self.db, "list_media_posts", side_effect=db_down):
            feed = self._feed(self.viewer)
        self.assertTrue(feed["devFallback"])
        self.assertEqual([p["id"] for p in feed["posts"]], ["sample-1", "sample-2"])
        self.assertTrue(all(p["locked"] for p in feed["posts"]))
        self.assertTrue(all(p["assets"] == [] for p in feed["posts"]))

    def test_fallback_serves_published_dev_posts(self):
        self.store.add_post(
            self.creator.id,
            title="Dev post",
            body=None,
            required_tier_id=None,
            price_cents=None,
            is_published=True,
            is_special_card=False,
            media=[{"url": "/a.jpg", "type": "image"}],
        )
        with mock.patch.object(self.db, "list_media_posts", side_effect=db_down):
            feed = self._feed(self.viewer)
        self.assertEqual(len(feed["posts"]), 1)
        self.assertTrue(feed["posts"][0]["id"].startswith("mock-"))
        self.assertEqual(feed["posts"][0]["assets"][0]["media_url"], "/a.jpg")

    def test_feed_considers_only_newest_candidates(self):
        for index in range(CANDIDATE_POST_LIMIT):
            self._post(f"Bulk {index}", created_at=10000.0 + index)

        seen = []
        page = 1
        while True:
            feed = self._feed(self.viewer, limit=50, page=page)
            seen.extend(post["id"] for post in feed["posts"])
            if not feed["hasMore"]:
                break
            page += 1
        self.assertEqual(len(seen), CANDIDATE_POST_LIMIT)
        self.assertNotIn(self.free_post.id, seen)
        self.assertNotIn(self.priced_post.id, seen)

    def test_fallback_purchase_unlocks_priced_dev_post(self):
        post = self.store.add_post(
            self.creator.id,
            title="Paid dev post",
            body=None,
            required_tier_id=None,
            price_cents=299,
            is_published=True,
            is_special_card=False,
            media=[{"url": "/paid.jpg", "type": "image"}],
        )
        self.store.record_purchase(post["id"], self.viewer.id)
        other = self.make_user("other")

        with mock.patch.object(self.db, "list_media_posts", side_effect=db_down):
            buyer_feed = self._feed(self.viewer)
            other_feed = self._feed(other)

        bought = buyer_feed["posts"][0]
        self.assertTrue(bought["can_view"])
        self.assertEqual(bought["assets"][0]["media_url"], "/paid.jpg")
        locked = other_feed["posts"][0]
        self.assertTrue(locked["locked"])
        self.assertEqual(locked["assets"], [])

    def test_feed_fails_when_fallback_disabled(self):
        self.settings.dev_fallback_enabled = False
        with mock.patch.object(self.db, "list_media_posts", side_effect=db_down):
            response = self.client.get("/api/feed")
        self.assertEqual(response.status_code, 500)


class EngagementApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.user = self.make_user()
        self.headers = self.auth_headers(self.user)

    def test_like_toggle(self):
        liked = self.client.post("/api/posts/p1/likes", headers=self.headers).json()
        self.assertEqual(liked, {"postId": "p1", "count": 1, "likedByUser": True})

        listing = self.client.get("/api/posts/p1/likes", headers=self.headers).json()
        self.assertTrue(listing["likedByUser"])
        self.assertEqual(listing["users"], [{"user_id": self.user.id, "username": "alice"}])

        unliked = self.client.post("/api/posts/p1/likes", headers=self.headers).json()
        self.assertEqual(unliked["count"], 0)
        self.assertFalse(unliked["likedByUser"])

    def test_like_requires_user(self):
        self.assertEqual(self.client.post("/api/posts/p1/likes").status_code, 401)

    def test_comments(self):
        empty = self.client.post(
            "/api/posts/p1/comments", json={"text": "   "}, headers=self.headers
        )
        self.assertEqual(empty.status_code, 400)

        created = self.client.post(
            "/api/posts/p1/comments", json={"text": " lovely "}, headers=self.headers
        ).json()
        self.assertTrue(created["ok"])
        self.assertEqual(created["comment"]["text"], "lovely")

        comments = self.client.get("/api/posts/p1/comments").json()["comments"]
        self.assertEqual(len(comments), 1)
        self.assertEqual(comments[0]["username"], "alice")

    def test_purchase_is_idempotent(self):
        for _ in range(2):
            response = self.client.post("/api/posts/p1/purchase", headers=self.headers)
            self.assertEqual(response.json(), {"postId": "p1", "purchased": True})
        status = self.client.get("/api/posts/p1/purchase", headers=self.headers).json()
        self.assertTrue(status["purchased"])
        anonymous = self.client.get("/api/posts/p1/purchase").json()
        self.assertFalse(anonymous["purchased"])

    def test_engagement_falls_back_to_json_store(self):
        with mock.patch.object(self.db, "toggle_like", side_effect=db_down), \
                mock.patch.object(self.db, "list_likes", side_effect=db_down), \
                mock.patch.object(self.db, "add_comment", side_effect=db_down), \
                mock.patch.object(self.db, "list_comments", side_effect=db_down), \
                mock.patch.object(self.db, "record_purchase", side_effect=db_down):
            liked = self.client.post("/api/posts/p1/likes", headers=self.headers).json()
            self.client.post(
                "/api/posts/p1/comments", json={"text": "hi"}, headers=self.headers
            )
            comments = self.client.get("/api/posts/p1/comments").json()["comments"]
            self.client.post("/api/posts/p1/purchase", headers=self.headers)

        self.assertTrue(liked["likedByUser"])
        self.assertEqual(self.store.list_likes("p1")[0]["user_id"], self.user.id)
        self.assertEqual(comments[0]["text"], "hi")
        self.assertTrue(comments[0]["id"].startswith("p1-"))
        self.assertTrue(self.store.has_purchased("p1", self.user.id))

    def test_integrity_errors_are_not_written_to_json_store(self):
        conflict = IntegrityError("INSERT", {}, Exception("duplicate key"))
        with mock.patch.object(self.db, "toggle_like", side_effect=conflict):
            with self.assertRaises(IntegrityError):
                self.client.post("/api/posts/p1/likes", headers=self.headers)
        with mock.patch.object(self.db, "record_purchase", side_effect=conflict):
            with self.assertRaises(IntegrityError):
                self.client.post("/api/posts/p1/purchase", headers=self.headers)
        self.assertEqual(self.store.list_likes("p1"), [])
        self.assertFalse(self.store.has_purchased("p1", self.user.id))


if __name__ == "__main__":
    unittest.main()
