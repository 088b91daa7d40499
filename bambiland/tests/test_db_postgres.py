import unittest

from bambiland.db import ConflictError, MediaPostRecord, PostgresDbClient, StoryRecord, TierRecord


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    @classmethod
    def setUpClass(cls):
        cls.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def test_create_user_rejects_duplicates(self):
        user = self.db.create_user("dana", "dana@example.com", "hash")
        self.assertEqual(self.db.find_user_by_login("dana@example.com").id, user.id)
        with self.assertRaises(ConflictError):
            self.db.create_user("dana", "other@example.com", "hash")
        with self.assertRaises(ConflictError):
            self.db.create_user("dana2", "dana@example.com", "hash")

    def test_delete_users_by_username(self):
        self.db.create_user("seed-a", None, "hash")
        self.db.create_user("seed-b", None, "hash")
        removed = self.db.delete_users_by_username(["seed-a", "seed-b", "missing"])
        self.assertEqual(removed, 2)
        self.assertIsNone(self.db.get_user_by_username("seed-a"))

    def test_subscription_replaces_previous_tier(self):
        self.db.save_tier(TierRecord(id="t-silver", slug="t-silver", name="Silver", rank=1))
        self.db.save_tier(TierRecord(id="t-gold", slug="t-gold", name="Gold", rank=2))
        self.db.set_active_subscription("sub-user", "t-silver")
        self.db.set_active_subscription("sub-user", "t-gold")

        self.assertEqual(self.db.get_active_tier("sub-user").name, "Gold")
        counts = self.db.count_active_subscriptions()
        self.assertEqual(counts.get("t-gold"), 1)
        self.assertNotIn("t-silver", counts)

    def test_toggle_like_and_comments(self):
        self.assertTrue(self.db.toggle_like("post-like", "u1", "one"))
        self.assertTrue(self.db.toggle_like("post-like", "u2", "two"))
        self.assertFalse(self.db.toggle_like("post-like", "u1", "one"))
        self.assertEqual([like["username"] for like in self.db.list_likes("post-like")], ["two"])

        self.db.add_comment("post-like", "u1", "one", "first")
        self.db.add_comment("post-like", "u2", "two", "second")
        comments = self.db.list_comments("post-like")
        self.assertEqual(len(comments), 2)
        self.assertGreaterEqual(comments[0].created_at, comments[1].created_at)

    def test_purchases_are_recorded_once(self):
        self.db.record_purchase("post-buy", "buyer")
        self.db.record_purchase("post-buy", "buyer")
        self.assertTrue(self.db.has_purchased("post-buy", "buyer"))
        self.assertEqual(self.db.list_purchased_post_ids("buyer"), {"post-buy"})

    def test_media_post_assets_and_gallery(self):
        post = self.db.create_media_post(
            MediaPostRecord(id="", user_id="creator", is_published=False),
            [{"url": "/a.jpg"}, {"url": "/b.mp4", "type": "video"}],
        )
        self.assertNotIn(
            post.id, [p.id for p in self.db.list_media_posts(published_only=True)]
        )
        assets = self.db.list_assets([post.id])[post.id]
        self.assertEqual([a.media_type for a in assets], ["image", "video"])

        self.assertEqual(self.db.add_gallery_items("collector", assets), 2)
        self.assertEqual(self.db.add_gallery_items("collector", assets), 0)
        self.assertEqual(len(self.db.list_gallery("collector")), 2)

    def test_story_delete_removes_chapters_and_assignments(self):
        story = self.db.create_story(StoryRecord(id="", title="Book", user_id="author"))
        self.db.create_chapters(story.id, "author", [(2, "Two", "b"), (1, "One", "a")])
        self.db.create_assignment("reader", story.id)
        with self.assertRaises(ConflictError):
            self.db.create_assignment("reader", story.id)

        loaded = self.db.get_story(story.id, user_id="author")
        self.assertEqual([c.chapter_number for c in loaded.chapters], [1, 2])
        self.assertIsNone(self.db.get_story(story.id, user_id="someone-else"))

        self.assertTrue(self.db.delete_story(story.id, user_id="author"))
        self.assertEqual(self.db.list_chapters(story.id), [])
        self.assertIsNone(self.db.find_assignment("reader", story.id))


if __name__ == "__main__":
    unittest.main()
