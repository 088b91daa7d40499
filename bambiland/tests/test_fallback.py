import os
import tempfile
import unittest

from bambiland.fallback import DEV_LIKES_FILE, DevFallbackStore


class DevFallbackStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.store = DevFallbackStore(os.path.join(self._tmp.name, "dev"))

    def test_samples_until_posts_exist(self):
        self.assertEqual([p["id"] for p in self.store.posts_or_samples()], ["sample-1", "sample-2"])
        post = self.store.add_post(
            "admin",
            title="Offline",
            body="",
            required_tier_id="",
            price_cents=0,
            is_published=True,
            is_special_card=False,
            media=[{"url": "/v.mp4", "type": "video"}, {"url": "/i.jpg"}],
        )
        self.assertTrue(post["id"].startswith("mock-"))
        self.assertIsNone(post["body"])
        self.assertEqual([a["media_type"] for a in post["assets"]], ["video", "image"])
        self.assertEqual(post["assets"][1]["id"], f"mock-asset-{post['id']}-1")
        self.assertEqual(self.store.posts_or_samples()[0]["id"], post["id"])

    def test_malformed_file_reads_as_empty(self):
        os.makedirs(self.store.data_dir)
        with open(os.path.join(self.store.data_dir, DEV_LIKES_FILE), "w") as f:
            f.write("[not json")
        self.assertEqual(self.store.list_likes("p"), [])

    def test_toggle_like(self):
        self.assertTrue(self.store.toggle_like("p", "u1", "one"))
        self.assertFalse(self.store.toggle_like("p", "u1", "one"))
        self.assertEqual(self.store.list_likes("p"), [])

    def test_comments_and_purchases(self):
        comment = self.store.add_comment("p", "u1", "one", "hi")
        self.assertTrue(comment["id"].startswith("p-"))
        self.assertEqual(self.store.list_comments("p")[0]["text"], "hi")

        self.store.record_purchase("p", "u1")
        self.store.record_purchase("p", "u1")
        self.assertTrue(self.store.has_purchased("p", "u1"))
        self.assertEqual(self.store.purchased_post_ids("u1"), {"p"})

    def test_gallery_dedupes_and_matches_username(self):
        self.assertEqual(self.store.add_gallery_items("u1", "Alice", "sample-1"), 1)
        self.assertEqual(self.store.add_gallery_items("u1", "Alice", "sample-1"), 0)
        self.assertEqual(self.store.add_gallery_items("u1", "Alice", "unknown"), 0)
        self.assertEqual(len(self.store.list_gallery("u1")), 1)
        self.assertEqual(self.store.list_gallery("other", "alice")[0]["asset_id"], "asset-1")
        self.assertEqual(self.store.list_gallery("other"), [])


if __name__ == "__main__":
    unittest.main()
