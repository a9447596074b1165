import unittest
from datetime import datetime, timezone

from wardrobe.db import ItemRecord, OutfitRecord, PostgresUserStore
from wardrobe.errors import ConflictError, NotFoundError


class PostgresUserStoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres store logic.
    """

    def setUp(self):
        self.db = PostgresUserStore("sqlite+pysqlite:///:memory:")

    def tearDown(self):
        self.db.engine.dispose()

    def test_create_and_find(self):
        user = self.db.create("a@x.com")
        self.assertTrue(user.id)
        self.assertEqual(self.db.find_by_id(user.id).email, "a@x.com")
        self.assertEqual(self.db.find_by_email("a@x.com").id, user.id)
        self.assertIsNone(self.db.find_by_id("missing"))
        self.assertIsNone(self.db.find_by_email("missing@x.com"))

    def test_create_duplicate_email_conflicts(self):
        self.db.create("a@x.com")
        with self.assertRaises(ConflictError):
            self.db.create("a@x.com")

    def test_find_or_create(self):
        first = self.db.find_or_create("a@x.com")
        second = self.db.find_or_create("a@x.com")
        other = self.db.find_or_create("b@x.com")
        self.assertEqual(first.id, second.id)
        self.assertNotEqual(first.id, other.id)
        self.assertEqual(len(self.db.list_users()), 2)

    def test_save_roundtrip(self):
        user = self.db.create("a@x.com")
        added_at = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        user.tops.append(
            ItemRecord(filename="gap_tops_1.png", brand="gap", price="10", added_at=added_at, id="i1")
        )
        user.crushes.append(
            OutfitRecord(tops=[{"filename": "gap_tops_1.png"}], date=added_at, id="c1")
        )
        self.db.save(user)

        loaded = self.db.find_by_id(user.id)
        self.assertEqual(loaded.tops, user.tops)
        self.assertEqual(loaded.crushes[0].tops, [{"filename": "gap_tops_1.png"}])
        self.assertEqual(loaded.crushes[0].date, added_at)
        self.assertEqual(loaded.bottoms, [])

    def test_save_unknown_user(self):
        user = self.db.create("a@x.com")
        user.id = "missing"
        with self.assertRaises(NotFoundError):
            self.db.save(user)

    def test_ensure_exists_never_provisions(self):
        with self.assertRaises(NotFoundError):
            self.db.ensure_exists("u1")
        user = self.db.create("a@x.com")
        self.assertEqual(self.db.ensure_exists(user.id).email, "a@x.com")

    def test_ping(self):
        self.db.ping()


if __name__ == "__main__":
    unittest.main()
