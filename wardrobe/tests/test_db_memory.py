import threading
import unittest

from wardrobe.db import InMemoryUserStore, ItemRecord, parse_timestamp
from wardrobe.errors import ConflictError


class InMemoryUserStoreTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryUserStore()

    def test_find_or_create(self):
        first = self.db.find_or_create("a@x.com")
        second = self.db.find_or_create("a@x.com")
        other = self.db.find_or_create("b@x.com")
        self.assertIs(first, second)
        self.assertNotEqual(first.id, other.id)
        self.assertIs(self.db.find_by_id(first.id), first)
        self.assertIs(self.db.find_by_email("b@x.com"), other)

    def test_create_duplicate_email_conflicts(self):
        self.db.create("a@x.com")
        with self.assertRaises(ConflictError):
            self.db.create("a@x.com")

    def test_mutations_are_visible_without_save(self):
        user = self.db.create("a@x.com")
        user.tops.append(ItemRecord(filename="f.png", id="i1"))
        self.assertEqual(self.db.find_by_id(user.id).tops[0].id, "i1")

    def test_ensure_exists_provisions_once(self):
        user = self.db.ensure_exists("u1")
        self.assertEqual(user.id, "u1")
        self.assertEqual(user.email, "user_u1@example.com")
        self.assertIs(self.db.ensure_exists("u1"), user)

    def test_ensure_exists_rejects_taken_synthesized_email(self):
        self.db.create("user_u1@example.com")
        with self.assertRaises(ConflictError):
            self.db.ensure_exists("u1")

    def test_concurrent_ensure_exists_creates_single_record(self):
        barrier = threading.Barrier(8)
        results = []

        def provision():
            barrier.wait()
            results.append(self.db.ensure_exists("u1"))

        threads = [threading.Thread(target=provision) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(results), 8)
        self.assertEqual(len({id(user) for user in results}), 1)
        self.assertEqual(len(self.db.list_users()), 1)

    def test_user_lock_serializes(self):
        user = self.db.create("a@x.com")
        order = []

        def append(tag):
            with self.db.lock(user.id):
                order.append(f"{tag}-start")
                order.append(f"{tag}-end")

        threads = [threading.Thread(target=append, args=(i,)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        for index in range(0, len(order), 2):
            self.assertEqual(order[index].split("-")[0], order[index + 1].split("-")[0])

    def test_reset(self):
        self.db.create("a@x.com")
        self.db.reset()
        self.assertEqual(self.db.list_users(), [])


class ParseTimestampTests(unittest.TestCase):
    def test_formats_agree(self):
        iso = parse_timestamp("2024-05-01T10:00:00Z")
        self.assertEqual(parse_timestamp(1714557600000), iso)
        self.assertEqual(parse_timestamp("2024-05-01T10:00:00"), iso)
        self.assertEqual(parse_timestamp(iso), iso)

    def test_unparseable(self):
        self.assertIsNone(parse_timestamp(None))
        self.assertIsNone(parse_timestamp(""))
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp(True))

    def test_out_of_range_epoch(self):
        self.assertIsNone(parse_timestamp(1e20))
        self.assertIsNone(parse_timestamp(-1e20))
        self.assertIsNone(parse_timestamp(float("inf")))
        self.assertIsNone(parse_timestamp(float("nan")))


if __name__ == "__main__":
    unittest.main()
