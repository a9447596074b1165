import threading
import unittest

from wardrobe.locks import KeyedLock


class KeyedLockTests(unittest.TestCase):
    def setUp(self):
        self.locks = KeyedLock()

    def test_registry_shrinks_after_release(self):
        with self.locks.hold("u1"):
            self.assertEqual(len(self.locks), 1)
        self.assertEqual(len(self.locks), 0)

        for index in range(100):
            with self.locks.hold(f"nobody{index}"):
                pass
        self.assertEqual(len(self.locks), 0)

    def test_entry_released_when_body_raises(self):
        with self.assertRaises(RuntimeError):
            with self.locks.hold("u1"):
                raise RuntimeError("boom")
        self.assertEqual(len(self.locks), 0)

    def test_waiters_share_one_lock(self):
        inside = threading.Event()
        release = threading.Event()
        order = []

        def first():
            with self.locks.hold("u1"):
                order.append("first")
                inside.set()
                release.wait(timeout=5)

        def second():
            with self.locks.hold("u1"):
                order.append("second")

        holder = threading.Thread(target=first)
        holder.start()
        inside.wait(timeout=5)
        waiter = threading.Thread(target=second)
        waiter.start()
        waiter.join(timeout=0.2)
        self.assertEqual(order, ["first"])
        self.assertEqual(len(self.locks), 1)

        release.set()
        holder.join()
        waiter.join()
        self.assertEqual(order, ["first", "second"])
        self.assertEqual(len(self.locks), 0)

    def test_distinct_keys_do_not_block(self):
        with self.locks.hold("u1"):
            done = threading.Event()

            def other():
                with self.locks.hold("u2"):
                    done.set()

            thread = threading.Thread(target=other)
            thread.start()
            self.assertTrue(done.wait(timeout=5))
            thread.join()


if __name__ == "__main__":
    unittest.main()
