import unittest
from datetime import timedelta
from unittest.mock import patch

from contest_backend.db import EntryRow, InMemoryEntryStore, SqlEntryStore
from contest_backend.errors import NotFound
from contest_backend.schemas import ReviewStatus, parse_entry
from contest_backend.tests.helpers import words


def make_entry(user_id="user_1", intent_id="pi_1", **fields):
    data = {
        "user_id": user_id,
        "category": "technology",
        "entry_type": "text",
        "title": "Entry title",
        "text_content": words(120),
        "entry_fee": 99,
        "surcharge": 4,
        "total_amount": 103,
        "payment_intent_id": intent_id,
        "payment_status": "succeeded",
    }
    data.update(fields)
    return parse_entry(data)


class EntryStoreContract:
    """Behaviour shared by every EntryStore implementation."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()

    def test_insert_and_find(self):
        record = self.store.insert(make_entry())
        self.assertTrue(record.entry_id)
        self.assertIsNotNone(record.created_at)
        fetched = self.store.find_by_id(record.entry_id)
        self.assertEqual(fetched.entry.title, "Entry title")
        self.assertEqual(fetched.entry.total_amount, 103)
        self.assertEqual(fetched.entry.payment_status, "succeeded")

    def test_find_missing(self):
        with self.assertRaises(NotFound):
            self.store.find_by_id("missing")
        self.assertIsNone(self.store.find_by_payment_intent("pi_missing"))

    def test_find_by_owner_only_returns_owned(self):
        self.store.insert(make_entry(user_id="a", intent_id="pi_a"))
        self.store.insert(make_entry(user_id="b", intent_id="pi_b"))
        owned = self.store.find_by_owner("a")
        self.assertEqual([r.entry.payment_intent_id for r in owned], ["pi_a"])
        self.assertEqual(self.store.find_by_owner("nobody"), [])

    def test_insert_if_absent_keeps_one_record_per_intent(self):
        first, created = self.store.insert_if_absent(make_entry(intent_id="pi_dup"))
        self.assertTrue(created)
        second, created_again = self.store.insert_if_absent(
            make_entry(intent_id="pi_dup", title="Another title")
        )
        self.assertFalse(created_again)
        self.assertEqual(second.entry_id, first.entry_id)
        self.assertEqual(len(self.store.find_by_owner("user_1")), 1)

    def test_delete(self):
        record = self.store.insert(make_entry(intent_id="pi_del"))
        self.store.delete_by_id(record.entry_id)
        with self.assertRaises(NotFound):
            self.store.find_by_id(record.entry_id)
        with self.assertRaises(NotFound):
            self.store.delete_by_id(record.entry_id)

    def test_mark_payment_failed_only_touches_status(self):
        record = self.store.insert(make_entry(intent_id="pi_fail"))
        before = record.entry.model_dump()
        self.assertTrue(self.store.mark_payment_failed("pi_fail"))
        after = self.store.find_by_id(record.entry_id).entry.model_dump()
        self.assertEqual(after.pop("payment_status"), "failed")
        before.pop("payment_status")
        before.pop("submission_date")
        after.pop("submission_date")
        self.assertEqual(after, before)
        self.assertFalse(self.store.mark_payment_failed("pi_unknown"))

    def test_update_review_status(self):
        record = self.store.insert(make_entry(intent_id="pi_review"))
        updated = self.store.update_review_status(record.entry_id, ReviewStatus.FINALIST)
        self.assertEqual(updated.entry.status, "finalist")
        self.assertEqual(self.store.find_by_id(record.entry_id).entry.status, "finalist")

    def test_deck_round_trip(self):
        deck = self.store.insert(
            parse_entry(
                {
                    "user_id": "user_1",
                    "category": "business",
                    "entry_type": "pitch-deck",
                    "title": "Deck entry",
                    "file_data": "JVBERi0=",
                    "file_name": "deck.pdf",
                    "file_type": "application/pdf",
                    "file_size": 5,
                    "file_url": "/api/files/pi_deck",
                    "entry_fee": 49,
                    "surcharge": 2,
                    "total_amount": 51,
                    "payment_intent_id": "pi_deck",
                }
            )
        )
        fetched = self.store.find_by_payment_intent("pi_deck")
        self.assertEqual(fetched.entry_id, deck.entry_id)
        self.assertEqual(fetched.entry.entry_type, "pitch-deck")
        self.assertEqual(fetched.entry.file_name, "deck.pdf")

    def test_ping(self):
        self.assertTrue(self.store.ping())


class InMemoryEntryStoreTests(EntryStoreContract, unittest.TestCase):
    def make_store(self):
        return InMemoryEntryStore()

    def test_find_by_owner_newest_first(self):
        for i in range(3):
            self.store.insert(make_entry(intent_id=f"pi_{i}"))
        owned = self.store.find_by_owner("user_1")
        self.assertEqual(
            [r.entry.payment_intent_id for r in owned], ["pi_2", "pi_1", "pi_0"]
        )

    def test_reset(self):
        self.store.insert(make_entry())
        self.store.reset()
        self.assertEqual(self.store.find_by_owner("user_1"), [])


class SqlEntryStoreTests(EntryStoreContract, unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store.
    """

    def make_store(self):
        return SqlEntryStore("sqlite+pysqlite:///:memory:")

    def test_find_by_owner_newest_first(self):
        records = [self.store.insert(make_entry(intent_id=f"pi_{i}")) for i in range(3)]
        # Spread creation times so ordering does not depend on clock resolution.
        with self.store.Session() as session:
            for offset, record in enumerate(records):
                row = session.get(EntryRow, record.entry_id)
                row.created_at = row.created_at + timedelta(seconds=offset)
            session.commit()
        owned = self.store.find_by_owner("user_1")
        self.assertEqual(
            [r.entry.payment_intent_id for r in owned], ["pi_2", "pi_1", "pi_0"]
        )

    def test_insert_if_absent_concurrent_insert_loses_to_unique_index(self):
        winner = self.store.insert(make_entry(intent_id="pi_race"))
        real_lookup = self.store.find_by_payment_intent
        lookups = []

        def stale_first_lookup(intent_id):
            # The competing request checked before the winner committed.
            lookups.append(intent_id)
            return None if len(lookups) == 1 else real_lookup(intent_id)

        with patch.object(self.store, "find_by_payment_intent", side_effect=stale_first_lookup):
            record, created = self.store.insert_if_absent(
                make_entry(user_id="user_2", intent_id="pi_race")
            )
        self.assertFalse(created)
        self.assertEqual(record.entry_id, winner.entry_id)
        self.assertEqual(record.entry.user_id, "user_1")
        self.assertEqual(self.store.find_by_owner("user_2"), [])


if __name__ == "__main__":
    unittest.main()
