import unittest
from dataclasses import asdict, replace
from datetime import date

from backend.errors import (
    InvalidItineraryError,
    ItineraryNotFoundError,
    PermissionDeniedError,
    UnauthenticatedError,
)
from backend.itineraries import (
    ItineraryBinding,
    itinerary_from_document,
    itinerary_input_from_payload,
    itinerary_patch_to_document,
)
from backend.session import Session
from backend.store import InMemoryRecordStore
from shared.types import ItineraryInput, TripType

ALICE = Session(uid="alice", email="alice@example.com")
BOB = Session(uid="bob")


def paris_trip(**overrides) -> ItineraryInput:
    data = ItineraryInput(
        title="Paris Trip",
        destination="Paris, France",
        type=TripType.LEISURE,
        duration="4 days",
        activities=["Louvre", "Seine Cruise"],
    )
    return replace(data, **overrides)


class _ManualStore:
    """Store double that lets tests fire snapshot callbacks by hand."""

    def __init__(self):
        self.watches = []

    def watch(self, owner_id, callback):
        handle = _ManualHandle()
        self.watches.append((owner_id, callback, handle))
        return handle


class _ManualHandle:
    def __init__(self):
        self.unsubscribed = False

    def unsubscribe(self):
        self.unsubscribed = True


class ItineraryBindingTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryRecordStore()

    def test_no_identity_is_empty_and_not_loading(self):
        binding = ItineraryBinding(self.store)

        self.assertEqual(binding.items, [])
        self.assertFalse(binding.is_loading)

    def test_loading_until_first_snapshot(self):
        store = _ManualStore()
        binding = ItineraryBinding(store, ALICE)

        self.assertTrue(binding.is_loading)
        self.assertEqual(len(store.watches), 1)
        owner_id, callback, _ = store.watches[0]
        self.assertEqual(owner_id, "alice")

        callback([])

        self.assertFalse(binding.is_loading)
        self.assertEqual(binding.items, [])

    def test_create_delivers_record_through_subscription(self):
        binding = ItineraryBinding(self.store, ALICE)

        result = binding.create(paris_trip())

        self.assertIsNone(result)
        self.assertEqual(len(binding.items), 1)
        item = binding.items[0]
        self.assertEqual(item.title, "Paris Trip")
        self.assertEqual(item.destination, "Paris, France")
        self.assertEqual(item.type, TripType.LEISURE)
        self.assertEqual(item.duration, "4 days")
        self.assertEqual(item.activities, ["Louvre", "Seine Cruise"])
        self.assertEqual(item.user_id, "alice")
        self.assertEqual(item.created_at, item.updated_at)
        self.assertIsNone(item.is_favorite)
        self.assertIsNone(item.start_date)
        self.assertIn(item.id, self.store.documents)

    def test_items_are_newest_first(self):
        binding = ItineraryBinding(self.store, ALICE)
        binding.create(paris_trip(title="First"))
        binding.create(paris_trip(title="Second"))

        self.assertEqual([i.title for i in binding.items], ["Second", "First"])

    def test_create_requires_identity(self):
        binding = ItineraryBinding(self.store)

        with self.assertRaises(UnauthenticatedError):
            binding.create(paris_trip())
        self.assertEqual(self.store.documents, {})

    def test_create_rejects_blank_required_field(self):
        binding = ItineraryBinding(self.store, ALICE)

        with self.assertRaises(InvalidItineraryError):
            binding.create(paris_trip(title="   "))

    def test_dates_round_trip_as_calendar_dates(self):
        binding = ItineraryBinding(self.store, ALICE)

        binding.create(
            paris_trip(start_date=date(2025, 6, 1), end_date=date(2025, 6, 5))
        )

        item = binding.items[0]
        self.assertEqual(item.start_date, date(2025, 6, 1))
        self.assertEqual(item.end_date, date(2025, 6, 5))

    def test_update_patches_only_given_fields(self):
        binding = ItineraryBinding(self.store, ALICE)
        binding.create(paris_trip(start_date=date(2025, 6, 1)))
        before = binding.items[0]

        binding.update(before.id, {"is_favorite": True})

        after = binding.items[0]
        self.assertTrue(after.is_favorite)
        self.assertGreater(after.updated_at, before.updated_at)
        self.assertEqual(after.created_at, before.created_at)
        # Omitted dates are not forced to null.
        self.assertEqual(after.start_date, date(2025, 6, 1))

    def test_update_explicit_none_clears_date(self):
        binding = ItineraryBinding(self.store, ALICE)
        binding.create(paris_trip(start_date=date(2025, 6, 1)))

        binding.update(binding.items[0].id, {"start_date": None})

        self.assertIsNone(binding.items[0].start_date)

    def test_update_rejects_managed_fields(self):
        binding = ItineraryBinding(self.store, ALICE)
        binding.create(paris_trip())
        item_id = binding.items[0].id

        for field_name in ("user_id", "created_at", "id"):
            with self.subTest(field=field_name):
                with self.assertRaises(InvalidItineraryError):
                    binding.update(item_id, {field_name: "x"})
        self.assertEqual(binding.items[0].user_id, "alice")

    def test_update_missing_and_foreign_records(self):
        alice = ItineraryBinding(self.store, ALICE)
        alice.create(paris_trip())
        bob = ItineraryBinding(self.store, BOB)

        with self.assertRaises(ItineraryNotFoundError):
            bob.update("missing", {"title": "x"})
        with self.assertRaises(PermissionDeniedError):
            bob.update(alice.items[0].id, {"title": "x"})
        with self.assertRaises(PermissionDeniedError):
            bob.delete(alice.items[0].id)

    def test_delete_removes_record_for_good(self):
        binding = ItineraryBinding(self.store, ALICE)
        binding.create(paris_trip())
        item_id = binding.items[0].id

        binding.delete(item_id)
        self.assertEqual(binding.items, [])

        binding.create(paris_trip(title="Another"))
        self.assertNotIn(item_id, [i.id for i in binding.items])
        with self.assertRaises(ItineraryNotFoundError):
            binding.delete(item_id)

    def test_toggle_favorite_twice_restores_flag(self):
        binding = ItineraryBinding(self.store, ALICE)
        binding.create(paris_trip())
        original = binding.items[0]

        binding.toggle_favorite(original.id, False)
        self.assertTrue(binding.items[0].is_favorite)
        binding.toggle_favorite(original.id, True)

        restored = binding.items[0]
        self.assertFalse(restored.is_favorite)
        expected = asdict(original)
        actual = asdict(restored)
        for key in ("is_favorite", "updated_at"):
            expected.pop(key)
            actual.pop(key)
        self.assertEqual(actual, expected)

    def test_updated_at_is_non_decreasing(self):
        binding = ItineraryBinding(self.store, ALICE)
        binding.create(paris_trip())
        item_id = binding.items[0].id
        stamps = [binding.items[0].updated_at]

        for title in ("a", "b", "c"):
            binding.update(item_id, {"title": title})
            stamps.append(binding.items[0].updated_at)

        self.assertEqual(stamps, sorted(stamps))
        self.assertLessEqual(binding.items[0].created_at, stamps[-1])

    def test_identity_switch_never_shows_previous_users_records(self):
        ItineraryBinding(self.store, BOB).create(paris_trip(title="Bob's trip"))
        binding = ItineraryBinding(self.store, ALICE)
        binding.create(paris_trip(title="Alice's trip"))
        observed = []
        binding.add_listener(
            lambda b: observed.append(
                (b.session.uid if b.session else None, [i.user_id for i in b.items])
            )
        )

        binding.set_session(BOB)
        binding.set_session(None)

        # Cleared state first, then Bob's snapshot, then the signed-out state.
        self.assertEqual(
            observed, [("bob", []), ("bob", ["bob"]), (None, [])]
        )
        for uid, owners in observed:
            self.assertTrue(all(owner == uid for owner in owners))
        self.assertFalse(binding.is_loading)

    def test_stale_snapshot_after_switch_is_ignored(self):
        store = _ManualStore()
        binding = ItineraryBinding(store, ALICE)
        _, alice_callback, alice_handle = store.watches[0]

        binding.set_session(BOB)
        _, bob_callback, _ = store.watches[1]
        alice_callback(
            [
                (
                    "a1",
                    {
                        "userId": "alice",
                        "title": "Late",
                        "destination": "x",
                        "type": "work",
                        "duration": "1 day",
                        "activities": [],
                    },
                )
            ]
        )

        self.assertTrue(alice_handle.unsubscribed)
        self.assertEqual(binding.items, [])
        self.assertTrue(binding.is_loading)
        bob_callback([])
        self.assertFalse(binding.is_loading)

    def test_close_releases_subscription(self):
        store = _ManualStore()
        binding = ItineraryBinding(store, ALICE)
        _, callback, handle = store.watches[0]

        binding.close()
        callback([])

        self.assertTrue(handle.unsubscribed)
        self.assertTrue(binding.is_loading)

    def test_malformed_stored_document_does_not_fail_writes(self):
        self.store.documents["broken"] = {
            "userId": "alice",
            "title": "Broken",
            "destination": "x",
            "type": "cruise",
            "duration": "1 day",
            "activities": [],
        }
        binding = ItineraryBinding(self.store, ALICE)
        self.assertFalse(binding.is_loading)
        self.assertEqual(binding.items, [])

        binding.create(paris_trip())

        self.assertEqual([i.title for i in binding.items], ["Paris Trip"])
        self.assertEqual(len(self.store.documents), 2)

    def test_listener_can_be_removed(self):
        binding = ItineraryBinding(self.store, ALICE)
        calls = []
        remove = binding.add_listener(calls.append)

        binding.create(paris_trip())
        remove()
        binding.create(paris_trip())

        self.assertEqual(len(calls), 1)


class DocumentConversionTests(unittest.TestCase):
    def test_from_document_handles_missing_optional_fields(self):
        item = itinerary_from_document(
            "doc-1",
            {
                "title": "Trip",
                "destination": "Rome",
                "type": "adventure",
                "duration": "2 days",
                "activities": ["a"],
                "userId": "alice",
                "createdAt": 1700000000.0,
                "updatedAt": 1700000000.0,
                "startDate": None,
            },
        )

        self.assertEqual(item.id, "doc-1")
        self.assertEqual(item.type, TripType.ADVENTURE)
        self.assertIsNone(item.start_date)
        self.assertIsNone(item.end_date)
        self.assertIsNone(item.is_favorite)
        self.assertEqual(item.created_at.year, 2023)

    def test_patch_accepts_iso_date_strings(self):
        patch = itinerary_patch_to_document({"end_date": "2025-01-02"})

        self.assertEqual(patch["endDate"].date(), date(2025, 1, 2))
        self.assertIn("updatedAt", patch)

    def test_patch_rejects_unknown_trip_type(self):
        with self.assertRaises(InvalidItineraryError):
            itinerary_patch_to_document({"type": "cruise"})

    def test_favorite_flag_must_be_boolean(self):
        with self.assertRaises(InvalidItineraryError):
            itinerary_patch_to_document({"is_favorite": "yes"})
        with self.assertRaises(InvalidItineraryError):
            itinerary_input_from_payload(
                {
                    "title": "Trip",
                    "destination": "Rome",
                    "type": "work",
                    "duration": "1 day",
                    "isFavorite": "nope",
                }
            )
        self.assertIsNone(
            itinerary_patch_to_document({"is_favorite": None})["isFavorite"]
        )


if __name__ == "__main__":
    unittest.main()
