import asyncio
import json
import os
import threading
import unittest
from datetime import date

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from servicelog.schemas.forms import PatientEntryState, ServiceLogFormState
from servicelog.services.drafts import (
    RECOVERY_FAILED_NOTICE,
    AutosaveLoop,
    DraftReconciler,
    InMemoryDraftStore,
    draft_key,
)
from servicelog.services.field_resolver import RESOLUTION_NOTICE, FieldResolver
from servicelog.services.field_types import FieldDefinition, FieldType
from servicelog.services.form_binder import FormBinder

NOTES = FieldDefinition(id="notes", label="Notes", type=FieldType.TEXT, order=1)
MINUTES = FieldDefinition(id="minutes", label="Minutes", type=FieldType.NUMBER, order=2)


def _form(**custom_fields):
    return ServiceLogFormState(
        client_id="main",
        activity_id="act-1",
        service_date=date(2026, 3, 2),
        patient_count=1,
        entries=[PatientEntryState(appointment_type="followup", outcome_id="out-1", custom_fields=custom_fields)],
    )


class FailingStore(InMemoryDraftStore):
    def set(self, key, value, *, ttl_seconds):
        raise ConnectionError("redis down")


class DraftReconcilerTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDraftStore()
        self.key = draft_key("user-1")

    def test_missing_draft_restores_nothing(self):
        result = DraftReconciler(self.store, self.key).restore()
        self.assertIsNone(result.form)
        self.assertEqual(result.notices, [])

    def test_snapshot_uses_camel_case_shape(self):
        reconciler = DraftReconciler(self.store, self.key)
        self.assertTrue(reconciler.save_snapshot(_form(notes="hello")))
        data = json.loads(self.store.get(self.key))
        self.assertEqual(data["clientId"], "main")
        self.assertEqual(data["serviceDate"], "2026-03-02")
        self.assertEqual(data["entries"][0]["customFields"], {"notes": "hello"})
        self.assertEqual(data["entries"][0]["appointmentType"], "followup")

    def test_round_trip_with_current_fields(self):
        resolver = FieldResolver(lambda client_id: [NOTES, MINUTES])
        reconciler = DraftReconciler(self.store, self.key, resolver)
        reconciler.save_snapshot(_form(notes="hello", minutes=5))
        result = reconciler.restore()
        self.assertEqual(result.form.entries[0].custom_fields, {"notes": "hello", "minutes": 5})
        self.assertEqual(result.dropped_field_ids, [])

    def test_truncated_json_never_raises_and_deletes_the_draft(self):
        self.store.set(self.key, '{"clientId": "main", "entries": [', ttl_seconds=60)
        with self.assertLogs("servicelog.drafts", level="WARNING"):
            result = DraftReconciler(self.store, self.key).restore()
        self.assertIsNone(result.form)
        self.assertEqual(result.notices, [RECOVERY_FAILED_NOTICE])
        self.assertIsNone(self.store.get(self.key))

    def test_wrong_shape_is_treated_as_corrupt(self):
        self.store.set(self.key, json.dumps({"patientCount": "many"}), ttl_seconds=60)
        with self.assertLogs("servicelog.drafts", level="WARNING"):
            result = DraftReconciler(self.store, self.key).restore()
        self.assertIsNone(result.form)
        self.assertIsNone(self.store.get(self.key))

    def test_fields_deleted_since_save_are_dropped_and_logged(self):
        DraftReconciler(self.store, self.key).save_snapshot(_form(notes="keep", removed="x"))
        resolver = FieldResolver(lambda client_id: [NOTES, MINUTES])
        with self.assertLogs("servicelog.drafts", level="WARNING") as logs:
            result = DraftReconciler(self.store, self.key, resolver).restore()
        self.assertEqual(result.dropped_field_ids, ["removed"])
        self.assertEqual(result.form.entries[0].custom_fields, {"notes": "keep", "minutes": 0})
        self.assertIn("removed", "\n".join(logs.output))

    def test_restore_with_unavailable_resolver_keeps_values_and_adds_notice(self):
        DraftReconciler(self.store, self.key).save_snapshot(_form(notes="clinical text", minutes=12))

        def broken(client_id):
            raise ConnectionError("down")

        with self.assertLogs("servicelog.field_resolver", level="WARNING"):
            result = DraftReconciler(self.store, self.key, FieldResolver(broken)).restore()
        self.assertEqual(result.form.entries[0].custom_fields, {"notes": "clinical text", "minutes": 12})
        self.assertEqual(result.dropped_field_ids, [])
        self.assertEqual(result.notices, [RESOLUTION_NOTICE])
        self.assertIsNotNone(self.store.get(self.key))

    def test_unparseable_field_definitions_degrade_instead_of_raising(self):
        DraftReconciler(self.store, self.key).save_snapshot(_form(notes="keep"))

        def bad_row(client_id):
            raise ValueError("Unknown field type: 'date'")

        with self.assertLogs("servicelog.field_resolver", level="WARNING"):
            result = DraftReconciler(self.store, self.key, FieldResolver(bad_row)).restore()
        self.assertEqual(result.form.entries[0].custom_fields, {"notes": "keep"})
        self.assertEqual(result.notices, [RESOLUTION_NOTICE])

    def test_write_failure_returns_false(self):
        reconciler = DraftReconciler(FailingStore(), self.key)
        with self.assertLogs("servicelog.drafts", level="WARNING"):
            self.assertFalse(reconciler.save_snapshot(_form()))

    def test_discard_removes_draft(self):
        reconciler = DraftReconciler(self.store, self.key)
        reconciler.save_snapshot(_form())
        reconciler.discard()
        self.assertIsNone(self.store.get(self.key))


class BlockingStore(InMemoryDraftStore):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()
        self.writes = 0

    def set(self, key, value, *, ttl_seconds):
        self.release.wait(timeout=5)
        self.writes += 1
        super().set(key, value, ttl_seconds=ttl_seconds)


class AutosaveLoopTests(unittest.IsolatedAsyncioTestCase):
    def _binder(self):
        binder = FormBinder(lambda client_id: [NOTES], form=_form(notes=""))
        binder.field_set = [NOTES]
        return binder

    async def test_clean_form_is_not_written(self):
        store = InMemoryDraftStore()
        binder = self._binder()
        binder.mark_clean()
        loop = AutosaveLoop(DraftReconciler(store, "k"), binder, interval_seconds=60)
        self.assertFalse(await loop.save_if_dirty())
        self.assertIsNone(store.get("k"))

    async def test_dirty_form_is_written_and_marked_clean(self):
        store = InMemoryDraftStore()
        binder = self._binder()
        binder.set_value(0, "notes", "typed")
        loop = AutosaveLoop(DraftReconciler(store, "k"), binder, interval_seconds=60)
        self.assertTrue(await loop.save_if_dirty())
        self.assertFalse(binder.dirty)
        self.assertEqual(json.loads(store.get("k"))["entries"][0]["customFields"]["notes"], "typed")

    async def test_no_overlapping_writes_while_one_is_in_flight(self):
        store = BlockingStore()
        binder = self._binder()
        binder.set_value(0, "notes", "first")
        loop = AutosaveLoop(DraftReconciler(store, "k"), binder, interval_seconds=60)

        first = asyncio.create_task(loop.save_if_dirty())
        await asyncio.sleep(0.05)
        self.assertTrue(loop.in_flight)
        binder.set_value(0, "notes", "second")
        self.assertFalse(await loop.save_if_dirty())

        store.release.set()
        self.assertTrue(await first)
        self.assertEqual(store.writes, 1)
        # the edit made during the write is still pending
        self.assertTrue(binder.dirty)

    async def test_save_now_writes_even_when_clean(self):
        store = InMemoryDraftStore()
        binder = self._binder()
        binder.mark_clean()
        loop = AutosaveLoop(DraftReconciler(store, "k"), binder, interval_seconds=60)
        self.assertTrue(await loop.save_now())
        self.assertEqual(json.loads(store.get("k"))["clientId"], "main")

    async def test_save_now_skips_while_a_write_is_in_flight(self):
        store = BlockingStore()
        binder = self._binder()
        binder.set_value(0, "notes", "first")
        loop = AutosaveLoop(DraftReconciler(store, "k"), binder, interval_seconds=60)

        first = asyncio.create_task(loop.save_if_dirty())
        await asyncio.sleep(0.05)
        self.assertFalse(await loop.save_now())
        store.release.set()
        self.assertTrue(await first)
        self.assertEqual(store.writes, 1)

    async def test_failed_write_keeps_form_dirty(self):
        binder = self._binder()
        binder.set_value(0, "notes", "typed")
        loop = AutosaveLoop(DraftReconciler(FailingStore(), "k"), binder, interval_seconds=60)
        with self.assertLogs("servicelog.drafts", level="WARNING"):
            self.assertFalse(await loop.save_if_dirty())
        self.assertTrue(binder.dirty)

    async def test_stop_flushes_pending_changes(self):
        store = InMemoryDraftStore()
        binder = self._binder()
        loop = AutosaveLoop(DraftReconciler(store, "k"), binder, interval_seconds=60)
        loop.start()
        self.assertTrue(loop.running)
        binder.set_value(0, "notes", "before close")
        self.assertTrue(await loop.stop())
        self.assertFalse(loop.running)
        self.assertEqual(json.loads(store.get("k"))["entries"][0]["customFields"]["notes"], "before close")

    async def test_timer_saves_dirty_form(self):
        store = InMemoryDraftStore()
        binder = self._binder()
        binder.set_value(0, "notes", "tick")
        loop = AutosaveLoop(DraftReconciler(store, "k"), binder, interval_seconds=0.01)
        loop.start()
        for _ in range(100):
            if store.get("k") is not None:
                break
            await asyncio.sleep(0.01)
        await loop.stop()
        self.assertIsNotNone(store.get("k"))


if __name__ == "__main__":
    unittest.main()
