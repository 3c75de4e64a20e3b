import os
import unittest
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from sqlalchemy.exc import OperationalError

from servicelog.services.errors import ResolutionFailure
from servicelog.services.field_resolver import RESOLUTION_NOTICE, FieldResolver, select_applicable
from servicelog.services.field_types import FieldDefinition, FieldType

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _field(id, order, client_id=None, active=True, created=0):
    return FieldDefinition(
        id=id,
        label=f"Field {id}",
        type=FieldType.TEXT,
        order=order,
        active=active,
        client_id=client_id,
        created_at=T0 + timedelta(minutes=created),
    )


class FieldResolverTests(unittest.TestCase):
    def setUp(self):
        self.fields = [
            _field("notes", 1),
            _field("priority", 2, client_id="main"),
            _field("clinic-only", 1, client_id="clinic"),
            _field("retired", 0, active=False),
        ]

    def test_global_and_client_fields_in_order(self):
        resolver = FieldResolver(lambda client_id: list(self.fields))
        self.assertEqual([f.key for f in resolver.resolve("main")], ["notes", "priority"])
        self.assertEqual([f.key for f in resolver.resolve("clinic")], ["notes", "clinic-only"])

    def test_no_client_gives_global_only(self):
        resolver = FieldResolver(lambda client_id: list(self.fields))
        self.assertEqual([f.key for f in resolver.resolve(None)], ["notes"])

    def test_unknown_client_gives_global_only(self):
        resolver = FieldResolver(lambda client_id: list(self.fields))
        self.assertEqual([f.key for f in resolver.resolve("missing")], ["notes"])

    def test_order_ties_break_by_creation_then_source_order(self):
        fields = [
            _field("b", 1, created=5),
            _field("a", 1, created=1),
            _field("c", 1, created=5),
        ]
        self.assertEqual([f.key for f in select_applicable(fields)], ["a", "b", "c"])

    def test_duplicates_are_removed(self):
        fields = [_field("x", 1), _field("x", 1)]
        self.assertEqual(len(select_applicable(fields)), 1)

    def test_resolve_is_deterministic(self):
        resolver = FieldResolver(lambda client_id: list(reversed(self.fields)))
        self.assertEqual(
            [f.key for f in resolver.resolve("main")],
            [f.key for f in resolver.resolve("main")],
        )

    def test_storage_error_raises_resolution_failure(self):
        def broken(client_id):
            raise OperationalError("SELECT 1", {}, Exception("down"))

        with self.assertRaises(ResolutionFailure):
            FieldResolver(broken).resolve("main")

    def test_resolve_or_degrade_returns_empty_with_notice(self):
        def broken(client_id):
            raise ConnectionError("refused")

        with self.assertLogs("servicelog.field_resolver", level="WARNING"):
            resolution = FieldResolver(broken).resolve_or_degrade("main")
        self.assertEqual(resolution.fields, [])
        self.assertTrue(resolution.degraded)
        self.assertEqual(resolution.notice, RESOLUTION_NOTICE)

    def test_unparseable_stored_field_degrades(self):
        def bad_row(client_id):
            raise ValueError("Unknown field type: 'date'")

        with self.assertLogs("servicelog.field_resolver", level="WARNING") as logs:
            resolution = FieldResolver(bad_row).resolve_or_degrade("main")
        self.assertTrue(resolution.degraded)
        self.assertEqual(resolution.fields, [])
        self.assertIn("Unknown field type", "\n".join(logs.output))


if __name__ == "__main__":
    unittest.main()
