import os
import unittest
from datetime import date, timedelta
from uuid import UUID, uuid4

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure settings can be initialized in test environments
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from servicelog.core.config import settings
from servicelog.core.security import create_jwt
from servicelog.db.session import get_db
from servicelog.main import app
from servicelog.models.activity import Activity
from servicelog.models.client import Client
from servicelog.models.custom_field import CustomField
from servicelog.models.custom_field_value import CustomFieldValue
from servicelog.models.field_choice import FieldChoice
from servicelog.models.outcome import Outcome
from servicelog.models.patient_entry import PatientEntry
from servicelog.models.service_log import ServiceLog
from servicelog.services.drafts import InMemoryDraftStore, reset_draft_store_for_tests

MODELS = [
    Client,
    Activity,
    Outcome,
    ServiceLog,
    PatientEntry,
    CustomField,
    FieldChoice,
    CustomFieldValue,
]


class PortalApiBase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        for model in MODELS:
            model.__table__.create(bind=cls.engine)

    @classmethod
    def tearDownClass(cls):
        for model in reversed(MODELS):
            model.__table__.drop(bind=cls.engine)
        cls.engine.dispose()

    def setUp(self):
        with self.SessionLocal() as db:
            for model in reversed(MODELS):
                db.execute(delete(model))
            db.commit()

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        self.draft_store = InMemoryDraftStore()
        reset_draft_store_for_tests(self.draft_store)
        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        reset_draft_store_for_tests(None)

    @staticmethod
    def _auth_headers(role: str, email: str | None = None, sub: str | None = None) -> dict[str, str]:
        token = create_jwt(
            {"sub": str(sub or uuid4()), "email": email or f"{role.lower()}@example.com", "role": role},
            settings.JWT_SECRET,
            timedelta(minutes=30),
        )
        return {"Authorization": f"Bearer {token}"}

    def _seed_scenario(self) -> dict[str, str]:
        """Main Hospital with a required Priority dropdown, Community Clinic without, and a global Notes field."""
        with self.SessionLocal() as db:
            main = Client(name="Main Hospital", is_active=True, sort_order=10)
            clinic = Client(name="Community Clinic", is_active=True, sort_order=20)
            activity = Activity(name="General Consultation", is_active=True, sort_order=10)
            outcome = Outcome(name="Condition Stable", is_active=True, sort_order=10)
            db.add_all([main, clinic, activity, outcome])
            db.flush()

            notes = CustomField(label="Notes", field_type="text", sort_order=1, required=False, is_active=True)
            priority = CustomField(
                label="Priority",
                field_type="dropdown",
                sort_order=2,
                required=True,
                is_active=True,
                client_id=main.id,
            )
            db.add_all([notes, priority])
            db.flush()
            high = FieldChoice(field_id=priority.id, choice_text="High", choice_order=1)
            medium = FieldChoice(field_id=priority.id, choice_text="Medium", choice_order=2)
            low = FieldChoice(field_id=priority.id, choice_text="Low", choice_order=3)
            db.add_all([high, medium, low])
            db.commit()
            return {
                "main": str(main.id),
                "clinic": str(clinic.id),
                "activity": str(activity.id),
                "outcome": str(outcome.id),
                "notes": str(notes.id),
                "priority": str(priority.id),
                "high": str(high.id),
                "medium": str(medium.id),
                "low": str(low.id),
            }
