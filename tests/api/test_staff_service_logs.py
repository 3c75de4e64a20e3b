from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from tests.api.base import *  # noqa: F401,F403


class StaffServiceLogTests(PortalApiBase):
    def setUp(self):
        super().setUp()
        self.ids = self._seed_scenario()
        self.user_id = str(uuid4())
        self.headers = self._auth_headers("STAFF", email="nurse@example.com", sub=self.user_id)

    def _form(self, client_key="main", **custom_fields):
        return {
            "clientId": self.ids[client_key],
            "activityId": self.ids["activity"],
            "serviceDate": "2026-03-02",
            "patientCount": 1,
            "entries": [
                {
                    "appointmentType": "new",
                    "outcomeId": self.ids["outcome"],
                    "customFields": custom_fields,
                }
            ],
        }

    def _submit(self, form):
        return self.client.post("/api/staff/service-logs", headers=self.headers, json=form)

    def test_requires_staff_role(self):
        response = self.client.get("/api/staff/form-config", headers=self._auth_headers("VIEWER"))
        self.assertEqual(response.status_code, 403)

    def test_form_config_lists_taxonomy_and_global_fields(self):
        response = self.client.get("/api/staff/form-config", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([row["name"] for row in body["clients"]], ["Main Hospital", "Community Clinic"])
        self.assertEqual(body["appointment_types"], ["new", "followup", "dna"])
        self.assertEqual([row["label"] for row in body["fields"]], ["Notes"])
        self.assertIsNone(body["notice"])

    def test_client_form_config_resolves_client_fields(self):
        response = self.client.get(f"/api/staff/form-config/{self.ids['main']}", headers=self.headers)
        fields = response.json()["fields"]
        self.assertEqual([row["label"] for row in fields], ["Notes", "Priority"])
        self.assertEqual([opt["text"] for opt in fields[1]["options"]], ["High", "Medium", "Low"])
        self.assertEqual(fields[1]["value"], "")

        response = self.client.get(f"/api/staff/form-config/{self.ids['clinic']}", headers=self.headers)
        self.assertEqual([row["label"] for row in response.json()["fields"]], ["Notes"])

    def test_form_config_degrades_when_listing_fails(self):
        with patch(
            "servicelog.services.field_store.FieldDefinitionStore.list_active",
            side_effect=OperationalError("SELECT", {}, Exception("db down")),
        ):
            response = self.client.get(f"/api/staff/form-config/{self.ids['main']}", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["fields"], [])
        self.assertTrue(response.json()["notice"])

    def test_bind_drops_values_of_other_client(self):
        response = self.client.post(
            "/api/staff/forms/bind",
            headers=self.headers,
            json={
                "clientId": self.ids["clinic"],
                "entry": {"customFields": {self.ids["priority"]: self.ids["medium"], self.ids["notes"]: "keep"}},
            },
        )
        body = response.json()
        self.assertEqual(body["values"], {self.ids["notes"]: "keep"})
        self.assertEqual(body["discarded_field_ids"], [self.ids["priority"]])

    def test_validate_reports_missing_priority_only(self):
        response = self.client.post(
            "/api/staff/forms/validate",
            headers=self.headers,
            json=self._form(**{self.ids["priority"]: "", self.ids["notes"]: ""}),
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["valid"])
        self.assertEqual(body["error_count"], 1)
        self.assertEqual(body["entry_errors"]["0"][self.ids["priority"]]["code"], "required")

    def test_submit_stores_log_entries_and_values(self):
        response = self._submit(self._form(**{self.ids["priority"]: self.ids["medium"], self.ids["notes"]: "calm"}))
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(len(body["entry_ids"]), 1)
        self.assertEqual(body["value_count"], 2)

        with self.SessionLocal() as db:
            log = db.get(ServiceLog, UUID(body["id"]))
            self.assertEqual(log.user_id, self.user_id)
            values = {str(row.field_id): row for row in db.query(CustomFieldValue).all()}
            self.assertEqual(str(values[self.ids["priority"]].choice_id), self.ids["medium"])
            self.assertEqual(values[self.ids["priority"]].value_type, "dropdown")
            self.assertIsNone(values[self.ids["priority"]].text_value)
            self.assertEqual(values[self.ids["notes"]].text_value, "calm")

        response = self.client.get(f"/api/staff/patient-entries/{body['entry_ids'][0]}/values", headers=self.headers)
        self.assertEqual(
            response.json()["customFields"],
            {self.ids["priority"]: self.ids["medium"], self.ids["notes"]: "calm"},
        )

    def test_submit_with_missing_required_field_stores_nothing(self):
        response = self._submit(self._form(**{self.ids["notes"]: "x"}))
        self.assertEqual(response.status_code, 422)
        detail = response.json()["detail"]
        self.assertEqual(detail["error_count"], 1)
        self.assertIn(self.ids["priority"], detail["entry_errors"]["0"])
        with self.SessionLocal() as db:
            self.assertEqual(db.query(ServiceLog).count(), 0)
            self.assertEqual(db.query(CustomFieldValue).count(), 0)

    def test_submit_rejects_unknown_activity_and_outcome(self):
        form = self._form(**{self.ids["priority"]: self.ids["high"]})
        form["activityId"] = str(uuid4())
        form["entries"][0]["outcomeId"] = str(uuid4())
        response = self._submit(form)
        self.assertEqual(response.status_code, 422)
        detail = response.json()["detail"]
        self.assertIn("activityId", detail["form_errors"])
        self.assertIn("outcomeId", detail["entry_errors"]["0"])

    def test_storage_failure_rolls_back_whole_submission(self):
        with patch(
            "servicelog.services.service_logs._new_value_rows",
            side_effect=OperationalError("INSERT", {}, Exception("disk full")),
        ):
            response = self._submit(self._form(**{self.ids["priority"]: self.ids["high"]}))
        self.assertEqual(response.status_code, 503)
        with self.SessionLocal() as db:
            self.assertEqual(db.query(ServiceLog).count(), 0)
            self.assertEqual(db.query(PatientEntry).count(), 0)

    def test_submit_discards_the_draft(self):
        form = self._form(**{self.ids["priority"]: self.ids["high"]})
        self.assertTrue(self.client.put("/api/staff/drafts", headers=self.headers, json=form).json()["saved"])
        self.assertEqual(self._submit(form).status_code, 201)
        response = self.client.get("/api/staff/drafts", headers=self.headers)
        self.assertIsNone(response.json()["draft"])

    def test_draft_restore_drops_deleted_fields(self):
        form = self._form(**{self.ids["priority"]: self.ids["low"], self.ids["notes"]: "draft"})
        self.client.put("/api/staff/drafts", headers=self.headers, json=form)
        with self.SessionLocal() as db:
            db.query(FieldChoice).filter(FieldChoice.field_id == UUID(self.ids["priority"])).delete()
            db.query(CustomField).filter(CustomField.id == UUID(self.ids["priority"])).delete()
            db.commit()

        response = self.client.get("/api/staff/drafts", headers=self.headers)
        body = response.json()
        self.assertEqual(body["dropped_field_ids"], [self.ids["priority"]])
        self.assertEqual(body["draft"]["entries"][0]["customFields"], {self.ids["notes"]: "draft"})

    def test_draft_restore_keeps_values_when_fields_cannot_load(self):
        form = self._form(**{self.ids["priority"]: self.ids["low"], self.ids["notes"]: "clinical text"})
        self.client.put("/api/staff/drafts", headers=self.headers, json=form)
        with patch(
            "servicelog.services.field_store.FieldDefinitionStore.list_active",
            side_effect=OperationalError("SELECT", {}, Exception("db down")),
        ):
            body = self.client.get("/api/staff/drafts", headers=self.headers).json()
        self.assertEqual(
            body["draft"]["entries"][0]["customFields"],
            {self.ids["priority"]: self.ids["low"], self.ids["notes"]: "clinical text"},
        )
        self.assertEqual(body["dropped_field_ids"], [])
        self.assertEqual(len(body["notices"]), 1)

    def test_corrupt_draft_is_reported_and_removed(self):
        from servicelog.services.drafts import draft_key

        self.draft_store.set(draft_key(self.user_id), "{not json", ttl_seconds=60)
        response = self.client.get("/api/staff/drafts", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["draft"])
        self.assertEqual(len(response.json()["notices"]), 1)
        self.assertIsNone(self.draft_store.get(draft_key(self.user_id)))

    def test_drafts_are_per_user(self):
        self.client.put("/api/staff/drafts", headers=self.headers, json=self._form())
        other = self._auth_headers("STAFF", sub=str(uuid4()))
        self.assertIsNone(self.client.get("/api/staff/drafts", headers=other).json()["draft"])
        self.client.delete("/api/staff/drafts", headers=self.headers)
        self.assertIsNone(self.client.get("/api/staff/drafts", headers=self.headers).json()["draft"])

    def test_entry_values_replace_and_delete(self):
        body = self._submit(self._form(**{self.ids["priority"]: self.ids["high"], self.ids["notes"]: "first"})).json()
        entry_id = body["entry_ids"][0]

        response = self.client.put(
            f"/api/staff/patient-entries/{entry_id}/values",
            headers=self.headers,
            json={"customFields": {self.ids["priority"]: self.ids["low"], self.ids["notes"]: "second"}},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total"], 2)

        values = self.client.get(f"/api/staff/patient-entries/{entry_id}/values", headers=self.headers).json()
        self.assertEqual(values["customFields"][self.ids["priority"]], self.ids["low"])
        self.assertEqual(values["customFields"][self.ids["notes"]], "second")

        response = self.client.put(
            f"/api/staff/patient-entries/{entry_id}/values",
            headers=self.headers,
            json={"customFields": {self.ids["priority"]: ""}},
        )
        self.assertEqual(response.status_code, 422)

        response = self.client.delete(f"/api/staff/patient-entries/{entry_id}", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        with self.SessionLocal() as db:
            self.assertEqual(db.query(CustomFieldValue).count(), 0)
            self.assertEqual(db.query(PatientEntry).count(), 0)

        response = self.client.get(f"/api/staff/patient-entries/{entry_id}/values", headers=self.headers)
        self.assertEqual(response.status_code, 404)

    def test_values_of_deactivated_field_are_still_readable(self):
        body = self._submit(self._form(**{self.ids["priority"]: self.ids["high"], self.ids["notes"]: "kept"})).json()
        with self.SessionLocal() as db:
            row = db.get(CustomField, UUID(self.ids["notes"]))
            row.is_active = False
            db.commit()
        values = self.client.get(
            f"/api/staff/patient-entries/{body['entry_ids'][0]}/values",
            headers=self.headers,
        ).json()["customFields"]
        self.assertEqual(values[self.ids["notes"]], "kept")
