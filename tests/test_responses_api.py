"""
API Tests for public submission, validation, export and manual sync.
"""

import csv
import io

import pytest

RECORDS_PATH = "/v0/appBase/tblLeads"

ENGINEER = {"fldName": "Ada", "fldRole": "Engineer", "fldStack": ["Python"]}


class TestSubmit:
    """Tests for POST /api/responses/submit/{form_id}."""

    async def test_submit_and_sync(self, client, form, fake_airtable):
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "recSubmitted"})

        response = await client.post(
            f"/api/responses/submit/{form.id}",
            json={"responses": ENGINEER, "email": "Ada@Example.com", "metadata": {"timeToComplete": 20}},
            headers={"User-Agent": "pytest", "X-Forwarded-For": "10.0.0.1"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["successMessage"] == "Thank you for your submission!"
        stored = body["response"]
        assert stored["status"] == "synced"
        assert stored["airtableRecordId"] == "recSubmitted"
        assert stored["syncStatus"]["syncAttempts"] == 1
        assert stored["submittedBy"]["email"] == "ada@example.com"
        assert stored["submittedBy"]["ip"] == "10.0.0.1"
        assert stored["metadata"]["timeToComplete"] == 20
        assert stored["metadata"]["completionPercentage"] == 100
        assert [a["fieldId"] for a in stored["responses"]] == ["fldName", "fldRole", "fldStack"]

    async def test_failed_sync_still_accepted(self, client, form, fake_airtable):
        fake_airtable.add("POST", RECORDS_PATH, status=422, json={"error": {"type": "INVALID"}})

        response = await client.post(f"/api/responses/submit/{form.id}", json={"responses": ENGINEER})

        assert response.status_code == 201
        stored = response.json()["response"]
        assert stored["status"] == "failed"
        assert stored["syncStatus"]["isSynced"] is False
        assert len(stored["errors"]) == 1

    async def test_counts_submission(self, client, form, fake_airtable, auth_headers):
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "rec1"})
        await client.get(f"/api/forms/{form.id}")
        await client.post(f"/api/responses/submit/{form.id}", json={"responses": ENGINEER})

        response = await client.get(f"/api/forms/{form.id}", headers=auth_headers)

        stats = response.json()["form"]["stats"]
        assert stats == {"totalViews": 1, "totalSubmissions": 1, "conversionRate": 100}

    async def test_hidden_field_dropped(self, client, form, fake_airtable):
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "rec1"})

        response = await client.post(
            f"/api/responses/submit/{form.id}",
            json={"responses": {"fldName": "Grace", "fldRole": "Designer", "fldStack": ["Go"]}},
        )

        assert response.status_code == 201
        answers = response.json()["response"]["responses"]
        assert [a["fieldId"] for a in answers] == ["fldName", "fldRole"]

    async def test_answer_list_form(self, client, form, fake_airtable):
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "rec1"})

        response = await client.post(
            f"/api/responses/submit/{form.id}",
            json={"responses": [
                {"fieldId": "fldName", "value": "Ada"},
                {"fieldId": "fldRole", "value": "Designer"},
            ]},
        )

        assert response.status_code == 201

    async def test_validation_errors(self, client, form):
        response = await client.post(
            f"/api/responses/submit/{form.id}",
            json={"responses": {"fldRole": "Engineer", "fldStack": ["Rust"], "fldBogus": "x"}},
        )

        assert response.status_code == 400
        errors = {e["field_id"]: e["message"] for e in response.json()["details"]["errors"]}
        assert errors["fldName"] == "Your Name is required"
        assert "Rust" in errors["fldStack"]
        assert errors["fldBogus"] == "Unknown field"

    async def test_bad_metadata_rejected(self, client, form, auth_headers):
        """Wrongly typed metadata is refused and the owner's listing still works."""
        response = await client.post(
            f"/api/responses/submit/{form.id}",
            json={"responses": ENGINEER, "metadata": {"timeToComplete": "slow"}},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "InvalidRequestError"
        assert body["details"]["field"] == "metadata"
        assert body["details"]["errors"][0]["loc"] == "timeToComplete"

        listing = await client.get(f"/api/forms/{form.id}/responses", headers=auth_headers)
        assert listing.status_code == 200
        assert listing.json()["responses"] == []

    async def test_unknown_metadata_keys_dropped(self, client, form, fake_airtable):
        """Only the known client metadata keys are stored."""
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "rec1"})

        response = await client.post(
            f"/api/responses/submit/{form.id}",
            json={"responses": ENGINEER, "metadata": {"deviceType": "mobile", "tracking": {"a": 1}}},
        )

        assert response.status_code == 201
        metadata = response.json()["response"]["metadata"]
        assert metadata["deviceType"] == "mobile"
        assert "tracking" not in metadata

    async def test_unpublished_form(self, client, make_form, user):
        form = await make_form(user, is_published=False)

        response = await client.post(f"/api/responses/submit/{form.id}", json={"responses": ENGINEER})

        assert response.status_code == 403

    async def test_require_login(self, client, make_form, user, other_headers, fake_airtable):
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "rec1"})
        form = await make_form(user, settings={"requireLogin": True})

        anonymous = await client.post(f"/api/responses/submit/{form.id}", json={"responses": ENGINEER})
        logged_in = await client.post(
            f"/api/responses/submit/{form.id}", json={"responses": ENGINEER}, headers=other_headers
        )

        assert anonymous.status_code == 401
        assert logged_in.status_code == 201


class TestDuplicatePolicy:
    """Tests for allowMultipleSubmissions."""

    @pytest.fixture
    async def single_form(self, make_form, user, fake_airtable):
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "rec1"})
        return await make_form(user, settings={"allowMultipleSubmissions": False})

    async def test_same_email_refused(self, client, single_form):
        url = f"/api/responses/submit/{single_form.id}"

        first = await client.post(url, json={"responses": ENGINEER, "email": "ada@example.com"})
        second = await client.post(url, json={"responses": ENGINEER, "email": "ADA@example.com"})

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"] == "DuplicateSubmissionError"

    async def test_same_ip_refused_without_email(self, client, single_form):
        url = f"/api/responses/submit/{single_form.id}"
        headers = {"X-Forwarded-For": "10.1.1.1"}

        first = await client.post(url, json={"responses": ENGINEER}, headers=headers)
        second = await client.post(url, json={"responses": ENGINEER}, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 409

    async def test_different_submitters_allowed(self, client, single_form):
        url = f"/api/responses/submit/{single_form.id}"

        first = await client.post(url, json={"responses": ENGINEER, "email": "a@example.com"})
        second = await client.post(url, json={"responses": ENGINEER, "email": "b@example.com"})

        assert first.status_code == 201
        assert second.status_code == 201

    async def test_multiple_allowed_by_default(self, client, form, fake_airtable):
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "rec1"})
        url = f"/api/responses/submit/{form.id}"
        payload = {"responses": ENGINEER, "email": "ada@example.com"}

        assert (await client.post(url, json=payload)).status_code == 201
        assert (await client.post(url, json=payload)).status_code == 201


class TestValidate:
    """Tests for POST /api/responses/validate/{form_id}."""

    async def test_valid(self, client, form):
        response = await client.post(f"/api/responses/validate/{form.id}", json={"responses": ENGINEER})

        assert response.json() == {"valid": True, "errors": []}

    async def test_invalid(self, client, form):
        response = await client.post(
            f"/api/responses/validate/{form.id}",
            json={"responses": {"fldName": "Ada", "fldRole": "Pilot"}},
        )

        body = response.json()
        assert body["valid"] is False
        assert body["errors"][0]["fieldId"] == "fldRole"


class TestExport:
    """Tests for GET /api/responses/export/{form_id}."""

    async def _submit(self, client, form, fake_airtable):
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "rec1"})
        await client.post(f"/api/responses/submit/{form.id}", json={"responses": ENGINEER})

    async def test_csv(self, client, form, fake_airtable, auth_headers):
        await self._submit(client, form, fake_airtable)

        response = await client.get(f"/api/responses/export/{form.id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["Response ID", "Submitted At", "Status", "Your Name", "Role", "Stack"]
        assert rows[1][2:] == ["synced", "Ada", "Engineer", "Python"]

    async def test_json(self, client, form, fake_airtable, auth_headers):
        await self._submit(client, form, fake_airtable)

        response = await client.get(f"/api/responses/export/{form.id}?format=json", headers=auth_headers)

        body = response.json()
        assert body["form"] == {"id": form.id, "title": "Contact"}
        assert body["responses"][0]["responseData"]["fldName"] == "Ada"

    async def test_unknown_format(self, client, form, auth_headers):
        response = await client.get(f"/api/responses/export/{form.id}?format=xml", headers=auth_headers)

        assert response.status_code == 400

    async def test_owner_only(self, client, form, other_headers):
        response = await client.get(f"/api/responses/export/{form.id}", headers=other_headers)

        assert response.status_code == 403


class TestManualSync:
    """Tests for POST /api/responses/{id}/sync."""

    async def test_retry_after_cap(self, client, form, fake_airtable, auth_headers):
        fake_airtable.add("POST", RECORDS_PATH, status=503, json={"error": "down"})
        submitted = await client.post(f"/api/responses/submit/{form.id}", json={"responses": ENGINEER})
        response_id = submitted.json()["response"]["id"]
        for _ in range(2):
            await client.post(f"/api/forms/{form.id}/responses/sync", headers=auth_headers)

        stuck = await client.get(f"/api/forms/{form.id}/responses/stuck", headers=auth_headers)
        assert [r["id"] for r in stuck.json()["responses"]] == [response_id]

        fake_airtable.add("POST", RECORDS_PATH, json={"id": "recManual"})
        response = await client.post(f"/api/responses/{response_id}/sync", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Response synced successfully"
        assert body["response"]["syncStatus"]["syncAttempts"] == 4
        assert body["response"]["airtableRecordId"] == "recManual"

    async def test_other_user_denied(self, client, form, fake_airtable, other_headers):
        fake_airtable.add("POST", RECORDS_PATH, json={"id": "rec1"})
        submitted = await client.post(f"/api/responses/submit/{form.id}", json={"responses": ENGINEER})

        response = await client.post(
            f"/api/responses/{submitted.json()['response']['id']}/sync", headers=other_headers
        )

        assert response.status_code == 403

    async def test_unknown_response(self, client, auth_headers):
        response = await client.post("/api/responses/nope/sync", headers=auth_headers)

        assert response.status_code == 404
