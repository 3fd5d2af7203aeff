"""
Tests for Flask API routes.

Tests the REST API endpoints with a mocked extraction client.
"""

import io
import json

import pytest
from PIL import Image
from unittest.mock import AsyncMock, Mock

from app import create_app
from api.routes import EXTENSION_KEY
from leadcapture.errors import ExtractionError
from leadcapture.models import ContactRecord, ExtractionResult
from leadcapture.pipeline import CaptureOrchestrator
from leadcapture.preprocessing import ImageEnhancer
from leadcapture.repository import ContactRepository, SettingsRepository


def _card_image(name: str = "card.jpg"):
    buffer = io.BytesIO()
    Image.new("RGB", (60, 40), color="white").save(buffer, format="JPEG")
    buffer.seek(0)
    return buffer, name


class TestAPIRoutes:
    """Test cases for API routes."""

    @pytest.fixture
    def extractor(self):
        extractor = Mock()
        extractor.extract = AsyncMock(return_value=ExtractionResult(
            company_name="Acme Traders",
            contact_number="9876543210"
        ))
        extractor.is_available.return_value = True
        extractor.model_name = "test-model"
        return extractor

    @pytest.fixture
    def app(self, tmp_path, extractor):
        """Create test Flask app with services in a temp folder."""
        app = create_app("testing", overrides={
            "DATA_FOLDER": str(tmp_path / "data"),
            "OUTPUT_FOLDER": str(tmp_path / "outputs")
        })
        app.config["TESTING"] = True

        settings = SettingsRepository(tmp_path / "data" / "settings.json")
        pipeline = CaptureOrchestrator(
            enhancer=ImageEnhancer(),
            extractor=extractor,
            repository=ContactRepository(tmp_path / "data" / "contacts.json"),
            auto_save=settings.is_auto_save_enabled
        )
        app.extensions[EXTENSION_KEY] = {"pipeline": pipeline, "settings": settings}
        return app

    @pytest.fixture
    def client(self, app):
        """Create test client."""
        return app.test_client()

    @pytest.fixture
    def repository(self, app):
        return app.extensions[EXTENSION_KEY]["pipeline"].repository

    def _capture(self, client, image=None):
        return client.post(
            "/api/capture",
            data={"file": image or _card_image()},
            content_type="multipart/form-data"
        )

    def test_root_endpoint(self, client):
        """Test root endpoint returns API info."""
        response = client.get("/")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert "name" in data
        assert "version" in data
        assert "endpoints" in data

    def test_health_check(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["success"] is True
        assert data["status"] == "healthy"

    def test_status_endpoint(self, client):
        response = client.get("/api/status")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["data"]["pipeline_status"]["state"] == "idle"

    def test_status_reports_key_from_app_config(self, tmp_path):
        app = create_app("testing", overrides={
            "DATA_FOLDER": str(tmp_path / "data"),
            "OUTPUT_FOLDER": str(tmp_path / "outputs"),
            "GOOGLE_API_KEY": "test-key"
        })

        response = app.test_client().get("/api/status")

        data = json.loads(response.data)["data"]
        assert data["api_keys_configured"]["gemini_api"] is True
        assert data["pipeline_status"]["extractor_available"] is True

    def test_unknown_route(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert json.loads(response.data)["success"] is False

    def test_capture_no_file(self, client):
        response = client.post("/api/capture")

        assert response.status_code == 400
        assert json.loads(response.data)["success"] is False

    def test_capture_empty_filename(self, client):
        response = client.post(
            "/api/capture",
            data={"file": (io.BytesIO(b""), "")},
            content_type="multipart/form-data"
        )

        assert response.status_code == 400

    def test_capture_invalid_extension(self, client):
        response = self._capture(client, (io.BytesIO(b"test"), "test.txt"))

        assert response.status_code == 400
        assert "not allowed" in json.loads(response.data)["error"]

    def test_capture_undecodable_image(self, client, extractor):
        response = self._capture(client, (io.BytesIO(b"not really a jpeg"), "card.jpg"))

        assert response.status_code == 400
        extractor.extract.assert_not_called()
        assert json.loads(client.get("/api/status").data)["data"]["pipeline_status"]["state"] == "idle"

    def test_capture_review_then_confirm(self, client, repository):
        response = self._capture(client)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["status"] == "review"
        assert data["record"]["businessType"] == "Other"
        assert data["record"]["email"] == ""
        assert repository.list_all() == []

        pending = json.loads(client.get("/api/review").data)["record"]
        assert pending["id"] == data["record"]["id"]

        response = client.post("/api/review/confirm", json={"email": "sales@acme.example"})

        assert response.status_code == 200
        confirmed = json.loads(response.data)
        assert confirmed["record"]["id"] == data["record"]["id"]
        assert confirmed["record"]["email"] == "sales@acme.example"
        assert len(repository.list_all()) == 1

    def test_capture_review_then_discard(self, client, repository):
        self._capture(client)

        response = client.post("/api/review/discard")

        assert response.status_code == 200
        assert repository.list_all() == []
        assert json.loads(client.get("/api/review").data)["record"] is None

    def test_capture_busy_while_review_pending(self, client):
        self._capture(client)

        response = self._capture(client)

        assert response.status_code == 409

    def test_confirm_without_pending(self, client):
        response = client.post("/api/review/confirm")

        assert response.status_code == 409

    def test_confirm_stale_record_rejected(self, client, repository):
        first = json.loads(self._capture(client).data)["record"]
        client.post("/api/review/discard", json={"id": first["id"]})
        second = json.loads(self._capture(client).data)["record"]

        response = client.post("/api/review/confirm", json={"id": first["id"], "companyName": "Edited"})

        assert response.status_code == 409
        assert repository.list_all() == []
        assert json.loads(client.get("/api/review").data)["record"]["id"] == second["id"]

        response = client.post("/api/review/confirm", json={"id": second["id"], "companyName": "Edited"})

        assert response.status_code == 200
        saved = repository.list_all()
        assert [(r.id, r.company_name) for r in saved] == [(second["id"], "Edited")]

    def test_confirm_rejects_non_object_body(self, client):
        self._capture(client)

        response = client.post("/api/review/confirm", json=["not", "an", "object"])

        assert response.status_code == 400
    def test_capture_auto_save(self, client, repository):
        client.post("/api/settings/auto-save", json={"enabled": True})

        response = self._capture(client)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["status"] == "saved"
        assert data["records"][0]["companyName"] == "Acme Traders"
        assert len(repository.list_all()) == 1

    def test_capture_extraction_failure(self, client, extractor, repository):
        extractor.extract.side_effect = ExtractionError("network error")

        response = self._capture(client)

        assert response.status_code == 502
        data = json.loads(response.data)
        assert data["success"] is False
        assert data["status"] == "failed"
        assert repository.list_all() == []

    def test_list_records_with_filters(self, client, repository):
        repository.upsert(ContactRecord(id="1", captured_at=1, company_name="Steel Works",
                                        business_type="Manufacturing"))
        repository.upsert(ContactRecord(id="2", captured_at=2, company_name="Acme Traders",
                                        business_type="Trading"))

        data = json.loads(client.get("/api/records").data)["data"]
        assert [r["id"] for r in data["records"]] == ["2", "1"]

        data = json.loads(client.get("/api/records?type=Manufacturing").data)["data"]
        assert [r["id"] for r in data["records"]] == ["1"]

        data = json.loads(client.get("/api/records?q=acme").data)["data"]
        assert data["count"] == 1

        assert client.get("/api/records?type=Retail").status_code == 400

    def test_get_update_delete_record(self, client, repository):
        repository.upsert(ContactRecord(id="1", captured_at=5, company_name="Old"))

        assert client.get("/api/records/1").status_code == 200
        assert client.get("/api/records/missing").status_code == 404

        response = client.put("/api/records/1", json={"companyName": "New", "capturedAt": 0})
        assert response.status_code == 200
        record = json.loads(response.data)["record"]
        assert record["companyName"] == "New"
        assert record["capturedAt"] == 5

        assert client.put("/api/records/missing", json={"companyName": "x"}).status_code == 404

        assert client.delete("/api/records/1").status_code == 200
        assert repository.list_all() == []

    def test_delete_all_records(self, client, repository):
        for record_id in ("1", "2", "3"):
            repository.upsert(ContactRecord(id=record_id, captured_at=1))

        assert client.delete("/api/records").status_code == 200
        assert repository.list_all() == []

    def test_share_record(self, client, repository):
        repository.upsert(ContactRecord(id="1", captured_at=1, company_name="Acme Traders"))

        data = json.loads(client.get("/api/records/1/share").data)

        assert data["title"] == "Lead: Acme Traders"
        assert data["text"].startswith("*Acme Traders*")

    @pytest.mark.parametrize("file_format, mimetype", [
        ("csv", "text/csv"),
        ("xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    ])
    def test_export(self, client, repository, file_format, mimetype):
        repository.upsert(ContactRecord(id="1", captured_at=1, company_name="Acme Traders"))

        response = client.get(f"/api/records/export?format={file_format}")

        assert response.status_code == 200
        assert response.mimetype == mimetype
        assert "Leads_Export_" in response.headers["Content-Disposition"]
        response.close()

    def test_export_empty(self, client):
        response = client.get("/api/records/export")

        assert response.status_code == 404

    def test_stats(self, client, repository):
        repository.upsert(ContactRecord(id="1", captured_at=1))

        data = json.loads(client.get("/api/stats").data)["data"]

        assert data["total"] == 1
        assert data["this_week"] == 0

    def test_settings_toggle(self, client):
        assert json.loads(client.get("/api/settings").data)["data"]["autoSave"] is False

        data = json.loads(client.post("/api/settings/auto-save").data)["data"]
        assert data["autoSave"] is True

        response = client.post("/api/settings/auto-save", json={"enabled": "yes"})
        assert response.status_code == 400
