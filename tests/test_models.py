"""
Tests for ContactRecord and ExtractionResult.
"""

import pytest

from leadcapture.models import ContactRecord, ExtractionResult, normalize_business_type


class TestBusinessType:

    @pytest.mark.parametrize("value, expected", [
        ("Trading", "Trading"),
        ("manufacturing", "Manufacturing"),
        (" Service ", "Service"),
        ("Other", "Other"),
        ("Retail", "Other"),
        ("", "Other"),
        (None, "Other"),
        (42, "Other"),
    ])
    def test_normalize(self, value, expected):
        assert normalize_business_type(value) == expected

    def test_record_normalizes_on_creation(self):
        record = ContactRecord(id="1", captured_at=0, business_type="Wholesale")
        assert record.business_type == "Other"


class TestContactRecord:

    def test_from_extraction_fills_missing_fields(self):
        result = ExtractionResult(company_name="Acme Traders", contact_number="9876543210")

        record = ContactRecord.from_extraction(result, record_id="abc", captured_at=1000)

        assert record.id == "abc"
        assert record.captured_at == 1000
        assert record.company_name == "Acme Traders"
        assert record.contact_number == "9876543210"
        assert record.email == ""
        assert record.notes == ""
        assert record.address == ""
        assert record.business_type == "Other"

    def test_from_extraction_keeps_values_as_extracted(self):
        result = ExtractionResult(company_name="  Acme Traders ", notes="Stall 4\nNear gate ")

        record = ContactRecord.from_extraction(result, record_id="abc", captured_at=1000)

        assert record.company_name == "  Acme Traders "
        assert record.notes == "Stall 4\nNear gate "

    def test_round_trip_dict(self):
        record = ContactRecord(id="1", captured_at=5, company_name="Acme", business_type="Service")
        data = record.to_dict()

        assert data["companyName"] == "Acme"
        assert data["businessType"] == "Service"
        assert data["capturedAt"] == 5
        assert ContactRecord.from_dict(data) == record

    def test_from_dict_requires_id(self):
        with pytest.raises(ValueError):
            ContactRecord.from_dict({"capturedAt": 1})

    def test_from_dict_requires_timestamp(self):
        with pytest.raises(ValueError):
            ContactRecord.from_dict({"id": "1", "capturedAt": "yesterday"})

    def test_with_changes_preserves_identity(self):
        record = ContactRecord(id="1", captured_at=5, company_name="Old")

        edited = record.with_changes(company_name="New", id="2", captured_at=99)

        assert edited.company_name == "New"
        assert edited.id == "1"
        assert edited.captured_at == 5
        assert record.company_name == "Old"

    def test_with_changes_unknown_field(self):
        record = ContactRecord(id="1", captured_at=5)
        with pytest.raises(ValueError):
            record.with_changes(fax="123")

    def test_with_serialized_changes(self):
        record = ContactRecord(id="1", captured_at=5)

        edited = record.with_serialized_changes({
            "companyName": "Acme",
            "businessType": "trading",
            "capturedAt": 0,
            "unknown": "ignored"
        })

        assert edited.company_name == "Acme"
        assert edited.business_type == "Trading"
        assert edited.captured_at == 5


class TestExtractionResult:

    def test_from_dict_ignores_unknown_keys(self):
        result = ExtractionResult.from_dict({"companyName": "Acme", "fax": "123"})

        assert result.company_name == "Acme"
        assert result.to_dict()["email"] is None
