"""
Data model for captured business contacts.

ContactRecord is the persisted unit. ExtractionResult is the partial field
mapping returned by the extraction service and consumed once when a record
is built.
"""

import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


BUSINESS_TYPES = ("Trading", "Manufacturing", "Service", "Other")
DEFAULT_BUSINESS_TYPE = "Other"

# Attribute name -> serialized (camelCase) key
FIELD_KEYS = {
    "company_name": "companyName",
    "address": "address",
    "contact_person": "contactPerson",
    "contact_number": "contactNumber",
    "whatsapp_number": "whatsappNumber",
    "email": "email",
    "website": "website",
    "nature_of_business": "natureOfBusiness",
    "business_type": "businessType",
    "notes": "notes",
}

IMMUTABLE_FIELDS = ("id", "captured_at")


def normalize_business_type(value: Any) -> str:
    """Map any extracted value onto one of the four business types."""
    if isinstance(value, str):
        cleaned = value.strip().lower()
        for business_type in BUSINESS_TYPES:
            if business_type.lower() == cleaned:
                return business_type
    return DEFAULT_BUSINESS_TYPE


@dataclass
class ExtractionResult:
    """Fields returned by the extraction service. Any of them may be missing."""
    company_name: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    contact_number: Optional[str] = None
    whatsapp_number: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    nature_of_business: Optional[str] = None
    business_type: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionResult":
        """Build a result from a camelCase mapping, ignoring unknown keys."""
        return cls(**{
            attr: data.get(key)
            for attr, key in FIELD_KEYS.items()
        })

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {key: getattr(self, attr) for attr, key in FIELD_KEYS.items()}


@dataclass(frozen=True)
class ContactRecord:
    """A persisted business contact.

    Attributes:
        id: Stable unique identifier, assigned at creation
        captured_at: Creation timestamp in milliseconds since epoch
        business_type: Always one of BUSINESS_TYPES
    """
    id: str
    captured_at: int
    company_name: str = ""
    address: str = ""
    contact_person: str = ""
    contact_number: str = ""
    whatsapp_number: str = ""
    email: str = ""
    website: str = ""
    nature_of_business: str = ""
    business_type: str = DEFAULT_BUSINESS_TYPE
    notes: str = ""

    def __post_init__(self):
        normalized = normalize_business_type(self.business_type)
        if normalized != self.business_type:
            object.__setattr__(self, "business_type", normalized)

    @classmethod
    def from_extraction(
        cls,
        result: ExtractionResult,
        record_id: str,
        captured_at: int
    ) -> "ContactRecord":
        """Build a new record, filling absent fields with empty strings."""
        values = {
            attr: getattr(result, attr) or ""
            for attr in FIELD_KEYS
        }
        return cls(id=record_id, captured_at=captured_at, **values)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContactRecord":
        """Load a record from its serialized form.

        Raises:
            ValueError: If the identifier or timestamp is missing or invalid
        """
        record_id = data.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("Record has no identifier")

        captured_at = data.get("capturedAt")
        if isinstance(captured_at, bool) or not isinstance(captured_at, (int, float)):
            raise ValueError(f"Record {record_id} has no valid capturedAt")

        values = {}
        for attr, key in FIELD_KEYS.items():
            value = data.get(key)
            values[attr] = value if isinstance(value, str) else ""

        return cls(id=record_id, captured_at=int(captured_at), **values)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        for attr, key in FIELD_KEYS.items():
            data[key] = getattr(self, attr)
        data["capturedAt"] = self.captured_at
        return data

    def with_changes(self, **changes: Any) -> "ContactRecord":
        """Return an edited copy. id and captured_at are never changed."""
        editable = {f.name for f in fields(self)} - set(IMMUTABLE_FIELDS)
        updates = {}
        for name, value in changes.items():
            if name in IMMUTABLE_FIELDS:
                logger.debug(f"Ignoring attempt to edit immutable field: {name}")
                continue
            if name not in editable:
                raise ValueError(f"Unknown field: {name}")
            updates[name] = "" if value is None else str(value)
        return replace(self, **updates)

    def with_serialized_changes(self, data: Dict[str, Any]) -> "ContactRecord":
        """Apply edits given with camelCase keys, as sent by API clients."""
        reverse_keys = {key: attr for attr, key in FIELD_KEYS.items()}
        changes = {
            reverse_keys[key]: value
            for key, value in data.items()
            if key in reverse_keys
        }
        return self.with_changes(**changes)
