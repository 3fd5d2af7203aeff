"""
Local persistence for contact records and settings.

Records are stored newest-first as a single JSON array. The auto-save
preference lives in a separate small JSON document. Both are single-writer
stores guarded by a process-local lock; each write replaces the file
atomically.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import StorageReadError, StorageWriteError
from .models import ContactRecord

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_SETTINGS = {"autoSave": False}


def _read_json(path: Path) -> Any:
    """Load a JSON document.

    Raises:
        StorageReadError: If the file exists but cannot be read or parsed
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise StorageReadError(f"Could not read {path}: {e}") from e


def _write_json(path: Path, data: Any) -> None:
    """Write a JSON document via a temp file and atomic rename.

    Raises:
        StorageWriteError: If the document cannot be written
    """
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise StorageWriteError(f"Could not write {path}: {e}") from e


class ContactRepository:
    """Ordered collection of contact records keyed by identifier."""

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self._lock = threading.RLock()

    def _load(self) -> List[ContactRecord]:
        if not self.path.exists():
            return []

        try:
            data = _read_json(self.path)
        except StorageReadError as e:
            logger.warning(f"{e} - treating store as empty")
            return []

        if not isinstance(data, list):
            logger.warning(f"Unexpected store layout in {self.path} - treating store as empty")
            return []

        records = []
        for entry in data:
            try:
                records.append(ContactRecord.from_dict(entry))
            except (ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed record: {e}")
        return records

    def _save(self, records: List[ContactRecord]) -> None:
        _write_json(self.path, [record.to_dict() for record in records])

    def list_all(self) -> List[ContactRecord]:
        """Return all records, most recently created first. Never raises."""
        with self._lock:
            return self._load()

    def get(self, record_id: str) -> Optional[ContactRecord]:
        with self._lock:
            for record in self._load():
                if record.id == record_id:
                    return record
        return None

    def upsert(self, record: ContactRecord) -> None:
        """Replace the record with the same id in place, or insert it at the front."""
        with self._lock:
            records = self._load()
            for index, existing in enumerate(records):
                if existing.id == record.id:
                    records[index] = record
                    logger.debug(f"Updated record {record.id}")
                    break
            else:
                records.insert(0, record)
                logger.debug(f"Inserted record {record.id}")
            self._save(records)

    def delete(self, record_id: str) -> None:
        """Remove the record with this id. No-op if absent."""
        with self._lock:
            records = self._load()
            remaining = [r for r in records if r.id != record_id]
            if len(remaining) == len(records):
                return
            self._save(remaining)
            logger.info(f"Deleted record {record_id}")

    def delete_all(self) -> None:
        with self._lock:
            self._save([])
            logger.info("Deleted all records")

    def count(self) -> int:
        return len(self.list_all())


class SettingsRepository:
    """Small key-value settings document (currently just the auto-save flag)."""

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self._lock = threading.RLock()

    def get(self) -> Dict[str, Any]:
        with self._lock:
            if not self.path.exists():
                return dict(DEFAULT_SETTINGS)
            try:
                data = _read_json(self.path)
            except StorageReadError as e:
                logger.warning(f"{e} - using default settings")
                return dict(DEFAULT_SETTINGS)
            if not isinstance(data, dict):
                return dict(DEFAULT_SETTINGS)
            return {**DEFAULT_SETTINGS, **data}

    def is_auto_save_enabled(self) -> bool:
        return self.get().get("autoSave") is True

    def set(self, key: str, value: Any) -> Dict[str, Any]:
        with self._lock:
            settings = self.get()
            settings[key] = value
            _write_json(self.path, settings)
            logger.info(f"Setting {key} = {value}")
            return settings

    def toggle(self, key: str) -> Dict[str, Any]:
        with self._lock:
            return self.set(key, not self.get().get(key))
