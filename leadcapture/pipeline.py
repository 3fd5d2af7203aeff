"""
Capture Pipeline
Coordinates one capture-to-save cycle:

    IDLE -> CAPTURING -> ENHANCING -> EXTRACTING -> AUTO_SAVING -> IDLE
                                                -> AWAITING_REVIEW -> IDLE
                                                -> FAILED -> IDLE

Only one cycle may be active at a time. A cycle parked in AWAITING_REVIEW
stays active until the reviewer confirms or discards the record.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import CaptureInProgressError, ExtractionError, RecordNotFoundError, ReviewStateError
from .models import ContactRecord, ExtractionResult
from .preprocessing import ImageEnhancer, RawCapture
from .repository import ContactRepository
from .vlm_ocr import GeminiExtractor

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    ENHANCING = "enhancing"
    EXTRACTING = "extracting"
    AUTO_SAVING = "auto_saving"
    AWAITING_REVIEW = "awaiting_review"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    CaptureState.IDLE: {CaptureState.CAPTURING},
    CaptureState.CAPTURING: {CaptureState.ENHANCING},
    CaptureState.ENHANCING: {CaptureState.EXTRACTING},
    CaptureState.EXTRACTING: {CaptureState.AUTO_SAVING, CaptureState.AWAITING_REVIEW, CaptureState.FAILED},
    CaptureState.AUTO_SAVING: {CaptureState.IDLE},
    CaptureState.AWAITING_REVIEW: {CaptureState.IDLE},
    CaptureState.FAILED: {CaptureState.IDLE},
}


class OutcomeStatus(str, Enum):
    SAVED = "saved"
    REVIEW = "review"
    FAILED = "failed"


@dataclass
class CaptureOutcome:
    """Result of one capture cycle as reported to the caller."""
    status: OutcomeStatus
    record: Optional[ContactRecord] = None
    records: List[ContactRecord] = field(default_factory=list)
    error: Optional[str] = None
    processing_time_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status != OutcomeStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "record": self.record.to_dict() if self.record else None,
            "records": [r.to_dict() for r in self.records],
            "error": self.error,
            "processing_time_ms": self.processing_time_ms
        }


def _now_millis() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return str(uuid.uuid4())


class CaptureOrchestrator:
    """State machine driving capture -> enhance -> extract -> save/review.

    The auto-save preference is passed in as a zero-argument callable and
    consulted once per successful extraction.
    """

    def __init__(
        self,
        enhancer: ImageEnhancer,
        extractor: GeminiExtractor,
        repository: ContactRepository,
        auto_save: Callable[[], bool],
        clock: Optional[Callable[[], int]] = None,
        id_factory: Optional[Callable[[], str]] = None
    ):
        self.enhancer = enhancer
        self.extractor = extractor
        self.repository = repository
        self.auto_save = auto_save
        self.clock = clock or _now_millis
        self.id_factory = id_factory or _new_id

        self._lock = threading.RLock()
        self._state = CaptureState.IDLE
        self._pending: Optional[ContactRecord] = None
        self._listeners: List[Callable[[CaptureState, CaptureState], None]] = []

        logger.info("CaptureOrchestrator initialized")

    # ======================================================
    # STATE
    # ======================================================

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def pending_review(self) -> Optional[ContactRecord]:
        return self._pending

    def add_listener(self, listener: Callable[[CaptureState, CaptureState], None]) -> None:
        """Register a callback invoked as listener(old_state, new_state)."""
        self._listeners.append(listener)

    def _transition(self, new_state: CaptureState) -> None:
        with self._lock:
            old_state = self._state
            if new_state not in ALLOWED_TRANSITIONS[old_state]:
                raise RuntimeError(f"Invalid transition {old_state.value} -> {new_state.value}")
            self._state = new_state
        logger.info(f"Capture state: {old_state.value} -> {new_state.value}")
        self._notify(old_state, new_state)

    def _abort(self) -> None:
        """Drop the current cycle and return to IDLE."""
        with self._lock:
            old_state = self._state
            self._state = CaptureState.IDLE
            self._pending = None
        if old_state != CaptureState.IDLE:
            logger.warning(f"Capture cycle aborted in state: {old_state.value}")
            self._notify(old_state, CaptureState.IDLE)

    def _notify(self, old_state: CaptureState, new_state: CaptureState) -> None:
        for listener in self._listeners:
            listener(old_state, new_state)

    # ======================================================
    # CAPTURE CYCLE
    # ======================================================

    def build_record(self, result: ExtractionResult) -> ContactRecord:
        """Create a new record with a fresh id and the current timestamp."""
        return ContactRecord.from_extraction(
            result,
            record_id=self.id_factory(),
            captured_at=self.clock()
        )

    async def capture(self, acquire: Callable[[], RawCapture]) -> CaptureOutcome:
        """
        Run one capture cycle.

        Args:
            acquire: Produces the raw capture; may raise CaptureError

        Returns:
            CaptureOutcome with status SAVED, REVIEW or FAILED

        Raises:
            CaptureInProgressError: If another cycle is active
            CaptureError: If the capture could not be acquired
            StorageWriteError: If auto-save could not persist the record
        """
        with self._lock:
            if self._state != CaptureState.IDLE:
                raise CaptureInProgressError(f"Capture already in progress (state: {self._state.value})")
            self._transition(CaptureState.CAPTURING)

        start_time = time.time()
        finished = False

        try:
            # 1️⃣ CAPTURE
            raw = acquire()

            # 2️⃣ ENHANCE (never fails)
            self._transition(CaptureState.ENHANCING)
            enhanced = self.enhancer.enhance(raw)
            del raw

            # 3️⃣ EXTRACT
            self._transition(CaptureState.EXTRACTING)
            try:
                result = await self.extractor.extract(enhanced)
            except ExtractionError as e:
                logger.error(f"Extraction failed: {e}")
                self._transition(CaptureState.FAILED)
                self._transition(CaptureState.IDLE)
                finished = True
                return CaptureOutcome(
                    status=OutcomeStatus.FAILED,
                    error=str(e),
                    processing_time_ms=int((time.time() - start_time) * 1000)
                )

            record = self.build_record(result)

            # 4️⃣ SAVE OR STAGE FOR REVIEW
            if self.auto_save():
                self._transition(CaptureState.AUTO_SAVING)
                self.repository.upsert(record)
                records = self.repository.list_all()
                self._transition(CaptureState.IDLE)
                finished = True
                logger.info(f"Auto-saved record {record.id}")
                return CaptureOutcome(
                    status=OutcomeStatus.SAVED,
                    record=record,
                    records=records,
                    processing_time_ms=int((time.time() - start_time) * 1000)
                )

            with self._lock:
                self._pending = record
                self._transition(CaptureState.AWAITING_REVIEW)
            finished = True
            logger.info(f"Record {record.id} awaiting review")
            return CaptureOutcome(
                status=OutcomeStatus.REVIEW,
                record=record,
                processing_time_ms=int((time.time() - start_time) * 1000)
            )

        finally:
            if not finished:
                self._abort()

    # ======================================================
    # REVIEW
    # ======================================================

    def accept_review(
        self,
        changes: Optional[Dict[str, Any]] = None,
        expected_id: Optional[str] = None
    ) -> ContactRecord:
        """
        Persist the record awaiting review, with optional reviewer edits.

        Edits are applied to the pending record while the lock is held, so
        its id and captured_at are always kept.

        Args:
            changes: Edited fields keyed by serialized (camelCase) name
            expected_id: Id of the record the reviewer saw; confirming is
                refused if a different record is pending now

        Returns:
            The saved record

        Raises:
            ReviewStateError: If no record, or a different record, is awaiting review
        """
        with self._lock:
            if self._state != CaptureState.AWAITING_REVIEW or self._pending is None:
                raise ReviewStateError("No record is awaiting review")
            if expected_id is not None and expected_id != self._pending.id:
                raise ReviewStateError(
                    f"Record {expected_id} is no longer awaiting review (pending: {self._pending.id})"
                )

            final = self._pending.with_serialized_changes(changes or {})

            self.repository.upsert(final)
            self._pending = None
            self._transition(CaptureState.IDLE)

        logger.info(f"Confirmed record {final.id}")
        return final

    def confirm_review(
        self,
        changes: Optional[Dict[str, Any]] = None,
        expected_id: Optional[str] = None
    ) -> List[ContactRecord]:
        """Same as accept_review, returning the refreshed record listing."""
        self.accept_review(changes, expected_id)
        return self.repository.list_all()

    def discard_review(self, expected_id: Optional[str] = None) -> None:
        """Drop the record awaiting review without touching the repository."""
        with self._lock:
            if self._state != CaptureState.AWAITING_REVIEW:
                raise ReviewStateError("No record is awaiting review")
            if expected_id is not None and self._pending is not None and expected_id != self._pending.id:
                raise ReviewStateError(f"Record {expected_id} is no longer awaiting review")
            discarded = self._pending
            self._pending = None
            self._transition(CaptureState.IDLE)

        logger.info(f"Discarded record {discarded.id if discarded else None}")

    # ======================================================
    # EDIT
    # ======================================================

    def edit_record(self, record_id: str, changes: Dict[str, Any]) -> ContactRecord:
        """
        Edit and confirm an existing record outside the capture cycle.

        Args:
            record_id: Identifier of the record to edit
            changes: Field values keyed by their serialized (camelCase) names

        Returns:
            The updated record

        Raises:
            RecordNotFoundError: If no record has this id
        """
        existing = self.repository.get(record_id)
        if existing is None:
            raise RecordNotFoundError(f"Record not found: {record_id}")

        updated = existing.with_serialized_changes(changes)
        self.repository.upsert(updated)
        logger.info(f"Edited record {record_id}")
        return updated

    # ======================================================
    # STATUS
    # ======================================================

    def get_status(self) -> Dict[str, Any]:
        """Get pipeline status information."""
        return {
            "state": self._state.value,
            "pending_review": self._pending.id if self._pending else None,
            "extractor_available": self.extractor.is_available(),
            "extractor_model": getattr(self.extractor, "model_name", None),
            "auto_save": bool(self.auto_save()),
            "records_count": self.repository.count()
        }
