"""
LeadCapture: business card capture, enhancement, extraction and storage.
"""

from .errors import (
    CaptureError,
    CaptureInProgressError,
    ExtractionError,
    LeadCaptureError,
    RecordNotFoundError,
    ReviewStateError,
    StorageReadError,
    StorageWriteError,
)
from .models import BUSINESS_TYPES, ContactRecord, ExtractionResult
from .preprocessing import EnhancedImage, ImageEnhancer, RawCapture
from .vlm_ocr import GeminiExtractor
from .repository import ContactRepository, SettingsRepository
from .pipeline import CaptureOrchestrator, CaptureOutcome, CaptureState, OutcomeStatus

__all__ = [
    "BUSINESS_TYPES",
    "CaptureError",
    "CaptureInProgressError",
    "CaptureOrchestrator",
    "CaptureOutcome",
    "CaptureState",
    "ContactRecord",
    "ContactRepository",
    "EnhancedImage",
    "ExtractionError",
    "ExtractionResult",
    "GeminiExtractor",
    "ImageEnhancer",
    "LeadCaptureError",
    "OutcomeStatus",
    "RawCapture",
    "RecordNotFoundError",
    "ReviewStateError",
    "SettingsRepository",
    "StorageReadError",
    "StorageWriteError",
]
