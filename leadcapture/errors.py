"""
Exception hierarchy for the lead capture pipeline.
"""


class LeadCaptureError(Exception):
    """Base class for all pipeline errors."""


class CaptureError(LeadCaptureError):
    """The capture device is unavailable or produced an unusable image."""


class CaptureInProgressError(CaptureError):
    """A capture cycle is already active."""


class ExtractionError(LeadCaptureError):
    """The extraction service failed or returned an unusable response."""


class StorageReadError(LeadCaptureError):
    """The backing store could not be read."""


class StorageWriteError(LeadCaptureError):
    """The backing store could not be written."""


class ReviewStateError(LeadCaptureError):
    """A review action was requested while no record is awaiting review."""


class RecordNotFoundError(LeadCaptureError):
    """No record exists with the requested identifier."""
