"""
API routes for the LeadCapture API.

Flask REST API endpoints for capturing business cards, reviewing extracted
leads and managing the saved lead list.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, Tuple

from flask import Blueprint, current_app, jsonify, request, send_file

from config import Config
from leadcapture.errors import (
    CaptureError,
    CaptureInProgressError,
    ExtractionError,
    RecordNotFoundError,
    ReviewStateError,
    StorageWriteError,
)
from leadcapture.export import ALL_TYPES, export_filename, export_records, filter_records, format_share_text, summarize
from leadcapture.pipeline import CaptureOrchestrator
from leadcapture.preprocessing import ImageEnhancer, RawCapture
from leadcapture.repository import ContactRepository, SettingsRepository
from leadcapture.vlm_ocr import GeminiExtractor

logger = logging.getLogger(__name__)

# Create Blueprint
api_bp = Blueprint("api", __name__, url_prefix="/api")

EXTENSION_KEY = "leadcapture"
EXPORT_MIMETYPES = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv"
}


def _services() -> Dict[str, Any]:
    """Get or create the services bound to the current app."""
    services = current_app.extensions.get(EXTENSION_KEY)

    if services is None:
        data_folder = current_app.config["DATA_FOLDER"]
        repository = ContactRepository(os.path.join(data_folder, Config.CONTACTS_FILE))
        settings = SettingsRepository(os.path.join(data_folder, Config.SETTINGS_FILE))
        extractor = GeminiExtractor(
            api_key=current_app.config.get("GOOGLE_API_KEY"),
            model=current_app.config.get("GEMINI_MODEL", Config.GEMINI_MODEL)
        )
        pipeline = CaptureOrchestrator(
            enhancer=ImageEnhancer(),
            extractor=extractor,
            repository=repository,
            auto_save=settings.is_auto_save_enabled
        )
        services = {"pipeline": pipeline, "settings": settings}
        current_app.extensions[EXTENSION_KEY] = services
        logger.info(f"Pipeline initialized (Gemini available: {extractor.is_available()})")

    return services


def get_pipeline() -> CaptureOrchestrator:
    """Get or create pipeline instance.

    Returns:
        CaptureOrchestrator instance
    """
    return _services()["pipeline"]


def get_settings() -> SettingsRepository:
    return _services()["settings"]


def allowed_file(filename: str) -> bool:
    """Check if file extension is allowed.

    Args:
        filename: Name of the file

    Returns:
        True if allowed, False otherwise
    """
    return Config.is_allowed_file(filename)


def _error(message: str, status: int) -> Tuple[Any, int]:
    return jsonify({
        "success": False,
        "error": message
    }), status


def _filter_args():
    return request.args.get("q", ""), request.args.get("type", ALL_TYPES)


@api_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint.

    Returns:
        JSON with health status
    """
    return jsonify({
        "success": True,
        "status": "healthy",
        "message": "LeadCapture API is running",
        "version": "1.0.0"
    }), 200


@api_bp.route("/status", methods=["GET"])
def get_status():
    """Get API and pipeline status.

    Returns:
        JSON with status information
    """
    pipeline = get_pipeline()

    return jsonify({
        "success": True,
        "data": {
            "api_status": "running",
            "pipeline_status": pipeline.get_status(),
            "api_keys_configured": Config.get_api_status(current_app.config)
        }
    }), 200


# ======================================================
# CAPTURE & REVIEW
# ======================================================

@api_bp.route("/capture", methods=["POST"])
def capture():
    """Run one capture cycle on an uploaded photo.

    Expects:
        - multipart/form-data with 'file' field

    Returns:
        JSON with status "saved" (and the refreshed lead list) or
        "review" (and the record awaiting confirmation)
    """
    if "file" not in request.files:
        return _error("No file provided. Use 'file' field in form-data.", 400)

    file = request.files["file"]

    if file.filename == "":
        return _error("No file selected", 400)

    if not allowed_file(file.filename):
        return _error(f"File type not allowed. Allowed: {', '.join(sorted(Config.ALLOWED_EXTENSIONS))}", 400)

    data = file.read()
    logger.info(f"Capturing uploaded file: {file.filename} ({len(data)} bytes)")

    pipeline = get_pipeline()
    outcome = asyncio.run(pipeline.capture(lambda: RawCapture.from_bytes(data)))

    if not outcome.success:
        return jsonify({
            **outcome.to_dict(),
            "error": f"Failed to extract text. Please try again. ({outcome.error})"
        }), 502

    return jsonify(outcome.to_dict()), 200


@api_bp.route("/review", methods=["GET"])
def get_review():
    """Return the record awaiting review, if any."""
    pending = get_pipeline().pending_review
    return jsonify({
        "success": True,
        "record": pending.to_dict() if pending else None
    }), 200


@api_bp.route("/review/confirm", methods=["POST"])
def confirm_review():
    """Save the record awaiting review.

    Expects:
        - Optional JSON body with edited fields (camelCase keys). An "id"
          key names the record the reviewer saw; a different pending
          record is answered with 409.
    """
    changes = request.get_json(silent=True) or {}
    if not isinstance(changes, dict):
        return _error("Edits must be a JSON object", 400)

    pipeline = get_pipeline()
    record = pipeline.accept_review(changes, expected_id=changes.get("id"))

    return jsonify({
        "success": True,
        "record": record.to_dict(),
        "records": [r.to_dict() for r in pipeline.repository.list_all()]
    }), 200


@api_bp.route("/review/discard", methods=["POST"])
def discard_review():
    """Discard the record awaiting review (optional JSON body {"id": ...})."""
    body = request.get_json(silent=True)
    expected_id = body.get("id") if isinstance(body, dict) else None
    get_pipeline().discard_review(expected_id=expected_id)
    return jsonify({"success": True}), 200


# ======================================================
# RECORDS
# ======================================================

@api_bp.route("/records", methods=["GET"])
def list_records():
    """List saved leads, newest first.

    Optional query params:
        - q: search text (company name or contact person)
        - type: business type filter (default: All)
    """
    search, business_type = _filter_args()
    try:
        records = filter_records(get_pipeline().repository.list_all(), search, business_type)
    except ValueError as e:
        return _error(str(e), 400)

    return jsonify({
        "success": True,
        "data": {
            "records": [r.to_dict() for r in records],
            "count": len(records)
        }
    }), 200


@api_bp.route("/records", methods=["DELETE"])
def delete_all_records():
    """Delete every saved lead."""
    get_pipeline().repository.delete_all()
    return jsonify({"success": True}), 200


@api_bp.route("/records/export", methods=["GET"])
def export():
    """Download saved leads as a spreadsheet.

    Optional query params:
        - format: xlsx (default) or csv
        - q, type: same filters as the listing
    """
    file_format = request.args.get("format", "xlsx").lower()
    if file_format not in EXPORT_MIMETYPES:
        return _error("Only xlsx and csv exports are supported", 400)

    search, business_type = _filter_args()
    try:
        records = filter_records(get_pipeline().repository.list_all(), search, business_type)
    except ValueError as e:
        return _error(str(e), 400)

    if not records:
        return _error("No leads to export.", 404)

    filename = export_filename(file_format)
    output_path = Path(current_app.config["OUTPUT_FOLDER"]).resolve() / filename
    export_records(records, output_path)

    return send_file(
        output_path,
        mimetype=EXPORT_MIMETYPES[file_format],
        as_attachment=True,
        download_name=filename
    )


@api_bp.route("/records/<record_id>", methods=["GET"])
def get_record(record_id: str):
    record = get_pipeline().repository.get(record_id)
    if record is None:
        raise RecordNotFoundError(f"Record not found: {record_id}")
    return jsonify({"success": True, "record": record.to_dict()}), 200


@api_bp.route("/records/<record_id>", methods=["PUT"])
def update_record(record_id: str):
    """Edit and confirm an existing lead.

    Expects:
        - JSON body with the fields to change (camelCase keys)
    """
    changes = request.get_json(silent=True)
    if not isinstance(changes, dict):
        return _error("No data provided. Send JSON with record fields.", 400)

    try:
        record = get_pipeline().edit_record(record_id, changes)
    except ValueError as e:
        return _error(str(e), 400)

    return jsonify({"success": True, "record": record.to_dict()}), 200


@api_bp.route("/records/<record_id>", methods=["DELETE"])
def delete_record(record_id: str):
    get_pipeline().repository.delete(record_id)
    return jsonify({"success": True}), 200


@api_bp.route("/records/<record_id>/share", methods=["GET"])
def share_record(record_id: str):
    """Plain-text summary of a lead for sharing."""
    record = get_pipeline().repository.get(record_id)
    if record is None:
        raise RecordNotFoundError(f"Record not found: {record_id}")
    return jsonify({
        "success": True,
        "title": f"Lead: {record.company_name}",
        "text": format_share_text(record)
    }), 200


@api_bp.route("/stats", methods=["GET"])
def stats():
    """Dashboard numbers for the home screen."""
    return jsonify({
        "success": True,
        "data": summarize(get_pipeline().repository.list_all())
    }), 200


# ======================================================
# SETTINGS
# ======================================================

@api_bp.route("/settings", methods=["GET"])
def get_settings_view():
    return jsonify({"success": True, "data": get_settings().get()}), 200


@api_bp.route("/settings/auto-save", methods=["POST"])
def set_auto_save():
    """Toggle auto-save, or set it explicitly with {"enabled": true|false}."""
    body = request.get_json(silent=True) or {}
    settings = get_settings()

    if "enabled" in body:
        if not isinstance(body["enabled"], bool):
            return _error("'enabled' must be a boolean", 400)
        data = settings.set("autoSave", body["enabled"])
    else:
        data = settings.toggle("autoSave")

    return jsonify({"success": True, "data": data}), 200


# Error handlers
@api_bp.errorhandler(CaptureInProgressError)
def capture_in_progress(error):
    return _error(str(error), 409)


@api_bp.errorhandler(CaptureError)
def capture_failed(error):
    return _error(str(error), 400)


@api_bp.errorhandler(ExtractionError)
def extraction_failed(error):
    return _error(str(error), 502)


@api_bp.errorhandler(ReviewStateError)
def review_state(error):
    return _error(str(error), 409)


@api_bp.errorhandler(RecordNotFoundError)
def record_not_found(error):
    return _error(str(error), 404)


@api_bp.errorhandler(StorageWriteError)
def storage_write_failed(error):
    logger.error(f"Storage write failed: {error}")
    return _error("Could not save changes", 500)


@api_bp.errorhandler(400)
def bad_request(error):
    """Handle 400 errors."""
    return _error("Bad request", 400)


@api_bp.errorhandler(404)
def not_found(error):
    """Handle 404 errors."""
    return _error("Resource not found", 404)


@api_bp.errorhandler(500)
def internal_error(error):
    """Handle 500 errors."""
    return _error("Internal server error", 500)
