"""
Jobs Blueprint - upload a PDF, poll its status, fetch the CSV locator
"""
import os

from flask import Blueprint, abort, current_app, jsonify, request

from pdf2csv.errors import InvalidInput
from pdf2csv.services import get_services
from pdf2csv.uploads import discard, looks_like_pdf, spool

api_bp = Blueprint('api', __name__)


def _is_pdf_upload(file) -> bool:
    filename = (getattr(file, "filename", "") or "").lower()
    mimetype = (getattr(file, "mimetype", "") or "").lower()
    return filename.endswith(".pdf") or mimetype == "application/pdf"


@api_bp.route("", methods=["POST"])
def upload_pdf():
    file = request.files.get("file") or request.files.get("pdf")
    if not file or not file.filename:
        raise InvalidInput("No file uploaded", code="NO_FILE")
    if not _is_pdf_upload(file):
        raise InvalidInput("Only PDF files are allowed", code="INVALID_FILE_TYPE")

    filename = os.path.basename(file.filename.replace("\\", "/"))
    path = spool(file, current_app.config["UPLOAD_DIR"], suffix=".pdf")
    try:
        size = os.path.getsize(path)
        limit = current_app.config["MAX_UPLOAD_BYTES"]
        if size > limit:
            raise InvalidInput(f"File too large (max {limit // (1024 * 1024)}MB)", code="FILE_TOO_LARGE")
        if not looks_like_pdf(path):
            raise InvalidInput("Only PDF files are allowed", code="INVALID_FILE_TYPE")
    except Exception:
        discard(path)
        raise

    current_app.logger.info("Received PDF upload: %s (%.2fMB)", filename, size / 1024 / 1024)
    # The job service owns the spooled file from here on
    job = get_services().jobs.submit(path, filename)

    return jsonify({
        "ok": True,
        "jobId": job.id,
        "message": "PDF uploaded and processing started",
        "filename": filename,
    }), 201


@api_bp.route("/<job_id>/status", methods=["GET"])
def job_status(job_id):
    return jsonify(get_services().jobs.status(job_id)), 200


@api_bp.route("/<job_id>/download-url", methods=["GET"])
def download_url(job_id):
    locator = get_services().downloads.resolve(job_id)
    return jsonify(locator.to_dict()), 200


@api_bp.route("", methods=["GET"])
def list_jobs():
    """Debug listing of every job in the registry"""
    if not current_app.config["DEBUG_ROUTES"]:
        abort(404)
    return jsonify(get_services().jobs.listing()), 200
