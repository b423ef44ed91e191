"""
Error taxonomy and JSON error responses
"""
import logging
import re
from datetime import datetime, timezone

from flask import jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

logger = logging.getLogger(__name__)


class Pdf2CsvError(Exception):
    """Base error carrying an HTTP status and a stable error code"""
    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(self, message=None, code=None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        if code:
            self.code = code


class InvalidInput(Pdf2CsvError):
    status_code = 400
    code = "INVALID_INPUT"
    message = "Invalid input"


class Unauthorized(Pdf2CsvError):
    status_code = 401
    code = "INVALID_SECRET"
    message = "Invalid callback secret"


class NotFound(Pdf2CsvError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class NotReady(Pdf2CsvError):
    status_code = 400
    code = "JOB_NOT_READY"
    message = "Job not completed yet"


class UpstreamUnavailable(Pdf2CsvError):
    status_code = 502
    code = "SERVICE_UNAVAILABLE"
    message = "External service unavailable"


class InternalError(Pdf2CsvError):
    pass


_ABS_PATH = re.compile(r"(?<![\w:/.])(?:[A-Za-z]:)?[\\/](?:[^\s\\/:'\"]+[\\/])+([^\s\\/:'\"]*)")


def _basename(match) -> str:
    # Either separator, whatever platform we run on
    return re.split(r"[\\/]", match.group(0).rstrip("/\\"))[-1] or "<path>"


def sanitize_error(message, limit: int = 500) -> str:
    """Make an upstream error message safe to show to clients.

    Absolute filesystem paths are reduced to their basename so internal
    directory layout never leaks into a job's error detail.
    """
    text = str(message or "").strip()
    text = _ABS_PATH.sub(_basename, text)
    text = re.sub(r"\s+", " ", text)
    if len(text) > limit:
        text = text[: limit - 3].rstrip() + "..."
    return text


def error_response(message: str, code: str, status: int):
    return jsonify({
        "ok": False,
        "error": {
            "message": message,
            "code": code,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }), status


def register_error_handlers(app):
    """Render every failure as the JSON error envelope"""

    @app.errorhandler(Pdf2CsvError)
    def handle_app_error(err):
        if err.status_code >= 500:
            logger.error("%s: %s", err.code, err.message)
        return error_response(err.message, err.code, err.status_code)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(err):
        return error_response("File too large", "FILE_TOO_LARGE", 413)

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        if err.code == 404:
            return error_response("Endpoint not found", "NOT_FOUND", 404)
        return error_response(err.name, err.name.upper().replace(" ", "_"), err.code)

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        logger.exception("Unhandled error")
        return error_response("Internal server error", "INTERNAL_ERROR", 500)
