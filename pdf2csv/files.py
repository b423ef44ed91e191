"""
Direct file serving for the local and database storage backends
"""
import io

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from pdf2csv.errors import InvalidInput
from pdf2csv.services import get_services
from pdf2csv.services.blob_store import download_filename, validate_key

files_bp = Blueprint('files', __name__)


@files_bp.route('/download/<path:key>', methods=['GET'])
def download(key):
    key = validate_key(key)
    data = get_services().blob_store.get(key)
    filename = download_filename(key)
    current_app.logger.info("Serving file download: %s (%.2fKB)", key, len(data) / 1024)

    response = send_file(
        io.BytesIO(data),
        mimetype='text/csv',
        as_attachment=True,
        download_name=filename,
    )
    response.headers['Cache-Control'] = 'private, max-age=3600'
    return response


@files_bp.route('/stats', methods=['GET'])
def storage_stats():
    if not current_app.config["DEBUG_ROUTES"]:
        abort(404)
    store = get_services().blob_store
    if not hasattr(store, 'stats'):
        abort(404)
    return jsonify({'storage': store.stats(), 'type': store.kind})


@files_bp.route('/cleanup', methods=['POST'])
def storage_cleanup():
    if not current_app.config["DEBUG_ROUTES"]:
        abort(404)
    store = get_services().blob_store
    if not hasattr(store, 'cleanup'):
        abort(404)

    payload = request.get_json(silent=True) or {}
    try:
        hours_old = float(payload.get('hoursOld', 24))
    except (TypeError, ValueError):
        raise InvalidInput("hoursOld must be a number")
    if hours_old < 0:
        raise InvalidInput("hoursOld must be a number")

    deleted = store.cleanup(hours_old)
    return jsonify({
        'message': 'Cleanup completed',
        'deletedFiles': deleted,
        'hoursOld': hours_old,
    })
