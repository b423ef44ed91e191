"""
Conversion workflow callbacks (n8n webhook replies)
"""
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from pdf2csv.services import get_services
from pdf2csv.uploads import spool

callback_bp = Blueprint('callback', __name__)

SECRET_HEADER = 'X-Callback-Secret'
JOB_ID_HEADER = 'X-Job-Id'


@callback_bp.route('/callback', methods=['POST'])
def conversion_callback():
    """Receive the converted CSV for a job"""
    secret = request.headers.get(SECRET_HEADER)
    job_id = request.headers.get(JOB_ID_HEADER)

    upload = request.files.get('csv') or request.files.get('file')
    artifact = None
    name = None
    if upload is not None:
        artifact = spool(upload, current_app.config["UPLOAD_DIR"], suffix=".csv")
        name = upload.filename or None

    # The handler removes the spooled file on every path
    result = get_services().callbacks.on_success(job_id, secret, artifact, name)
    return jsonify(result), 200


@callback_bp.route('/error', methods=['POST'])
def conversion_error():
    """Receive an error notification for a job"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    result = get_services().callbacks.on_failure(
        request.headers.get(JOB_ID_HEADER),
        request.headers.get(SECRET_HEADER),
        reason=payload.get('error'),
        details=payload.get('details'),
    )
    return jsonify(result), 200


@callback_bp.route('/health', methods=['GET'])
def callback_health():
    """Callback receiver health plus reachability of the conversion webhook"""
    dispatcher = get_services().dispatcher
    return jsonify({
        'status': 'healthy',
        'service': 'pdf2csv-callback',
        'webhook': {
            'configured': dispatcher.configured,
            'reachable': dispatcher.health_check(),
        },
        'timestamp': datetime.now(timezone.utc).isoformat()
    })
