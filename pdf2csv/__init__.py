"""
PDF2CSV Application Factory
"""
import atexit
import logging
from datetime import datetime, timezone

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

from pdf2csv.config import config

db = SQLAlchemy()

logger = logging.getLogger(__name__)


def build_services(app):
    """Construct the job registry and its collaborators for one app."""
    from pdf2csv.services import Services
    from pdf2csv.services.blob_store import build_blob_store
    from pdf2csv.services.callbacks import CallbackHandler
    from pdf2csv.services.dispatcher import Dispatcher
    from pdf2csv.services.downloads import DownloadResolver
    from pdf2csv.services.job_registry import JobRegistry
    from pdf2csv.services.jobs import JobService

    cfg = app.config
    registry = JobRegistry(
        ttl_seconds=cfg["JOB_TTL_SECONDS"],
        sweep_interval_seconds=cfg["JOB_SWEEP_INTERVAL_SECONDS"],
    )
    blob_store = build_blob_store(cfg)
    dispatcher = Dispatcher(
        cfg["CONVERSION_WEBHOOK_URL"],
        timeout=cfg["DISPATCH_TIMEOUT_SECONDS"],
        max_bytes=cfg["DISPATCH_MAX_BYTES"],
        user_agent=f"pdf2csv-backend/{cfg['APP_VERSION']}",
    )
    return Services(
        registry=registry,
        blob_store=blob_store,
        dispatcher=dispatcher,
        callbacks=CallbackHandler(registry, blob_store, cfg["CALLBACK_SECRET"]),
        downloads=DownloadResolver(registry, blob_store),
        jobs=JobService(registry, dispatcher, run_async=cfg["DISPATCH_ASYNC"]),
    )


def create_app(config_name='default', **overrides):
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.config.update(overrides)

    from pdf2csv.logging_config import setup_logging
    setup_logging(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)

    from pdf2csv.errors import register_error_handlers
    from pdf2csv.services import EXTENSION_KEY

    services = build_services(app)
    app.extensions[EXTENSION_KEY] = services

    # Register blueprints
    from pdf2csv.api import api_bp
    from pdf2csv.callback import callback_bp
    from pdf2csv.files import files_bp

    app.register_blueprint(api_bp, url_prefix='/api/jobs')
    app.register_blueprint(callback_bp, url_prefix='/api/n8n')
    app.register_blueprint(files_bp, url_prefix='/api/files')
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/healthz')
    def healthz():
        """Health check for load balancers and monitoring"""
        storage_ok = services.blob_store.health_check()
        return jsonify({
            "status": "ok" if storage_ok else "degraded",
            "version": app.config["APP_VERSION"],
            "storage": {"type": services.blob_store.kind, "ok": storage_ok},
            "conversion_webhook_configured": services.dispatcher.configured,
            "jobs": services.registry.stats(),
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    # Version endpoint
    @app.route('/version')
    def version():
        """Version and build info"""
        return jsonify({
            "version": app.config["APP_VERSION"],
            "build_time": app.config["BUILD_TIME"],
            "git_commit": app.config["GIT_COMMIT"],
        })

    with app.app_context():
        # Only the database storage backend has tables; create them if missing
        db.create_all()

    if app.config["JOB_SWEEP_ENABLED"]:
        services.registry.start()
        atexit.register(services.registry.stop)

    logger.info(
        "PDF2CSV backend ready (storage=%s, webhook=%s)",
        services.blob_store.kind,
        app.config["CONVERSION_WEBHOOK_URL"] or "NOT_CONFIGURED",
    )
    return app


def shutdown_app(app) -> None:
    """Stop background work owned by the app (the job sweeper)."""
    from pdf2csv.services import EXTENSION_KEY

    services = app.extensions.get(EXTENSION_KEY)
    if services is not None:
        services.registry.stop()
