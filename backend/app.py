"""Application factory for the Grabarr Flask API server.

create_app() configures logging and extensions, wires the acquisition
services onto ``app.extensions``, registers the blueprints and, outside of
tests, starts the task scheduler.
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler

from flask import Flask, g, has_app_context

from extensions import socketio

TEXT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, tagged with the request id when there is one."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
            "thread": record.threadName,
        }
        if has_app_context() and getattr(g, "request_id", None):
            payload["request_id"] = g.request_id
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["error"] = {"type": type(exc).__name__, "detail": str(exc)}
        return json.dumps(payload, default=str)


class LiveLogHandler(logging.Handler):
    """Pushes formatted records to Socket.IO listeners as ``log_entry``."""

    def __init__(self, sio):
        super().__init__()
        self.sio = sio

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.sio.emit("log_entry", {"level": record.levelname, "message": self.format(record)})
        except Exception:
            self.handleError(record)


_handlers_installed = False


def _configure_logging(settings) -> None:
    """Apply the level on every call; install handlers only once per process."""
    global _handlers_installed
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=TEXT_LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    if _handlers_installed:
        return

    if settings.log_format.lower() == "json":
        file_formatter: logging.Formatter = JsonLogFormatter()
        for handler in root.handlers:
            handler.setFormatter(file_formatter)
    else:
        file_formatter = logging.Formatter(TEXT_LOG_FORMAT)

    if settings.log_file:
        try:
            parent = os.path.dirname(settings.log_file)
            if parent:
                os.makedirs(parent, exist_ok=True)
            rotating = RotatingFileHandler(
                settings.log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8",
            )
            rotating.setLevel(level)
            rotating.setFormatter(file_formatter)
            root.addHandler(rotating)
        except OSError as e:
            logging.getLogger(__name__).warning("Log file %s unavailable: %s", settings.log_file, e)

    live = LiveLogHandler(socketio)
    live.setLevel(level)
    live.setFormatter(logging.Formatter(TEXT_LOG_FORMAT))
    root.addHandler(live)
    _handlers_installed = True


def create_app(testing=False):
    """Build the Flask app with its database, services and routes.

    Args:
        testing: Leave the scheduler stopped.
    """
    app = Flask(__name__)

    from config import get_settings
    settings = get_settings()

    _configure_logging(settings)
    logger = logging.getLogger(__name__)

    socketio.init_app(app, cors_allowed_origins="*", async_mode="threading")

    # Structured error handlers (GrabarrError -> JSON, generic 500)
    from error_handler import register_error_handlers
    register_error_handlers(app)

    # Database: Flask-SQLAlchemy, with Flask-Migrate for schema changes
    app.config["SQLALCHEMY_DATABASE_URI"] = settings.get_database_url()
    is_sqlite = not settings.database_url or settings.database_url.startswith("sqlite")
    if is_sqlite:
        # Timer and poll threads share the database file
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "connect_args": {"check_same_thread": False, "timeout": 15},
        }
    else:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {"pool_pre_ping": True}

    from extensions import db as sa_db, migrate as sa_migrate
    sa_db.init_app(app)
    sa_migrate.init_app(app, sa_db, render_as_batch=True)

    with app.app_context():
        import db.models  # noqa: F401
        if is_sqlite and not settings.database_url:
            db_dir = os.path.dirname(os.path.abspath(settings.db_path))
            os.makedirs(db_dir, exist_ok=True)
        sa_db.create_all()
        if is_sqlite:
            from sqlalchemy import text
            with sa_db.engine.connect() as conn:
                conn.execute(text("PRAGMA journal_mode=WAL"))
                conn.execute(text("PRAGMA busy_timeout=5000"))
                conn.commit()

        from db.repositories.naming import NamingTemplateRepository
        from db.repositories.presets import QualityPresetRepository
        seeded = QualityPresetRepository().seed_built_in_presets()
        if seeded:
            logger.info("Seeded %d built-in quality presets", seeded)
        NamingTemplateRepository().seed_defaults()

        from events import init_event_system
        init_event_system(app)

    _init_services(app, settings)

    from routes import register_blueprints
    register_blueprints(app)
    _register_app_routes(app)

    @socketio.on("connect")
    def handle_connect():
        logger.debug("WebSocket client connected")

    @socketio.on("disconnect")
    def handle_disconnect():
        logger.debug("WebSocket client disconnected")

    if not testing and settings.scheduler_enabled:
        app.extensions["scheduler"].start()

    return app


def _init_services(app, settings) -> None:
    """Build the acquisition services and store them on app.extensions."""
    from blocklist_manager import BlocklistManager
    from circuit_breaker import BreakerRegistry
    from download_clients import DownloadClientManager
    from download_tracker import DownloadTracker
    from grab_engine import GrabEngine
    from import_pipeline import ImportPipeline
    from indexers import IndexerManager
    from metrics import set_circuit_state
    from scheduler import Scheduler, default_tasks

    breakers = BreakerRegistry(
        failure_threshold=settings.circuit_breaker_failure_threshold,
        cooldown_seconds=settings.circuit_breaker_cooldown_seconds,
        on_state_change=set_circuit_state,
    )
    indexers = IndexerManager(settings, breakers)
    clients = DownloadClientManager(settings, breakers)
    engine = GrabEngine(settings, indexers, clients)
    tracker = DownloadTracker(settings, clients, engine=engine)
    pipeline = ImportPipeline(settings)
    blocklist = BlocklistManager(settings)
    scheduler = Scheduler(app, default_tasks(settings, engine, tracker, pipeline, blocklist))

    app.extensions.update({
        "breakers": breakers,
        "indexers": indexers,
        "download_clients": clients,
        "engine": engine,
        "tracker": tracker,
        "import_pipeline": pipeline,
        "blocklist_manager": blocklist,
        "scheduler": scheduler,
    })


def _register_app_routes(app):
    """Register app-level routes: /metrics and the API index."""
    from flask import Response, jsonify

    @app.route("/metrics", methods=["GET"])
    def prometheus_metrics():
        """Prometheus metrics endpoint."""
        from config import get_settings
        from metrics import generate_metrics
        body, content_type = generate_metrics(get_settings().db_path)
        return Response(body, mimetype=content_type)

    @app.route("/", methods=["GET"])
    def index():
        from version import __version__
        return jsonify({
            "name": "Grabarr",
            "version": __version__,
            "api": "/api/v1/health",
        })


if __name__ == "__main__":
    from config import get_settings
    app = create_app()
    socketio.run(app, host="0.0.0.0", port=get_settings().port, debug=False, allow_unsafe_werkzeug=True)
