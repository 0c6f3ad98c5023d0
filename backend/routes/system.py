"""System routes: /health, /tasks/*, /circuits, /events, /config."""

import logging

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import text

from version import __version__

bp = Blueprint("system", __name__, url_prefix="/api/v1")
logger = logging.getLogger(__name__)


@bp.route("/health", methods=["GET"])
def health():
    """Health check: database reachability plus scheduler and circuit state.

    Returns 503 when the database cannot be queried.
    """
    from extensions import db

    status = "healthy"
    services = {}
    try:
        db.session.execute(text("SELECT 1"))
        services["database"] = "OK"
    except Exception as e:
        logger.error("Health check database query failed: %s", e)
        services["database"] = f"error: {e}"
        status = "unhealthy"

    scheduler = current_app.extensions["scheduler"]
    services["scheduler"] = "running" if scheduler.running else "stopped"

    open_circuits = [
        s["name"] for s in current_app.extensions["breakers"].statuses()
        if s["state"] != "closed"
    ]
    services["circuits_open"] = len(open_circuits)

    body = {"status": status, "version": __version__, "services": services}
    return jsonify(body), 200 if status == "healthy" else 503


@bp.route("/tasks", methods=["GET"])
def list_tasks():
    """Scheduled tasks with their last run metadata."""
    return jsonify(current_app.extensions["scheduler"].status())


@bp.route("/tasks/<name>/run", methods=["POST"])
def run_task(name):
    """Trigger a task now.

    Query parameter ``wait=true`` runs the task in the request and returns
    its result; otherwise it starts on a background thread (202). A task
    that is already running is skipped (409).
    """
    scheduler = current_app.extensions["scheduler"]
    wait = request.args.get("wait", "false").lower() in ("true", "1", "yes")
    result = scheduler.trigger(name, background=not wait)
    if result["status"] == "skipped":
        return jsonify(result), 409
    return jsonify(result), 200 if wait else 202


@bp.route("/circuits", methods=["GET"])
def circuits():
    """Circuit breaker state for every indexer and download client seen so far."""
    return jsonify({
        "indexers": current_app.extensions["indexers"].circuit_status(),
        "download_clients": current_app.extensions["download_clients"].circuit_status(),
    })


@bp.route("/config", methods=["GET"])
def get_config():
    """Effective settings without credentials."""
    from config import get_settings
    return jsonify(get_settings().get_safe_config())


@bp.route("/events", methods=["GET"])
def event_catalog():
    """Domain events pushed over Socket.IO, with their payload keys."""
    from events import list_events
    return jsonify(list_events())
