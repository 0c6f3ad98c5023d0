"""Grabarr error types and the Flask handlers that render them.

Every GrabarrError carries a stable code (``DL_001``, ``PRESET_001``...),
the HTTP status a route should answer with, optional context and a hint
for the operator. Routes just raise; the handlers below turn the error
into a JSON body tagged with the request id.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional

from flask import jsonify, g

logger = logging.getLogger(__name__)


# ---- Errors ------------------------------------------------------------------


class GrabarrError(Exception):
    """Base exception for all Grabarr application errors.

    Attributes:
        code: Machine-readable error code (e.g. "DL_001")
        http_status: HTTP status code to return
        context: Additional context data for debugging
        troubleshooting: Human-readable hint for resolving the issue
    """

    code: str = "GRABARR_000"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        context: Optional[dict] = None,
        troubleshooting: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.context = context or {}
        self.troubleshooting = troubleshooting


class DatabaseError(GrabarrError):
    """A database read or write failed."""

    code = "DB_001"
    http_status = 500


class ConfigurationError(GrabarrError):
    """Settings are missing or inconsistent."""

    code = "CFG_001"
    http_status = 400


class NotFoundError(GrabarrError):
    """A referenced row does not exist."""

    code = "NF_001"
    http_status = 404


class ValidationError(GrabarrError):
    """Request payload failed validation."""

    code = "VAL_001"
    http_status = 400


class PresetLockedError(GrabarrError):
    """Built-in quality presets cannot be modified or deleted."""

    code = "PRESET_001"
    http_status = 409

    def __init__(self, preset_name: str = "", **kwargs: object) -> None:
        super().__init__(
            f"Quality preset '{preset_name}' is built-in and cannot be changed",
            troubleshooting="Duplicate the preset and edit the copy instead.",
            **kwargs,  # type: ignore[arg-type]
        )


class InvalidTransitionError(GrabarrError):
    """Download state machine rejected a transition."""

    code = "DL_001"
    http_status = 409

    def __init__(self, current: str, target: str, **kwargs: object) -> None:
        super().__init__(
            f"Cannot move download from '{current}' to '{target}'",
            context={"current": current, "target": target},
            **kwargs,  # type: ignore[arg-type]
        )


class ImportCollisionError(GrabarrError):
    """Destination file exists and the import may not replace it."""

    code = "IMP_001"
    http_status = 409

    def __init__(self, dest_path: str = "", **kwargs: object) -> None:
        super().__init__(
            f"Destination already exists: {dest_path}",
            troubleshooting="Enable 'delete old file on upgrade' on the preset or remove the file manually.",
            **kwargs,  # type: ignore[arg-type]
        )


class ImportFailedError(GrabarrError):
    """Filesystem error while moving a downloaded file."""

    code = "IMP_002"
    http_status = 500


class IndexerError(GrabarrError):
    """Indexer unreachable or returned an unusable response."""

    code = "IDX_001"
    http_status = 502


class DownloadClientError(GrabarrError):
    """Download client refused a job or could not be reached."""

    code = "DLC_001"
    http_status = 502

    def __init__(self, message: str = "Download client error", **kwargs: object) -> None:
        kwargs.setdefault(
            "troubleshooting",
            "Check that the download client is running and the credentials are correct.",
        )
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---- JSON body ---------------------------------------------------------------


def _build_error_response(error: GrabarrError) -> dict:
    """Build a structured JSON error response from a GrabarrError."""
    response: dict = {
        "error": str(error),
        "code": error.code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    request_id = getattr(g, "request_id", None)
    if request_id:
        response["request_id"] = request_id

    if error.context:
        response["context"] = error.context

    if error.troubleshooting:
        response["troubleshooting"] = error.troubleshooting

    return response


# ---- Flask wiring ------------------------------------------------------------


def register_error_handlers(app) -> None:
    """Install request-id tagging and the JSON error handlers on app.

    Unexpected exceptions are logged with a traceback and answered with a
    generic 500; HTTP exceptions keep their own status.
    """

    @app.before_request
    def _set_request_id() -> None:
        g.request_id = str(uuid.uuid4())[:8]

    @app.errorhandler(GrabarrError)
    def _handle_grabarr_error(error: GrabarrError):
        logger.warning(
            "[%s] %s: %s (request_id=%s)",
            error.code,
            error.__class__.__name__,
            error,
            getattr(g, "request_id", "?"),
        )
        return jsonify(_build_error_response(error)), error.http_status

    @app.errorhandler(Exception)
    def _handle_generic_error(error: Exception):
        # Let Flask render 404/405 and friends
        from werkzeug.exceptions import HTTPException
        if isinstance(error, HTTPException):
            return error

        request_id = getattr(g, "request_id", "?")
        logger.exception("Unhandled exception (request_id=%s): %s", request_id, error)
        return jsonify({
            "error": "Internal server error",
            "code": "INTERNAL_ERROR",
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }), 500
