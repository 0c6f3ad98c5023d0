"""Domain events on a blinker bus, relayed to Socket.IO clients.

``emit_event`` is what engine modules call. ``init_event_system`` hooks a
relay onto every catalog signal once per process, so each event reaches
WebSocket listeners as ``{"event", "emitted_at", "data"}``.
"""

import logging
from datetime import UTC, datetime

from events.catalog import CATALOG_VERSION, EVENT_CATALOG

logger = logging.getLogger(__name__)

_relay_connected = False


def _relay_to(event_name: str):
    from extensions import socketio

    def relay(sender, data=None, **_kwargs):
        envelope = {
            "event": event_name,
            "emitted_at": datetime.now(UTC).isoformat(),
            "data": data or {},
        }
        try:
            socketio.emit(event_name, envelope)
        except Exception as exc:
            logger.warning("Socket.IO relay of %s failed: %s", event_name, exc)

    return relay


def init_event_system(app) -> None:
    """Connect the Socket.IO relay to every catalog signal (idempotent)."""
    global _relay_connected
    if _relay_connected:
        return
    for name, entry in EVENT_CATALOG.items():
        entry["signal"].connect(_relay_to(name), weak=False)
    _relay_connected = True
    logger.info("Relaying %d domain events (catalog v%d)", len(EVENT_CATALOG), CATALOG_VERSION)


def list_events() -> list[dict]:
    """Catalog metadata without the signal objects."""
    return [
        {"name": name, **{k: v for k, v in entry.items() if k != "signal"}}
        for name, entry in EVENT_CATALOG.items()
    ]


def emit_event(event_name: str, data: dict | None = None) -> None:
    """Send a catalog event; unknown names are logged and dropped."""
    entry = EVENT_CATALOG.get(event_name)
    if entry is None:
        logger.warning("Dropping unknown event %r", event_name)
        return

    from flask import current_app, has_app_context

    sender = current_app._get_current_object() if has_app_context() else None
    entry["signal"].send(sender, data=data or {})
