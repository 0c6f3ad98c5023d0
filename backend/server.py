"""Process entry point for the Grabarr API server.

Exposes a module-level ``app`` for WSGI servers. Only one process may run
the scheduler, so serve it with a single worker.
"""

from app import create_app
from config import get_settings
from extensions import socketio

app = create_app()

if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=get_settings().port, allow_unsafe_werkzeug=True)
