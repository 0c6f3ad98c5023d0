"""Shared Flask extensions: import from here to avoid circular imports.

The instances are created unbound; app.py binds them inside the
create_app() factory function.
"""

from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

socketio = SocketIO()
db = SQLAlchemy()
migrate = Migrate()
