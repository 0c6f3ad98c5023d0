"""Database package - ORM models and repositories.

Models live in db.models and are registered on the shared Flask-SQLAlchemy
instance from extensions.py; db.repositories wraps all queries.
"""
