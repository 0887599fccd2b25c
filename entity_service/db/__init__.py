"""Database Layer — SQLAlchemy declarative base and session factory helpers."""
