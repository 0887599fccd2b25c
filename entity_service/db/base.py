"""SQLAlchemy Declarative Base — shared base class for host-application models.

Invariants:
    - Models used with SqlAlchemyStorage inherit from Base
    - Column names match the capability columns (id, uuid, name, title, description,
      is_enabled, is_translatable, translation_context, owner_module_id)

Design Decisions:
    - Separate file for Base: avoids circular imports between models
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for entity models."""
    pass
