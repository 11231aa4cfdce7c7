"""Database layer for MedPath (SQLAlchemy 2.0 async)."""

from __future__ import annotations

from medpath.db.base import Base
from medpath.db.engine import DatabaseManager

__all__ = ["Base", "DatabaseManager"]
