"""Core app configuration, database, security and errors."""

from finance_app.core.config import Settings, get_settings
from finance_app.core.database import get_db, unit_of_work

__all__ = ["Settings", "get_settings", "get_db", "unit_of_work"]
