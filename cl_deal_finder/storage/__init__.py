"""
Persistence layer for saved searches and evaluated listings.
"""

from .database import Base, create_db_engine, create_session_factory, init_db
from .repository import DuplicateListingError, ScanRepository

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "ScanRepository",
    "DuplicateListingError",
]
