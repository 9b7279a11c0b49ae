"""Database package."""

from projecthub.db.base import Base, BaseModel
from projecthub.db.session import get_db_session

__all__ = ["Base", "BaseModel", "get_db_session"]
