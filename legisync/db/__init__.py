"""
Database layer for legisync.

SQLAlchemy models, the explicit ``Database`` handle and repositories.
"""

from .session import Database
from .models import Base

__all__ = ["Database", "Base"]
