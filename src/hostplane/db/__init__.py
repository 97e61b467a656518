"""Database helpers built on pypgkit."""

from hostplane.db.init import init_database
from hostplane.db.unit_of_work import UnitOfWork

__all__ = ["UnitOfWork", "init_database"]
