"""
MailPack Database Module.

Provides database connection management, repositories and the PackageStore.
Uses SQLAlchemy Core with an optional Cloud SQL Python Connector.
"""

from mailpack.db.connection import DatabaseConnection
from mailpack.db.store import PackageStore
from mailpack.db.unit_of_work import UnitOfWork

__all__ = ["DatabaseConnection", "PackageStore", "UnitOfWork"]
