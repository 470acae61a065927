"""
Repository implementations for the MailPack database.

Repositories provide a clean interface for database CRUD operations,
encapsulating SQLAlchemy queries and Pydantic model conversions.
"""

from mailpack.db.repositories.package import PackageRepository

__all__ = ["PackageRepository"]
