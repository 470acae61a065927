"""
Base repository with common CRUD operations.

Provides generic database operations that can be inherited by specific repositories.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Generic, Sequence, TypeVar

from pydantic import BaseModel
from sqlalchemy import Table, select
from sqlalchemy.orm import Session

ModelT = TypeVar("ModelT", bound=BaseModel)


def model_to_jsonb(model: BaseModel | None) -> dict | None:
    """Serialize Pydantic model for JSON storage."""
    if model is None:
        return None
    return model.model_dump(mode="json")


def models_to_jsonb(models: Sequence[BaseModel]) -> list[dict]:
    """Serialize list of Pydantic models for JSON storage."""
    return [m.model_dump(mode="json") for m in models]


def jsonb_to_model(data: dict | None, model_class: type[ModelT]) -> ModelT | None:
    """Deserialize JSON to Pydantic model."""
    if data is None:
        return None
    return model_class.model_validate(data)


def jsonb_to_models(data: list[dict] | None, model_class: type[ModelT]) -> list[ModelT]:
    """Deserialize JSON array to list of Pydantic models."""
    if data is None:
        return []
    return [model_class.model_validate(d) for d in data]


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class BaseRepository(ABC, Generic[ModelT]):
    """
    Base repository with common CRUD operations.

    Subclasses must implement:
    - table property: Return the SQLAlchemy Table
    - _row_to_model: Convert database row to Pydantic model
    - _model_to_dict: Convert Pydantic model to database dict
    """

    def __init__(self, session: Session):
        self.session = session

    @property
    @abstractmethod
    def table(self) -> Table:
        """SQLAlchemy table for this repository."""
        pass

    @abstractmethod
    def _row_to_model(self, row: Any) -> ModelT:
        """Convert database row to Pydantic model."""
        pass

    @abstractmethod
    def _model_to_dict(self, model: ModelT) -> dict:
        """Convert Pydantic model to database dict."""
        pass

    def get_by_id(self, id: str) -> ModelT | None:
        """
        Get entity by ID.

        Args:
            id: Identifier of the entity

        Returns:
            Pydantic model or None if not found
        """
        stmt = select(self.table).where(self.table.c.id == id)
        row = self.session.execute(stmt).first()

        if row is None:
            return None

        return self._row_to_model(row)

    def create(self, model: ModelT) -> ModelT:
        """
        Create new entity.

        Args:
            model: Pydantic model to create

        Returns:
            The created model as stored
        """
        data = self._model_to_dict(model)
        stmt = self.table.insert().values(**data).returning(self.table)
        row = self.session.execute(stmt).first()
        return self._row_to_model(row)
