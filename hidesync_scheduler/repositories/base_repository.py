# File: hidesync_scheduler/repositories/base_repository.py

from typing import Generic, TypeVar, Dict, Any, Optional, Type

from sqlalchemy import select
from sqlalchemy.orm import Session

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Base repository class providing common query operations for all entities using
    modern SQLAlchemy select() syntax.

    Attributes:
        session (Session): The SQLAlchemy session for database operations
        model (Type[T]): The SQLAlchemy model class this repository manages
    """

    def __init__(self, session: Session, model: Optional[Type[T]] = None):
        """
        Initialize the repository with a database session and the specific model.

        Args:
            session (Session): SQLAlchemy database session
            model (Type[T]): The SQLAlchemy model class this repository manages.
                             Subclasses may set it after calling super().__init__.
        """
        self.session = session
        self.model = model

    def _get_model(self) -> Type[T]:
        """Ensures the model is set before use."""
        if self.model is None:
            raise TypeError(f"Repository model is not set for {self.__class__.__name__}")
        return self.model

    def get_by_id(self, id: Any) -> Optional[T]:
        """
        Retrieve an entity by its primary key ID.

        Args:
            id: The primary key ID of the entity

        Returns:
            Optional[T]: The entity if found, None otherwise
        """
        model_class = self._get_model()
        stmt = select(model_class).where(getattr(model_class, "id") == id)
        return self.session.execute(stmt).scalar_one_or_none()

    def _apply_filters(self, stmt, filters: Dict[str, Any]):
        """
        Add equality conditions for the filters that name a model column.

        Args:
            stmt: The select statement to narrow
            filters (Dict[str, Any]): field=value pairs; enum values are compared by value

        Returns:
            The narrowed statement
        """
        model_class = self._get_model()
        for key, value in filters.items():
            if hasattr(model_class, key):
                if hasattr(value, "value"):
                    value = value.value
                stmt = stmt.where(getattr(model_class, key) == value)
        return stmt
