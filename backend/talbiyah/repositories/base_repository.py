# backend/talbiyah/repositories/base_repository.py
"""
Base repository for the Talbiyah lesson service.

Repositories own every query; services own the transaction boundary. No
repository method commits. SQLAlchemy errors are logged and re-raised as
``RepositoryException`` so services never see driver exceptions.
"""

import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Common data access helpers shared by the concrete repositories.

    Attributes:
        db: SQLAlchemy session (owned by the calling service)
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        """Retrieve an entity by primary key, optionally eager loading relationships."""
        try:
            query = self.db.query(self.model).filter(self.model.id == id)  # type: ignore[attr-defined]
            if load_relationships:
                query = self._apply_eager_loading(query)
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs: Any) -> T:
        """Add a new entity and flush it so generated ids are available."""
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()
            return entity
        except IntegrityError as exc:
            self.logger.error("Integrity error creating %s: %s", self.model.__name__, exc)
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}")

    def refresh(self, instance: T) -> None:
        self.db.refresh(instance)

    def _apply_eager_loading(self, query: Query) -> Query:
        """Override in subclasses to eager load relationships."""
        return query
