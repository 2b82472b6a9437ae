"""
SQLAlchemy mixins for soft deletion.

The mixin is optional: any mapped class with a nullable timestamp column named
after the configured marker is detected as soft-deletable on registration.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Type

from sqlalchemy import DateTime, event, select
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import Select

from .config import get_config


class SoftDeletionMixin:
    """
    Mixin adding the ``deleted_at`` marker column to SQLAlchemy models.

    Provides:
    - The nullable, indexed ``deleted_at`` timestamp
    - ``is_deleted`` for in-memory checks
    - Explicitly scoped select helpers
    - A place to declare dependent relations for ``register_all``

    Usage:
        class Category(Base, SoftDeletionMixin):
            __tablename__ = 'categories'
            __soft_deletion_relations__ = {'forums': 'cascade'}
            id = Column(Integer, primary_key=True)
            forums = relationship('Forum', back_populates='category')
    """

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None, index=True
    )

    # Relation name -> cascade policy, read by DescriptorTable.register_all
    __soft_deletion_relations__ = {}  # type: Dict[str, Any]

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def active_select(cls) -> Select[Any]:
        """Select active (non-deleted) records only."""
        return select(cls).where(cls.deleted_at.is_(None))

    @classmethod
    def deleted_select(cls) -> Select[Any]:
        """Select soft-deleted records only."""
        option = get_config().include_deleted_option
        return (
            select(cls)
            .where(cls.deleted_at.is_not(None))
            .execution_options(**{option: True})
        )

    @classmethod
    def all_select(cls) -> Select[Any]:
        """Select all records, deleted or not."""
        option = get_config().include_deleted_option
        return select(cls).execution_options(**{option: True})

    def to_dict(self, include_deleted_fields: bool = True) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Args:
            include_deleted_fields: Whether to include the marker column

        Returns:
            Dictionary representation of the model
        """
        result: Dict[str, Any] = {}

        table = getattr(self, "__table__", None)
        if table is None:
            return result

        for column in table.columns:
            if hasattr(self, column.name):
                value = getattr(self, column.name)
                if isinstance(value, datetime):
                    value = value.isoformat()
                result[column.name] = value

        if not include_deleted_fields:
            result.pop("deleted_at", None)

        return result


def prevent_hard_delete(mapper: Any, connection: Any, target: Any) -> None:
    """
    Prevent hard deletes on models with SoftDeletionMixin.

    This function should be connected to SQLAlchemy's before_delete event.
    """
    if isinstance(target, SoftDeletionMixin):
        raise RuntimeError(
            f"Hard delete attempted on {target.__class__.__name__}. "
            "Use soft_delete() instead."
        )


def register_hard_delete_guard(base_class: Type[Any]) -> None:
    """
    Forbid ``session.delete`` on every SoftDeletionMixin model of a base.

    Args:
        base_class: The declarative base class
    """
    for mapper in base_class.registry.mappers:
        model = mapper.class_
        if not issubclass(model, SoftDeletionMixin):
            continue
        if not event.contains(model, "before_delete", prevent_hard_delete):
            event.listen(model, "before_delete", prevent_hard_delete)
