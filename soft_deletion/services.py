"""
Service layer for soft deletion.

Wires the descriptor table, hook registry, scope filter, deletion engine and
bulk operator together behind one object that exposes the declaration and
runtime surface.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement

from .bulk import BulkOperator, BulkResult
from .config import SoftDeletionConfig, get_config
from .descriptors import AUTO, DescriptorTable, RecordDescriptor, RelationSpec
from .engine import DeletionEngine, UnitOfWork
from .hooks import Hook, HookRegistry
from .scoping import ScopeFilter


class SoftDeletion:
    """
    Soft deletion for a set of SQLAlchemy models.

    Usage:
        soft_deletion = SoftDeletion()
        soft_deletion.register(Category, relations={"forums": "cascade"})
        soft_deletion.register(Forum)
        soft_deletion.after_soft_delete(Category, notify_moderators)
        soft_deletion.install(SessionLocal)

        soft_deletion.soft_delete(session, category)
        with soft_deletion.with_deleted(Category):
            category = soft_deletion.find(session, Category, category.id)
    """

    def __init__(
        self,
        config: Optional[SoftDeletionConfig] = None,
        descriptors: Optional[DescriptorTable] = None,
        hooks: Optional[HookRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the soft deletion service.

        Args:
            config: Configuration; the global configuration when omitted
            descriptors: Optional pre-populated descriptor table
            hooks: Optional hook registry; a registry bound to this service's
                descriptors when omitted
            clock: Optional callable returning marker timestamps
        """
        self.config = config if config is not None else get_config()
        self.descriptors = (
            descriptors if descriptors is not None else DescriptorTable(self.config)
        )
        self.hooks = (
            hooks if hooks is not None else HookRegistry(self.descriptors, self.config)
        )
        self.scope = ScopeFilter(self.descriptors, self.config)
        self.engine = DeletionEngine(
            self.descriptors, self.scope, self.hooks, self.config, clock
        )
        self.bulk = BulkOperator(self.engine, self.scope, self.descriptors, self.config)

    # Declaration surface

    def register(
        self,
        model: type,
        marker: Optional[str] = AUTO,
        relations: RelationSpec = (),
        validation_method: Optional[str] = AUTO,
    ) -> RecordDescriptor:
        """Declare a model, its marker and its dependent relations."""
        return self.descriptors.register(
            model,
            marker=marker,
            relations=relations,
            validation_method=validation_method,
        )

    def register_all(self, base: Any) -> List[RecordDescriptor]:
        return self.descriptors.register_all(base)

    def after_soft_delete(self, model: type, *hooks: Hook) -> None:
        """Append after-soft-delete hooks for a model."""
        self.hooks.register(model, *hooks)

    def hooks_for(self, model: type) -> Tuple[Hook, ...]:
        self.descriptors.get(model)
        return self.hooks.hooks_for(model)

    def install(self, target: Any = Session) -> None:
        """Hide soft-deleted rows from ORM selects issued through ``target``."""
        self.scope.install(target)

    def uninstall(self, target: Any = Session) -> None:
        self.scope.uninstall(target)

    # Runtime operations

    def soft_delete(self, session: Session, record: Any) -> Any:
        return self.engine.soft_delete(session, record)

    def soft_undelete(
        self, session: Session, record: Any, include_dependents: bool = False
    ) -> Any:
        return self.engine.soft_undelete(
            session, record, include_dependents=include_dependents
        )

    def soft_delete_if_supported(self, session: Session, record: Any) -> Any:
        return self.engine.soft_delete_if_supported(session, record)

    def attempt_soft_delete(self, session: Session, record: Any) -> bool:
        return self.engine.attempt_soft_delete(session, record)

    def soft_delete_all(self, session: Session, model: type, selector: Any) -> BulkResult:
        return self.bulk.soft_delete_all(session, model, selector)

    def is_deleted(self, record: Any) -> bool:
        return self.engine.is_deleted(record)

    def atomic(self, session: Session) -> "AbstractContextManager[UnitOfWork]":
        """Group several operations into one unit of work."""
        return self.engine.atomic(session)

    # Scoping

    def default_query(self, model: type) -> ColumnElement[bool]:
        return self.scope.default_query(model)

    def with_unrestricted_visibility(self, *models: type) -> "AbstractContextManager[None]":
        return self.scope.with_unrestricted_visibility(*models)

    with_deleted = with_unrestricted_visibility

    def with_default_visibility(self, *models: type) -> "AbstractContextManager[None]":
        return self.scope.with_default_visibility(*models)

    def find(self, session: Session, model: type, ident: Any) -> Optional[Any]:
        return self.scope.find(session, model, ident)

    def exists(self, session: Session, model: type, ident: Any) -> bool:
        return self.scope.exists(session, model, ident)
