"""
Visibility scoping for soft-deleted records.

Default scoping is an explicit predicate (``marker IS NULL``) composed into
statements, either by the caller through :meth:`ScopeFilter.visible` or
automatically by the ``do_orm_execute`` listener that :meth:`ScopeFilter.install`
attaches to a session, session class or sessionmaker.

Lifting the filter is scoped: :meth:`ScopeFilter.with_unrestricted_visibility`
pushes the widened state onto a ``ContextVar`` and pops it with the reset token
on exit, so nested blocks always restore the state they found.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional

from sqlalchemy import event, select, true, tuple_
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria
from sqlalchemy.sql import ColumnElement, Select

from .config import SoftDeletionConfig, get_config
from .descriptors import DescriptorTable

logger = logging.getLogger(__name__)

# Models whose marker filter is lifted in the current context
_unrestricted: ContextVar[FrozenSet[type]] = ContextVar(
    "soft_deletion_unrestricted", default=frozenset()
)


class ScopeFilter:
    """Builds default-scoped queries and manages visibility overrides."""

    def __init__(
        self,
        descriptors: DescriptorTable,
        config: Optional[SoftDeletionConfig] = None,
    ):
        self._descriptors = descriptors
        self._config = config

    @property
    def option_name(self) -> str:
        """Execution option that lifts the marker filter for one statement."""
        config = self._config if self._config is not None else get_config()
        return config.include_deleted_option

    def default_query(self, model: type) -> ColumnElement[bool]:
        """
        Predicate excluding soft-deleted rows of ``model``.

        Registered models without a marker get the unrestricted predicate.

        Raises:
            UnconfiguredType: If the model is not registered
        """
        descriptor = self._descriptors.get(model)
        if not descriptor.soft_deletable:
            return true()
        return descriptor.marker_column.is_(None)

    def criteria(self, model: type) -> Optional[ColumnElement[bool]]:
        """Marker predicate, or ``None`` for unregistered or marker-less models."""
        descriptor = self._descriptors.find(model)
        if descriptor is None or not descriptor.soft_deletable:
            return None
        return descriptor.marker_column.is_(None)

    def is_unrestricted(self, model: type) -> bool:
        return model in _unrestricted.get()

    @contextmanager
    def with_unrestricted_visibility(self, *models: type) -> Iterator[None]:
        """
        Lift the marker filter for ``models`` for the duration of the block.

        Usage:
            with scope.with_unrestricted_visibility(Category):
                category = scope.find(session, Category, category_id)
        """
        for model in models:
            self._descriptors.get(model)

        token = _unrestricted.set(_unrestricted.get() | frozenset(models))
        try:
            yield
        finally:
            _unrestricted.reset(token)

    @contextmanager
    def with_default_visibility(self, *models: type) -> Iterator[None]:
        """Re-apply the marker filter for ``models`` inside a wider block."""
        for model in models:
            self._descriptors.get(model)

        token = _unrestricted.set(_unrestricted.get() - frozenset(models))
        try:
            yield
        finally:
            _unrestricted.reset(token)

    def visible(self, model: type, stmt: Optional[Select[Any]] = None) -> Select[Any]:
        """
        Compose the current visibility for ``model`` into a select.

        The statement is marked with the include-deleted option so an
        installed listener does not filter it a second time.
        """
        if stmt is None:
            stmt = select(model)
        if not self.is_unrestricted(model):
            stmt = stmt.where(self.default_query(model))
        return stmt.execution_options(**{self.option_name: True})

    def find(self, session: Session, model: type, ident: Any) -> Optional[Any]:
        """
        Look up a record by primary key under the current visibility.

        The identity map is not consulted, so a record that was soft deleted
        in this session is not returned under default scoping.
        """
        primary_key = sa_inspect(model).primary_key
        values = ident if isinstance(ident, tuple) else (ident,)
        if len(values) != len(primary_key):
            raise ValueError(
                f"{model.__name__} has a {len(primary_key)}-column primary key, "
                f"got {len(values)} value(s)"
            )

        stmt = select(model).where(
            *[column == value for column, value in zip(primary_key, values)]
        )
        return session.execute(self.visible(model, stmt)).scalars().first()

    def exists(self, session: Session, model: type, ident: Any) -> bool:
        return self.find(session, model, ident) is not None

    def detach(self, session: Session, records: Iterable[Any]) -> None:
        """
        Remove soft-deleted records from the session's identity map.

        ``Session.get`` and many-to-one lazy loads answer from the identity
        map without issuing a statement, so a deleted record left there would
        stay reachable. Column attributes are loaded first, then the records
        are expunged and stay readable while detached. Records whose marker
        is clear again are kept.
        """
        groups: Dict[type, List[Any]] = {}
        seen = set()
        for record in records:
            if id(record) in seen or record not in session:
                continue
            seen.add(id(record))
            descriptor = self._descriptors.find(type(record))
            if descriptor is None or not descriptor.soft_deletable:
                continue
            if getattr(record, descriptor.marker) is None:
                continue
            groups.setdefault(type(record), []).append(record)

        for model, group in groups.items():
            primary_key = sa_inspect(model).primary_key
            identities = [sa_inspect(record).identity for record in group]
            if len(primary_key) == 1:
                criterion = primary_key[0].in_([ident[0] for ident in identities])
            else:
                criterion = tuple_(*primary_key).in_(identities)
            stmt = (
                select(model)
                .where(criterion)
                .execution_options(
                    **{self.option_name: True, "populate_existing": True}
                )
            )
            session.execute(stmt).scalars().all()

            for record in group:
                session.expunge(record)
            logger.debug(f"Detached {len(group)} deleted {model.__name__} record(s)")

    def install(self, target: Any = Session) -> None:
        """
        Apply default scoping to every ORM select issued through ``target``.

        Args:
            target: Session class, Session instance or sessionmaker
        """
        if not event.contains(target, "do_orm_execute", self._apply_default_scope):
            event.listen(target, "do_orm_execute", self._apply_default_scope)

    def uninstall(self, target: Any = Session) -> None:
        if event.contains(target, "do_orm_execute", self._apply_default_scope):
            event.remove(target, "do_orm_execute", self._apply_default_scope)

    def _apply_default_scope(self, state: ORMExecuteState) -> None:
        # Column refreshes of already-loaded records stay unfiltered
        if not state.is_select or state.is_column_load:
            return
        if state.execution_options.get(self.option_name, False):
            return

        unrestricted = _unrestricted.get()
        options = [
            with_loader_criteria(
                descriptor.model,
                descriptor.marker_column.is_(None),
                include_aliases=True,
                propagate_to_loaders=False,
            )
            for descriptor in self._descriptors.soft_deletable()
            if descriptor.model not in unrestricted
        ]
        if options:
            state.statement = state.statement.options(*options)
