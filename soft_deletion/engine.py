"""
Deletion engine: the soft delete / undelete state transitions.

A record is ``Active`` while its marker is ``None`` and ``Deleted`` once the
marker holds a timestamp. Transitions run inside one unit of work together
with the whole cascade over the record's dependent relations; a failure at any
depth rolls the cascade back. Hooks fire only after the outermost unit of work
has committed.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, List, Optional

from pydantic import ValidationError
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.orm import Session, with_parent

from .config import SoftDeletionConfig, get_config
from .descriptors import CascadePolicy, DescriptorTable, RecordDescriptor, ResolvedRelation
from .exceptions import HookFailed, NotSoftDeletable, ValidationFailed, describe_record
from .hooks import HookError, HookRegistry, get_hook_registry
from .scoping import ScopeFilter

logger = logging.getLogger(__name__)

_UNIT_KEY = "soft_deletion.unit_of_work"


class UnitOfWork:
    """
    State shared by every transition of one outermost unit of work.

    All markers set within the unit carry the same timestamp, which is how
    an undelete recognises dependents deleted by the same owner.
    """

    def __init__(self, stamped_at: datetime):
        self.stamped_at = stamped_at
        # One list per nesting level; merged into the parent on success
        self.staged: List[List[Any]] = [[]]

    def stage(self, record: Any) -> None:
        self.staged[-1].append(record)


class DeletionEngine:
    """
    Executes soft delete and undelete transitions with cascading.

    Usage:
        engine = DeletionEngine(descriptors, ScopeFilter(descriptors))
        engine.soft_delete(session, category)
        engine.soft_undelete(session, category)
    """

    def __init__(
        self,
        descriptors: DescriptorTable,
        scope: Optional[ScopeFilter] = None,
        hooks: Optional[HookRegistry] = None,
        config: Optional[SoftDeletionConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the deletion engine.

        Args:
            descriptors: Descriptor table of registered models
            scope: Scope filter used to select dependents
            hooks: Hook registry; the process-wide registry when omitted
            config: Configuration; the global configuration when omitted
            clock: Optional callable returning the marker timestamp
        """
        self.descriptors = descriptors
        self.scope = scope if scope is not None else ScopeFilter(descriptors, config)
        self.hooks = hooks if hooks is not None else get_hook_registry()
        self._config = config
        self._clock = clock

    @property
    def config(self) -> SoftDeletionConfig:
        return self._config if self._config is not None else get_config()

    def now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        if self.config.use_utc:
            return datetime.now(timezone.utc)
        return datetime.now()

    @contextmanager
    def atomic(self, session: Session) -> Iterator[UnitOfWork]:
        """
        Run a block as one unit of work.

        The outermost call commits the session's transaction (joining one
        that was already begun) and fires the hooks staged within it. Nested
        calls run inside a SAVEPOINT and resolve to the outermost boundary.
        Any exception rolls back the block and is re-raised.

        Records soft deleted within the unit are detached from the session
        before it commits, with their columns loaded; hooks receive them
        detached.
        """
        unit = session.info.get(_UNIT_KEY)
        if unit is not None:
            unit.staged.append([])
            try:
                with session.begin_nested():
                    yield unit
            except BaseException:
                unit.staged.pop()
                raise
            staged = unit.staged.pop()
            unit.staged[-1].extend(staged)
            return

        unit = UnitOfWork(self.now())
        session.info[_UNIT_KEY] = unit
        detached: List[Any] = []
        try:
            if not session.in_transaction():
                session.begin()
            try:
                yield unit
                detached = [
                    record for record in unit.staged[0] if record in session
                ]
                self.scope.detach(session, detached)
                session.commit()
            except BaseException:
                for record in detached:
                    if sa_inspect(record).detached:
                        session.add(record)
                session.rollback()
                raise
        finally:
            session.info.pop(_UNIT_KEY, None)

        self._notify(unit.staged[0])

    def soft_delete(self, session: Session, record: Any) -> Any:
        """
        Soft delete a record and cascade to its dependents.

        Args:
            session: SQLAlchemy session the record belongs to
            record: Record to delete

        Returns:
            The deleted record, or the session's own copy of it when a
            detached record was passed in and the session already holds one

        Raises:
            UnconfiguredType: Record type is not registered
            NotSoftDeletable: Record type has no deletion marker
            ValidationFailed: Record or a cascaded dependent is invalid
            PersistenceFailure: Lower-layer failure; the cascade is rolled back
            HookFailed: A hook failed and ``raise_hook_errors`` is enabled
        """
        descriptor = self._require_marker(record)
        record = self._attach(session, record)

        with self.atomic(session) as unit:
            count = self._delete(session, record, descriptor, unit)

        logger.info(
            f"Soft deleted {describe_record(record)} "
            f"({count - 1} dependent(s) in cascade)"
        )
        return record

    def soft_delete_if_supported(self, session: Session, record: Any) -> Any:
        """Soft delete, or return the record untouched if its type has no marker."""
        descriptor = self.descriptors.get(type(record))
        if not descriptor.soft_deletable:
            logger.debug(f"{type(record).__name__} has no marker, skipping delete")
            return record
        return self.soft_delete(session, record)

    def attempt_soft_delete(self, session: Session, record: Any) -> bool:
        """Soft delete, returning ``False`` instead of raising on invalid records."""
        try:
            self.soft_delete(session, record)
        except ValidationFailed as e:
            logger.info(f"Soft delete of {describe_record(record)} rejected: {e}")
            return False
        return True

    def soft_undelete(
        self, session: Session, record: Any, include_dependents: bool = False
    ) -> Any:
        """
        Clear a record's deletion marker.

        Dependents are left as they are unless ``include_dependents`` is set,
        in which case cascade dependents deleted by the same transition as
        the record are restored too. No hooks fire.

        Returns:
            The restored record, attached to ``session``
        """
        descriptor = self._require_marker(record)
        record = self._attach(session, record)

        with self.atomic(session):
            self._undelete(session, record, descriptor, include_dependents)

        logger.info(f"Restored {describe_record(record)}")
        return record

    def is_deleted(self, record: Any) -> bool:
        descriptor = self.descriptors.get(type(record))
        if not descriptor.soft_deletable:
            return False
        return getattr(record, descriptor.marker) is not None

    def _attach(self, session: Session, record: Any) -> Any:
        """Return ``record`` attached to ``session``, re-adding it if detached."""
        state = sa_inspect(record)
        if not state.detached:
            return record
        current = session.identity_map.get(state.key)
        if current is not None:
            return current
        session.add(record)
        return record

    def _require_marker(self, record: Any) -> RecordDescriptor:
        descriptor = self.descriptors.get(type(record))
        if not descriptor.soft_deletable:
            raise NotSoftDeletable(type(record), record)
        return descriptor

    def _delete(
        self,
        session: Session,
        record: Any,
        descriptor: RecordDescriptor,
        unit: UnitOfWork,
    ) -> int:
        """Mark one record and walk its relations. Returns records marked."""
        self._validate(record, descriptor)

        # Re-deleting keeps the original timestamp
        if getattr(record, descriptor.marker) is None:
            self._set_marker(record, descriptor, unit.stamped_at)
        session.flush()
        unit.stage(record)
        count = 1

        for relation in descriptor.relations:
            if relation.policy is CascadePolicy.INDEPENDENT:
                continue

            dependents = self._dependents(
                session,
                record,
                relation,
                active_only=relation.policy is CascadePolicy.CASCADE,
            )
            logger.debug(
                f"{relation.policy.value} {relation.name} of "
                f"{describe_record(record)}: {len(dependents)} dependent(s)"
            )

            if relation.policy is CascadePolicy.NULLIFY:
                for dependent in dependents:
                    for key in relation.foreign_keys:
                        setattr(dependent, key, None)
            else:
                for dependent in dependents:
                    target = self.descriptors.find(type(dependent))
                    if target is not None and target.soft_deletable:
                        count += self._delete(session, dependent, target, unit)
                    else:
                        session.delete(dependent)

            session.flush()
            session.expire(record, [relation.name])

        return count

    def _undelete(
        self,
        session: Session,
        record: Any,
        descriptor: RecordDescriptor,
        include_dependents: bool,
    ) -> None:
        stamped_at = getattr(record, descriptor.marker)
        self._set_marker(record, descriptor, None)
        session.flush()

        if not include_dependents or stamped_at is None:
            return

        for relation in descriptor.relations:
            if relation.policy is not CascadePolicy.CASCADE:
                continue
            target = self.descriptors.find(relation.target)
            if target is None or not target.soft_deletable:
                continue

            stmt = (
                select(relation.target)
                .where(with_parent(record, relation.attribute))
                .where(target.marker_column == stamped_at)
                .order_by(*sa_inspect(relation.target).primary_key)
                .execution_options(**{self.scope.option_name: True})
            )
            for dependent in session.execute(stmt).scalars().all():
                dependent_descriptor = self.descriptors.get(type(dependent))
                self._undelete(session, dependent, dependent_descriptor, True)

            session.expire(record, [relation.name])

    def _dependents(
        self,
        session: Session,
        record: Any,
        relation: ResolvedRelation,
        active_only: bool = True,
    ) -> List[Any]:
        """
        Dependents of a relation, regardless of caller visibility.

        Cascades only reach active dependents; already-deleted ones keep
        their own timestamp. Nullify reaches every dependent so none keeps
        a key pointing at the deleted owner.
        """
        stmt = select(relation.target).where(with_parent(record, relation.attribute))
        criteria = self.scope.criteria(relation.target)
        if active_only and criteria is not None:
            stmt = stmt.where(criteria)
        stmt = stmt.order_by(*sa_inspect(relation.target).primary_key)
        stmt = stmt.execution_options(**{self.scope.option_name: True})
        return list(session.execute(stmt).scalars().all())

    def _validate(self, record: Any, descriptor: RecordDescriptor) -> None:
        """Run the record's own validation method, if it defines one."""
        if not descriptor.validation_method:
            return
        method = getattr(record, descriptor.validation_method, None)
        if method is None:
            return

        try:
            result = method()
        except ValidationError as e:
            raise ValidationFailed(record, [err["msg"] for err in e.errors()]) from e
        except ValueError as e:
            raise ValidationFailed(record, [str(e)]) from e

        if result is None or result is True:
            return
        if result is False:
            raise ValidationFailed(record, [])
        errors = [result] if isinstance(result, str) else [str(err) for err in result]
        if errors:
            raise ValidationFailed(record, errors)

    def _set_marker(
        self, record: Any, descriptor: RecordDescriptor, value: Optional[datetime]
    ) -> None:
        # Attribute validators (@validates) raise ValueError on rejection
        try:
            setattr(record, descriptor.marker, value)
        except ValueError as e:
            raise ValidationFailed(record, [str(e)]) from e

    def _notify(self, records: List[Any]) -> None:
        failures: List[HookError] = []
        for record in records:
            failures.extend(self.hooks.fire(record))

        if failures and self.config.raise_hook_errors:
            raise HookFailed(records[0], failures)
