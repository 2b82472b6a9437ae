"""
Bulk soft deletion.

Applies the single-record transition to every element of a selector. Each
record runs in its own unit of work: one failure is recorded against its
element and does not stop or roll back the others.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import SoftDeletionConfig, get_config
from .descriptors import DescriptorTable
from .engine import DeletionEngine
from .exceptions import HookFailed, NotSoftDeletable, RecordNotFound, SoftDeletionError
from .hooks import HookError
from .scoping import ScopeFilter

logger = logging.getLogger(__name__)


@dataclass
class BulkItem:
    """Outcome for one selector element."""

    target: Any
    record: Optional[Any] = None
    error: Optional[Exception] = None
    # Hooks that failed after the record was committed
    hook_errors: List[HookError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BulkResult:
    """Per-element outcomes of a bulk operation, in selector order."""

    model: type
    items: List[BulkItem] = field(default_factory=list)

    @property
    def succeeded(self) -> List[BulkItem]:
        return [item for item in self.items if item.ok]

    @property
    def failed(self) -> List[BulkItem]:
        return [item for item in self.items if not item.ok]

    @property
    def records(self) -> List[Any]:
        """Records that were soft deleted."""
        return [item.record for item in self.succeeded]

    @property
    def errors(self) -> List[Exception]:
        return [item.error for item in self.failed if item.error is not None]

    @property
    def hook_errors(self) -> List[HookError]:
        return [error for item in self.items for error in item.hook_errors]

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_errors(self) -> None:
        """Raise the first recorded error, if any."""
        for error in self.errors:
            raise error

    def __iter__(self) -> Iterator[BulkItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


class BulkOperator:
    """Soft deletes sets of records or identifiers."""

    def __init__(
        self,
        engine: DeletionEngine,
        scope: Optional[ScopeFilter] = None,
        descriptors: Optional[DescriptorTable] = None,
        config: Optional[SoftDeletionConfig] = None,
    ):
        self.engine = engine
        self.descriptors = descriptors if descriptors is not None else engine.descriptors
        self.scope = scope if scope is not None else engine.scope
        self._config = config

    def soft_delete_all(self, session: Session, model: type, selector: Any) -> BulkResult:
        """
        Soft delete every record named by ``selector``.

        Args:
            session: SQLAlchemy session
            model: Mapped class of the records
            selector: Primary keys or loaded instances of ``model``; a single
                key or instance is accepted too

        Returns:
            One item per selector element, holding the record or the error.
            Records whose hooks failed under ``raise_hook_errors`` count as
            deleted and carry the failures in ``hook_errors``.

        Raises:
            UnconfiguredType: Model is not registered
            NotSoftDeletable: Model has no deletion marker
        """
        descriptor = self.descriptors.get(model)
        if not descriptor.soft_deletable:
            raise NotSoftDeletable(model)

        config = self._config if self._config is not None else get_config()
        result = BulkResult(model=model)

        for target in _targets(model, selector):
            item = BulkItem(target=target)
            try:
                item.record = self._resolve(session, model, target)
                item.record = self.engine.soft_delete(session, item.record)
            except HookFailed as e:
                item.record = e.record
                item.hook_errors = e.failures
                if config.bulk_log_failures:
                    logger.warning(
                        f"Bulk soft delete of {model.__name__} {target!r} "
                        f"committed with {len(e.failures)} failed hook(s)"
                    )
            except (SoftDeletionError, SQLAlchemyError) as e:
                item.error = e
                if config.bulk_log_failures:
                    logger.warning(
                        f"Bulk soft delete of {model.__name__} {target!r} failed: {e}"
                    )
            result.items.append(item)

        logger.info(
            f"Bulk soft deleted {len(result.succeeded)} of {len(result)} "
            f"{model.__name__} record(s)"
        )
        return result

    def _resolve(self, session: Session, model: type, target: Any) -> Any:
        if isinstance(target, model):
            return target
        if sa_inspect(target, raiseerr=False) is not None:
            raise SoftDeletionError(
                f"{type(target).__name__} is not a {model.__name__}", record=target
            )

        # Already-deleted identifiers stay resolvable for idempotent re-delete
        try:
            with self.scope.with_unrestricted_visibility(model):
                record = self.scope.find(session, model, target)
        except ValueError as e:
            raise SoftDeletionError(str(e), record=target) from e
        if record is None:
            raise RecordNotFound(model, target)
        return record


def _targets(model: type, selector: Any) -> Iterable[Any]:
    if isinstance(selector, (model, str, bytes)):
        return [selector]
    try:
        return list(selector)
    except TypeError:
        return [selector]
