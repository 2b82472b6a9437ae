"""
Soft Deletion - reversible logical deletes for SQLAlchemy models.

Records are marked deleted with a timestamp instead of being removed, and
ordinary reads exclude them. Around that marker the package provides:

Key Features
------------
* **Cascades**: delete state propagates through declared dependent relations
  (cascade, nullify or independent) in one atomic unit of work
* **Scoping**: deleted rows are hidden from ORM selects by default, with
  reentrant blocks that lift the filter on demand
* **Bulk operations**: soft delete sets of records or identifiers with
  per-record atomicity and a per-element result
* **Hooks**: after-soft-delete callbacks fired only after commit

Quick Start
-----------
>>> from soft_deletion import SoftDeletion
>>>
>>> soft_deletion = SoftDeletion()
>>> soft_deletion.register(Category, relations={"forums": "cascade"})
>>> soft_deletion.register(Forum)
>>> soft_deletion.install(SessionLocal)
>>>
>>> soft_deletion.soft_delete(session, category)
>>> with soft_deletion.with_deleted(Category):
...     soft_deletion.find(session, Category, category.id)

License
-------
MIT License - See LICENSE file for details.
"""

__version__ = "1.0.0"
__author__ = "Manuel Knott"
__email__ = "manuel.knott@curevac.com"

from .bulk import BulkItem, BulkOperator, BulkResult
from .config import SoftDeletionConfig, configure, get_config, set_config
from .descriptors import (
    CascadePolicy,
    DescriptorTable,
    RecordDescriptor,
    Relation,
    ResolvedRelation,
)
from .engine import DeletionEngine, UnitOfWork
from .exceptions import (
    HookFailed,
    NotSoftDeletable,
    PersistenceFailure,
    RecordNotFound,
    SoftDeletionError,
    UnconfiguredType,
    ValidationFailed,
)
from .hooks import HookError, HookRegistry, get_hook_registry
from .mixins import SoftDeletionMixin, prevent_hard_delete, register_hard_delete_guard
from .scoping import ScopeFilter
from .services import SoftDeletion

__all__ = [
    # Service
    "SoftDeletion",
    # Components
    "DescriptorTable",
    "RecordDescriptor",
    "Relation",
    "ResolvedRelation",
    "CascadePolicy",
    "ScopeFilter",
    "DeletionEngine",
    "UnitOfWork",
    "BulkOperator",
    "BulkResult",
    "BulkItem",
    "HookRegistry",
    "HookError",
    "get_hook_registry",
    # Mixins
    "SoftDeletionMixin",
    "prevent_hard_delete",
    "register_hard_delete_guard",
    # Configuration
    "SoftDeletionConfig",
    "get_config",
    "set_config",
    "configure",
    # Exceptions
    "SoftDeletionError",
    "ValidationFailed",
    "NotSoftDeletable",
    "UnconfiguredType",
    "RecordNotFound",
    "HookFailed",
    "PersistenceFailure",
]
