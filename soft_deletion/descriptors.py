"""
Record descriptors for soft deletion.

A descriptor records, per mapped class, whether the class carries a deletion
marker and which dependent relations exist with which cascade policy. The
table is populated once at configuration time and is read-only afterwards;
nothing is discovered by reflection while a deletion runs.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import RelationshipDirection, configure_mappers

from .config import SoftDeletionConfig, get_config
from .exceptions import UnconfiguredType

logger = logging.getLogger(__name__)

# Sentinel for "detect from configuration"
AUTO: Any = object()


class CascadePolicy(str, Enum):
    """What happens to dependents when their owner is soft deleted."""

    CASCADE = "cascade"  # Transition in lockstep (physical delete if no marker)
    INDEPENDENT = "independent"  # Leave untouched
    NULLIFY = "nullify"  # Clear the foreign key on the dependent


@dataclass(frozen=True)
class Relation:
    """A dependent relation as declared by the application."""

    name: str
    policy: CascadePolicy = CascadePolicy.CASCADE

    def __post_init__(self) -> None:
        object.__setattr__(self, "policy", CascadePolicy(self.policy))


@dataclass(frozen=True)
class ResolvedRelation:
    """A declared relation bound to its SQLAlchemy relationship."""

    name: str
    policy: CascadePolicy
    attribute: Any
    target: type
    direction: RelationshipDirection
    uselist: bool
    foreign_keys: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RecordDescriptor:
    """Soft deletion metadata for one mapped class."""

    model: type
    marker: Optional[str]
    relations: Tuple[ResolvedRelation, ...] = field(default_factory=tuple)
    validation_method: Optional[str] = None

    @property
    def soft_deletable(self) -> bool:
        return self.marker is not None

    @property
    def marker_column(self) -> Any:
        """Mapped attribute of the deletion marker."""
        if self.marker is None:
            raise AttributeError(f"{self.model.__name__} has no deletion marker")
        return getattr(self.model, self.marker)

    def relation(self, name: str) -> ResolvedRelation:
        for relation in self.relations:
            if relation.name == name:
                return relation
        raise KeyError(f"{self.model.__name__} has no dependent relation '{name}'")


RelationSpec = Union[Iterable[Union[Relation, str]], Mapping[str, Any]]


class DescriptorTable:
    """
    Registry of record descriptors, keyed by mapped class.

    Usage:
        descriptors = DescriptorTable()
        descriptors.register(Category, relations={"forums": "cascade"})
        descriptors.register(Forum)
    """

    def __init__(self, config: Optional[SoftDeletionConfig] = None):
        self._config = config
        self._descriptors: Dict[type, RecordDescriptor] = {}

    @property
    def config(self) -> SoftDeletionConfig:
        return self._config if self._config is not None else get_config()

    def register(
        self,
        model: type,
        marker: Optional[str] = AUTO,
        relations: RelationSpec = (),
        validation_method: Optional[str] = AUTO,
    ) -> RecordDescriptor:
        """
        Build and store the descriptor for a mapped class.

        Args:
            model: SQLAlchemy mapped class
            marker: Marker attribute name; detected from the configured field
                name when omitted, ``None`` declares the type not soft-deletable
            relations: Dependent relations, as ``Relation`` objects, relation
                names (cascade policy) or a mapping of name to policy
            validation_method: Record method run before a marker update

        Returns:
            The registered descriptor

        Raises:
            ValueError: On re-registration, unknown marker or relation names,
                or a nullify policy on a relationship that cannot be nullified
        """
        if model in self._descriptors:
            raise ValueError(f"{model.__name__} is already registered")

        configure_mappers()
        mapper = sa_inspect(model)
        config = self.config

        if marker is AUTO:
            name = config.deleted_field_name
            marker = name if name in mapper.column_attrs else None
        elif marker is not None and marker not in mapper.column_attrs:
            raise ValueError(f"{model.__name__} has no mapped column '{marker}'")

        if validation_method is AUTO:
            validation_method = config.validation_method or None

        resolved = tuple(
            self._resolve(model, mapper, relation)
            for relation in _normalize(relations)
        )

        descriptor = RecordDescriptor(
            model=model,
            marker=marker,
            relations=resolved,
            validation_method=validation_method,
        )
        self._descriptors[model] = descriptor

        logger.debug(
            f"Registered {model.__name__} (marker={marker}, "
            f"relations={[r.name for r in resolved]})"
        )
        return descriptor

    def register_all(self, base: Any) -> List[RecordDescriptor]:
        """
        Register every class mapped by a declarative base.

        Relations are read from the ``__soft_deletion_relations__`` attribute
        of each class. Classes that are already registered are skipped.
        """
        configure_mappers()
        registered = []
        for mapper in sorted(base.registry.mappers, key=lambda m: m.class_.__name__):
            model = mapper.class_
            if model in self._descriptors:
                continue
            relations = getattr(model, "__soft_deletion_relations__", ())
            registered.append(self.register(model, relations=relations))
        return registered

    def get(self, model: type) -> RecordDescriptor:
        """Return the descriptor for a class or raise UnconfiguredType."""
        try:
            return self._descriptors[model]
        except KeyError:
            raise UnconfiguredType(model) from None

    def find(self, model: type) -> Optional[RecordDescriptor]:
        return self._descriptors.get(model)

    def soft_deletable(self) -> List[RecordDescriptor]:
        """Descriptors of all classes carrying a deletion marker."""
        return [d for d in self._descriptors.values() if d.soft_deletable]

    def __contains__(self, model: object) -> bool:
        return model in self._descriptors

    def __iter__(self) -> Iterator[RecordDescriptor]:
        return iter(list(self._descriptors.values()))

    def __len__(self) -> int:
        return len(self._descriptors)

    def _resolve(self, model: type, mapper: Any, relation: Relation) -> ResolvedRelation:
        if relation.name not in mapper.relationships:
            raise ValueError(
                f"{model.__name__} has no relationship named '{relation.name}'"
            )
        prop = mapper.relationships[relation.name]

        foreign_keys: Tuple[str, ...] = ()
        if prop.direction is RelationshipDirection.ONETOMANY:
            target_mapper = prop.mapper
            foreign_keys = tuple(
                target_mapper.get_property_by_column(remote).key
                for _, remote in prop.local_remote_pairs
            )
        elif relation.policy is CascadePolicy.NULLIFY:
            raise ValueError(
                f"{model.__name__}.{relation.name} cannot be nullified: the "
                f"foreign key of a {prop.direction.name.lower()} relationship "
                "does not live on the dependent"
            )

        return ResolvedRelation(
            name=relation.name,
            policy=relation.policy,
            attribute=getattr(model, relation.name),
            target=prop.mapper.class_,
            direction=prop.direction,
            uselist=bool(prop.uselist),
            foreign_keys=foreign_keys,
        )


def _normalize(relations: RelationSpec) -> List[Relation]:
    if isinstance(relations, Mapping):
        return [Relation(name, policy) for name, policy in relations.items()]
    return [
        relation if isinstance(relation, Relation) else Relation(relation)
        for relation in relations
    ]
