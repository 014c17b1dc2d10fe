"""
Kind registry.

Maps each EntityKind to the small capability set the engines need: its ORM
model, its validation rules, its cascade children, its parent-reference
fields and the reference-only links pointing at it. Built once at startup.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple, Type, Union

from ..config import RecordsConfig, get_config
from .exceptions import UnknownEntityKindError
from .graph import (
    CascadeEdge,
    EntityKind,
    ReferenceEdge,
    children_of,
    parent_fields_of,
    parse_kind,
    references_to,
)
from .models import ValidationOutcome
from .validation import RULE_CLASSES, EntityRules


@dataclass(frozen=True)
class KindCapabilities:
    """Everything the engines know about one kind."""

    kind: EntityKind
    model: Type[Any]
    rules: EntityRules
    children: Tuple[CascadeEdge, ...]
    parent_fields: Dict[str, EntityKind]
    references: Tuple[ReferenceEdge, ...]

    def validate_deletion(self, session: Any, record: Any) -> ValidationOutcome:
        return self.rules.validate_deletion(session, record)

    def validate_restoration(self, session: Any, record: Any) -> ValidationOutcome:
        return self.rules.validate_restoration(session, record)


class KindRegistry:
    """Typed lookup from kind to capabilities."""

    def __init__(self, capabilities: Dict[EntityKind, KindCapabilities]):
        self._capabilities = dict(capabilities)

    def get(self, kind: Union[str, EntityKind]) -> KindCapabilities:
        resolved = parse_kind(kind)
        try:
            return self._capabilities[resolved]
        except KeyError:
            raise UnknownEntityKindError(resolved.value) from None

    def model_for(self, kind: Union[str, EntityKind]) -> Type[Any]:
        return self.get(kind).model

    def __contains__(self, kind: object) -> bool:
        try:
            return parse_kind(kind) in self._capabilities  # type: ignore[arg-type]
        except UnknownEntityKindError:
            return False

    def __iter__(self) -> Iterator[KindCapabilities]:
        return iter(self._capabilities.values())

    def __len__(self) -> int:
        return len(self._capabilities)


def build_registry(config: Optional[RecordsConfig] = None) -> KindRegistry:
    """Build the registry for every kind in the entity graph."""
    config = config or get_config()
    capabilities: Dict[EntityKind, KindCapabilities] = {}
    for rules_class in RULE_CLASSES:
        kind = rules_class.kind
        capabilities[kind] = KindCapabilities(
            kind=kind,
            model=rules_class.model,
            rules=rules_class(config),
            children=children_of(kind),
            parent_fields=parent_fields_of(kind),
            references=references_to(kind),
        )

    missing = set(EntityKind) - set(capabilities)
    if missing:
        names = ", ".join(sorted(kind.value for kind in missing))
        raise RuntimeError(f"No rules registered for kinds: {names}")

    return KindRegistry(capabilities)
