# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Registry of known node types, their categories, and per-type contracts."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple

from flowmend_common.constants import DEFAULT_FALLBACK_NODE_TYPE
from flowmend_common.validation.suggestions import first_overlapping

logger = logging.getLogger(__name__)


class PrimitiveType(str, Enum):
    """Runtime type a parameter value is expected to have."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"

    def matches(self, value: Any) -> bool:
        if self is PrimitiveType.STRING:
            return isinstance(value, str)
        if self is PrimitiveType.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self is PrimitiveType.BOOLEAN:
            return isinstance(value, bool)
        if self is PrimitiveType.OBJECT:
            return isinstance(value, dict)
        return isinstance(value, (list, tuple))

    @staticmethod
    def of(value: Any) -> str:
        """Name the primitive type of *value* for diagnostics."""
        for candidate in PrimitiveType:
            if candidate.matches(value):
                return candidate.value
        return "null" if value is None else type(value).__name__


@dataclass(frozen=True)
class NodeTypeContract:
    """Declared shape of a valid configuration for one node type."""

    category: str
    required_parameters: Tuple[str, ...] = ()
    parameter_types: Mapping[str, PrimitiveType] = field(default_factory=dict)
    supported_operations: Optional[FrozenSet[str]] = None
    operation_parameter: str = "operation"
    required_credential_types: Tuple[str, ...] = ()
    no_input: bool = False


class TypeCatalog:
    """Node types grouped by category, with optional contracts.

    Lookups are read-only and safe to share between threads; ``register``,
    ``unregister`` and ``register_contract`` are meant for start-up
    configuration only.
    """

    def __init__(
        self,
        categories: Optional[Mapping[str, Iterable[str]]] = None,
        contracts: Optional[Mapping[str, NodeTypeContract]] = None,
        fallback_type: str = DEFAULT_FALLBACK_NODE_TYPE,
        entry_categories: Iterable[str] = (),
    ):
        self._categories: Dict[str, List[str]] = {}
        self._contracts: Dict[str, NodeTypeContract] = {}
        self.fallback_type = fallback_type
        self.entry_categories: FrozenSet[str] = frozenset(entry_categories)
        for category, types in (categories or {}).items():
            for type_id in types:
                self.register(category, type_id)
        for type_id, contract in (contracts or {}).items():
            self.register_contract(type_id, contract)

    def __contains__(self, type_id: object) -> bool:
        return isinstance(type_id, str) and self.is_valid(type_id)

    def __len__(self) -> int:
        return sum(1 for _ in self.all_types())

    def is_valid(self, type_id: str) -> bool:
        return any(type_id in types for types in self._categories.values())

    def lookup_contract(self, type_id: str) -> Optional[NodeTypeContract]:
        return self._contracts.get(type_id)

    def category_of(self, type_id: str) -> Optional[str]:
        for category, types in self._categories.items():
            if type_id in types:
                return category
        return None

    def categories(self) -> List[str]:
        return list(self._categories)

    def is_entry_type(self, type_id: str) -> bool:
        """True when nodes of *type_id* may legitimately have no incoming connection.

        A contract decides when present; otherwise membership of an entry
        category (e.g. ``triggers``) does.
        """
        contract = self._contracts.get(type_id)
        if contract is not None:
            return contract.no_input
        return self.category_of(type_id) in self.entry_categories

    def register(self, category: str, type_id: str) -> None:
        if not category or not isinstance(category, str):
            raise ValueError("category must be a non-empty string")
        if not type_id or not isinstance(type_id, str):
            raise ValueError("node type must be a non-empty string")
        types = self._categories.setdefault(category, [])
        if type_id not in types:
            types.append(type_id)
            logger.debug("Registered node type %s in category %s", type_id, category)

    def register_contract(self, type_id: str, contract: NodeTypeContract) -> None:
        """Attach *contract* to *type_id*, registering the type under the contract's category."""
        self.register(contract.category, type_id)
        self._contracts[type_id] = contract

    def unregister(self, type_id: str) -> None:
        for category, types in self._categories.items():
            if type_id in types:
                types.remove(type_id)
                logger.debug("Removed node type %s from category %s", type_id, category)
        self._contracts.pop(type_id, None)

    def all_types(self) -> Iterator[str]:
        """Yield every registered type once, category by category.

        Each call returns a fresh generator over the current registrations.
        """
        seen = set()
        for types in self._categories.values():
            for type_id in types:
                if type_id not in seen:
                    seen.add(type_id)
                    yield type_id

    def suggest_similar(self, invalid_type: str) -> str:
        """Best-guess registered type for *invalid_type*, for diagnostics only.

        Returns the first registered type sharing at least half of the invalid
        identifier's tokens, falling back to the configured generic type.
        """
        match = first_overlapping(invalid_type, self.all_types())
        return match if match is not None else self.fallback_type
