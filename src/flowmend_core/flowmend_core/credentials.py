# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Credential contracts and the strategies used to find a node's credential fields.

Checks here are structural and format-only; no credential is ever verified
against the external service.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from flowmend_core.model import WorkflowNode

logger = logging.getLogger(__name__)

FormatCheck = Callable[[Mapping[str, Any]], Optional[str]]
CredentialResolver = Callable[[WorkflowNode, str], Optional[Mapping[str, Any]]]


@dataclass(frozen=True)
class CredentialContract:
    """Fields a credential of one type must carry, plus an optional format predicate."""

    required_fields: Tuple[str, ...] = ()
    format_check: Optional[FormatCheck] = None

    def validate(self, fields: Any) -> Optional[str]:
        """Return the first problem found in *fields*, or None when acceptable."""
        if not isinstance(fields, Mapping):
            return "credential fields must be an object"
        for name in self.required_fields:
            value = fields.get(name)
            if value is None or value == "":
                return f"field '{name}' is required"
        if self.format_check is not None:
            return self.format_check(fields)
        return None


def prefix_check(prefixes: Mapping[str, Sequence[str]]) -> FormatCheck:
    """Build a format predicate requiring each listed field to start with one of its prefixes."""
    rules: List[Tuple[str, Tuple[str, ...]]] = [
        (name, tuple(allowed)) for name, allowed in prefixes.items()
    ]

    def check(fields: Mapping[str, Any]) -> Optional[str]:
        for name, allowed in rules:
            value = fields.get(name)
            if isinstance(value, str) and not value.startswith(allowed):
                expected = " or ".join(f"'{p}'" for p in allowed)
                return f"field '{name}' must start with {expected}"
        return None

    return check


class CredentialContractRegistry:
    """Maps credential type identifiers to their contracts."""

    def __init__(self, contracts: Optional[Mapping[str, CredentialContract]] = None):
        self._contracts: Dict[str, CredentialContract] = {}
        for credential_type, contract in (contracts or {}).items():
            self.register(credential_type, contract)

    def __contains__(self, credential_type: object) -> bool:
        return credential_type in self._contracts

    def __len__(self) -> int:
        return len(self._contracts)

    def lookup(self, credential_type: str) -> Optional[CredentialContract]:
        return self._contracts.get(credential_type)

    def register(self, credential_type: str, contract: CredentialContract) -> None:
        if not credential_type or not isinstance(credential_type, str):
            raise ValueError("credential type must be a non-empty string")
        if not isinstance(contract, CredentialContract):
            raise TypeError(f"expected CredentialContract, got {type(contract).__name__}")
        self._contracts[credential_type] = contract
        logger.debug("Registered credential contract %s", credential_type)

    def unregister(self, credential_type: str) -> None:
        self._contracts.pop(credential_type, None)

    def types(self) -> Iterable[str]:
        return list(self._contracts)


def inline_credentials(node: WorkflowNode, credential_type: str) -> Optional[Mapping[str, Any]]:
    """Read credential fields straight from the node's ``credentials`` map."""
    return node.credentials.get(credential_type)


class StoredCredentialResolver:
    """Resolve credential references against an out-of-band credential store.

    Editors usually store only a reference on the node, e.g.
    ``{"slackApi": {"id": "12", "name": "Team bot"}}``. When the entry carries
    an ``id`` found in *store*, the stored fields are returned; other entries
    are treated as inline fields.
    """

    def __init__(self, store: Mapping[str, Mapping[str, Any]]):
        self._store = store

    def __call__(self, node: WorkflowNode, credential_type: str) -> Optional[Mapping[str, Any]]:
        entry = node.credentials.get(credential_type)
        if isinstance(entry, Mapping):
            ref = entry.get("id")
            if isinstance(ref, str) and ref in self._store:
                return self._store[ref]
        return entry
