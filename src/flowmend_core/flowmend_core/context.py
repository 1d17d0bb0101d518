# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Validation context: the registries shared by the validator and the repair engine.

The default context is built from YAML tables shipped in ``flowmend_core/data``,
optionally extended with tables named in the configuration. Loading happens
once at start-up; after that the context is only read.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Mapping, Optional, Union

import yaml

from flowmend_core.catalog import NodeTypeContract, PrimitiveType, TypeCatalog
from flowmend_core.corrections import BUILTIN_RULES, CorrectionCatalog, CorrectionRule
from flowmend_core.credentials import (
    CredentialContract,
    CredentialContractRegistry,
    CredentialResolver,
    inline_credentials,
    prefix_check,
)

if TYPE_CHECKING:
    from flowmend_core.config import FlowmendConfig

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
NODE_TYPES_FILE = DATA_DIR / "node_types.yaml"
CREDENTIALS_FILE = DATA_DIR / "credentials.yaml"

PathLike = Union[str, Path]


class CatalogLoadError(ValueError):
    """A node type or credential table could not be read or has the wrong shape."""


def _read_table(path: PathLike) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise CatalogLoadError(f"{path}: cannot read table: {exc}") from exc
    except yaml.YAMLError as exc:
        raise CatalogLoadError(f"{path}: invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise CatalogLoadError(f"{path}: top level must be a mapping")
    return data


def _string_list(value: Any, where: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise CatalogLoadError(f"{where} must be a list of non-empty strings")
    return value


def _contract_from_table(entry: Any, where: str, entry_categories: FrozenSet[str]) -> NodeTypeContract:
    if not isinstance(entry, dict):
        raise CatalogLoadError(f"{where} must be a mapping")
    category = entry.get("category")
    if not isinstance(category, str) or not category:
        raise CatalogLoadError(f"{where}: 'category' is required")

    raw_types = entry.get("types") or {}
    if not isinstance(raw_types, dict):
        raise CatalogLoadError(f"{where}: 'types' must be a mapping")
    parameter_types: Dict[str, PrimitiveType] = {}
    for name, type_name in raw_types.items():
        try:
            parameter_types[str(name)] = PrimitiveType(type_name)
        except ValueError:
            allowed = ", ".join(p.value for p in PrimitiveType)
            raise CatalogLoadError(
                f"{where}: type of '{name}' is {type_name!r}, expected one of: {allowed}"
            ) from None

    operations = entry.get("operations")
    operation_parameter = entry.get("operation_parameter", "operation")
    if not isinstance(operation_parameter, str) or not operation_parameter:
        raise CatalogLoadError(f"{where}: 'operation_parameter' must be a non-empty string")
    no_input = entry.get("no_input")
    if no_input is not None and not isinstance(no_input, bool):
        raise CatalogLoadError(f"{where}: 'no_input' must be a boolean")

    return NodeTypeContract(
        category=category,
        required_parameters=tuple(_string_list(entry.get("required"), f"{where}: 'required'")),
        parameter_types=parameter_types,
        supported_operations=(
            frozenset(_string_list(operations, f"{where}: 'operations'"))
            if operations is not None
            else None
        ),
        operation_parameter=operation_parameter,
        required_credential_types=tuple(
            _string_list(entry.get("credentials"), f"{where}: 'credentials'")
        ),
        no_input=category in entry_categories if no_input is None else no_input,
    )


def load_catalog(path: PathLike, catalog: Optional[TypeCatalog] = None) -> TypeCatalog:
    """Load a node type table from *path*, merging it into *catalog* if given.

    Raises:
        CatalogLoadError: if the file cannot be read or does not follow the
            table schema.
    """
    data = _read_table(path)
    if catalog is None:
        catalog = TypeCatalog()

    entry_categories = _string_list(data.get("entry_categories"), f"{path}: 'entry_categories'")
    catalog.entry_categories = catalog.entry_categories | frozenset(entry_categories)

    categories = data.get("categories") or {}
    if not isinstance(categories, dict):
        raise CatalogLoadError(f"{path}: 'categories' must be a mapping")
    for category, types in categories.items():
        for type_id in _string_list(types, f"{path}: category '{category}'"):
            catalog.register(str(category), type_id)

    contracts = data.get("contracts") or {}
    if not isinstance(contracts, dict):
        raise CatalogLoadError(f"{path}: 'contracts' must be a mapping")
    for type_id, entry in contracts.items():
        contract = _contract_from_table(
            entry, f"{path}: contract '{type_id}'", catalog.entry_categories
        )
        catalog.register_contract(str(type_id), contract)

    logger.debug("Loaded node type table %s (%d types)", path, len(catalog))
    return catalog


def load_credentials(
    path: PathLike, registry: Optional[CredentialContractRegistry] = None
) -> CredentialContractRegistry:
    """Load a credential contract table from *path*, merging it into *registry* if given."""
    data = _read_table(path)
    if registry is None:
        registry = CredentialContractRegistry()

    entries = data.get("credentials") or {}
    if not isinstance(entries, dict):
        raise CatalogLoadError(f"{path}: 'credentials' must be a mapping")
    for credential_type, entry in entries.items():
        where = f"{path}: credential '{credential_type}'"
        if entry is None:
            entry = {}
        if not isinstance(entry, dict):
            raise CatalogLoadError(f"{where} must be a mapping")
        prefixes = entry.get("prefixes")
        if prefixes is not None:
            if not isinstance(prefixes, dict):
                raise CatalogLoadError(f"{where}: 'prefixes' must be a mapping")
            prefixes = {
                str(name): _string_list(allowed, f"{where}: prefixes of '{name}'")
                for name, allowed in prefixes.items()
            }
        registry.register(
            str(credential_type),
            CredentialContract(
                required_fields=tuple(_string_list(entry.get("required"), f"{where}: 'required'")),
                format_check=prefix_check(prefixes) if prefixes else None,
            ),
        )

    logger.debug("Loaded credential table %s (%d contracts)", path, len(registry))
    return registry


@dataclass
class ValidationContext:
    """Registries consulted by :class:`GraphValidator` and :class:`AutoRepairEngine`.

    Build one per process (or per test) and pass it explicitly; nothing here is
    global. The ``add_*``/``remove_*`` methods are configuration-time
    operations and must not run while graphs are being validated.
    """

    catalog: TypeCatalog = field(default_factory=TypeCatalog)
    credentials: CredentialContractRegistry = field(default_factory=CredentialContractRegistry)
    corrections: CorrectionCatalog = field(default_factory=CorrectionCatalog)
    credential_resolver: CredentialResolver = inline_credentials

    @classmethod
    def default(
        cls,
        config: Optional["FlowmendConfig"] = None,
        credential_resolver: CredentialResolver = inline_credentials,
    ) -> "ValidationContext":
        """Build the context from the shipped tables plus any configured extras."""
        if config is None:
            from flowmend_core.config import get_config

            config = get_config()

        catalog = TypeCatalog(fallback_type=config.fallback_node_type)
        load_catalog(NODE_TYPES_FILE, catalog)
        if config.catalog_file:
            load_catalog(config.catalog_file, catalog)

        credentials = load_credentials(CREDENTIALS_FILE)
        if config.credentials_file:
            load_credentials(config.credentials_file, credentials)

        logger.info(
            "Validation context ready: %d node types, %d credential contracts, %d correction rules",
            len(catalog),
            len(credentials),
            len(BUILTIN_RULES),
        )
        return cls(
            catalog=catalog,
            credentials=credentials,
            corrections=CorrectionCatalog(BUILTIN_RULES),
            credential_resolver=credential_resolver,
        )

    # -- administrative API -------------------------------------------------

    def add_node_type(self, category: str, type_id: str) -> None:
        self.catalog.register(category, type_id)

    def remove_node_type(self, type_id: str) -> None:
        self.catalog.unregister(type_id)

    def add_correction_rule(self, rule: CorrectionRule) -> None:
        if not isinstance(rule, CorrectionRule):
            raise TypeError(f"expected CorrectionRule, got {type(rule).__name__}")
        self.corrections.add_rule(rule)

    def add_credential_contract(
        self, credential_type: str, contract: Union[CredentialContract, Mapping[str, Any]]
    ) -> None:
        """Register *contract* for *credential_type*.

        A plain mapping in table form (``{"required": [...], "prefixes": {...}}``)
        is accepted as well.
        """
        if isinstance(contract, Mapping):
            prefixes = contract.get("prefixes")
            contract = CredentialContract(
                required_fields=tuple(contract.get("required") or ()),
                format_check=prefix_check(prefixes) if prefixes else None,
            )
        self.credentials.register(credential_type, contract)
