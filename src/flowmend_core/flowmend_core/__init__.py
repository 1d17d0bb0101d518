# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Validation and auto-repair engine for workflow-automation graphs."""

__version__ = "0.1.0"

from flowmend_core.catalog import NodeTypeContract, PrimitiveType, TypeCatalog  # noqa: E402
from flowmend_core.context import CatalogLoadError, ValidationContext  # noqa: E402
from flowmend_core.corrections import CorrectionCatalog, CorrectionRule  # noqa: E402
from flowmend_core.credentials import (  # noqa: E402
    CredentialContract,
    CredentialContractRegistry,
    StoredCredentialResolver,
    inline_credentials,
)
from flowmend_core.model import Connection, WorkflowGraph, WorkflowNode  # noqa: E402
from flowmend_core.orchestrator import Orchestrator, RepairOutcome, ValidationOptions  # noqa: E402
from flowmend_core.repair import AutoRepairEngine, GridLayout, ParameterFix, RepairAction  # noqa: E402
from flowmend_core.validator import (  # noqa: E402
    GraphValidator,
    IssueCategory,
    IssueSeverity,
    ValidationIssue,
    ValidationReport,
)

__all__ = [
    "AutoRepairEngine",
    "CatalogLoadError",
    "Connection",
    "CorrectionCatalog",
    "CorrectionRule",
    "CredentialContract",
    "CredentialContractRegistry",
    "GraphValidator",
    "GridLayout",
    "IssueCategory",
    "IssueSeverity",
    "NodeTypeContract",
    "Orchestrator",
    "ParameterFix",
    "PrimitiveType",
    "RepairAction",
    "RepairOutcome",
    "StoredCredentialResolver",
    "TypeCatalog",
    "ValidationContext",
    "ValidationIssue",
    "ValidationOptions",
    "ValidationReport",
    "WorkflowGraph",
    "WorkflowNode",
    "inline_credentials",
]
