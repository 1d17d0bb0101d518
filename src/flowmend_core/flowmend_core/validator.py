# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Contract validation for workflow graphs.

:class:`GraphValidator` runs independent passes over a graph (schema, node
types, parameters, connections, credentials) and merges their findings into a
:class:`ValidationReport`. Data-shape problems never raise; they become
issues.

Severity policy: anything that prevents the workflow from running at all is
an error, anything that merely leaves it incomplete is a warning. Strict mode
promotes every warning to an error.
"""

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from flowmend_common.validation import detect_cycle, suggest

from flowmend_core import __version__
from flowmend_core.context import ValidationContext
from flowmend_core.model import WorkflowGraph, WorkflowNode

logger = logging.getLogger(__name__)

_DISCONNECTED = "is not connected to any other node"


class IssueSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"


class IssueCategory(Enum):
    SCHEMA = "schema"
    NODE_TYPE = "nodeType"
    PARAMETER = "parameter"
    CONNECTION = "connection"
    CREDENTIAL = "credential"


@dataclass(frozen=True)
class ValidationIssue:
    """A problem found in a workflow graph."""

    severity: IssueSeverity
    category: IssueCategory
    message: str
    node_id: Optional[Any] = None
    context: Optional[str] = None  # node name, edge, cycle path
    suggestion: Optional[str] = None

    def __str__(self) -> str:
        msg = f"{self.severity.value}[{self.category.value}]: {self.message}"
        if self.context:
            msg += f" (in {self.context})"
        if self.suggestion:
            msg += f". Did you mean '{self.suggestion}'?"
        return msg

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.category.value, "message": self.message}
        if self.node_id is not None:
            data["nodeId"] = self.node_id
        if self.context:
            data["context"] = self.context
        if self.suggestion:
            data["suggestion"] = self.suggestion
        return data


@dataclass
class ValidationReport:
    """Result of validating one workflow graph."""

    issues: List[ValidationIssue] = field(default_factory=list)
    corrections: int = 0
    nodes_validated: int = 0
    connections_validated: int = 0
    workflow_name: Optional[Any] = None

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.WARNING]

    @property
    def has_errors(self) -> bool:
        return any(i.severity == IssueSeverity.ERROR for i in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(i.severity == IssueSeverity.WARNING for i in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "totalErrors": len(self.errors),
            "totalWarnings": len(self.warnings),
            "nodesValidated": self.nodes_validated,
            "connectionsValidated": self.connections_validated,
        }

    def by_category(self, category: IssueCategory) -> List[ValidationIssue]:
        return [i for i in self.issues if i.category == category]

    def add_error(
        self,
        category: IssueCategory,
        message: str,
        node_id: Optional[Any] = None,
        context: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        self.issues.append(
            ValidationIssue(
                severity=IssueSeverity.ERROR,
                category=category,
                message=message,
                node_id=node_id,
                context=context,
                suggestion=suggestion,
            )
        )

    def add_warning(
        self,
        category: IssueCategory,
        message: str,
        node_id: Optional[Any] = None,
        context: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        self.issues.append(
            ValidationIssue(
                severity=IssueSeverity.WARNING,
                category=category,
                message=message,
                node_id=node_id,
                context=context,
                suggestion=suggestion,
            )
        )

    def recommendations(self) -> List[str]:
        """Human-readable follow-ups for the kinds of issues present."""
        recommendations = []
        categories = {i.category for i in self.issues}
        if any(i.category == IssueCategory.SCHEMA for i in self.errors):
            recommendations.append(
                "Fix the workflow structure first: every node needs a unique id, a name, "
                "a type and a free [x, y] position"
            )
        if IssueCategory.NODE_TYPE in categories:
            recommendations.append(
                "Replace unknown node types with supported ones, or run with auto-correct "
                "to remap known legacy types"
            )
        if any(i.category == IssueCategory.CONNECTION for i in self.errors):
            recommendations.append("Review the connections between nodes so the flow runs as intended")
        if IssueCategory.CREDENTIAL in categories:
            recommendations.append("Configure the credentials required by the nodes that need them")
        if any(_DISCONNECTED in i.message for i in self.warnings):
            recommendations.append("Connect every non-trigger node so that it runs")
        if IssueCategory.PARAMETER in categories:
            recommendations.append("Complete the required parameters of every node")
        return recommendations

    def to_dict(self, detailed: bool = False) -> Dict[str, Any]:
        """JSON-ready form of the report.

        With ``detailed`` the result also carries a timestamp, the validator
        version, basic workflow info and :meth:`recommendations`.
        """
        data: Dict[str, Any] = {
            "isValid": self.is_valid,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "corrections": self.corrections,
            "summary": self.summary,
        }
        if detailed:
            data["timestamp"] = datetime.now(timezone.utc).isoformat()
            data["validatorVersion"] = __version__
            data["workflowInfo"] = {
                "name": self.workflow_name,
                "nodeCount": self.nodes_validated,
                "connectionCount": self.connections_validated,
            }
            data["recommendations"] = self.recommendations()
        return data


Check = Callable[[WorkflowGraph], Iterable[ValidationIssue]]


def _label(node: WorkflowNode) -> str:
    if isinstance(node.name, str) and node.name:
        return node.name
    return str(node.id)


def _is_expression(value: Any) -> bool:
    # Expressions are resolved by the workflow runtime, not checked here
    return isinstance(value, str) and value.startswith("=")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def valid_position(position: Any) -> bool:
    """True for a two-element ``[x, y]`` sequence of numbers."""
    return (
        isinstance(position, (list, tuple))
        and len(position) == 2
        and all(_is_number(v) for v in position)
    )


def position_key(position: Any) -> Optional[Tuple[float, float]]:
    return (float(position[0]), float(position[1])) if valid_position(position) else None


class GraphValidator:
    """Validates workflow graphs against the catalogs of a :class:`ValidationContext`.

    One validator can be shared between threads as long as its context is not
    modified while validations are running.
    """

    def __init__(self, context: Optional[ValidationContext] = None):
        """
        Args:
            context: registries to validate against. The default context (the
                shipped tables plus configured extras) is built when omitted.
        """
        self.context = context if context is not None else ValidationContext.default()
        self._checks: List[Tuple[str, Check]] = []

    def add_check(self, name: str, check: Check) -> None:
        """Register an extra check run after the built-in passes.

        *check* receives the parsed graph and returns the issues it found.
        """
        if not callable(check):
            raise TypeError("check must be callable")
        self._checks.append((name, check))

    def validate(self, graph: Any, strict_mode: bool = False) -> ValidationReport:
        """Validate *graph*, a :class:`WorkflowGraph` or a raw JSON-style mapping."""
        start = time.perf_counter()
        report = ValidationReport()

        if graph is None:
            report.add_error(IssueCategory.SCHEMA, "No workflow was provided")
            return report
        if isinstance(graph, Mapping):
            graph = WorkflowGraph.from_dict(graph)
        elif not isinstance(graph, WorkflowGraph):
            report.add_error(
                IssueCategory.SCHEMA,
                f"Workflow must be an object, got {type(graph).__name__}",
            )
            return report
        if len(self.context.catalog) == 0:
            report.add_error(
                IssueCategory.SCHEMA, "The node type catalog is empty; load it before validating"
            )
            return report

        report.workflow_name = graph.name
        report.nodes_validated = len(graph.nodes)
        report.connections_validated = graph.connection_count()

        self._check_schema(graph, report)
        self._check_node_types(graph, report)
        self._check_parameters(graph, report)
        self._check_connections(graph, report)
        self._check_credentials(graph, report)
        self._run_custom_checks(graph, report)

        if strict_mode:
            report.issues = [
                dataclasses.replace(i, severity=IssueSeverity.ERROR) for i in report.issues
            ]

        logger.info(
            "Validated workflow %r: %d errors, %d warnings in %.1f ms",
            graph.name,
            len(report.errors),
            len(report.warnings),
            (time.perf_counter() - start) * 1000,
        )
        return report

    # -- passes -------------------------------------------------------------

    def _check_schema(self, graph: WorkflowGraph, report: ValidationReport):
        for message in graph.parse_errors:
            report.add_error(IssueCategory.SCHEMA, message)

        if not isinstance(graph.name, str) or not graph.name.strip():
            report.add_error(IssueCategory.SCHEMA, "Workflow name is required")
        if not graph.nodes and not graph.parse_errors:
            report.add_error(IssueCategory.SCHEMA, "Workflow has no nodes")

        seen_ids: Set[Any] = set()
        seen_positions: Dict[Tuple[float, float], Any] = {}
        for index, node in enumerate(graph.nodes):
            if not isinstance(node.id, str) or not node.id:
                report.add_error(
                    IssueCategory.SCHEMA,
                    f"Node at index {index} needs a non-empty string id",
                    context=_label(node) if node.name else None,
                )
            elif node.id in seen_ids:
                report.add_error(
                    IssueCategory.SCHEMA, f"Duplicate node id '{node.id}'", node_id=node.id
                )
            else:
                seen_ids.add(node.id)

            label = _label(node)
            if not isinstance(node.name, str) or not node.name:
                report.add_error(
                    IssueCategory.SCHEMA, f"Node '{label}' is missing a name", node_id=node.id
                )
            if not isinstance(node.type, str) or not node.type:
                report.add_error(
                    IssueCategory.SCHEMA, f"Node '{label}' is missing a type", node_id=node.id
                )

            key = position_key(node.position)
            if key is None:
                report.add_error(
                    IssueCategory.SCHEMA,
                    f"Node '{label}' has an invalid position {node.position!r}; expected [x, y]",
                    node_id=node.id,
                )
            elif key in seen_positions:
                report.add_error(
                    IssueCategory.SCHEMA,
                    f"Node '{label}' overlaps node '{seen_positions[key]}' "
                    f"at position {list(node.position)}",
                    node_id=node.id,
                )
            else:
                seen_positions[key] = label

    def _check_node_types(self, graph: WorkflowGraph, report: ValidationReport):
        catalog = self.context.catalog
        for node in graph.nodes:
            if not isinstance(node.type, str) or not node.type:
                continue
            if catalog.is_valid(node.type):
                continue
            chain = self.context.corrections.resolve(node.type, catalog.is_valid)
            suggestion = chain[-1].replacement_type if chain else catalog.suggest_similar(node.type)
            report.add_error(
                IssueCategory.NODE_TYPE,
                f"Unknown node type '{node.type}'",
                node_id=node.id,
                context=_label(node),
                suggestion=suggestion,
            )

    def _check_parameters(self, graph: WorkflowGraph, report: ValidationReport):
        for node in graph.nodes:
            if not isinstance(node.type, str):
                continue
            contract = self.context.catalog.lookup_contract(node.type)
            if contract is None:
                continue
            label = _label(node)
            params = node.parameters

            for name in contract.required_parameters:
                value = params.get(name)
                if value is None or value == "":
                    report.add_warning(
                        IssueCategory.PARAMETER,
                        f"Node '{label}' is missing required parameter '{name}'",
                        node_id=node.id,
                    )

            for name, expected in contract.parameter_types.items():
                value = params.get(name)
                if value is None or _is_expression(value) or expected.matches(value):
                    continue
                report.add_warning(
                    IssueCategory.PARAMETER,
                    f"Parameter '{name}' of node '{label}' should be a {expected.value}, "
                    f"got {type(expected).of(value)}",
                    node_id=node.id,
                )

            if contract.supported_operations is not None:
                operation = params.get(contract.operation_parameter)
                if (
                    operation is not None
                    and operation != ""
                    and not _is_expression(operation)
                    and operation not in contract.supported_operations
                ):
                    report.add_error(
                        IssueCategory.PARAMETER,
                        f"Node '{label}' uses unsupported {contract.operation_parameter} "
                        f"{operation!r}; expected one of: "
                        f"{', '.join(sorted(contract.supported_operations))}",
                        node_id=node.id,
                    )

    def _check_connections(self, graph: WorkflowGraph, report: ValidationReport):
        node_ids = graph.node_ids()
        edges: List[Tuple[Any, Any]] = []
        connected: Set[Any] = set()

        for source, ports in graph.connections.items():
            if source not in node_ids:
                report.add_error(
                    IssueCategory.CONNECTION,
                    f"Connections declared for unknown source node '{source}'",
                    node_id=source,
                )

        for source, port, conn in graph.iter_connections():
            edge = f"{source} -> {conn.node}"
            try:
                target_known = conn.node in node_ids
            except TypeError:
                target_known = False
            if not target_known:
                report.add_error(
                    IssueCategory.CONNECTION,
                    f"Connection from '{source}' targets unknown node '{conn.node}'",
                    node_id=source,
                    context=edge,
                    suggestion=(
                        suggest(conn.node, sorted(i for i in node_ids if isinstance(i, str)))
                        if isinstance(conn.node, str)
                        else None
                    ),
                )
            if not isinstance(conn.type, str) or not conn.type:
                report.add_error(
                    IssueCategory.CONNECTION,
                    f"Connection '{source}'.{port} is missing its connection type",
                    node_id=source,
                    context=edge,
                )
            if not isinstance(conn.index, int) or isinstance(conn.index, bool) or conn.index < 0:
                report.add_error(
                    IssueCategory.CONNECTION,
                    f"Connection '{source}'.{port} needs a non-negative input index, "
                    f"got {conn.index!r}",
                    node_id=source,
                    context=edge,
                )

            if source in node_ids and target_known:
                edges.append((source, conn.node))
                if source == conn.node:
                    report.add_warning(
                        IssueCategory.CONNECTION,
                        f"Node '{source}' is connected to itself",
                        node_id=source,
                    )
                else:
                    connected.update((source, conn.node))

        for node in graph.nodes:
            if not isinstance(node.type, str) or (isinstance(node.id, str) and node.id in connected):
                continue
            if self.context.catalog.is_entry_type(node.type):
                continue
            report.add_warning(
                IssueCategory.CONNECTION,
                f"Node '{_label(node)}' {_DISCONNECTED}",
                node_id=node.id,
            )

        ordered_ids = [n.id for n in graph.nodes if isinstance(n.id, str)]
        cycle = detect_cycle(list(dict.fromkeys(ordered_ids)), edges)
        if cycle:
            path = " -> ".join(str(n) for n in cycle + [cycle[0]])
            report.add_warning(
                IssueCategory.CONNECTION,
                "Connections form a cycle",
                node_id=cycle[0],
                context=path,
            )

    def _check_credentials(self, graph: WorkflowGraph, report: ValidationReport):
        catalog = self.context.catalog
        registry = self.context.credentials
        resolve = self.context.credential_resolver

        for node in graph.nodes:
            if not isinstance(node.type, str) or not catalog.is_valid(node.type):
                continue
            contract = catalog.lookup_contract(node.type)
            required = contract.required_credential_types if contract else ()
            present = [t for t in node.credentials if t not in required]
            label = _label(node)

            for credential_type in list(required) + present:
                fields = resolve(node, credential_type)
                if fields is None:
                    report.add_warning(
                        IssueCategory.CREDENTIAL,
                        f"Node '{label}' requires credential '{credential_type}'",
                        node_id=node.id,
                    )
                    continue
                credential_contract = registry.lookup(credential_type)
                if credential_contract is None:
                    if credential_type not in required:
                        report.add_warning(
                            IssueCategory.CREDENTIAL,
                            f"Credential type '{credential_type}' on node '{label}' "
                            "is not recognized",
                            node_id=node.id,
                        )
                    continue
                problem = credential_contract.validate(fields)
                if problem:
                    report.add_warning(
                        IssueCategory.CREDENTIAL,
                        f"Credential '{credential_type}' of node '{label}': {problem}",
                        node_id=node.id,
                    )

    def _run_custom_checks(self, graph: WorkflowGraph, report: ValidationReport):
        for name, check in self._checks:
            try:
                issues = list(check(graph))
            except Exception as exc:
                logger.warning("Custom check %s failed", name, exc_info=True)
                report.add_error(IssueCategory.SCHEMA, f"Check '{name}' failed: {exc}")
                continue
            report.issues.extend(issues)
