# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Deterministic, idempotent auto-repair of workflow graphs.

Repair runs four ordered phases over a graph, mutating it in place:

1. identity: unique string ids and unique grid positions;
2. type remap: unregistered types get the type their correction rules lead
   to, in one step, with synthesized parameters; rules that never reach a
   registered type are not applied;
3. connection: self-loop connections are pruned (longer cycles are kept);
4. parameter: a short allow-list of conservative parameter defaults.

No phase depends on wall-clock time or randomness, and a repaired graph gives
no further corrections when repaired again.
"""

import copy
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from flowmend_common.constants import (
    DEFAULT_GRID_COLUMN_SPACING,
    DEFAULT_GRID_ORIGIN_X,
    DEFAULT_GRID_ORIGIN_Y,
    DEFAULT_GRID_ROW_SPACING,
    DEFAULT_GRID_ROWS,
)

from flowmend_core.context import ValidationContext
from flowmend_core.corrections import CorrectionRule
from flowmend_core.model import WorkflowGraph
from flowmend_core.validator import position_key

if TYPE_CHECKING:
    from flowmend_core.config import FlowmendConfig

logger = logging.getLogger(__name__)

PHASE_IDENTITY = "identity"
PHASE_TYPE_REMAP = "type_remap"
PHASE_CONNECTION = "connection"
PHASE_PARAMETER = "parameter"
PHASES = (PHASE_IDENTITY, PHASE_TYPE_REMAP, PHASE_CONNECTION, PHASE_PARAMETER)

PLACEHOLDER_URL = "https://api.example.com"


@dataclass(frozen=True)
class RepairAction:
    """One change made to a graph during repair."""

    phase: str
    node_id: Any
    description: str

    def __str__(self) -> str:
        return f"[{self.phase}] {self.description}"


@dataclass(frozen=True)
class GridLayout:
    """Column-major grid used to place nodes whose position must be reassigned."""

    origin_x: int = DEFAULT_GRID_ORIGIN_X
    origin_y: int = DEFAULT_GRID_ORIGIN_Y
    column_spacing: int = DEFAULT_GRID_COLUMN_SPACING
    row_spacing: int = DEFAULT_GRID_ROW_SPACING
    rows: int = DEFAULT_GRID_ROWS

    @classmethod
    def from_config(cls, config: "FlowmendConfig") -> "GridLayout":
        return cls(
            origin_x=config.grid_origin_x,
            origin_y=config.grid_origin_y,
            column_spacing=config.grid_column_spacing,
            row_spacing=config.grid_row_spacing,
            rows=config.grid_rows,
        )

    def slot(self, index: int) -> List[int]:
        column, row = divmod(index, self.rows)
        return [
            self.origin_x + column * self.column_spacing,
            self.origin_y + row * self.row_spacing,
        ]


# -- parameter defaulting ------------------------------------------------------

NO_CHANGE = object()
ParameterFixer = Callable[[Any], Any]


@dataclass(frozen=True)
class ParameterFix:
    """Fill or coerce one parameter of one node type.

    ``fix`` receives the current value (``None`` when absent) and returns the
    new value, or :data:`NO_CHANGE`. A fix must return ``NO_CHANGE`` for any
    value it produced itself.
    """

    node_type: str
    parameter: str
    description: str
    fix: ParameterFixer


def default_to(default: Any) -> ParameterFixer:
    def fix(value: Any) -> Any:
        return default if value is None or value == "" else NO_CHANGE

    return fix


def number_to_string(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return NO_CHANGE
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


DEFAULT_PARAMETER_FIXES: Tuple[ParameterFix, ...] = (
    ParameterFix("n8n-nodes-base.httpRequest", "method", "default HTTP method", default_to("GET")),
    ParameterFix("n8n-nodes-base.httpRequest", "url", "placeholder URL", default_to(PLACEHOLDER_URL)),
    ParameterFix(
        "n8n-nodes-base.googleCalendar", "operation", "default operation", default_to("create")
    ),
    ParameterFix("n8n-nodes-base.telegram", "chatId", "chat id as string", number_to_string),
)


def short_type(type_id: str) -> str:
    """``"n8n-nodes-base.googleVision"`` -> ``"googleVision"``."""
    return type_id.rsplit(".", 1)[-1]


class AutoRepairEngine:
    """Applies deterministic repairs to workflow graphs.

    Repairs mutate the graph passed in; callers that need the original should
    pass a copy (:meth:`WorkflowGraph.from_dict` already copies its input).
    """

    def __init__(
        self,
        context: Optional[ValidationContext] = None,
        layout: Optional[GridLayout] = None,
        fixes: Optional[Iterable[ParameterFix]] = None,
    ):
        self.context = context if context is not None else ValidationContext.default()
        self.layout = layout or GridLayout()
        self._fixes: Dict[str, List[ParameterFix]] = {}
        for fix in DEFAULT_PARAMETER_FIXES if fixes is None else fixes:
            self._fixes.setdefault(fix.node_type, []).append(fix)

    def repair(self, graph: WorkflowGraph) -> int:
        """Repair *graph* in place and return the number of corrections made."""
        return len(self.repair_detailed(graph))

    def repair_detailed(self, graph: WorkflowGraph) -> List[RepairAction]:
        """Repair *graph* in place and return every change made, in order."""
        if not isinstance(graph, WorkflowGraph):
            raise TypeError(f"expected WorkflowGraph, got {type(graph).__name__}")

        actions: List[RepairAction] = []
        actions.extend(self._fix_identities(graph))
        actions.extend(self._fix_positions(graph))
        actions.extend(self._remap_types(graph))
        actions.extend(self._prune_self_loops(graph))
        actions.extend(self._fill_parameters(graph))

        for action in actions:
            logger.info("Repaired workflow %r: %s", graph.name, action)
        return actions

    # -- phase A: identity & layout -----------------------------------------

    def _fix_identities(self, graph: WorkflowGraph) -> List[RepairAction]:
        actions = []
        taken: Set[str] = {n.id for n in graph.nodes if isinstance(n.id, str) and n.id}
        seen: Set[str] = set()
        for index, node in enumerate(graph.nodes):
            if isinstance(node.id, str) and node.id:
                if node.id not in seen:
                    seen.add(node.id)
                    continue
                base = f"{node.id}-{index + 1}"
                reason = f"duplicate id '{node.id}'"
            else:
                base = f"node-{index + 1}"
                reason = f"invalid id {node.id!r}"

            new_id, n = base, 2
            while new_id in taken:
                new_id = f"{base}-{n}"
                n += 1
            taken.add(new_id)
            seen.add(new_id)
            node.id = new_id
            actions.append(
                RepairAction(PHASE_IDENTITY, new_id, f"renamed node with {reason} to '{new_id}'")
            )
        return actions

    def _fix_positions(self, graph: WorkflowGraph) -> List[RepairAction]:
        actions = []
        # The pairwise collision check is quadratic in the worst case; fine for a few hundred nodes.
        original = {position_key(n.position) for n in graph.nodes} - {None}
        taken: Set[Tuple[float, float]] = set()
        for index, node in enumerate(graph.nodes):
            key = position_key(node.position)
            if key is not None and key not in taken:
                taken.add(key)
                continue

            # Start from the node's own slot and skip any position already in use
            slot = index
            while True:
                candidate = self.layout.slot(slot)
                slot += 1
                candidate_key = (float(candidate[0]), float(candidate[1]))
                if candidate_key not in original and candidate_key not in taken:
                    break
            reason = "overlapping" if key is not None else "invalid"
            actions.append(
                RepairAction(
                    PHASE_IDENTITY,
                    node.id,
                    f"moved node '{node.id}' from {reason} position {node.position!r} to {candidate}",
                )
            )
            node.position = candidate
            taken.add(candidate_key)
        return actions

    # -- phase B: type remap ------------------------------------------------

    def _remap_types(self, graph: WorkflowGraph) -> List[RepairAction]:
        actions = []
        catalog = self.context.catalog
        for node in graph.nodes:
            if not isinstance(node.type, str) or catalog.is_valid(node.type):
                continue
            chain = self.context.corrections.resolve(node.type, catalog.is_valid)
            if not chain:
                if node.type in self.context.corrections:
                    logger.warning("Correction rules for %s never reach a registered type", node.type)
                continue

            parameters = self._synthesize(node.id, chain, node.parameters)
            if parameters is None:
                continue

            old_type, new_type = node.type, chain[-1].replacement_type
            node.type = new_type
            node.parameters = parameters
            suffix = f" ({short_type(old_type)})"
            if isinstance(node.name, str) and not node.name.endswith(suffix):
                node.name += suffix
            actions.append(
                RepairAction(
                    PHASE_TYPE_REMAP,
                    node.id,
                    f"changed type of node '{node.id}' from '{old_type}' to "
                    f"'{new_type}': {'; '.join(rule.rationale for rule in chain)}",
                )
            )
        return actions

    @staticmethod
    def _synthesize(
        node_id: Any, chain: List[CorrectionRule], params: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Run each rule's synthesizer in turn; None when any of them fails."""
        parameters: Any = copy.deepcopy(params)
        for rule in chain:
            try:
                parameters = rule.synthesize_parameters(parameters)
            except Exception:
                logger.warning(
                    "Could not remap node %r from %s to %s",
                    node_id,
                    rule.match_type,
                    rule.replacement_type,
                    exc_info=True,
                )
                return None
            if not isinstance(parameters, dict):
                logger.warning(
                    "Correction rule for %s returned %s instead of a parameter mapping",
                    rule.match_type,
                    type(parameters).__name__,
                )
                return None
        return parameters

    # -- phase C: connections -----------------------------------------------

    def _prune_self_loops(self, graph: WorkflowGraph) -> List[RepairAction]:
        actions = []
        for source, ports in graph.connections.items():
            for port, targets in ports.items():
                kept = [c for c in targets if c.node != source]
                for _ in range(len(targets) - len(kept)):
                    actions.append(
                        RepairAction(
                            PHASE_CONNECTION,
                            source,
                            f"removed self-loop connection '{source}'.{port} -> '{source}'",
                        )
                    )
                ports[port] = kept
        return actions

    # -- phase D: parameter defaults ----------------------------------------

    def _fill_parameters(self, graph: WorkflowGraph) -> List[RepairAction]:
        actions = []
        for node in graph.nodes:
            fixes = self._fixes.get(node.type) if isinstance(node.type, str) else None
            for fix in fixes or ():
                current = node.parameters.get(fix.parameter)
                value = fix.fix(current)
                if value is NO_CHANGE:
                    continue
                node.parameters[fix.parameter] = value
                actions.append(
                    RepairAction(
                        PHASE_PARAMETER,
                        node.id,
                        f"set '{fix.parameter}' of node '{node.id}' to {value!r} ({fix.description})",
                    )
                )
        return actions
