# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Validate, optionally repair, and re-validate a workflow graph."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from flowmend_core import metrics
from flowmend_core.config import FlowmendConfig, get_config
from flowmend_core.context import ValidationContext
from flowmend_core.logconfig import RunContext
from flowmend_core.model import WorkflowGraph
from flowmend_core.repair import AutoRepairEngine, GridLayout, RepairAction
from flowmend_core.validator import GraphValidator, ValidationReport

logger = logging.getLogger(__name__)


@dataclass
class ValidationOptions:
    strict_mode: bool = False
    auto_correct: bool = True

    @classmethod
    def from_config(cls, config: FlowmendConfig) -> "ValidationOptions":
        return cls(strict_mode=config.strict_mode, auto_correct=config.auto_correct)


@dataclass
class RepairOutcome:
    """Final report plus what repair changed.

    ``graph`` is the (possibly repaired) graph, or None when the input could
    not be read as a graph at all.
    """

    report: ValidationReport
    correction_count: int = 0
    actions: List[RepairAction] = field(default_factory=list)
    graph: Optional[WorkflowGraph] = None


class Orchestrator:
    """Runs validate -> repair -> re-validate with one shared context."""

    def __init__(
        self,
        context: Optional[ValidationContext] = None,
        config: Optional[FlowmendConfig] = None,
    ):
        self.config = config if config is not None else get_config()
        self.context = context if context is not None else ValidationContext.default(self.config)
        self.validator = GraphValidator(self.context)
        self.repair_engine = AutoRepairEngine(self.context, layout=GridLayout.from_config(self.config))

    def validate_and_repair(
        self, graph: Any, options: Optional[ValidationOptions] = None
    ) -> RepairOutcome:
        """Validate *graph*; when ``options.auto_correct`` is set, repair and validate again.

        The second report is authoritative: repair can introduce issues of its
        own (e.g. a remapped node whose synthesized parameters are incomplete).
        A raw mapping is parsed into a new graph, so the caller's document is
        never modified; a :class:`WorkflowGraph` is repaired in place.
        """
        if options is None:
            options = ValidationOptions.from_config(self.config)

        start = time.perf_counter()
        name = graph.get("name") if isinstance(graph, Mapping) else getattr(graph, "name", None)
        with RunContext(workflow=str(name or "")) as run:
            if isinstance(graph, Mapping):
                graph = WorkflowGraph.from_dict(graph)

            report = self.validator.validate(graph, strict_mode=options.strict_mode)
            actions: List[RepairAction] = []

            if options.auto_correct and isinstance(graph, WorkflowGraph):
                actions = self.repair_engine.repair_detailed(graph)
                if actions:
                    report = self.validator.validate(graph, strict_mode=options.strict_mode)
                metrics.record_corrections(actions)

            report.corrections = len(actions)
            metrics.record_validation(report, time.perf_counter() - start)
            run.mark_duration()
            logger.info(
                "Workflow %r: valid=%s, %d errors, %d warnings, %d corrections",
                report.workflow_name,
                report.is_valid,
                len(report.errors),
                len(report.warnings),
                report.corrections,
            )

        return RepairOutcome(
            report=report,
            correction_count=len(actions),
            actions=actions,
            graph=graph if isinstance(graph, WorkflowGraph) else None,
        )

