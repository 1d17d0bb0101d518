# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

import copy
import logging

import pytest

from flowmend_core.config import FlowmendConfig
from flowmend_core.model import WorkflowGraph
from flowmend_core.orchestrator import Orchestrator, ValidationOptions
from flowmend_core.repair import PHASE_IDENTITY, PHASE_TYPE_REMAP
from flowmend_core.validator import IssueCategory

HTTP = "genericHttpRequest"


@pytest.fixture
def orchestrator(context, config):
    return Orchestrator(context, config=config)


def test_duplicate_ids_are_repaired(orchestrator, workflow):
    workflow["nodes"][1]["id"] = "1"
    workflow["connections"] = {}

    outcome = orchestrator.validate_and_repair(workflow)

    assert [n.id for n in outcome.graph.nodes] == ["1", "1-2"]
    assert outcome.correction_count >= 1
    assert outcome.report.corrections == outcome.correction_count
    assert [a.phase for a in outcome.actions] == [PHASE_IDENTITY]
    assert outcome.report.is_valid
    assert outcome.report.by_category(IssueCategory.SCHEMA) == []


def test_legacy_type_is_remapped(orchestrator, workflow):
    workflow["nodes"].append(
        {
            "id": "3",
            "name": "Label image",
            "type": "legacyVision",
            "position": [600, 0],
            "parameters": {"imageUrl": "https://img.example/a.png"},
        }
    )
    workflow["connections"]["2"] = {"main": [[{"node": "3", "type": "main", "index": 0}]]}

    outcome = orchestrator.validate_and_repair(workflow)

    node = outcome.graph.get_node("3")
    assert node.type == HTTP
    assert node.parameters["url"] == "https://vision.example.com/annotate"
    assert [a.phase for a in outcome.actions] == [PHASE_TYPE_REMAP]
    assert outcome.report.by_category(IssueCategory.NODE_TYPE) == []
    assert outcome.report.is_valid


def test_clean_workflow(orchestrator, workflow):
    outcome = orchestrator.validate_and_repair(workflow)
    assert outcome.report.is_valid
    assert outcome.report.errors == []
    assert outcome.correction_count == 0
    assert outcome.actions == []


def test_credential_error_survives_repair(orchestrator, workflow):
    workflow["nodes"][1]["credentials"] = {"serviceX": {}}

    outcome = orchestrator.validate_and_repair(workflow)

    [issue] = outcome.report.issues
    assert issue.category == IssueCategory.CREDENTIAL
    assert issue.node_id == "2"
    assert "apiKey" in issue.message


def test_dangling_connection_is_reported_not_fabricated(orchestrator, workflow):
    workflow["connections"]["2"] = {"main": [[{"node": "ghost", "type": "main", "index": 0}]]}

    outcome = orchestrator.validate_and_repair(workflow)

    [issue] = outcome.report.errors
    assert issue.category == IssueCategory.CONNECTION
    assert "ghost" in issue.message
    assert outcome.graph.node_ids() == {"1", "2"}
    assert outcome.correction_count == 0


def test_auto_correct_off_only_validates(orchestrator, workflow):
    workflow["nodes"][1]["id"] = "1"
    outcome = orchestrator.validate_and_repair(workflow, ValidationOptions(auto_correct=False))

    assert outcome.correction_count == 0
    assert outcome.report.corrections == 0
    assert not outcome.report.is_valid
    assert [n.id for n in outcome.graph.nodes] == ["1", "1"]


def test_strict_mode_promotes_warnings(orchestrator, workflow):
    del workflow["nodes"][1]["parameters"]["channel"]

    lenient = orchestrator.validate_and_repair(workflow)
    strict = orchestrator.validate_and_repair(workflow, ValidationOptions(strict_mode=True))

    assert lenient.report.is_valid
    assert not strict.report.is_valid
    assert [i.category for i in strict.report.errors] == [IssueCategory.PARAMETER]


def test_options_default_to_config(context, workflow):
    workflow["nodes"][1]["id"] = "1"
    orchestrator = Orchestrator(context, config=FlowmendConfig(auto_correct=False, strict_mode=True))

    outcome = orchestrator.validate_and_repair(workflow)

    assert outcome.correction_count == 0
    assert not outcome.report.is_valid


def test_raw_document_is_not_modified(orchestrator, workflow):
    workflow["nodes"][1]["id"] = "1"
    original = copy.deepcopy(workflow)

    outcome = orchestrator.validate_and_repair(workflow)

    assert outcome.correction_count >= 1
    assert workflow == original


def test_graph_is_repaired_in_place(orchestrator, workflow):
    workflow["nodes"][1]["id"] = "1"
    graph = WorkflowGraph.from_dict(workflow)

    outcome = orchestrator.validate_and_repair(graph)

    assert outcome.graph is graph
    assert graph.nodes[1].id == "1-2"


def test_second_run_makes_no_corrections(orchestrator, workflow):
    workflow["nodes"][1]["id"] = "1"
    graph = WorkflowGraph.from_dict(workflow)

    orchestrator.validate_and_repair(graph)
    again = orchestrator.validate_and_repair(graph)

    assert again.correction_count == 0


@pytest.mark.parametrize("document", [None, ["nodes"], 42])
def test_unreadable_input(orchestrator, document):
    outcome = orchestrator.validate_and_repair(document)
    assert outcome.graph is None
    assert outcome.correction_count == 0
    assert len(outcome.report.errors) == 1
    assert outcome.report.errors[0].category == IssueCategory.SCHEMA


def test_logs_summary(orchestrator, workflow, caplog):
    with caplog.at_level(logging.INFO, logger="flowmend_core"):
        orchestrator.validate_and_repair(workflow)
    messages = [r.getMessage() for r in caplog.records if r.name == "flowmend_core.orchestrator"]
    assert messages == ["Workflow 'Notify on trigger': valid=True, 0 errors, 0 warnings, 0 corrections"]


def test_from_config():
    options = ValidationOptions.from_config(FlowmendConfig(strict_mode=True, auto_correct=False))
    assert options == ValidationOptions(strict_mode=True, auto_correct=False)
