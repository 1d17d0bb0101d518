# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

import json
import logging
import os
from unittest.mock import patch

import pytest
import yaml

import flowmend_core.cli.workflow as cli_workflow
import flowmend_core.config as config_mod
from flowmend_core.cli.errors import detect_error_pattern
from flowmend_core.cli.workflow import build_workflow_parser, main


def _document(**overrides):
    doc = {
        "name": "Run code",
        "nodes": [
            {"id": "1", "name": "Start", "type": "n8n-nodes-base.manualTrigger", "position": [0, 0]},
            {
                "id": "2",
                "name": "Transform",
                "type": "n8n-nodes-base.code",
                "position": [300, 0],
                "parameters": {"jsCode": "return items;"},
            },
        ],
        "connections": {"1": {"main": [[{"node": "2", "type": "main", "index": 0}]]}},
    }
    doc.update(overrides)
    return doc


def _write(path, document):
    path.write_text(json.dumps(document, indent=2))
    return str(path)


def _duplicate_ids():
    doc = _document(connections={})
    doc["nodes"][1]["id"] = "1"
    return doc


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """The CLI caches its config; keep each test's env separate."""
    monkeypatch.setattr(config_mod, "_config", None)
    for var in [v for v in os.environ if v.startswith("FLOWMEND_")]:
        monkeypatch.delenv(var)
    # long tmp paths would otherwise wrap messages across lines
    monkeypatch.setattr(cli_workflow.console, "width", 1000)


def test_valid_document(tmp_path, capsys):
    path = _write(tmp_path / "ok.json", _document())
    assert main(["validate", path]) == 0
    assert "All workflows valid." in capsys.readouterr().out


def test_yaml_document(tmp_path):
    path = tmp_path / "ok.yaml"
    path.write_text(yaml.safe_dump(_document()))
    assert main(["validate", str(path)]) == 0


def test_errors_give_exit_code_1(tmp_path, capsys):
    path = _write(tmp_path / "dup.json", _duplicate_ids())
    assert main(["validate", path]) == 1
    assert "Duplicate node id" in capsys.readouterr().out


def test_unknown_type_reports_line(tmp_path, capsys):
    doc = _document()
    doc["nodes"][1]["type"] = "n8n-nodes-base.notAThing"
    path = _write(tmp_path / "unknown.json", doc)
    assert main(["validate", path]) == 1
    out = capsys.readouterr().out
    assert "Unknown node type" in out
    assert "unknown.json:" in out


def test_fix_writes_repaired_document(tmp_path, capsys):
    path = _write(tmp_path / "dup.json", _duplicate_ids())
    output = tmp_path / "fixed.json"

    # the renamed node is left unconnected, which is only a warning
    assert main(["validate", path, "--fix", "--output", str(output)]) == 0

    fixed = json.loads(output.read_text())
    assert [n["id"] for n in fixed["nodes"]] == ["1", "1-2"]
    assert "correction" in capsys.readouterr().out

    assert main(["validate", str(output)]) == 0


def test_warnings_as_errors(tmp_path):
    path = _write(tmp_path / "dup.json", _duplicate_ids())
    assert main(["validate", path, "--fix"]) == 0
    assert main(["validate", path, "--fix", "-W"]) == 1


def test_strict_mode(tmp_path):
    path = _write(tmp_path / "dup.json", _duplicate_ids())
    assert main(["validate", path, "--fix", "--strict"]) == 1


def test_strict_mode_from_env(tmp_path):
    path = _write(tmp_path / "dup.json", _duplicate_ids())
    with patch.dict(os.environ, {"FLOWMEND_STRICT_MODE": "true"}):
        assert main(["validate", path, "--fix"]) == 1


def test_log_level_from_env(tmp_path):
    path = _write(tmp_path / "ok.json", _document())
    engine_logger = logging.getLogger("flowmend_core")
    previous = engine_logger.level
    try:
        assert main(["validate", path]) == 0
        assert engine_logger.level == logging.WARNING

        with patch.dict(os.environ, {"FLOWMEND_LOG_LEVEL": "debug"}):
            assert main(["validate", path]) == 0
            assert engine_logger.level == logging.DEBUG

            # the command line wins over the environment
            assert main(["--log-level", "ERROR", "validate", path]) == 0
            assert engine_logger.level == logging.ERROR
    finally:
        engine_logger.setLevel(previous)


def test_json_format(tmp_path, capsys):
    path = _write(tmp_path / "ok.json", _document())
    assert main(["validate", path, "--format", "json"]) == 0
    out = capsys.readouterr().out
    assert '"totalErrors": 0' in out
    assert "All workflows valid." not in out


def test_table_format(tmp_path, capsys):
    path = _write(tmp_path / "dup.json", _duplicate_ids())
    assert main(["validate", path, "--format", "table"]) == 1
    assert "Validation Results" in capsys.readouterr().out


def test_directory(tmp_path):
    _write(tmp_path / "a.json", _document())
    _write(tmp_path / "b.json", _duplicate_ids())
    (tmp_path / "notes.txt").write_text("not a workflow")
    assert main(["validate", str(tmp_path)]) == 1


def test_empty_directory(tmp_path):
    assert main(["validate", str(tmp_path)]) == 0


def test_output_needs_single_document(tmp_path):
    _write(tmp_path / "a.json", _document())
    _write(tmp_path / "b.json", _document())
    assert main(["validate", str(tmp_path), "--output", str(tmp_path / "out.json")]) == 2


def test_missing_path(tmp_path):
    assert main(["validate", str(tmp_path / "nope.json")]) == 2


def test_unreadable_document_is_an_error(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text('{"name": "x", "nodes": [')
    assert main(["validate", str(path)]) == 1


def test_non_object_document(tmp_path):
    path = _write(tmp_path / "list.json", [1, 2, 3])
    assert main(["validate", path, "--fix", "--output", str(tmp_path / "out.json")]) == 1
    assert not (tmp_path / "out.json").exists()


def test_invalid_config_exits_2(tmp_path):
    path = _write(tmp_path / "ok.json", _document())
    with patch.dict(os.environ, {"FLOWMEND_GRID_ROWS": "0"}):
        assert main(["validate", path]) == 2


def test_invalid_extra_catalog_exits_2(tmp_path):
    table = tmp_path / "extra.yaml"
    table.write_text("- just\n- a list\n")
    path = _write(tmp_path / "ok.json", _document())
    with patch.dict(os.environ, {"FLOWMEND_CATALOG_FILE": str(table)}):
        assert main(["validate", path]) == 2


def test_parser_requires_subcommand():
    with pytest.raises(SystemExit):
        build_workflow_parser().parse_args([])


@pytest.mark.parametrize(
    "output, expected",
    [
        ("1 validation error for FlowmendConfig", "Invalid configuration"),
        ("extra.yaml: top level must be a mapping", "Invalid node type or credential table"),
        ("[Errno 2] No such file or directory: 'x.json'", "File not found"),
        ("Expecting value: line 1 column 1 (char 0)", "The document is not valid JSON"),
        ("mapping values are not allowed here", "The document is not valid YAML"),
        ("'utf-8' codec can't decode byte 0xff", "The document is not UTF-8 text"),
    ],
)
def test_detect_error_pattern(output, expected):
    message, action = detect_error_pattern(output)
    assert message == expected
    assert action


def test_detect_error_pattern_no_match():
    assert detect_error_pattern("something else entirely") is None
