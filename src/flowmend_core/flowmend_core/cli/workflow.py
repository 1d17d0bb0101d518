# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""CLI commands for workflow operations."""

import argparse
import json
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from flowmend_common.validation import find_workflow_files, node_line_map

from flowmend_core.config import load_and_validate_config
from flowmend_core.context import CatalogLoadError
from flowmend_core.cli.errors import show_error
from flowmend_core.logconfig import configure_logging
from flowmend_core.orchestrator import Orchestrator, RepairOutcome, ValidationOptions
from flowmend_core.validator import IssueSeverity, ValidationIssue

console = Console()


@dataclass
class FileResult:
    """Outcome of validating one workflow document."""

    file: str
    outcome: RepairOutcome
    lines: Dict[str, int] = field(default_factory=dict)

    def line_of(self, issue: ValidationIssue) -> Optional[int]:
        if isinstance(issue.node_id, str):
            return self.lines.get(issue.node_id)
        return None


def build_workflow_parser() -> argparse.ArgumentParser:
    """Build the argument parser for workflow commands."""
    parser = argparse.ArgumentParser(
        description="Validate and repair workflow-automation graphs",
        prog="flowmend",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level for engine messages written to stderr (default: FLOWMEND_LOG_LEVEL or WARNING)",
    )

    subparsers = parser.add_subparsers(
        dest="workflow_action",
        help="Workflow action to perform",
        required=True,
    )

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate workflow documents",
        description=(
            "Validate workflow documents (JSON or YAML) against the node type, "
            "parameter, connection and credential contracts. "
            "With --fix, apply deterministic repairs and validate again."
        ),
    )
    validate_parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help=(
            "Path to a workflow document or a directory of them. "
            "Defaults to the current directory."
        ),
    )
    validate_parser.add_argument(
        "--strict",
        action="store_true",
        help="Strict mode: report every warning as an error",
    )
    validate_parser.add_argument(
        "--fix",
        action="store_true",
        help="Repair the workflow before the final validation",
    )
    validate_parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Write the (repaired) workflow as JSON to this file; needs a single input document",
    )
    validate_parser.add_argument(
        "--format",
        choices=["text", "table", "json"],
        default="text",
        help="Output format (default: text)",
    )
    validate_parser.add_argument(
        "--warnings-as-errors",
        "-W",
        action="store_true",
        help="Treat warnings as errors (affects exit code)",
    )
    validate_parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Only output errors and summary",
    )

    return parser


def load_document(path: str) -> tuple:
    """Read *path* and return ``(document, text)``. JSON unless the suffix says YAML."""
    with open(path, encoding="utf-8") as f:
        text = f.read()
    if path.endswith((".yaml", ".yml")):
        return yaml.safe_load(text), text
    return json.loads(text), text


def print_result_text(results: List[FileResult], quiet: bool = False):
    """Print validation results in text format."""
    for result in results:
        for issue in result.outcome.report.issues:
            if quiet and issue.severity == IssueSeverity.WARNING:
                continue
            loc = result.file
            line = result.line_of(issue)
            if line is not None:
                loc += f":{line}"
            style = "red" if issue.severity == IssueSeverity.ERROR else "yellow"
            console.print(f"[{style}]{loc}: {issue}[/{style}]", highlight=False)
        if not quiet:
            for action in result.outcome.actions:
                console.print(f"[cyan]{result.file}: fixed: {action}[/cyan]", highlight=False)


def print_result_table(results: List[FileResult], quiet: bool = False):
    """Print validation results in table format."""
    if not any(r.outcome.report.issues for r in results):
        return

    table = Table(title="Validation Results")
    table.add_column("File", style="cyan")
    table.add_column("Line", style="magenta")
    table.add_column("Severity", style="bold")
    table.add_column("Category")
    table.add_column("Message")
    table.add_column("Suggestion", style="green")

    for result in results:
        for issue in result.outcome.report.issues:
            if quiet and issue.severity == IssueSeverity.WARNING:
                continue
            severity_style = "red" if issue.severity == IssueSeverity.ERROR else "yellow"
            line = result.line_of(issue)
            table.add_row(
                result.file,
                str(line) if line else "-",
                f"[{severity_style}]{issue.severity.value}[/{severity_style}]",
                issue.category.value,
                issue.message + (f" (in {issue.context})" if issue.context else ""),
                issue.suggestion or "-",
            )

    console.print(table)


def print_result_json(results: List[FileResult]):
    payload: List[Dict[str, Any]] = []
    for result in results:
        entry: Dict[str, Any] = {"file": result.file}
        entry.update(result.outcome.report.to_dict(detailed=True))
        entry["actions"] = [str(a) for a in result.outcome.actions]
        payload.append(entry)
    console.print_json(json.dumps(payload, default=str))


def _collect_paths(target: str) -> Optional[List[str]]:
    if os.path.isdir(target):
        return find_workflow_files(target)
    if os.path.isfile(target):
        return [target]
    return None


def cmd_validate(args: argparse.Namespace) -> int:
    """Execute the validate command."""
    try:
        config = load_and_validate_config()
    except ValidationError as exc:
        show_error("Invalid configuration", str(exc))
        return 2

    configure_logging(
        level=args.log_level or config.log_level,
        fmt=config.log_format,
        log_file=config.log_file,
        max_bytes=config.max_log_file_bytes,
        backup_count=config.log_backup_count,
    )

    target = args.path or os.getcwd()
    paths = _collect_paths(target)
    if paths is None:
        show_error(f"Cannot validate {target}", f"{target} does not exist")
        return 2
    if not paths:
        console.print(f"[yellow]No workflow documents found in: {target}[/yellow]")
        return 0
    if args.output and len(paths) != 1:
        console.print("[red]Error: --output needs exactly one input document[/red]")
        return 2

    try:
        orchestrator = Orchestrator(config=config)
    except CatalogLoadError as exc:
        show_error("Could not load the node type tables", str(exc))
        return 2

    options = ValidationOptions(strict_mode=args.strict or config.strict_mode, auto_correct=args.fix)
    json_output = args.format == "json"
    if not args.quiet and not json_output:
        console.print(f"Validating: {target}")

    results: List[FileResult] = []
    load_failures = 0
    for path in paths:
        try:
            document, text = load_document(path)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as exc:
            show_error(f"Could not load {path}", str(exc))
            load_failures += 1
            continue
        outcome = orchestrator.validate_and_repair(document, options)
        results.append(FileResult(file=path, outcome=outcome, lines=node_line_map(text)))

    if json_output:
        print_result_json(results)
    elif args.format == "table":
        print_result_table(results, args.quiet)
        if not args.quiet:
            for result in results:
                for action in result.outcome.actions:
                    console.print(f"[cyan]{result.file}: fixed: {action}[/cyan]", highlight=False)
    else:
        print_result_text(results, args.quiet)

    if args.output and results:
        graph = results[0].outcome.graph
        if graph is None:
            console.print("[red]Error: nothing to write, the document is not a workflow[/red]")
            return 1
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(graph.to_dict(), f, indent=2, default=str)
            f.write("\n")
        if not args.quiet and not json_output:
            console.print(f"Wrote workflow to: {args.output}")

    error_count = sum(len(r.outcome.report.errors) for r in results) + load_failures
    warning_count = sum(len(r.outcome.report.warnings) for r in results)
    correction_count = sum(r.outcome.correction_count for r in results)

    if not json_output:
        if error_count == 0 and warning_count == 0:
            if not args.quiet:
                console.print("[green]All workflows valid.[/green]")
        else:
            summary_parts = []
            if error_count > 0:
                summary_parts.append(f"[red]{error_count} error{'s' if error_count != 1 else ''}[/red]")
            if warning_count > 0:
                summary_parts.append(
                    f"[yellow]{warning_count} warning{'s' if warning_count != 1 else ''}[/yellow]"
                )
            console.print(f"\nValidation complete: {', '.join(summary_parts)}")
        if correction_count and not args.quiet:
            console.print(
                f"[cyan]{correction_count} correction{'s' if correction_count != 1 else ''} applied[/cyan]"
            )

    # Determine exit code
    if error_count > 0:
        return 1
    if args.warnings_as_errors and warning_count > 0:
        return 1
    return 0


def dispatch(args: argparse.Namespace) -> int:
    """Dispatch to the appropriate workflow command handler."""
    if args.workflow_action == "validate":
        return cmd_validate(args)
    else:
        console.print(f"[red]Unknown workflow action: {args.workflow_action}[/red]")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for workflow commands."""
    parser = build_workflow_parser()
    args = parser.parse_args(argv)
    return dispatch(args)


if __name__ == "__main__":
    sys.exit(main())
