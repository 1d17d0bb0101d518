# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Smart error extraction and actionable error messages."""

import re
from typing import Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

console = Console(stderr=True)

# Checked in order; the first matching pattern wins.
ERROR_PATTERNS = {
    "config": {
        "pattern": r"(validation error.* for flowmendconfig)",
        "message": "Invalid configuration",
        "action": "Check the FLOWMEND_* environment variables named above",
    },
    "catalog": {
        "pattern": r"(cannot read table|invalid yaml|top level must be a mapping|contract '|credential '|category ')",
        "message": "Invalid node type or credential table",
        "action": "Fix the table named above, or unset FLOWMEND_CATALOG_FILE / FLOWMEND_CREDENTIALS_FILE",
    },
    "not_found": {
        "pattern": r"(no such file|not found|does not exist)",
        "message": "File not found",
        "action": "Check the path, or pass a directory to validate every workflow in it",
    },
    "permission": {
        "pattern": r"(permission denied|access denied)",
        "message": "Permission denied",
        "action": "Check file permissions or run with appropriate privileges",
    },
    "json": {
        "pattern": r"(expecting value|expecting property name|expecting ',' delimiter|unterminated string|extra data|invalid control character)",
        "message": "The document is not valid JSON",
        "action": "Look for trailing commas, unquoted keys or a truncated export near the reported line",
    },
    "yaml": {
        "pattern": r"(mapping values are not allowed|could not find expected|found character|while scanning|while parsing)",
        "message": "The document is not valid YAML",
        "action": "Check indentation and quoting near the reported line",
    },
    "encoding": {
        "pattern": r"(codec can't decode|unicodedecodeerror)",
        "message": "The document is not UTF-8 text",
        "action": "Re-export the workflow as UTF-8 JSON",
    },
}


def detect_error_pattern(output: str) -> Optional[Tuple[str, str]]:
    output_lower = output.lower()
    for pattern_info in ERROR_PATTERNS.values():
        if re.search(pattern_info["pattern"], output_lower, re.IGNORECASE):
            return (pattern_info["message"], pattern_info["action"])
    return None


def show_error(title: str, output: str, log_file: Optional[str] = None):
    """Display a formatted error with smart extraction."""
    console.print()
    detected = detect_error_pattern(output)
    if detected:
        message, action = detected
        error_text = Text()
        error_text.append(f"✗ {title}\n\n", style="bold red")
        error_text.append(f"{message}\n\n", style="red")
        error_text.append("→ Fix: ", style="bold yellow")
        error_text.append(f"{action}\n", style="yellow")
        console.print(Panel(error_text, border_style="red", expand=False))
    else:
        console.print(Panel(Text(f"✗ {title}", style="bold red"), border_style="red", expand=False))

    lines = output.strip().split("\n")
    context = lines[-10:] if len(lines) > 10 else lines
    if context:
        console.print("\n[dim]Details:[/dim]")
        for line in context:
            console.print(Text.assemble(("  │ ", "dim"), line))

    if log_file:
        console.print(f"\n[dim]Full logs: {log_file}[/dim]")
    console.print()
