# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Workflow validation helpers shared between the engine and the CLI.

Public API
----------
detect_cycle            Detect connection cycles and return the offending path.
node_line_map           Map node ids to the source line of their entry.
first_overlapping       Token-overlap match of an unknown node type against candidates.
tokenize_type           Split a node type identifier into comparable tokens.
suggest                 Return the closest match for a misspelled reference.
find_workflow_files     Enumerate workflow documents under a directory.
"""

from .cycle_detector import detect_cycle
from .line_tracker import node_line_map
from .suggestions import (
    find_workflow_files,
    first_overlapping,
    suggest,
    tokenize_type,
    tokens_overlap,
)

__all__ = [
    "detect_cycle",
    "node_line_map",
    "find_workflow_files",
    "first_overlapping",
    "suggest",
    "tokenize_type",
    "tokens_overlap",
]
