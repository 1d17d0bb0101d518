# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Suggestions for unrecognized node types and workflow document discovery."""

import difflib
import math
import os
import re
from typing import Iterable, List, Optional

from flowmend_common.constants import TYPE_TOKEN_PATTERN, WORKFLOW_FILE_SUFFIXES

_TOKEN_RE = re.compile(TYPE_TOKEN_PATTERN)


def tokenize_type(type_id: str) -> List[str]:
    """Split a node type identifier into lower-case tokens on separators.

    ``"n8n-nodes-base.googleSheets"`` becomes
    ``["n8n", "nodes", "base", "googlesheets"]``.
    """
    return [t for t in _TOKEN_RE.split(type_id.lower()) if t]


def tokens_overlap(invalid_tokens: List[str], candidate_tokens: List[str]) -> int:
    """Count the tokens of *invalid_tokens* that appear inside, or contain, a candidate token."""
    return sum(
        1
        for token in invalid_tokens
        if any(token in other or other in token for other in candidate_tokens)
    )


def first_overlapping(invalid_type: str, candidates: Iterable[str]) -> Optional[str]:
    """Return the first candidate whose tokens overlap at least half of *invalid_type*'s.

    Candidates are scanned in the order given, so the result is deterministic
    for a given catalog. Returns None when nothing qualifies.
    """
    invalid_tokens = tokenize_type(invalid_type)
    if not invalid_tokens:
        return None
    threshold = math.ceil(len(invalid_tokens) / 2)
    for candidate in candidates:
        if tokens_overlap(invalid_tokens, tokenize_type(candidate)) >= threshold:
            return candidate
    return None


def suggest(ref: str, candidates: List[str], cutoff: float = 0.6) -> Optional[str]:
    """Return the candidate closest to *ref* by edit similarity, or None if none is close."""
    matches = difflib.get_close_matches(ref, list(dict.fromkeys(candidates)), n=1, cutoff=cutoff)
    return matches[0] if matches else None


def find_workflow_files(workflows_dir: str) -> List[str]:
    """Return every workflow document (JSON or YAML) under *workflows_dir*, sorted."""
    results: List[str] = []
    if not os.path.isdir(workflows_dir):
        return results
    for root, _dirs, files in os.walk(workflows_dir):
        for fname in sorted(files):
            if fname.endswith(WORKFLOW_FILE_SUFFIXES):
                results.append(os.path.join(root, fname))
    return sorted(results)
