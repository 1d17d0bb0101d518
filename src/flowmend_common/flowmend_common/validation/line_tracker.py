# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Locate workflow nodes in their source document by 1-based line number.

JSON workflow exports are valid YAML flow documents, so PyYAML's composer
gives line positions for both formats.
"""

from typing import Dict, Optional

import yaml


def _compose(content: str) -> Optional[yaml.Node]:
    try:
        return yaml.compose(content)
    except yaml.YAMLError:
        return None


def node_line_map(content: str) -> Dict[str, int]:
    """Return ``{node_id: line}`` for every entry of the top-level ``nodes`` list.

    The line is that of the node's ``id`` key. Entries without a scalar id are
    skipped, and a repeated id keeps its first line.
    """
    doc = _compose(content)
    if not isinstance(doc, yaml.MappingNode):
        return {}

    lines: Dict[str, int] = {}
    for kn, vn in doc.value:
        if kn.value != "nodes" or not isinstance(vn, yaml.SequenceNode):
            continue
        for item in vn.value:
            if not isinstance(item, yaml.MappingNode):
                continue
            for ik, iv in item.value:
                if ik.value == "id" and isinstance(iv, yaml.ScalarNode):
                    lines.setdefault(str(iv.value), ik.start_mark.line + 1)
                    break
    return lines
