# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

from typing import Final, Tuple

# Node type returned by suggestions when nothing in the catalog looks similar.
DEFAULT_FALLBACK_NODE_TYPE: Final[str] = "n8n-nodes-base.function"

# Deterministic layout grid used when a node position must be reassigned.
DEFAULT_GRID_ORIGIN_X: Final[int] = 200
DEFAULT_GRID_ORIGIN_Y: Final[int] = 200
DEFAULT_GRID_COLUMN_SPACING: Final[int] = 350
DEFAULT_GRID_ROW_SPACING: Final[int] = 200
DEFAULT_GRID_ROWS: Final[int] = 4

WORKFLOW_FILE_SUFFIXES: Final[Tuple[str, ...]] = (".json", ".yaml", ".yml")

# Separators used to split node type identifiers into comparable tokens.
TYPE_TOKEN_PATTERN: Final[str] = r"[-_.\s]+"
