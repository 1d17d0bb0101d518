# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

import logging
from typing import Any, Dict

import pytest

from flowmend_core.catalog import NodeTypeContract, PrimitiveType, TypeCatalog
from flowmend_core.config import FlowmendConfig
from flowmend_core.context import ValidationContext
from flowmend_core.corrections import CorrectionCatalog, CorrectionRule
from flowmend_core.credentials import (
    CredentialContract,
    CredentialContractRegistry,
    prefix_check,
)

TRIGGER = "test.trigger"
ACTION = "test.action"
HTTP = "genericHttpRequest"
SERVICE = "test.serviceNode"
LEGACY = "legacyVision"


def synthesize_vision(params):
    return {
        "method": "POST",
        "url": "https://vision.example.com/annotate",
        "body": {"image": params.get("imageUrl")},
    }


def build_context() -> ValidationContext:
    catalog = TypeCatalog(
        categories={"triggers": [TRIGGER], "actions": [ACTION, HTTP, SERVICE]},
        contracts={
            HTTP: NodeTypeContract(
                category="actions",
                required_parameters=("method", "url"),
                parameter_types={"method": PrimitiveType.STRING, "url": PrimitiveType.STRING},
                supported_operations=frozenset({"GET", "POST"}),
                operation_parameter="method",
            ),
            SERVICE: NodeTypeContract(
                category="actions",
                required_parameters=("channel",),
                parameter_types={"channel": PrimitiveType.STRING, "limit": PrimitiveType.NUMBER},
                supported_operations=frozenset({"send", "read"}),
                required_credential_types=("serviceX",),
            ),
        },
        fallback_type=ACTION,
        entry_categories=("triggers",),
    )
    credentials = CredentialContractRegistry(
        {
            "serviceX": CredentialContract(
                required_fields=("apiKey",), format_check=prefix_check({"apiKey": ["sx-"]})
            )
        }
    )
    corrections = CorrectionCatalog(
        [CorrectionRule(LEGACY, HTTP, "legacy vision nodes are plain HTTP calls", synthesize_vision)]
    )
    return ValidationContext(catalog=catalog, credentials=credentials, corrections=corrections)


def make_workflow() -> Dict[str, Any]:
    """A trigger wired to a service node, with every parameter and credential in place."""
    return {
        "name": "Notify on trigger",
        "nodes": [
            {"id": "1", "name": "Start", "type": TRIGGER, "position": [0, 0], "parameters": {}},
            {
                "id": "2",
                "name": "Send",
                "type": SERVICE,
                "position": [300, 0],
                "parameters": {"operation": "send", "channel": "#ops"},
                "credentials": {"serviceX": {"apiKey": "sx-123"}},
            },
        ],
        "connections": {"1": {"main": [[{"node": "2", "type": "main", "index": 0}]]}},
    }


@pytest.fixture
def context() -> ValidationContext:
    return build_context()


@pytest.fixture
def workflow() -> Dict[str, Any]:
    return make_workflow()


@pytest.fixture(scope="session")
def default_context() -> ValidationContext:
    return ValidationContext.default(FlowmendConfig())


@pytest.fixture
def config() -> FlowmendConfig:
    return FlowmendConfig()


@pytest.fixture(autouse=True)
def _restore_loggers():
    """configure_logging() replaces handlers and stops propagation; undo it after each test."""
    saved = {}
    for name in ("flowmend_core", "flowmend_common"):
        logger = logging.getLogger(name)
        saved[name] = (list(logger.handlers), logger.level, logger.propagate)
    yield
    for name, (handlers, level, propagate) in saved.items():
        logger = logging.getLogger(name)
        for h in list(logger.handlers):
            if h not in handlers:
                logger.removeHandler(h)
                h.close()
        logger.setLevel(level)
        logger.propagate = propagate
