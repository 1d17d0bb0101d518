# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Rules remapping unsupported or deprecated node types to supported ones.

Each rule carries a pure ``synthesize_parameters`` function that builds the
replacement node's parameters from the old ones, so every rule can be tested
on its own.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

ParameterSynthesizer = Callable[[Mapping[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class CorrectionRule:
    match_type: str
    replacement_type: str
    rationale: str
    synthesize_parameters: ParameterSynthesizer

    def __post_init__(self):
        if not self.match_type or not self.replacement_type:
            raise ValueError("correction rules need both a match type and a replacement type")
        if self.match_type == self.replacement_type:
            raise ValueError(f"correction rule for '{self.match_type}' maps the type onto itself")
        if not callable(self.synthesize_parameters):
            raise TypeError("synthesize_parameters must be callable")


class CorrectionCatalog:
    """Correction rules indexed by the type they match. One rule per matched type."""

    def __init__(self, rules: Optional[List[CorrectionRule]] = None):
        self._rules: Dict[str, CorrectionRule] = {}
        for rule in rules or []:
            self.add_rule(rule)

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def add_rule(self, rule: CorrectionRule) -> None:
        """Add *rule*, replacing any rule already matching the same type."""
        if rule.match_type in self._rules:
            logger.debug("Replacing correction rule for %s", rule.match_type)
        self._rules[rule.match_type] = rule

    def remove_rule(self, match_type: str) -> None:
        self._rules.pop(match_type, None)

    def lookup(self, type_id: str) -> Optional[CorrectionRule]:
        return self._rules.get(type_id)

    def rules(self) -> List[CorrectionRule]:
        return list(self._rules.values())

    def resolve(self, type_id: str, is_registered: Callable[[str], bool]) -> List[CorrectionRule]:
        """Follow rules from *type_id* until one lands on a registered type.

        Returns the rules in the order they apply. The list is empty when
        *type_id* is registered already, or when no chain of rules reaches a
        registered type (no rule, a dead end, or rules that loop back).
        """
        chain: List[CorrectionRule] = []
        seen = {type_id}
        current = type_id
        while not is_registered(current):
            rule = self._rules.get(current)
            if rule is None or rule.replacement_type in seen:
                return []
            chain.append(rule)
            seen.add(rule.replacement_type)
            current = rule.replacement_type
        return chain


# ---------------------------------------------------------------------------
# Built-in parameter synthesizers
# ---------------------------------------------------------------------------


def keep_parameters(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Carry parameters over unchanged, for pure renames."""
    return copy.deepcopy(dict(params))


def vision_request(params: Mapping[str, Any]) -> Dict[str, Any]:
    image_url = params.get("imageUrl")
    if image_url:
        content = f'={{{{ $httpRequest("{image_url}").body }}}}'
    else:
        content = "={{ $base64($binary.data) }}"
    feature = "TEXT_DETECTION" if params.get("operation") == "textDetection" else "LABEL_DETECTION"
    return {
        "method": "POST",
        "url": "https://vision.googleapis.com/v1/images:annotate",
        "authentication": "serviceAccount",
        "headers": {"Content-Type": "application/json"},
        "body": {
            "requests": [
                {
                    "image": {"content": content},
                    "features": [{"type": feature, "maxResults": 50}],
                }
            ]
        },
    }


def whatsapp_message_request(params: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "method": "POST",
        "url": "https://graph.facebook.com/v18.0/{{ $credentials.whatsappPhoneNumberId }}/messages",
        "authentication": "predefinedCredentialType",
        "headers": {
            "Authorization": "Bearer {{ $credentials.whatsappToken }}",
            "Content-Type": "application/json",
        },
        "body": {
            "messaging_product": "whatsapp",
            "to": params.get("to") or "={{ $json.phoneNumber }}",
            "type": "text",
            "text": {"body": params.get("text") or params.get("message") or "={{ $json.message }}"},
        },
    }


def anthropic_messages_request(params: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "method": "POST",
        "url": "https://api.anthropic.com/v1/messages",
        "authentication": "predefinedCredentialType",
        "headers": {
            "x-api-key": "={{ $credentials.anthropicApiKey }}",
            "Content-Type": "application/json",
            "anthropic-version": "2023-06-01",
        },
        "body": {
            "model": params.get("model") or "claude-3-sonnet-20240229",
            "max_tokens": 1024,
            "messages": [{"role": "user", "content": params.get("prompt") or "={{ $json.prompt }}"}],
        },
    }


def sql_query(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Official SQL nodes run raw queries through the ``executeQuery`` operation."""
    result: Dict[str, Any] = {
        "operation": "executeQuery",
        "query": params.get("query") or "SELECT * FROM table_name LIMIT 10",
    }
    result.update(copy.deepcopy(dict(params)))
    return result


BUILTIN_RULES: List[CorrectionRule] = [
    CorrectionRule(
        "n8n-nodes-base.googleVision",
        "n8n-nodes-base.httpRequest",
        "Google Vision is called through HTTP Request against the REST API",
        vision_request,
    ),
    CorrectionRule(
        "n8n-nodes-base.whatsappBusiness",
        "n8n-nodes-base.httpRequest",
        "WhatsApp Business is called through HTTP Request against the Graph API",
        whatsapp_message_request,
    ),
    CorrectionRule(
        "n8n-nodes-base.anthropic",
        "n8n-nodes-base.httpRequest",
        "Anthropic models are called through HTTP Request against the Messages API",
        anthropic_messages_request,
    ),
    CorrectionRule(
        "n8n-nodes-base.webhookTrigger",
        "n8n-nodes-base.webhook",
        "The webhook trigger node is named 'webhook'",
        keep_parameters,
    ),
    CorrectionRule(
        "n8n-nodes-base.cronTrigger",
        "n8n-nodes-base.cron",
        "The cron trigger node is named 'cron'",
        keep_parameters,
    ),
    CorrectionRule(
        "n8n-nodes-base.mysqlDb",
        "n8n-nodes-base.mysql",
        "Use the official MySQL node",
        sql_query,
    ),
    CorrectionRule(
        "n8n-nodes-base.postgresDb",
        "n8n-nodes-base.postgres",
        "Use the official PostgreSQL node",
        sql_query,
    ),
]
