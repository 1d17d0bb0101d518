# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

import pytest

from flowmend_core.corrections import (
    BUILTIN_RULES,
    CorrectionCatalog,
    CorrectionRule,
    anthropic_messages_request,
    keep_parameters,
    sql_query,
    vision_request,
    whatsapp_message_request,
)


class TestCorrectionRule:
    def test_rejects_identity_mapping(self):
        with pytest.raises(ValueError):
            CorrectionRule("a", "a", "same", keep_parameters)

    def test_rejects_empty_types(self):
        with pytest.raises(ValueError):
            CorrectionRule("", "b", "empty", keep_parameters)

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError):
            CorrectionRule("a", "b", "not callable", {"method": "GET"})


class TestCorrectionCatalog:
    def test_one_rule_per_match_type(self):
        first = CorrectionRule("a", "b", "first", keep_parameters)
        second = CorrectionRule("a", "c", "second", keep_parameters)
        catalog = CorrectionCatalog([first])
        catalog.add_rule(second)
        assert catalog.lookup("a") is second
        assert len(catalog) == 1

    def test_remove_rule(self):
        catalog = CorrectionCatalog([CorrectionRule("a", "b", "r", keep_parameters)])
        catalog.remove_rule("a")
        catalog.remove_rule("a")
        assert "a" not in catalog
        assert catalog.lookup("a") is None


class TestResolve:
    REGISTERED = {"c"}

    def _resolve(self, rules, type_id):
        catalog = CorrectionCatalog([CorrectionRule(m, r, f"{m} to {r}", keep_parameters) for m, r in rules])
        return [rule.replacement_type for rule in catalog.resolve(type_id, self.REGISTERED.__contains__)]

    def test_single_rule(self):
        assert self._resolve([("a", "c")], "a") == ["c"]

    def test_chain_is_followed_to_a_registered_type(self):
        assert self._resolve([("x", "y"), ("y", "c")], "x") == ["y", "c"]

    def test_registered_type_needs_no_rules(self):
        assert self._resolve([("c", "d")], "c") == []

    @pytest.mark.parametrize(
        "rules",
        [
            [],
            [("x", "y")],
            [("x", "y"), ("y", "x")],
            [("x", "y"), ("y", "z"), ("z", "y")],
        ],
    )
    def test_unreachable_types_resolve_to_nothing(self, rules):
        assert self._resolve(rules, "x") == []


def test_builtin_rules_are_unique_and_remap_to_other_types():
    match_types = [r.match_type for r in BUILTIN_RULES]
    assert len(match_types) == len(set(match_types))
    assert all(r.match_type != r.replacement_type for r in BUILTIN_RULES)


class TestSynthesizers:
    def test_keep_parameters_copies(self):
        params = {"nested": {"a": 1}}
        result = keep_parameters(params)
        result["nested"]["a"] = 2
        assert params["nested"]["a"] == 1

    def test_vision_request_with_image_url(self):
        result = vision_request({"imageUrl": "https://img.example/cat.png", "operation": "textDetection"})
        assert result["method"] == "POST"
        assert result["url"] == "https://vision.googleapis.com/v1/images:annotate"
        request = result["body"]["requests"][0]
        assert request["image"]["content"] == '={{ $httpRequest("https://img.example/cat.png").body }}'
        assert request["features"][0]["type"] == "TEXT_DETECTION"

    def test_vision_request_defaults_to_binary_labels(self):
        request = vision_request({})["body"]["requests"][0]
        assert request["image"]["content"] == "={{ $base64($binary.data) }}"
        assert request["features"][0]["type"] == "LABEL_DETECTION"

    def test_whatsapp_message_uses_given_text(self):
        body = whatsapp_message_request({"to": "+100", "message": "hi"})["body"]
        assert body["to"] == "+100"
        assert body["text"] == {"body": "hi"}

    def test_anthropic_request_keeps_model_and_prompt(self):
        body = anthropic_messages_request({"model": "claude-x", "prompt": "Summarize"})["body"]
        assert body["model"] == "claude-x"
        assert body["messages"] == [{"role": "user", "content": "Summarize"}]

    def test_sql_query_keeps_original_parameters(self):
        assert sql_query({}) == {"operation": "executeQuery", "query": "SELECT * FROM table_name LIMIT 10"}
        result = sql_query({"query": "SELECT 1", "table": "users"})
        assert result == {"operation": "executeQuery", "query": "SELECT 1", "table": "users"}

    @pytest.mark.parametrize("rule", BUILTIN_RULES, ids=lambda r: r.match_type)
    def test_builtin_synthesizers_are_total(self, rule):
        assert isinstance(rule.synthesize_parameters({}), dict)
        assert isinstance(rule.synthesize_parameters({"unexpected": [1, 2, 3]}), dict)
