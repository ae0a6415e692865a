"""Tests for scenario templates, JSONPath queries and body assertions."""

from __future__ import annotations

import json

import pytest

from wondertwin.errors import AssertionFailure, TemplateError, ValidationError
from wondertwin.fleet.manifest import Manifest
from wondertwin.scenario.assertions import evaluate_body, values_equal
from wondertwin.scenario.jsonpath import extract, query, split_segments
from wondertwin.scenario.template import expand, format_value

# =============================================================================
# Templates
# =============================================================================


class TestExpand:
    def test_variables(self, manifest: Manifest) -> None:
        text = "/v1/customers/{{customer_id}}?expand={{ field }}"
        variables = {"customer_id": "cus_1", "field": "sources"}
        assert expand(text, manifest, variables) == "/v1/customers/cus_1?expand=sources"

    def test_twin_ports(self, manifest: Manifest) -> None:
        text = "http://localhost:{{twins.acme.port}}/admin via {{twins.acme.admin_port}}"
        assert expand(text, manifest, {}) == "http://localhost:4100/admin via 4101"

    def test_admin_port_defaults_to_port(self, manifest: Manifest) -> None:
        assert expand("{{twins.stripe.admin_port}}", manifest, {}) == "4111"

    def test_env(self, manifest: Manifest, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STRIPE_KEY", "sk_test_42")
        monkeypatch.delenv("WT_UNSET_VAR", raising=False)
        assert expand("Bearer {{env.STRIPE_KEY}}", manifest, {}) == "Bearer sk_test_42"
        assert expand("[{{env.WT_UNSET_VAR}}]", manifest, {}) == "[]"

    def test_substituted_values_are_expanded(self, manifest: Manifest) -> None:
        variables = {"a": "{{b}}", "b": "x"}
        once = expand("<{{a}}>", manifest, variables)
        assert once == "<x>"
        assert expand(once, manifest, variables) == once

    def test_value_can_reference_twin_port(self, manifest: Manifest) -> None:
        variables = {"base": "http://localhost:{{twins.acme.port}}"}
        assert expand("{{base}}/v1", manifest, variables) == "http://localhost:4100/v1"

    def test_self_referencing_value(self, manifest: Manifest) -> None:
        with pytest.raises(TemplateError, match="did not settle"):
            expand("{{loop}}", manifest, {"loop": "{{loop}}"})

    def test_expansion_is_idempotent_on_plain_text(self, manifest: Manifest) -> None:
        text = expand("id={{id}}", manifest, {"id": "cus_1"})
        assert expand(text, manifest, {}) == text

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ("{{missing}}", 'unresolved template expression: "missing"'),
            ("{{twins.ghost.port}}", 'twin "ghost" not found in manifest'),
            ("{{twins.acme.host}}", 'unknown field "host"'),
            ("{{twins.acme}}", "expected twins.<name>.<field>"),
            ("abc {{open", "unterminated template expression at position 4"),
        ],
    )
    def test_errors(self, manifest: Manifest, text: str, message: str) -> None:
        with pytest.raises(TemplateError, match=message):
            expand(text, manifest, {})

    def test_twins_without_manifest(self) -> None:
        with pytest.raises(TemplateError, match="no manifest loaded"):
            expand("{{twins.acme.port}}", None, {})

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "null"),
            (True, "true"),
            (42, "42"),
            (42.0, "42"),
            (2.5, "2.5"),
            ("cus_1", "cus_1"),
            ({"a": [1, 2]}, '{"a":[1,2]}'),
        ],
    )
    def test_format_value(self, value: object, expected: str) -> None:
        assert format_value(value) == expected


# =============================================================================
# JSONPath
# =============================================================================

DOC = {
    "id": "cus_1",
    "data": [{"id": "ch_1", "amount": 2000}, {"id": "ch_2", "amount": 500}],
    "meta": {"count": 2, "tags": ["vip"]},
}


class TestJsonPath:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("$", [DOC]),
            ("$.id", ["cus_1"]),
            ("$.data[1].amount", [500]),
            ("$.meta.tags[0]", ["vip"]),
            ("$.meta", [DOC["meta"]]),
        ],
    )
    def test_query(self, path: str, expected: list) -> None:
        assert query(DOC, path) == expected

    @pytest.mark.parametrize("path", ["$.nope", "$.data[5]", "$.id[0]", "$.meta.count.x"])
    def test_no_match(self, path: str) -> None:
        assert query(DOC, path) == []

    def test_null_value_is_a_match(self) -> None:
        assert query({"x": None}, "$.x") == [None]

    def test_must_start_with_dollar(self) -> None:
        with pytest.raises(ValidationError, match="must start with"):
            query(DOC, "data[0]")

    def test_bad_index(self) -> None:
        with pytest.raises(ValidationError, match="invalid array index"):
            query(DOC, "$.data[first]")

    def test_split_segments(self) -> None:
        assert split_segments("a.b[0].c") == ["a", "b[0]", "c"]

    def test_extract(self) -> None:
        assert extract(json.dumps(DOC), "$.data[0].id") == "ch_1"
        with pytest.raises(ValidationError, match="no match found"):
            extract(json.dumps(DOC), "$.missing")
        with pytest.raises(ValidationError, match="not valid JSON"):
            extract(b"<html>", "$.id")


# =============================================================================
# Body assertions
# =============================================================================

BODY = json.dumps(
    {
        "id": "ch_1",
        "amount": 2000,
        "paid": True,
        "currency": "usd",
        "email": "jane@example.com",
        "refunds": [],
    }
)


class TestAssertions:
    def test_literals(self) -> None:
        evaluate_body(BODY, {"$.id": "ch_1", "$.amount": 2000.0, "$.paid": True, "$.refunds": []})

    def test_literal_mismatch_message(self) -> None:
        with pytest.raises(AssertionFailure) as exc:
            evaluate_body(BODY, {"$.amount": 1999})
        assert exc.value.message == 'JSONPath "$.amount": expected 1999 (int), got 2000 (int)'

    def test_number_never_equals_string(self) -> None:
        assert values_equal(2000, "2000") is False
        with pytest.raises(AssertionFailure):
            evaluate_body(BODY, {"$.amount": "2000"})

    def test_literal_requires_match(self) -> None:
        with pytest.raises(AssertionFailure, match="no match found"):
            evaluate_body(BODY, {"$.missing": "x"})

    def test_operators(self) -> None:
        evaluate_body(
            BODY,
            {
                "$.id": {"exists": True, "regex": "^ch_\\d+$"},
                "$.missing": {"exists": False},
                "$.amount": {"gte": 1000, "lte": 2000, "eq": 2000},
                "$.email": {"contains": "@example.com"},
            },
        )

    @pytest.mark.parametrize(
        ("assertion", "message"),
        [
            ({"$.missing": {"exists": True}}, "expected to exist but no match found"),
            ({"$.id": {"exists": False}}, "expected not to exist but found ch_1"),
            ({"$.id": {"exists": "yes"}}, "'exists' operator requires a boolean value"),
            ({"$.amount": {"gte": 5000}}, "expected >= 5000, got 2000"),
            ({"$.amount": {"lte": 10}}, "expected <= 10, got 2000"),
            ({"$.id": {"gte": 1}}, "'gte' requires numeric actual value"),
            ({"$.amount": {"lte": "big"}}, "'lte' requires numeric expected value"),
            ({"$.currency": {"eq": "eur"}}, "expected eq eur, got usd"),
            ({"$.email": {"contains": "@corp"}}, 'expected to contain "@corp"'),
            ({"$.id": {"regex": "^py_"}}, 'does not match regex "\\^py_"'),
            ({"$.id": {"regex": "("}}, "invalid regex pattern"),
            ({"$.id": {"like": "ch"}}, 'unknown operator "like"'),
            ({"$.missing": {"eq": 1}}, "no match found for 'eq' check"),
            ({"id": "ch_1"}, "invalid JSONPath"),
        ],
    )
    def test_operator_failures(self, assertion: dict, message: str) -> None:
        with pytest.raises(AssertionFailure, match=message):
            evaluate_body(BODY, assertion)

    def test_body_must_be_json(self) -> None:
        with pytest.raises(AssertionFailure, match="not valid JSON"):
            evaluate_body(b"Internal Server Error", {"$.id": "x"})
