"""Tests for API contract validation."""

import pytest

from polyglot_auditor.contracts import ContractValidator, path_matches
from polyglot_auditor.entities import APIContract, AuthenticationSpec, CrossLanguageEntity, TypeSchema
from polyglot_auditor.http_surface import coarse_type


def endpoint(method, path, response=None, auth=False, deprecated=False, file="server.py"):
    return CrossLanguageEntity(
        id=f"python:endpoint:{method} {path}",
        name=f"{method} {path}",
        language="python",
        file=file,
        type="endpoint",
        start_line=10,
        end_line=14,
        api_endpoint=path,
        api_method=method,
        api_contract=APIContract(
            response=TypeSchema(response) if response else None,
            authentication=AuthenticationSpec() if auth else None,
            deprecated=deprecated,
        ),
    )


def caller(*calls, name="client", file="client.ts"):
    return CrossLanguageEntity(
        id=f"typescript:function:{name}",
        name=name,
        language="typescript",
        file=file,
        type="function",
        start_line=1,
        end_line=20,
        metadata={"api_calls": [
            {"method": method, "url": url, "line": 5, "column": 3,
             "has_auth": extra.get("has_auth", False),
             "expected_response_type": extra.get("expects")}
            for method, url, extra in calls
        ]},
    )


def rules(violations):
    return [v.rule for v in violations]


class TestPathMatching:
    @pytest.mark.parametrize("template, url, expected", [
        ("/users/:id", "/users/123", True),
        ("/users/{user_id}", "/users/:param", True),
        ("/users/:id", "/users/123/orders", False),
        ("/users/:id", "/users/", False),
        ("/users", "/users?page=2", True),
        ("/users", "/accounts", False),
        ("/", "/", True),
    ])
    def test_path_matches(self, template, url, expected):
        assert path_matches(template, url) is expected


class TestContractValidator:
    """One violation per mismatched call."""

    def test_full_match_is_clean(self):
        entities = [endpoint("GET", "/users/:id"), caller(("GET", "/users/42", {}))]
        assert ContractValidator().validate(entities) == []

    def test_method_mismatch_on_path_only_match(self):
        entities = [endpoint("GET", "/users/:id"), caller(("POST", "/users/42", {}))]
        violations = ContractValidator().validate(entities)
        assert rules(violations) == ["method-mismatch"]
        violation = violations[0]
        assert violation.severity == "critical"
        assert violation.details == {"expectedMethod": "GET", "actualMethod": "POST"}
        assert violation.file == "client.ts"
        assert violation.line == 5
        assert violation.related_files == ["client.ts", "server.py"]
        assert violation.related_languages == ["typescript", "python"]

    def test_method_match_preferred_over_first_path_hit(self):
        entities = [
            endpoint("GET", "/users/:id"),
            endpoint("DELETE", "/users/:id"),
            caller(("DELETE", "/users/7", {})),
        ]
        assert ContractValidator().validate(entities) == []

    def test_missing_endpoint(self):
        entities = [endpoint("GET", "/users"), caller(("GET", "/orders", {}))]
        violations = ContractValidator().validate(entities)
        assert rules(violations) == ["missing-endpoint"]
        assert violations[0].severity == "warning"
        assert violations[0].related_languages == ["typescript"]

    def test_response_type_mismatch(self):
        entities = [
            endpoint("GET", "/users", response="array"),
            caller(("GET", "/users", {"expects": "User"})),
        ]
        violations = ContractValidator().validate(entities)
        assert rules(violations) == ["type-mismatch"]
        assert violations[0].details == {"expectedType": "array", "actualType": "object"}

    def test_unknown_types_do_not_mismatch(self):
        entities = [
            endpoint("GET", "/users", response="array"),
            caller(("GET", "/users", {"expects": "any"})),
        ]
        assert ContractValidator().validate(entities) == []

    def test_bare_list_annotation_is_an_array(self):
        handler = endpoint("GET", "/users")
        handler.return_type = "list"
        entities = [handler, caller(("GET", "/users", {"expects": "User[]"}))]
        assert ContractValidator().validate(entities) == []

    def test_deprecated_endpoint(self):
        entities = [endpoint("GET", "/v1/users", deprecated=True), caller(("GET", "/v1/users", {}))]
        violations = ContractValidator().validate(entities)
        assert rules(violations) == ["deprecated-endpoint"]
        assert violations[0].severity == "warning"

    def test_missing_authentication(self):
        entities = [
            endpoint("DELETE", "/users/:id", auth=True),
            caller(("DELETE", "/users/1", {}), ("DELETE", "/users/2", {"has_auth": True})),
        ]
        violations = ContractValidator().validate(entities)
        assert rules(violations) == ["auth-mismatch"]
        assert "bearer" in violations[0].fix

    def test_calls_without_endpoints_anywhere(self):
        violations = ContractValidator().validate([caller(("GET", "/a", {}), ("POST", "/b", {}))])
        assert rules(violations) == ["missing-endpoint", "missing-endpoint"]


class TestSummary:
    def test_summarize_counts_callers(self):
        entities = [
            endpoint("GET", "/users/:id", response="object", auth=True),
            endpoint("GET", "/health"),
            caller(("GET", "/users/1", {}), ("PUT", "/users/1", {})),
        ]
        summary = {entry["endpoint"]: entry for entry in ContractValidator().summarize(entities)}
        users = summary["/users/:id"]
        assert users["callers"] == ["client.ts:5", "client.ts:5"]
        assert users["mismatched_callers"] == 1
        assert users["requires_auth"] is True
        assert users["response_type"] == "object"
        assert summary["/health"]["callers"] == []


class TestCoarseType:
    @pytest.mark.parametrize("type_text, expected", [
        ("list", "array"),
        ("List", "array"),
        ("tuple", "array"),
        ("Sequence", "array"),
        ("List[User]", "array"),
        ("Promise<User[]>", "array"),
        ("Listing", "object"),
        ("dict", "object"),
        ("Optional[str]", "string"),
        ("any", None),
    ])
    def test_classification(self, type_text, expected):
        assert coarse_type(type_text) == expected
