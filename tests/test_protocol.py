"""Tests for the out-of-process analyzer wire protocol."""

import json

import pytest

from polyglot_auditor.errors import AnalyzerProtocolError
from polyglot_auditor.protocol import build_request, parse_response, to_analysis_result


def _response(**result) -> str:
    return json.dumps({"id": 1, "result": result})


class TestRequest:
    def test_request_shape(self):
        payload = json.loads(build_request(["a.go", "b.go"], {"timeout": 5}, request_id=7))
        assert payload == {
            "method": "analyze",
            "params": {"files": ["a.go", "b.go"], "options": {"timeout": 5}},
            "id": 7,
        }


class TestResponse:
    """Parsing and validation of analyzer output."""

    def test_last_line_wins(self):
        stdout = "compiling...\n\n" + _response(violations=[]) + "\n"
        response = parse_response(stdout)
        assert response.error is None
        assert response.result.violations == []

    def test_camel_and_snake_case_keys(self):
        camel = parse_response(_response(metrics={"filesAnalyzed": 3, "executionTime": 0.5}))
        snake = parse_response(_response(metrics={"files_analyzed": 3, "execution_time": 0.5}))
        assert camel.result.metrics == snake.result.metrics
        assert camel.result.metrics.files_analyzed == 3

    def test_error_response(self):
        response = parse_response(json.dumps({"id": 1, "error": {"code": -32001, "message": "no go.mod"}}))
        assert response.result is None
        assert response.error.message == "no go.mod"

    @pytest.mark.parametrize("stdout", [
        "",
        "   \n",
        "not json at all",
        json.dumps({"id": 1}),
        json.dumps({"id": 1, "result": {}, "error": {"message": "both"}}),
        _response(indexEntries=[{"name": "X", "file": "x.go", "type": "gizmo"}]),
        _response(violations=[{"file": "x.go", "message": "missing rule"}]),
    ])
    def test_invalid_output_raises_protocol_error(self, stdout):
        with pytest.raises(AnalyzerProtocolError):
            parse_response(stdout)


class TestConversion:
    """Wire results become in-process AnalysisResults."""

    def test_entities_are_namespaced_and_normalized(self):
        response = parse_response(_response(
            violations=[{"file": "main.go", "line": 4, "severity": "critical",
                         "message": "nil deref", "rule": "nilness"}],
            indexEntries=[
                {"id": "main.Run", "name": "Run", "file": "main.go", "startLine": 2, "endLine": 8,
                 "calls": ["Helper"], "parameters": [{"name": "ctx", "type": "context.Context"}]},
                {"name": "GET /users", "type": "endpoint", "file": "main.go", "startLine": 10,
                 "apiEndpoint": "/users", "apiMethod": "get", "returnType": "[]User",
                 "requiresAuth": True},
                {"name": "User", "type": "struct", "file": "user.go",
                 "properties": [{"name": "ID", "type": "int64"}]},
            ],
            errors=[{"file": "broken.go", "error": "expected ';'"}],
            metrics={"filesAnalyzed": 2},
        ))

        result = to_analysis_result("go", response.result)

        assert result.language == "go"
        assert result.metrics.files_analyzed == 2
        assert result.violations[0].rule == "nilness"
        assert result.violations[0].analyzer == "external"

        run, endpoint, struct = result.index_entries
        assert run.id == "go:main.Run"
        assert run.language == "go"
        assert run.metadata["call_names"] == ["Helper"]
        assert run.parameters[0].type == "context.Context"

        assert endpoint.id.startswith("go:endpoint:main.go:GET /users:10")
        assert endpoint.api_method == "GET"
        assert endpoint.api_contract.response.type == "array"
        assert endpoint.api_contract.authentication is not None

        assert struct.type == "struct"
        assert struct.properties[0].name == "ID"

        assert result.errors[0].file == "broken.go"
        assert result.errors[0].language == "go"

    def test_duplicate_external_ids_are_disambiguated(self):
        response = parse_response(_response(indexEntries=[
            {"id": "dup", "name": "A", "file": "a.go"},
            {"id": "dup", "name": "B", "file": "b.go"},
        ]))
        ids = [e.id for e in to_analysis_result("go", response.result).index_entries]
        assert ids == ["go:dup", "go:dup#2"]
