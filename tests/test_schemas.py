"""Tests for cross-language schema consistency."""

import pytest

from polyglot_auditor.entities import CrossLanguageEntity
from polyglot_auditor.models import PropertyInfo
from polyglot_auditor.schemas import SchemaConsistencyChecker, normalize_schema_name, normalize_type


def shape(name, language, file, *fields, type="interface"):
    return CrossLanguageEntity(
        id=f"{language}:{type}:{file}:{name}",
        name=name,
        language=language,
        file=file,
        type=type,
        start_line=3,
        end_line=9,
        properties=[
            PropertyInfo(field[0], field[1], optional=len(field) > 2 and field[2])
            for field in fields
        ],
    )


PY_USER = shape("User", "python", "models.py", ("id", "int"), ("name", "str"), type="schema")


class TestNormalization:
    @pytest.mark.parametrize("name, expected", [
        ("User", "user"),
        ("UserResponseDTO", "user"),
        ("user_model", "user"),
        ("Order-Request", "order"),
    ])
    def test_schema_names(self, name, expected):
        assert normalize_schema_name(name) == expected

    @pytest.mark.parametrize("type_text, language, expected", [
        ("int64", "go", "number"),
        ("*string", "go", "string"),
        ("[]User", "go", "array<User>"),
        ("Optional[int]", "python", "number"),
        ("List[str]", "python", "array<string>"),
        ("string | null", "typescript", "string"),
        ("Array<number>", "typescript", "array<number>"),
        ("Date", "typescript", "datetime"),
        ("Address", "typescript", "Address"),
        ("list", "python", "array<any>"),
        ("Sequence", "python", "array<any>"),
        (None, "python", None),
    ])
    def test_types(self, type_text, language, expected):
        assert normalize_type(type_text, language) == expected


class TestSchemaConsistencyChecker:
    """Same-named shapes must agree field by field."""

    def test_matching_shapes_are_clean(self):
        ts_user = shape("User", "typescript", "types.ts", ("id", "number"), ("name", "string"))
        assert SchemaConsistencyChecker().validate([PY_USER, ts_user]) == []

    def test_type_mismatch_is_critical(self):
        ts_user = shape("UserDTO", "typescript", "types.ts", ("id", "string"), ("name", "string"))
        (violation,) = SchemaConsistencyChecker().validate([PY_USER, ts_user])
        assert violation.rule == "type-mismatch"
        assert violation.severity == "critical"
        assert violation.file == "types.ts"
        assert violation.details == {"expectedType": "number", "actualType": "string", "field": "id"}
        assert violation.related_languages == ["typescript", "python"]

    def test_lenient_type_checking_downgrades(self):
        ts_user = shape("User", "typescript", "types.ts", ("id", "string"), ("name", "string"))
        (violation,) = SchemaConsistencyChecker(strict_type_checking=False).validate([PY_USER, ts_user])
        assert violation.severity == "warning"

    def test_any_is_compatible(self):
        ts_user = shape("User", "typescript", "types.ts", ("id", "any"), ("name", "unknown"))
        assert SchemaConsistencyChecker().validate([PY_USER, ts_user]) == []

    def test_bare_list_matches_any_typed_array(self):
        py_team = shape("Team", "python", "models.py", ("members", "list"), type="schema")
        ts_team = shape("Team", "typescript", "types.ts", ("members", "User[]"))
        js_team = shape("Team", "javascript", "team.js", ("members", "any[]"))
        assert SchemaConsistencyChecker().validate([py_team, ts_team, js_team]) == []

    def test_missing_required_fields_both_directions(self):
        ts_user = shape("User", "typescript", "types.ts", ("id", "number"), ("email", "string"))
        violations = SchemaConsistencyChecker().validate([PY_USER, ts_user])
        assert sorted((v.rule, v.details["field"], v.file) for v in violations) == [
            ("missing-field", "email", "models.py"),
            ("missing-field", "name", "types.ts"),
        ]

    def test_optional_extra_field(self):
        ts_user = shape("User", "typescript", "types.ts",
                        ("id", "number"), ("name", "string"), ("avatar", "string", True))
        assert SchemaConsistencyChecker().validate([PY_USER, ts_user]) == []

        (violation,) = SchemaConsistencyChecker(allow_additional_fields=False).validate([PY_USER, ts_user])
        assert violation.rule == "extra-field"
        assert violation.severity == "suggestion"

    def test_same_file_declarations_are_not_compared(self):
        twin = shape("User", "python", "models.py", ("id", "str"), type="class")
        assert SchemaConsistencyChecker().validate([PY_USER, twin]) == []

    def test_first_declaration_is_the_reference(self):
        go_user = shape("User", "go", "user.go", ("id", "string"), ("name", "string"), type="struct")
        ts_user = shape("User", "typescript", "types.ts", ("id", "number"), ("name", "string"))
        violations = SchemaConsistencyChecker().validate([PY_USER, go_user, ts_user])
        assert [(v.file, v.rule) for v in violations] == [("user.go", "type-mismatch")]

    def test_non_schema_entities_are_ignored(self):
        fn = shape("User", "typescript", "types.ts", ("id", "string"), type="function")
        assert SchemaConsistencyChecker().group([PY_USER, fn]) == {"user": [PY_USER]}
