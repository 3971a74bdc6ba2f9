"""Tests for cross-reference inference."""

from polyglot_auditor.cross_reference import CrossReferenceBuilder
from polyglot_auditor.entities import CrossLanguageEntity


def entity(id, name, language="python", file="app.py", type="function", **kwargs):
    return CrossLanguageEntity(
        id=id, name=name, language=language, file=file, type=type,
        start_line=kwargs.pop("start_line", 1), end_line=kwargs.pop("end_line", 5), **kwargs,
    )


def by_type(references, ref_type):
    return {(r.source_id, r.target_id): r for r in references if r.type == ref_type}


class TestCallReferences:
    """Call names resolve to the closest candidate."""

    def test_confidence_by_distance(self):
        entities = [
            entity("py:main", "main", metadata={"call_names": ["helper", "util.shared", "render", "missing"]}),
            entity("py:helper", "helper"),
            entity("py:shared", "shared", file="util.py"),
            entity("ts:render", "render", language="typescript", file="view.ts"),
        ]
        calls = by_type(CrossReferenceBuilder().build(entities), "calls")
        assert calls[("py:main", "py:helper")].confidence == 0.9
        assert calls[("py:main", "py:shared")].confidence == 0.7
        assert calls[("py:main", "ts:render")].confidence == 0.4
        assert calls[("py:main", "ts:render")].is_cross_language
        assert len(calls) == 3

    def test_calls_are_mirrored_onto_entities(self):
        main = entity("py:main", "main", metadata={"call_names": ["helper", "helper"]})
        helper = entity("py:helper", "helper")
        references = CrossReferenceBuilder().build([main, helper])
        assert len(references) == 1
        assert main.calls == ["py:helper"]
        assert helper.called_by == ["py:main"]

    def test_recursion_is_not_a_reference(self):
        fact = entity("py:fact", "fact", metadata={"call_names": ["fact"]})
        assert CrossReferenceBuilder().build([fact]) == []

    def test_constructor_call_resolves_to_class(self):
        entities = [
            entity("py:load", "load_user", metadata={"call_names": ["User"]}),
            entity("py:User", "User", type="schema"),
        ]
        calls = by_type(CrossReferenceBuilder().build(entities), "calls")
        assert ("py:load", "py:User") in calls


class TestHeritageReferences:
    def test_extends_and_implements(self):
        entities = [
            entity("ts:Admin", "AdminService", language="typescript", file="admin.ts", type="class",
                   extends=["BaseService<User>"], implements=["Auditable"]),
            entity("ts:Base", "BaseService", language="typescript", file="base.ts", type="class"),
            entity("py:Auditable", "Auditable", type="class"),
        ]
        references = CrossReferenceBuilder().build(entities)
        assert by_type(references, "extends")[("ts:Admin", "ts:Base")].confidence == 0.9
        assert by_type(references, "implements")[("ts:Admin", "py:Auditable")].confidence == 0.6


class TestImportReferences:
    def test_relative_and_dotted_imports(self):
        entities = [
            entity("ts:mod:api", "api", language="typescript", file="web/api.ts", type="module",
                   metadata={"imports": [{"source": "./types", "names": ["User"]},
                                         {"source": "axios", "names": ["axios"]}]}),
            entity("ts:mod:types", "types", language="typescript", file="web/types.ts", type="module"),
            entity("py:mod:app", "app", file="backend/app.py", type="module",
                   metadata={"imports": [{"source": "backend.models", "names": ["User"]}]}),
            entity("py:mod:models:a", "models", file="other/models.py", type="module"),
            entity("py:mod:models:b", "models", file="backend/models.py", type="module"),
        ]
        imports = by_type(CrossReferenceBuilder().build(entities), "imports")
        assert set(imports) == {("ts:mod:api", "ts:mod:types"), ("py:mod:app", "py:mod:models:b")}
        assert all(r.confidence == 0.95 for r in imports.values())


class TestApiReferences:
    def test_http_calls_link_to_endpoints(self):
        entities = [
            entity("py:ep:get", "GET /users/{user_id}", type="endpoint",
                   api_endpoint="/users/{user_id}", api_method="GET"),
            entity("ts:fetch", "fetchUser", language="typescript", file="api.ts",
                   metadata={"api_calls": [{"method": "GET", "url": "/users/:param", "line": 3}]}),
            entity("ts:update", "updateUser", language="typescript", file="api.ts",
                   metadata={"api_calls": [{"method": "POST", "url": "/users/:param", "line": 7}]}),
        ]
        api = by_type(CrossReferenceBuilder().build(entities), "api-call")
        assert api[("ts:fetch", "py:ep:get")].confidence == 0.9
        assert api[("ts:update", "py:ep:get")].confidence == 0.6
        assert all(r.protocol == "http" for r in api.values())
