"""Tests for the SQLite entity index."""

from pathlib import Path

import pytest

from polyglot_auditor.entities import APIContract, CrossLanguageEntity, CrossReference
from polyglot_auditor.models import ParameterInfo
from polyglot_auditor.storage import IndexStore, index_dir_for


@pytest.fixture
def store(temp_dir: Path):
    index = IndexStore(temp_dir / "index")
    yield index
    index.close()


def make_entity(id, name, language="python", file="app.py", start_line=1, **kwargs):
    return CrossLanguageEntity(
        id=id, name=name, language=language, file=file, type=kwargs.pop("type", "function"),
        start_line=start_line, end_line=start_line + 3, **kwargs,
    )


ENTITIES = [
    make_entity("python:f:read_user", "read_user", start_line=10,
                parameters=[ParameterInfo("user_id", "int")]),
    make_entity("python:endpoint:get", "GET /users/{user_id}", type="endpoint", start_line=9,
                api_endpoint="/users/{user_id}", api_method="GET", api_contract=APIContract()),
    make_entity("typescript:f:fetchUser", "fetchUser", language="typescript", file="api.ts"),
]

REFERENCES = [
    CrossReference("typescript:f:fetchUser", "python:endpoint:get", "api-call", "typescript", "python",
                   0.9, protocol="http", metadata={"url": "/users/:param"}),
    CrossReference("python:endpoint:get", "python:f:read_user", "calls", "python", "python", 0.9),
]


class TestIndexStore:
    """Upserts, queries and clearing."""

    def test_update_and_count(self, store: IndexStore):
        store.update_index(ENTITIES, REFERENCES)
        assert store.counts() == {"entities": 3, "references": 2}
        assert (store.project_dir / "index.db").exists()

    def test_rerun_upserts_instead_of_duplicating(self, store: IndexStore):
        store.update_index(ENTITIES, REFERENCES)
        renamed = make_entity("python:f:read_user", "read_user_v2", start_line=10)
        store.update_index([renamed], REFERENCES[:1])
        assert store.counts() == {"entities": 3, "references": 2}
        names = {e["name"] for e in store.get_entities("python")}
        assert names == {"read_user_v2", "GET /users/{user_id}"}

    def test_entities_round_trip_as_dicts(self, store: IndexStore):
        store.update_index(ENTITIES, [])
        python = store.get_entities("python")
        assert [e["id"] for e in python] == ["python:endpoint:get", "python:f:read_user"]
        assert python[1]["parameters"] == [
            {"name": "user_id", "type": "int", "optional": False, "default": None},
        ]
        assert python[0]["api_contract"]["version"] == "1"
        assert len(store.get_entities()) == 3

    def test_references_by_entity(self, store: IndexStore):
        store.update_index(ENTITIES, REFERENCES)
        refs = store.get_references("python:endpoint:get")
        assert len(refs) == 2
        api = next(r for r in refs if r["ref_type"] == "api-call")
        assert api["metadata"] == {"url": "/users/:param"}
        assert api["protocol"] == "http"
        calls = next(r for r in refs if r["ref_type"] == "calls")
        assert calls["metadata"] == {}
        assert store.get_references("typescript:f:fetchUser")[0]["target_id"] == "python:endpoint:get"

    def test_clear(self, store: IndexStore):
        store.update_index(ENTITIES, REFERENCES)
        store.clear()
        assert store.counts() == {"entities": 0, "references": 0}

    def test_reopen_keeps_rows(self, store: IndexStore):
        store.update_index(ENTITIES, REFERENCES)
        reopened = IndexStore(store.project_dir)
        try:
            assert reopened.counts() == {"entities": 3, "references": 2}
        finally:
            reopened.close()


class TestIndexLocation:
    def test_index_dir_is_per_project(self, isolated_home: Path, temp_dir: Path):
        project = temp_dir / "shop"
        project.mkdir()
        assert index_dir_for(project) == isolated_home / "index" / "shop"
        assert (isolated_home / "index").is_dir()
