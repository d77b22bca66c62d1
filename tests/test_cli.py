from __future__ import annotations

import json

import pytest

from applecore.__main__ import resolve_entity, run
from applecore.stack import DataStack
from sample_models import Base, Comment, Post, count_rows


@pytest.fixture()
def env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("APPLECORE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("APPLECORE_CONNECT_TIMEOUT", "0")
    monkeypatch.delenv("APPLECORE_DATABASE_URL", raising=False)
    return tmp_path


def write_json(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_run_imports_a_json_array(env, store_url):
    source = write_json(
        env / "posts.json",
        [
            {"id": 1, "title": "First", "comments": [{"body": "hi"}]},
            {"id": 2, "title": "Second"},
        ],
    )

    assert run(["sample_models:Base", "Post", source, "--database-url", store_url]) == 0

    stack = DataStack(store_url, Base.metadata, connect_timeout=0)
    assert count_rows(stack.main_context, Post) == 2
    assert count_rows(stack.main_context, Comment) == 1
    stack.clean_up()


def test_run_defaults_to_the_configured_store(env):
    source = write_json(env / "post.json", {"id": 3, "title": "Alone"})

    assert run(["sample_models:Base", "Post", source]) == 0

    assert (env / "applecore.sqlite").exists()


def test_run_reports_mapping_failures(env, store_url):
    source = write_json(env / "bad.json", [{"id": "x", "title": "Bad"}])

    assert run(["sample_models:Base", "Post", source, "--database-url", store_url]) == 3


def test_run_reports_unreadable_sources(env, store_url):
    missing = str(env / "missing.json")

    assert run(["sample_models:Base", "Post", missing, "--database-url", store_url]) == 2


def test_run_reports_unknown_entities(env, store_url):
    source = write_json(env / "post.json", {"id": 1, "title": "t"})

    assert run(["sample_models:Base", "Ghost", source, "--database-url", store_url]) == 1


def test_resolve_entity():
    assert resolve_entity(Base, "Comment") is Comment
    with pytest.raises(LookupError):
        resolve_entity(Base, "Ghost")
