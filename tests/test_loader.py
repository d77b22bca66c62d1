from __future__ import annotations

import pytest

from applecore.mappings import (CaseMapping, DateMapping, IntegerMapping,
                                MappingError, MappingRegistry,
                                RelatedObjectIDMapping, StringMapping,
                                ToManyRelationshipMapping)
from applecore.mappings.loader import load_mappings
from sample_models import Author, Base, Comment, Post, Tag

DOCUMENT = """
Post:
  id: {integer: id, from: postId}
  order: position
  attributes:
    - title
    - {date: published_at, lenient: true}
    - {case: status, cases: {draft: 0, live: 1}, default: 0}
    - {to_many: comments, ordered: true}
    - {related_id: author, target: Author}
Comment:
  id: null
  attributes:
    - {type: string, attribute: body, from: text}
Tag:
  id: {string: slug}
"""


def test_yaml_document_configures_registry():
    fresh = MappingRegistry()

    configured = load_mappings(DOCUMENT, Base, fresh)

    assert configured == [Post, Comment, Tag]
    post_id = fresh.id_mapping(Post)
    assert isinstance(post_id, IntegerMapping)
    assert post_id.json_key == "postId"
    assert fresh.order_key(Post) == "position"

    title, published, status, comments, author = fresh.attribute_mappings(Post)
    assert isinstance(title, StringMapping) and title.attribute == "title"
    assert isinstance(published, DateMapping) and published.lenient
    assert isinstance(status, CaseMapping) and status.cases == {"draft": 0, "live": 1}
    assert isinstance(comments, ToManyRelationshipMapping) and comments.ordered
    assert isinstance(author, RelatedObjectIDMapping) and author.model is Author

    assert fresh.id_mapping(Comment) is None
    [body] = fresh.attribute_mappings(Comment)
    assert body.json_key == "text"
    assert fresh.id_mapping(Tag).attribute == "slug"


def test_yaml_file_and_model_table(tmp_path):
    path = tmp_path / "mappings.yaml"
    path.write_text("Tag:\n  attributes:\n    - label\n", encoding="utf-8")
    fresh = MappingRegistry()

    load_mappings(path, {"Tag": Tag}, fresh)

    assert [m.attribute for m in fresh.attribute_mappings(Tag)] == ["label"]


@pytest.mark.parametrize(
    "document, message",
    [
        ("Ghost:\n  attributes: []\n", "Unknown model"),
        ("Tag:\n  attributes:\n    - {decimal: label}\n", "Cannot determine"),
        ("Tag:\n  attributes:\n    - {type: decimal, attribute: label}\n", "Unknown mapping type"),
        ("Post:\n  attributes:\n    - {case: status}\n", "cases"),
        ("- Post\n", "table keyed by model name"),
    ],
)
def test_invalid_documents_raise(document, message):
    with pytest.raises(MappingError, match=message):
        load_mappings(document, Base, MappingRegistry())
