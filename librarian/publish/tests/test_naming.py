import json

import pytest

from ..naming import branch_name, commit_title, content_type, serialize_document, singularize, target_path, wrap_document


@pytest.mark.parametrize("plural, singular", [
    ("boxes", "box"),
    ("categories", "category"),
    ("weapons", "weapon"),
    ("knives", "knif"),
    ("heroes", "hero"),
    ("classes", "class"),
    ("matches", "match"),
    ("dishes", "dish"),
    ("data", "data"),
    ("glass", "glass"),
    ("", ""),
])
def test_singularize(plural, singular):
    assert singularize(plural) == singular


def test_content_type_uses_root_segment():
    assert content_type("characters/weapons") == "character"
    assert content_type("weapons") == "weapon"


class TestWrapDocument:
    """Test the document wrapper written to the repository."""

    def test_wrapper_fields(self):
        document = {"author": "eve", "id": "sword", "name": "sword", "description": "Sharp"}

        wrapped = wrap_document("weapons", document)

        assert wrapped == {
            "type": "weapon",
            "name": "weapons:sword",
            "data": {"author": "eve", "description": "Sharp"},
        }

    def test_nested_collection_name(self):
        wrapped = wrap_document("characters/weapons", {"author": "eve", "id": "1", "name": "axe", "description": ""})

        assert wrapped["type"] == "character"
        assert wrapped["name"] == "characters:weapons:axe"

    def test_serialization_is_indented_utf8(self):
        raw = serialize_document({"name": "épée", "data": {}})

        assert raw.decode("utf-8").startswith("{\n  ")
        assert json.loads(raw)["name"] == "épée"


def test_paths():
    path = target_path("weapons", "eve", "sword")
    assert path == "weapons/eve/sword"
    assert branch_name(path) == "publish/weapons/eve/sword"


class TestCommitTitle:
    def test_new(self):
        assert commit_title("weapons", "sword", exists=False) == 'New weapon "sword"'

    def test_update(self):
        assert commit_title("weapons", "sword", exists=True) == 'Update weapon "sword"'

    def test_nested_collection(self):
        assert commit_title("characters/weapons", "sword", exists=False) == 'New weapon\'s character "sword"'
