"""
Naming rules for published content: document type, wrapper, paths and titles.
"""

import json
from typing import Any, Dict

PLURAL_ES_ENDINGS = ('oes', 'ses', 'xes', 'zes', 'ches', 'shes')


def singularize(word: str) -> str:
    """
    Singular form of a collection name.

    `-ies` -> `-y`, `-ves` -> `-f`, `-oes/-ses/-xes/-zes/-ches/-shes` drop
    `es`, a trailing `s` is dropped unless the word ends in `ss`. Anything
    else is returned as is.
    """
    if not word:
        return word
    lower = word.lower()
    if lower.endswith('ies'):
        return word[:-3] + 'y'
    if lower.endswith('ves'):
        return word[:-3] + 'f'
    if lower.endswith(PLURAL_ES_ENDINGS):
        return word[:-2]
    if lower.endswith('s') and not lower.endswith('ss'):
        return word[:-1]
    return word


def content_type(collection_path: str) -> str:
    """Document type of a collection: its singularized root segment."""
    return singularize(collection_path.split('/')[0])


def wrap_document(collection_path: str, document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Wrap a submitted document for the content repository.

    The wrapper name is the collection path (`/` written as `:`) followed by
    the original name; `name` and `id` are not repeated inside `data`.
    """
    data = {key: value for key, value in document.items() if key not in ('name', 'id')}
    return {
        'type': content_type(collection_path),
        'name': f"{collection_path.replace('/', ':')}:{document['name']}",
        'data': data,
    }


def serialize_document(document: Dict[str, Any]) -> bytes:
    return json.dumps(document, indent=2, ensure_ascii=False).encode('utf-8')


def target_path(collection_path: str, author: str, item_id: str) -> str:
    """Extension-less path of an item in the repository."""
    return f"{collection_path}/{author}/{item_id}"


def branch_name(path: str) -> str:
    return f"publish/{path}"


def commit_title(collection_path: str, item_id: str, exists: bool) -> str:
    """
    Commit and pull request title, e.g. `New weapon "sword"`.

    Nested collections read as possessives: `characters/weapons` gives
    `Update weapon's character "sword"`.
    """
    prefix = 'Update' if exists else 'New'
    parts = [singularize(part) for part in collection_path.split('/')]
    if len(parts) < 2:
        return f'{prefix} {parts[0]} "{item_id}"'
    return f'{prefix} {parts[1]}\'s {parts[0]} "{item_id}"'
