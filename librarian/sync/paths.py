"""
Classification of remote file paths into content-item operations.

A content item lives at `<collection>/<author>/<id>.json`, with an optional
companion `<id>.png`. Every file touched by a push is mapped to the item it
belongs to, and all events of a batch are folded into one operation per item.
"""

import posixpath
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

JSON_SUFFIX = '.json'
IMAGE_SUFFIX = '.png'
CONTENT_SUFFIXES = (JSON_SUFFIX, IMAGE_SUFFIX)


class ContentAction(str, Enum):
    """What to do with a content item once its batch is folded."""
    SYNC = "sync"    # Fetch from the remote and mirror locally
    CLEAR = "clear"  # Remove the local mirror and its index entry


@dataclass
class ContentOperation:
    """One logical operation on a content item."""
    id: str
    collection_path: str
    author_path: str
    json_path: str
    image_path: str
    action: ContentAction = ContentAction.SYNC
    commit_id: Optional[str] = None

    @property
    def key(self) -> str:
        """Identity of the item, `<collection>/<author>/<id>`."""
        return f"{self.author_path}/{self.id}"

    @property
    def author(self) -> str:
        return self.author_path.split('/')[-1]


def split_content_path(remote_path: str) -> Optional[Tuple[str, str, str]]:
    """
    Split a content path into (collection_path, author, id).

    Returns None when the path is not a JSON/PNG file or has no collection root.
    """
    if not remote_path.endswith(CONTENT_SUFFIXES):
        return None

    stem, _ = posixpath.splitext(remote_path)
    parts = stem.split('/')
    if len(parts) < 3:
        return None

    item_id = parts[-1]
    author = parts[-2]
    collection_path = '/'.join(parts[:-2])
    if not collection_path or not author or not item_id:
        return None
    return collection_path, author, item_id


def collection_of(remote_path: str) -> Optional[str]:
    """Collection path a content file belongs to, or None."""
    parts = split_content_path(remote_path)
    return parts[0] if parts else None


def classify(remote_path: str, is_removal: bool, commit_id: Optional[str] = None) -> Optional[ContentOperation]:
    """
    Turn a remote file path into a content operation.

    Args:
        remote_path: Repository-relative path of the changed file
        is_removal: Whether the file was removed by the commit
        commit_id: Commit that touched the file

    Returns:
        ContentOperation, or None when the path is not content
    """
    parts = split_content_path(remote_path)
    if parts is None:
        return None

    collection_path, author, item_id = parts
    author_path = f"{collection_path}/{author}"
    file_path = f"{author_path}/{item_id}"
    is_image = remote_path.endswith(IMAGE_SUFFIX)

    return ContentOperation(
        id=item_id,
        collection_path=collection_path,
        author_path=author_path,
        json_path=f"{file_path}{JSON_SUFFIX}",
        image_path=f"{file_path}{IMAGE_SUFFIX}",
        action=ContentAction.CLEAR if (is_removal and not is_image) else ContentAction.SYNC,
        commit_id=commit_id,
    )


def fold_change(operations: Dict[str, ContentOperation], remote_path: str, is_removal: bool,
                commit_id: Optional[str] = None) -> Optional[ContentOperation]:
    """
    Merge one file event into the batch's per-item operations.

    The JSON half of a pair owns the action: a JSON event sets it, an image
    event only creates the slot (as SYNC) when the item has not been seen yet.
    The commit id always follows the latest event.
    """
    operation = classify(remote_path, is_removal, commit_id)
    if operation is None:
        return None

    existing = operations.get(operation.key)
    if existing is None:
        operations[operation.key] = operation
        return operation

    if not remote_path.endswith(IMAGE_SUFFIX):
        existing.action = operation.action
    if commit_id:
        existing.commit_id = commit_id
    return existing
