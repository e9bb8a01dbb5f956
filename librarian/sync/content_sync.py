"""
Content Sync Adapter

Applies one content operation to the local mirror and the metadata index:
SYNC fetches the item's JSON document and image from the remote repository
and mirrors them; CLEAR deletes the mirrored files and the index entry.
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config import get_logger
from .error_tracker import MalformedContentError
from .metadata_store import MetadataItem, MetadataStore
from .paths import ContentAction, ContentOperation
from .storage import LocalStorage, now_ms

logger = get_logger(__name__)


def item_name(document: Dict[str, Any], fallback: str) -> str:
    """Display name of a wrapped document: `data.displayName`, else the wrapper name after its last `:`."""
    data = document.get('data') or {}
    if data.get('displayName'):
        return data['displayName']
    name = document.get('name')
    if isinstance(name, str) and name:
        return name.split(':')[-1]
    return fallback


class ContentSyncAdapter:
    """Mirrors content items between the remote repository and local storage."""

    def __init__(self, client, storage: LocalStorage, store: MetadataStore):
        self.client = client
        self.storage = storage
        self.store = store
        self._handlers: Dict[ContentAction, Callable[[ContentOperation], Awaitable[None]]] = {
            ContentAction.SYNC: self.sync,
            ContentAction.CLEAR: self.clear,
        }

    async def apply(self, op: ContentOperation) -> None:
        await self._handlers[op.action](op)

    async def fetch_document(self, json_path: str) -> Optional[Dict[str, Any]]:
        """
        Fetch and decode a wrapped JSON document.

        Returns None when the file is absent. Raises MalformedContentError when
        it cannot be decoded or has no `data` object.
        """
        raw = await self.client.get_file(json_path)
        if raw is None:
            return None
        try:
            document = json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedContentError(f"Invalid JSON at {json_path}: {e}", source_id=json_path)
        if not isinstance(document, dict) or not isinstance(document.get('data'), dict):
            raise MalformedContentError(f"Missing data object in {json_path}", source_id=json_path)
        return document

    async def sync(self, op: ContentOperation) -> None:
        """
        Mirror an item and record it in the metadata index.

        An absent or malformed remote document turns into a clear. Fetch and
        write failures propagate, leaving the local files as they were.
        """
        await self.storage.ensure_parent_dir(op.json_path)

        try:
            document = await self.fetch_document(op.json_path)
        except MalformedContentError as e:
            logger.warning(f"Invalid payload, clearing {op.json_path}: {e.message}")
            document = None

        if document is None:
            await self.clear(op)
            return

        image = await self.client.get_file(op.image_path)

        data = document['data']
        data['createdAt'] = await self.created_at(op, data)
        data['updatedAt'] = now_ms()

        metadata = MetadataItem(
            id=op.id,
            json_path=op.json_path,
            author=op.author,
            name=item_name(document, op.id),
            created_at=data['createdAt'],
            updated_at=data['updatedAt'],
            description=data.get('description'),
            image_path=op.image_path if image is not None else None,
        )

        if image is not None:
            await self.storage.write_blob(op.image_path, image)
        else:
            await self.storage.remove_file(op.image_path)
        await self.storage.write_json(op.json_path, document)
        await self.store.upsert(op.collection_path, metadata, commit_id=op.commit_id)

    async def created_at(self, op: ContentOperation, data: Dict[str, Any]) -> int:
        """
        Creation time of an item in epoch ms, stable across re-syncs.

        Tried in order: the `createdAt` already stamped on the mirrored
        document, the local file's birth time, the item's metadata entry, the
        fetched document's own `createdAt`, now.
        """
        mirrored = await self.storage.read_json(op.json_path)
        if isinstance(mirrored, dict) and isinstance(mirrored.get('data'), dict):
            if isinstance(mirrored['data'].get('createdAt'), int):
                return mirrored['data']['createdAt']

        born = await self.storage.creation_date(op.json_path)
        if born:
            return born

        for item in await self.store.get(op.collection_path):
            if item.json_path == op.json_path and item.created_at:
                return item.created_at

        return data.get('createdAt') or now_ms()

    async def clear(self, op: ContentOperation) -> None:
        """Remove an item's mirrored files, its empty author directory and its index entry."""
        await self.storage.remove_file(op.json_path)
        await self.storage.remove_file(op.image_path)
        await self.storage.remove_dir_if_empty(op.author_path)
        await self.store.remove(op.collection_path, op.json_path)
