"""
Library Metadata Store

This module keeps the per-collection metadata index ("library metadata"):
1. Read-through caching of `<collection>/metadata.json`
2. Upsert/remove of items keyed by their JSON path
3. Deferred persistence of dirty collections (flush)
4. Time-based eviction of clean, idle collections by a background sweep

A collection that has unsaved changes is never evicted; it stays in memory
until a flush has written it.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import get_logger, METADATA_FILENAME, METADATA_CACHE_EXPIRATION_MINUTES
from .error_tracker import LocalIOError


logger = get_logger(__name__)


class VersionEntry(BaseModel):
    """One commit that touched an item."""
    sha: str
    date: str


class MetadataItem(BaseModel):
    """An entry of a collection's metadata.json, stored with camelCase keys."""
    model_config = ConfigDict(populate_by_name=True, extra='allow')

    json_path: str = Field(..., alias='jsonPath')
    id: Optional[str] = None
    author: Optional[str] = None
    name: Optional[str] = None
    created_at: Optional[int] = Field(None, alias='createdAt')
    updated_at: Optional[int] = Field(None, alias='updatedAt')
    description: Optional[Any] = None
    image_path: Optional[str] = Field(None, alias='imagePath')
    versions: Optional[List[VersionEntry]] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class CacheEntry:
    """In-memory state of one collection's metadata."""
    data: List[MetadataItem]
    timestamp: float
    saved: bool = True
    revision: int = 0
    # Rows that are not valid items, written back untouched on flush
    unparsed: List[Any] = field(default_factory=list)


def format_version_date(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def merge_items(previous: Optional[MetadataItem], new: MetadataItem,
                commit_id: Optional[str] = None, now: Optional[float] = None) -> MetadataItem:
    """
    Merge a new item over the one it replaces.

    - Every field of `previous` is carried forward.
    - Every field explicitly set on `new` wins, including an explicit None
      (an image that disappeared unsets `imagePath`).
    - `versions` is never dropped: an explicitly supplied list replaces the
      log, otherwise the previous log is kept.
    - With a `commit_id`, `{sha, date}` is appended unless it is already the
      last recorded sha.
    """
    fields: Dict[str, Any] = {}
    versions: List[VersionEntry] = []

    if previous is not None:
        fields.update(previous.model_dump(exclude={'versions'}))
        versions = list(previous.versions or [])

    explicit = set(new.model_fields_set) | set((new.model_extra or {}).keys())
    fields.update(new.model_dump(include=explicit, exclude={'versions'}))

    if 'versions' in new.model_fields_set and new.versions is not None:
        versions = list(new.versions)

    if commit_id and (not versions or versions[-1].sha != commit_id):
        versions.append(VersionEntry(sha=commit_id, date=format_version_date(now if now is not None else time.time())))

    fields['versions'] = versions or None
    return MetadataItem.model_validate(fields)


class MetadataStore:
    """
    Per-collection metadata cache with dirty tracking.

    Constructed once per process with the durable storage it reads from and
    writes to, and passed to every consumer.
    """

    def __init__(self, storage, expiration_seconds: float = METADATA_CACHE_EXPIRATION_MINUTES * 60,
                 sweep_interval_seconds: Optional[float] = None, clock: Callable[[], float] = time.time):
        self.storage = storage
        self.expiration_seconds = expiration_seconds
        self.sweep_interval_seconds = sweep_interval_seconds or expiration_seconds
        self.clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    @staticmethod
    def metadata_path(collection_path: str) -> str:
        return f"{collection_path}/{METADATA_FILENAME}"

    def _parse_items(self, collection_path: str, raw: Any) -> Tuple[List[MetadataItem], List[Any]]:
        if not isinstance(raw, list):
            return [], []
        items, unparsed = [], []
        for row in raw:
            try:
                items.append(MetadataItem.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Keeping malformed metadata row in {collection_path} as is: {e}")
                unparsed.append(row)
        return items, unparsed

    async def _entry(self, collection_path: str) -> CacheEntry:
        entry = self._cache.get(collection_path)
        if entry is not None:
            return entry

        raw = await self.storage.read_json(self.metadata_path(collection_path))

        # Another task may have populated the entry while this one was reading
        entry = self._cache.get(collection_path)
        if entry is None:
            logger.info(f"Cache {collection_path} metadata")
            items, unparsed = self._parse_items(collection_path, raw)
            entry = CacheEntry(data=items, timestamp=self.clock(), unparsed=unparsed)
            self._cache[collection_path] = entry
        return entry

    def _mark_dirty(self, entry: CacheEntry) -> None:
        entry.saved = False
        entry.revision += 1
        entry.timestamp = self.clock()

    async def get(self, collection_path: str) -> List[MetadataItem]:
        """Items of a collection, loading metadata.json on first access."""
        entry = await self._entry(collection_path)
        entry.timestamp = self.clock()
        return list(entry.data)

    async def upsert(self, collection_path: str, item: MetadataItem, commit_id: Optional[str] = None) -> MetadataItem:
        """
        Insert or replace the item with the same JSON path.

        Args:
            collection_path: Collection the item belongs to
            item: New item values; unset fields are carried forward
            commit_id: Commit that produced this state, appended to `versions`

        Returns:
            The merged item as stored
        """
        entry = await self._entry(collection_path)

        previous = None
        for index, row in enumerate(entry.data):
            if row.json_path == item.json_path:
                previous = entry.data.pop(index)
                break

        merged = merge_items(previous, item, commit_id, now=self.clock())
        entry.data.append(merged)
        self._mark_dirty(entry)
        return merged

    async def remove(self, collection_path: str, json_path: str) -> bool:
        """Remove an item by JSON path. Returns whether it was present."""
        entry = await self._entry(collection_path)

        for index, row in enumerate(entry.data):
            if row.json_path == json_path:
                entry.data.pop(index)
                self._mark_dirty(entry)
                return True
        return False

    async def flush(self) -> int:
        """
        Persist every dirty collection.

        An entry is marked clean only if it was not modified while its
        snapshot was being written; otherwise it stays dirty for the next flush.

        Returns:
            Number of collections written
        """
        written = 0
        for collection_path, entry in list(self._cache.items()):
            if entry.saved:
                continue

            revision = entry.revision
            snapshot = [item.to_dict() for item in entry.data] + list(entry.unparsed)
            logger.info(f"Save {collection_path} metadata")
            try:
                await self.storage.write_json(self.metadata_path(collection_path), snapshot)
            except LocalIOError as e:
                logger.error(f"Failed to save {collection_path} metadata: {e}", extra={'details': {'collection': collection_path}})
                continue

            written += 1
            if entry.revision == revision:
                entry.saved = True
                entry.timestamp = self.clock()
        return written

    def sweep(self) -> List[str]:
        """Evict clean collections idle past the expiration threshold."""
        now = self.clock()
        expired = [
            collection_path for collection_path, entry in self._cache.items()
            if entry.saved and now - entry.timestamp > self.expiration_seconds
        ]
        for collection_path in expired:
            del self._cache[collection_path]
        return expired

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            evicted = self.sweep()
            if evicted:
                logger.info(f"Evicted {len(evicted)} metadata caches", extra={'details': {'collections': evicted}})

    def start(self) -> None:
        """Start the background sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the background sweep and write any pending changes."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        await self.flush()

    def collections(self) -> List[str]:
        return list(self._cache.keys())

    def is_dirty(self, collection_path: str) -> bool:
        entry = self._cache.get(collection_path)
        return entry is not None and not entry.saved
