"""
Version history of content files.

Remote failures never propagate from here: history degrades to an empty
list and content at a revision to None.
"""

import json
from typing import Any, List, Optional

from ..config import get_logger
from ..sync.error_tracker import SyncException
from ..sync.metadata_store import MetadataItem, MetadataStore, VersionEntry
from ..sync.paths import JSON_SUFFIX, collection_of

logger = get_logger(__name__)


class VersionHistoryService:
    def __init__(self, client):
        self.client = client

    async def fetch_history(self, path: str) -> List[VersionEntry]:
        """Commits that touched `path`, newest first."""
        try:
            commits = await self.client.list_commits(path)
            return [
                VersionEntry(sha=commit['sha'], date=commit['commit']['author']['date'])
                for commit in commits
            ]
        except (SyncException, KeyError, TypeError) as e:
            logger.error(f"Failed to fetch history of {path}: {e}")
            return []

    async def fetch_at_commit(self, path: str, sha: str) -> Optional[Any]:
        """Content of `path` at revision `sha`: decoded JSON for .json files, raw bytes otherwise."""
        try:
            content = await self.client.get_file(path, ref=sha)
            if content is None or not path.endswith(JSON_SUFFIX):
                return content
            return json.loads(content.decode('utf-8'))
        except (SyncException, ValueError) as e:
            logger.error(f"Failed to fetch {path} at {sha}: {e}")
            return None

    async def refresh_versions(self, store: MetadataStore, path: str) -> List[VersionEntry]:
        """
        Fetch the history of a content file and record it as the item's versions.

        Only items already listed in their collection are updated.
        """
        versions = await self.fetch_history(path)
        collection_path = collection_of(path)
        if not versions or not collection_path:
            return versions

        items = await store.get(collection_path)
        if any(item.json_path == path for item in items):
            await store.upsert(collection_path, MetadataItem(json_path=path, versions=versions))
        return versions
