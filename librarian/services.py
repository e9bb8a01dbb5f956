"""
Process-wide wiring of the library components.

One `LibraryServices` is built at process start (server or CLI run) and
every consumer receives its store, engine and workflow from it.
"""

from typing import Optional

from .config import LibrarianConfig, get_logger
from .github.client import GitHubClient
from .publish.history import VersionHistoryService
from .publish.workflow import PublishWorkflow
from .sync.content_sync import ContentSyncAdapter
from .sync.logging_manager import LoggingManager
from .sync.metadata_store import MetadataStore
from .sync.reconciler import ReconciliationEngine
from .sync.storage import LocalStorage

logger = get_logger(__name__)


class LibraryServices:
    """
    Owns the remote client session and the metadata store lifecycle.

    Use as an async context manager: entering opens the client session and
    (optionally) starts the eviction sweep; leaving stops the sweep, flushes
    pending metadata and closes the session.
    """

    def __init__(self, config: LibrarianConfig, client: Optional[GitHubClient] = None, run_sweep: bool = True):
        self.config = config
        self.run_sweep = run_sweep
        self.logging_manager = LoggingManager.configure(log_level=config.log_level, log_file=config.log_file)

        self.client = client or GitHubClient.from_config(config)
        self.storage = LocalStorage(config.static_path)
        self.store = MetadataStore(self.storage, expiration_seconds=config.cache_expiration_minutes * 60)
        self.adapter = ContentSyncAdapter(self.client, self.storage, self.store)
        self.engine = ReconciliationEngine(self.adapter, self.store, main_ref=config.main_ref)
        self.publisher = PublishWorkflow(self.client, base_branch=config.base_branch)
        self.history = VersionHistoryService(self.client)

        logger.info(f"Library services initialized for {config.repo}", extra={'details': {'static_path': config.static_path}})

    async def __aenter__(self):
        await self.client.__aenter__()
        if self.run_sweep:
            self.store.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            await self.store.stop()
        finally:
            await self.client.close()
