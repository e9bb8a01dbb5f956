"""
Reconciliation of pushed commits with the local mirror

This module provides the engine that brings the mirror and the metadata
index up to date with a batch of commits:
- Folding all file events of the batch into one operation per content item
- Applying each operation (sync or clear) in isolation, so one failing item
  never aborts its siblings
- Flushing the metadata index exactly once per batch
- Reporting per-item outcomes
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..github.webhook import Commit, WebhookPayload
from .content_sync import ContentSyncAdapter
from .error_tracker import ErrorTracker, ErrorSeverity, SyncException
from .logging_manager import LoggingManager
from .metadata_store import MetadataStore
from .paths import ContentOperation, fold_change

logger = LoggingManager.get_logger(__name__)


@dataclass
class ItemResult:
    """Outcome of one content operation."""
    key: str
    json_path: str
    action: str
    status: str  # success, failed
    processing_time: float
    commit_id: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class BatchReport:
    """Summary of one reconciliation batch."""
    total_commits: int
    total_operations: int
    successful_operations: int
    failed_operations: int
    flushed_collections: int
    total_processing_time: float
    results: List[ItemResult] = field(default_factory=list)
    errors: Dict[str, Any] = field(default_factory=dict)
    has_critical_errors: bool = False


def fold_commits(commits: Sequence[Commit]) -> Dict[str, ContentOperation]:
    """
    Fold a batch of commits into one operation per content item.

    Commits are applied in order; within a commit added and modified paths
    come before removed ones. The last event for an item wins, except that
    image events never change an action set by the item's JSON file.
    """
    operations: Dict[str, ContentOperation] = {}
    for commit in commits:
        for path in list(commit.added) + list(commit.modified):
            fold_change(operations, path, False, commit.id)
        for path in commit.removed:
            fold_change(operations, path, True, commit.id)
    return operations


class ReconciliationEngine:
    """
    Drives the content sync adapter over a batch of commits.

    `process` never raises: failures are logged and reported per item.
    """

    def __init__(self, adapter: ContentSyncAdapter, store: MetadataStore, main_ref: str = 'refs/heads/main'):
        self.adapter = adapter
        self.store = store
        self.main_ref = main_ref

    async def process_payload(self, payload: WebhookPayload) -> BatchReport:
        """Process a push delivery if it targets the main branch."""
        if payload.ref != self.main_ref or not payload.commits:
            logger.info(f"Ignoring push to {payload.ref}")
            return BatchReport(0, 0, 0, 0, 0, 0.0)
        return await self.process(payload.commits)

    async def process(self, commits: Sequence[Commit]) -> BatchReport:
        start_time = time.time()
        error_tracker = ErrorTracker()
        results: List[ItemResult] = []
        flushed = 0

        logger.info(f"Process {len(commits)} commit{'s' if len(commits) != 1 else ''}")

        try:
            try:
                operations = fold_commits(commits)
            except Exception as e:
                error_tracker.report(f"Failed to fold commits: {e}", severity=ErrorSeverity.CRITICAL, details={'exception': str(e)})
                logger.error(f"Failed to fold commits: {e}")
                operations = {}

            for operation in operations.values():
                results.append(await self._apply(operation, error_tracker))
        finally:
            try:
                flushed = await self.store.flush()
            except Exception as e:
                error_tracker.report(f"Failed to flush metadata: {e}", severity=ErrorSeverity.CRITICAL, details={'exception': str(e)})
                logger.error(f"Failed to flush metadata: {e}")

        successful = sum(1 for r in results if r.status == 'success')
        report = BatchReport(
            total_commits=len(commits),
            total_operations=len(results),
            successful_operations=successful,
            failed_operations=len(results) - successful,
            flushed_collections=flushed,
            total_processing_time=time.time() - start_time,
            results=results,
            errors=error_tracker.generate_report(),
            has_critical_errors=error_tracker.has_critical_errors(),
        )
        logger.info(
            f"Processed {report.total_operations} items: {report.successful_operations} succeeded, {report.failed_operations} failed",
            extra={'details': {'flushed_collections': flushed}}
        )
        for failure in error_tracker.get_errors(ErrorSeverity.CRITICAL):
            logger.error(f"Batch-level failure: {failure.message}", extra={'details': failure.details})
        return report

    async def _apply(self, operation: ContentOperation, error_tracker: ErrorTracker) -> ItemResult:
        start_time = time.time()
        action = operation.action.value
        logger.info(f"{action} {operation.json_path}")

        try:
            await self.adapter.apply(operation)
        except Exception as e:
            context = {'commit_id': operation.commit_id, 'json_path': operation.json_path}
            if isinstance(e, SyncException):
                message = e.message
                error_tracker.report_exception(e, source_id=operation.key, details=context)
            else:
                message = str(e)
                error_tracker.report(
                    message,
                    source_id=operation.key,
                    severity=ErrorSeverity.ERROR,
                    details={**context, 'exception': type(e).__name__},
                    recovery_suggestion="The next push touching this item retries it"
                )
            error_msg = f"Failed to {action} {operation.json_path}: {message}"
            logger.error(error_msg, extra={'details': {'item': operation.key, 'commit_id': operation.commit_id}})
            return ItemResult(
                key=operation.key,
                json_path=operation.json_path,
                action=action,
                status='failed',
                processing_time=time.time() - start_time,
                commit_id=operation.commit_id,
                error_message=message,
            )

        return ItemResult(
            key=operation.key,
            json_path=operation.json_path,
            action=action,
            status='success',
            processing_time=time.time() - start_time,
            commit_id=operation.commit_id,
        )
