"""
Sync module: reconciliation of pushed commits with the local content mirror.

This module classifies changed paths into content-item operations, mirrors
items from the remote repository, and maintains the per-collection metadata
index with deferred persistence and time-based eviction.
"""

from .error_tracker import (
    ErrorTracker, ErrorSeverity, ItemFailure, SyncException, RemoteError,
    RemoteFetchError, RemoteWriteError, LocalIOError, MalformedContentError, PublishError
)

from .paths import (
    ContentAction, ContentOperation, classify, fold_change, split_content_path, collection_of
)

from .storage import LocalStorage

from .metadata_store import (
    MetadataStore, MetadataItem, VersionEntry, CacheEntry, merge_items
)

from .content_sync import ContentSyncAdapter

from .reconciler import (
    ReconciliationEngine, BatchReport, ItemResult, fold_commits
)

__all__ = [
    # Errors
    'ErrorTracker',
    'ErrorSeverity',
    'ItemFailure',
    'RemoteError',
    'SyncException',
    'RemoteFetchError',
    'RemoteWriteError',
    'LocalIOError',
    'MalformedContentError',
    'PublishError',

    # Classification
    'ContentAction',
    'ContentOperation',
    'classify',
    'fold_change',
    'split_content_path',
    'collection_of',

    # Storage and index
    'LocalStorage',
    'MetadataStore',
    'MetadataItem',
    'VersionEntry',
    'CacheEntry',
    'merge_items',

    # Reconciliation
    'ContentSyncAdapter',
    'ReconciliationEngine',
    'BatchReport',
    'ItemResult',
    'fold_commits',
]
