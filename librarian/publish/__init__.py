"""
Publishing of new content through pull requests, and version history queries.
"""

from .naming import singularize, wrap_document, target_path, branch_name, commit_title
from .workflow import PublishWorkflow, PublishRequest, CommitPlan, PlannedFile, load_request
from .history import VersionHistoryService

__all__ = [
    'singularize',
    'wrap_document',
    'target_path',
    'branch_name',
    'commit_title',
    'PublishWorkflow',
    'PublishRequest',
    'CommitPlan',
    'PlannedFile',
    'load_request',
    'VersionHistoryService',
]
