"""
Remote repository access: GitHub API client and push webhook payloads.
"""

from .client import GitHubClient
from .webhook import Commit, WebhookPayload, verify_signature, parse_payload

__all__ = [
    'GitHubClient',
    'Commit',
    'WebhookPayload',
    'verify_signature',
    'parse_payload',
]
