"""
Publishing workflow.

A submission is wrapped, committed to a dedicated `publish/...` branch as
one atomic multi-file commit, and offered through a pull request that is
reused across republishes of the same item.
"""

import asyncio
import base64
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..config import get_logger, DEFAULT_BASE_BRANCH
from ..github.client import FILE_MODE
from ..sync.error_tracker import MalformedContentError, PublishError, RemoteWriteError
from ..sync.paths import IMAGE_SUFFIX, JSON_SUFFIX
from .naming import branch_name, commit_title, serialize_document, target_path, wrap_document

logger = get_logger(__name__)

REQUIRED_FIELDS = ('author', 'id', 'name', 'description')

# Status GitHub answers when a ref to create already exists
REF_EXISTS_STATUS = 422


class PublishRequest(BaseModel):
    """A submission: the raw JSON document and an optional PNG image."""
    collection_path: str
    json_content: Dict[str, Any]
    image_bytes: Optional[bytes] = None


@dataclass
class PlannedFile:
    path: str
    content: str  # base64
    prior_sha: Optional[str] = None


@dataclass
class CommitPlan:
    branch_name: str
    base_sha: str
    title: str
    files: List[PlannedFile] = field(default_factory=list)

    @property
    def is_update(self) -> bool:
        return any(f.prior_sha for f in self.files)


def load_request(collection_path: str, json_file: str, image_file: Optional[str] = None) -> PublishRequest:
    """
    Build a publish request from files on disk.

    Raises:
        PublishError: If a file cannot be read or the JSON is invalid
    """
    try:
        json_content = json.loads(Path(json_file).read_text(encoding='utf-8'))
        image_bytes = Path(image_file).read_bytes() if image_file else None
    except (OSError, ValueError) as e:
        raise PublishError(f"Unable to read submission: {e}", source_id=collection_path)
    if not isinstance(json_content, dict):
        raise PublishError("Submitted JSON must be an object", source_id=collection_path)
    return PublishRequest(collection_path=collection_path, json_content=json_content, image_bytes=image_bytes)


def validate_document(document: Dict[str, Any]) -> None:
    missing = [name for name in REQUIRED_FIELDS if document.get(name) in (None, '')]
    if missing:
        raise MalformedContentError(f"Submission is missing required fields: {', '.join(missing)}")


def encode(content: bytes) -> str:
    return base64.b64encode(content).decode('ascii')


class PublishWorkflow:
    """Publishes submissions to the content repository through pull requests."""

    def __init__(self, client, base_branch: str = DEFAULT_BASE_BRANCH):
        self.client = client
        self.base_branch = base_branch

    async def publish(self, collection_path: str, request: PublishRequest) -> str:
        """
        Publish a submission and return its pull request URL.

        Raises:
            PublishError: On an invalid submission or any remote failure
        """
        try:
            return await self._publish(collection_path.strip('/'), request)
        except PublishError:
            raise
        except Exception as e:
            message = getattr(e, 'message', None) or str(e)
            logger.error(f"Failed to publish to {collection_path}: {message}")
            raise PublishError(f"Failed to publish to {collection_path}: {message}", source_id=collection_path) from e

    async def _publish(self, collection_path: str, request: PublishRequest) -> str:
        document = request.json_content
        validate_document(document)

        item_id = str(document['id'])
        path = target_path(collection_path, str(document['author']), item_id)
        branch = branch_name(path)
        wrapped = wrap_document(collection_path, document)

        base_sha = await self.client.get_ref(self.base_branch)
        head_sha = await self.ensure_branch(branch, base_sha)

        plan = await self.plan_commit(branch, head_sha, path, wrapped, request.image_bytes)
        plan.title = commit_title(collection_path, item_id, plan.is_update)

        await self.commit(plan)
        pull = await self.ensure_pull_request(branch, plan.title, document.get('description'))

        logger.info(f"Published {path}", extra={'details': {'branch': branch, 'title': plan.title}})
        return pull['html_url']

    async def ensure_branch(self, branch: str, base_sha: str) -> str:
        """Create the branch from `base_sha`, or resolve its head if it already exists."""
        try:
            ref = await self.client.create_ref(branch, base_sha)
            return ref['object']['sha']
        except RemoteWriteError as e:
            if e.status != REF_EXISTS_STATUS:
                raise
        logger.info(f"Branch {branch} already exists, reusing it")
        return await self.client.get_ref(branch)

    async def plan_commit(self, branch: str, head_sha: str, path: str, wrapped: Dict[str, Any],
                          image: Optional[bytes]) -> CommitPlan:
        files = [PlannedFile(path=f"{path}{JSON_SUFFIX}", content=encode(serialize_document(wrapped)))]
        if image:
            files.append(PlannedFile(path=f"{path}{IMAGE_SUFFIX}", content=encode(image)))

        prior_shas = await asyncio.gather(*(self.client.get_file_sha(f.path, ref=branch) for f in files))
        for planned, sha in zip(files, prior_shas):
            planned.prior_sha = sha

        return CommitPlan(branch_name=branch, base_sha=head_sha, title='', files=files)

    async def commit(self, plan: CommitPlan) -> str:
        """
        Apply a plan as one commit and fast-forward its branch.

        Blobs are created concurrently; tree, commit and ref update follow in order.
        """
        blob_shas = await asyncio.gather(*(self.client.create_blob(f.content) for f in plan.files))

        head = await self.client.get_commit(plan.base_sha)
        tree = [
            {'path': planned.path, 'mode': FILE_MODE, 'type': 'blob', 'sha': sha}
            for planned, sha in zip(plan.files, blob_shas)
        ]
        tree_sha = await self.client.create_tree(head['tree']['sha'], tree)
        commit_sha = await self.client.create_commit(plan.title, tree_sha, [plan.base_sha])
        await self.client.update_ref(plan.branch_name, commit_sha)
        return commit_sha

    async def ensure_pull_request(self, branch: str, title: str, description: Optional[str] = None) -> Dict[str, Any]:
        """Return the branch's open pull request, reopening a closed one or creating a new one."""
        pulls = await self.client.list_pulls(branch, state='all')
        if pulls:
            pull = pulls[0]
            if pull.get('state') != 'closed':
                return pull
            try:
                reopened = await self.client.update_pull(pull['number'], state='open')
                return reopened or pull
            except RemoteWriteError as e:
                logger.warning(f"Could not reopen pull request #{pull['number']}: {e.message}")

        return await self.client.create_pull(title, head=branch, base=self.base_branch, body=description)
