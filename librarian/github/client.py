"""
Asynchronous client for the GitHub contents and Git Data APIs.

Reads raise RemoteFetchError and writes raise RemoteWriteError; both carry
the HTTP status (None for transport failures). A 404 on a contents read is
not an error: the file is simply absent.
"""

import asyncio
import base64
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from ..config import get_logger, GITHUB_API_URL, DEFAULT_REQUEST_TIMEOUT
from ..sync.error_tracker import RemoteFetchError, RemoteWriteError

logger = get_logger(__name__)

FILE_MODE = '100644'


class GitHubClient:
    """
    Token-authenticated client bound to one repository.

    Use as an async context manager, or pass an existing aiohttp session.
    """

    def __init__(self, repo: str, token: str, api_url: str = GITHUB_API_URL,
                 timeout: int = DEFAULT_REQUEST_TIMEOUT, session: Optional[aiohttp.ClientSession] = None):
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config) -> 'GitHubClient':
        return cls(repo=config.repo, token=config.token, api_url=config.api_url, timeout=config.timeout)

    async def __aenter__(self):
        """Async context manager entry."""
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    @property
    def owner(self) -> str:
        return self.repo.split('/')[0]

    @property
    def repo_url(self) -> str:
        return f"{self.api_url}/repos/{self.repo}"

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'token {self.token}',
            'Accept': 'application/vnd.github.v3+json',
            'Content-Type': 'application/json',
        }

    async def _request(self, method: str, endpoint: str, *, params: Optional[Dict[str, Any]] = None,
                       json: Optional[Dict[str, Any]] = None, allow_404: bool = False) -> Any:
        """
        Perform one API call and decode its JSON body.

        Returns None for a 404 when `allow_404` is set. GET failures raise
        RemoteFetchError, anything else RemoteWriteError.
        """
        if self.session is None:
            raise RuntimeError("GitHubClient used outside of its session context")

        error_class = RemoteFetchError if method == 'GET' else RemoteWriteError
        url = f"{self.repo_url}/{endpoint}"
        try:
            async with self.session.request(method, url, headers=self._headers(), params=params, json=json) as response:
                if response.status == 404 and allow_404:
                    return None
                if response.status >= 400:
                    body = await response.text()
                    raise error_class(f"{method} {endpoint} failed with {response.status}: {body[:200]}",
                                      status=response.status, source_id=endpoint)
                if response.status == 204:
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise error_class(f"{method} {endpoint} returned an undecodable body: {e}",
                                      status=response.status, source_id=endpoint)
        except asyncio.TimeoutError:
            raise error_class(f"{method} {endpoint} timed out after {self.timeout}s", source_id=endpoint)
        except aiohttp.ClientError as e:
            raise error_class(f"{method} {endpoint} failed: {e}", source_id=endpoint)

    # Contents

    async def get_contents(self, path: str, ref: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """File metadata and base64 content, or None if the file does not exist."""
        params = {'ref': ref} if ref else None
        return await self._request('GET', f"contents/{quote(path)}", params=params, allow_404=True)

    async def get_file(self, path: str, ref: Optional[str] = None) -> Optional[bytes]:
        """Decoded file content, or None if the file does not exist."""
        info = await self.get_contents(path, ref=ref)
        if info is None:
            return None
        content = info.get('content')
        if content is None:
            raise RemoteFetchError(f"No content returned for {path}", source_id=path)
        return base64.b64decode(content)

    async def get_file_sha(self, path: str, ref: Optional[str] = None) -> Optional[str]:
        info = await self.get_contents(path, ref=ref)
        return info.get('sha') if info else None

    # References

    async def create_ref(self, branch: str, sha: str) -> Dict[str, Any]:
        return await self._request('POST', 'git/refs', json={'ref': f'refs/heads/{branch}', 'sha': sha})

    async def get_ref(self, branch: str) -> str:
        """Head commit sha of a branch."""
        data = await self._request('GET', f"git/ref/heads/{quote(branch)}")
        return data['object']['sha']

    async def update_ref(self, branch: str, sha: str) -> Dict[str, Any]:
        return await self._request('PATCH', f"git/refs/heads/{quote(branch)}", json={'sha': sha})

    # Git objects

    async def get_commit(self, sha: str) -> Dict[str, Any]:
        return await self._request('GET', f"git/commits/{sha}")

    async def create_blob(self, content_b64: str) -> str:
        data = await self._request('POST', 'git/blobs', json={'encoding': 'base64', 'content': content_b64})
        return data['sha']

    async def create_tree(self, base_tree: str, entries: List[Dict[str, Any]]) -> str:
        data = await self._request('POST', 'git/trees', json={'base_tree': base_tree, 'tree': entries})
        return data['sha']

    async def create_commit(self, message: str, tree: str, parents: List[str]) -> str:
        data = await self._request('POST', 'git/commits', json={'message': message, 'tree': tree, 'parents': parents})
        return data['sha']

    # Pull requests

    async def list_pulls(self, branch: str, state: str = 'all') -> List[Dict[str, Any]]:
        return await self._request('GET', 'pulls', params={'head': f"{self.owner}:{branch}", 'state': state}) or []

    async def create_pull(self, title: str, head: str, base: str, body: Optional[str] = None) -> Dict[str, Any]:
        return await self._request('POST', 'pulls', json={'title': title, 'head': head, 'base': base, 'body': body})

    async def update_pull(self, number: int, **fields: Any) -> Dict[str, Any]:
        return await self._request('PATCH', f"pulls/{number}", json=fields)

    # History

    async def list_commits(self, path: str, ref: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'path': path}
        if ref:
            params['sha'] = ref
        return await self._request('GET', 'commits', params=params) or []
