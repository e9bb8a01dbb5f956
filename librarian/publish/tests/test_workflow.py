"""
Tests for the publishing workflow with a mocked GitHub client.
"""

import base64
import json
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from ..workflow import PublishRequest, PublishWorkflow, load_request
from ...sync.error_tracker import PublishError, RemoteFetchError, RemoteWriteError


SWORD = {"author": "eve", "id": "sword", "name": "sword", "description": "Sharp"}
PR_URL = "https://github.com/acme/library/pull/12"


@pytest.fixture
def client():
    client = Mock()
    client.get_ref = AsyncMock(side_effect=lambda branch: {"main": "base-sha"}.get(branch, "branch-head"))
    client.create_ref = AsyncMock(return_value={"object": {"sha": "base-sha"}})
    client.get_file_sha = AsyncMock(return_value=None)
    client.create_blob = AsyncMock(side_effect=["blob-json", "blob-png"])
    client.get_commit = AsyncMock(return_value={"tree": {"sha": "tree-base"}})
    client.create_tree = AsyncMock(return_value="tree-new")
    client.create_commit = AsyncMock(return_value="commit-new")
    client.update_ref = AsyncMock(return_value={})
    client.list_pulls = AsyncMock(return_value=[])
    client.create_pull = AsyncMock(return_value={"number": 12, "state": "open", "html_url": PR_URL})
    client.update_pull = AsyncMock()
    return client


@pytest.fixture
def workflow(client):
    return PublishWorkflow(client, base_branch="main")


def request(document=None, image=b"png-bytes"):
    return PublishRequest(collection_path="weapons", json_content=dict(document or SWORD), image_bytes=image)


class TestPublishWorkflow:
    """Test the PublishWorkflow class."""

    @pytest.mark.asyncio
    async def test_new_item(self, workflow, client):
        url = await workflow.publish("weapons", request())

        assert url == PR_URL
        client.create_ref.assert_awaited_once_with("publish/weapons/eve/sword", "base-sha")

        tree_sha, tree = client.create_tree.await_args.args
        assert tree_sha == "tree-base"
        assert [entry["path"] for entry in tree] == ["weapons/eve/sword.json", "weapons/eve/sword.png"]
        assert [entry["sha"] for entry in tree] == ["blob-json", "blob-png"]
        assert all(entry["mode"] == "100644" and entry["type"] == "blob" for entry in tree)

        wrapped = json.loads(base64.b64decode(client.create_blob.await_args_list[0].args[0]))
        assert wrapped == {"type": "weapon", "name": "weapons:sword", "data": {"author": "eve", "description": "Sharp"}}
        assert base64.b64decode(client.create_blob.await_args_list[1].args[0]) == b"png-bytes"

        client.create_commit.assert_awaited_once_with('New weapon "sword"', "tree-new", ["base-sha"])
        client.update_ref.assert_awaited_once_with("publish/weapons/eve/sword", "commit-new")
        client.create_pull.assert_awaited_once_with(
            'New weapon "sword"', head="publish/weapons/eve/sword", base="main", body="Sharp"
        )

    @pytest.mark.asyncio
    async def test_without_image_commits_only_json(self, workflow, client):
        await workflow.publish("weapons", request(image=None))

        client.create_blob.assert_awaited_once()
        _, tree = client.create_tree.await_args.args
        assert [entry["path"] for entry in tree] == ["weapons/eve/sword.json"]

    @pytest.mark.asyncio
    async def test_existing_branch_is_reused(self, workflow, client):
        client.create_ref.side_effect = RemoteWriteError("Reference already exists", status=422)
        client.get_file_sha.side_effect = lambda path, ref=None: "old-sha" if path.endswith(".json") else None
        client.list_pulls.return_value = [{"number": 12, "state": "open", "html_url": PR_URL}]

        url = await workflow.publish("weapons", request())

        assert url == PR_URL
        client.get_ref.assert_any_await("publish/weapons/eve/sword")
        client.get_commit.assert_awaited_once_with("branch-head")
        client.create_commit.assert_awaited_once_with('Update weapon "sword"', "tree-new", ["branch-head"])
        client.get_file_sha.assert_any_await("weapons/eve/sword.json", ref="publish/weapons/eve/sword")
        client.create_pull.assert_not_awaited()
        client.update_pull.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_branch_errors_propagate(self, workflow, client):
        client.create_ref.side_effect = RemoteWriteError("Bad credentials", status=401)

        with pytest.raises(PublishError):
            await workflow.publish("weapons", request())

        client.create_commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_closed_pull_request_is_reopened(self, workflow, client):
        client.list_pulls.return_value = [{"number": 12, "state": "closed", "html_url": PR_URL}]
        client.update_pull.return_value = {"number": 12, "state": "open", "html_url": PR_URL}

        url = await workflow.publish("weapons", request())

        assert url == PR_URL
        client.update_pull.assert_awaited_once_with(12, state="open")
        client.create_pull.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreopenable_pull_request_is_replaced(self, workflow, client):
        client.list_pulls.return_value = [{"number": 12, "state": "closed", "html_url": PR_URL}]
        client.update_pull.side_effect = RemoteWriteError("Cannot reopen", status=422)
        client.create_pull.return_value = {"number": 13, "state": "open", "html_url": PR_URL + "3"}

        url = await workflow.publish("weapons", request())

        assert url == PR_URL + "3"
        client.create_pull.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["author", "id", "name", "description"])
    async def test_missing_required_field(self, workflow, client, missing):
        document = {k: v for k, v in SWORD.items() if k != missing}

        with pytest.raises(PublishError) as exc_info:
            await workflow.publish("weapons", request(document))

        assert missing in exc_info.value.message
        client.get_ref.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remote_failure_becomes_publish_error(self, workflow, client):
        client.get_ref.side_effect = RemoteFetchError("Server error", status=502)

        with pytest.raises(PublishError) as exc_info:
            await workflow.publish("weapons", request())

        assert "Server error" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, RemoteFetchError)

    @pytest.mark.asyncio
    async def test_nested_collection_title(self, workflow, client):
        await workflow.publish("characters/weapons/", request())

        client.create_ref.assert_awaited_once_with("publish/characters/weapons/eve/sword", "base-sha")
        assert client.create_commit.await_args.args[0] == 'New weapon\'s character "sword"'


class TestLoadRequest:
    """Test building a request from files on disk."""

    @pytest.fixture
    def temp_dir(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir)

    def test_json_and_image(self, temp_dir):
        (temp_dir / "sword.json").write_text(json.dumps(SWORD))
        (temp_dir / "sword.png").write_bytes(b"png")

        loaded = load_request("weapons", str(temp_dir / "sword.json"), str(temp_dir / "sword.png"))

        assert loaded.json_content == SWORD
        assert loaded.image_bytes == b"png"

    def test_invalid_json(self, temp_dir):
        (temp_dir / "sword.json").write_text("{oops")

        with pytest.raises(PublishError):
            load_request("weapons", str(temp_dir / "sword.json"))

    def test_json_must_be_object(self, temp_dir):
        (temp_dir / "sword.json").write_text("[1]")

        with pytest.raises(PublishError):
            load_request("weapons", str(temp_dir / "sword.json"))

    def test_missing_file(self, temp_dir):
        with pytest.raises(PublishError):
            load_request("weapons", str(temp_dir / "missing.json"))
