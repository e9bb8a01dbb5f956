"""
Tests for the ReconciliationEngine: failure isolation, flushing and ref filtering.
"""

import json
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from ..content_sync import ContentSyncAdapter
from ..error_tracker import LocalIOError, RemoteFetchError
from ..metadata_store import MetadataItem, MetadataStore
from ..paths import ContentAction
from ..reconciler import ReconciliationEngine
from ..storage import LocalStorage
from ...github.webhook import Commit, WebhookPayload


def document(name):
    return json.dumps({"name": f"character:{name}", "data": {"displayName": name.title()}}).encode()


class TestReconciliationEngine:
    """Test the ReconciliationEngine class."""

    @pytest.fixture
    def adapter(self):
        adapter = Mock()
        adapter.apply = AsyncMock()
        return adapter

    @pytest.fixture
    def store(self):
        store = Mock()
        store.flush = AsyncMock(return_value=1)
        return store

    @pytest.fixture
    def engine(self, adapter, store):
        return ReconciliationEngine(adapter, store, main_ref="refs/heads/main")

    @pytest.mark.asyncio
    async def test_one_operation_per_item(self, engine, adapter, store):
        commits = [Commit(id="c1", added=["characters/alice/1.json", "characters/alice/1.png"])]

        report = await engine.process(commits)

        adapter.apply.assert_awaited_once()
        op = adapter.apply.await_args.args[0]
        assert op.action == ContentAction.SYNC
        assert op.commit_id == "c1"
        assert report.total_commits == 1
        assert report.total_operations == 1
        assert report.successful_operations == 1
        assert report.flushed_collections == 1
        store.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_item_does_not_abort_siblings(self, engine, adapter, store):
        async def apply(op):
            if op.id == "1":
                raise RemoteFetchError("Server error", status=500)

        adapter.apply.side_effect = apply
        commits = [Commit(id="c1", added=["characters/alice/1.json", "characters/alice/2.json", "characters/bob/3.json"])]

        report = await engine.process(commits)

        assert adapter.apply.await_count == 3
        assert report.successful_operations == 2
        assert report.failed_operations == 1
        failed = next(r for r in report.results if r.status == 'failed')
        assert failed.key == "characters/alice/1"
        assert failed.error_message == "Server error"
        assert report.errors["total_errors"] == 1
        failure = report.errors["errors"][0]
        assert failure["source_id"] == "characters/alice/1"
        assert failure["details"]["status"] == 500
        assert failure["details"]["commit_id"] == "c1"
        assert not report.has_critical_errors
        store.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_reported(self, engine, adapter):
        adapter.apply.side_effect = RuntimeError("boom")

        report = await engine.process([Commit(id="c1", added=["items/bob/7.json"])])

        assert report.failed_operations == 1
        assert report.results[0].error_message == "boom"

    @pytest.mark.asyncio
    async def test_flush_failure_is_reported(self, engine, store):
        store.flush.side_effect = LocalIOError("disk full")

        report = await engine.process([Commit(id="c1", added=["items/bob/7.json"])])

        assert report.successful_operations == 1
        assert report.flushed_collections == 0
        assert report.errors["critical_count"] == 1
        assert report.has_critical_errors

    @pytest.mark.asyncio
    async def test_non_content_paths_produce_no_operations(self, engine, adapter, store):
        report = await engine.process([Commit(id="c1", modified=["README.md", "docs/index.html"])])

        adapter.apply.assert_not_awaited()
        assert report.total_operations == 0
        store.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_payload_for_other_branch_is_ignored(self, engine, adapter, store):
        payload = WebhookPayload(ref="refs/heads/feature", commits=[Commit(id="c1", added=["items/bob/7.json"])])

        report = await engine.process_payload(payload)

        adapter.apply.assert_not_awaited()
        store.flush.assert_not_awaited()
        assert report.total_operations == 0

    @pytest.mark.asyncio
    async def test_payload_for_main_branch_is_processed(self, engine, adapter):
        payload = WebhookPayload(ref="refs/heads/main", commits=[Commit(id="c1", removed=["items/bob/7.json"])])

        report = await engine.process_payload(payload)

        assert report.total_operations == 1
        assert adapter.apply.await_args.args[0].action == ContentAction.CLEAR


class TestReconciliationScenarios:
    """End-to-end batches against a temporary mirror and a mocked remote."""

    @pytest.fixture
    def temp_root(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir)

    def build(self, temp_root, files):
        client = Mock()
        client.get_file = AsyncMock(side_effect=lambda path, ref=None: files.get(path))
        storage = LocalStorage(str(temp_root))
        store = MetadataStore(storage)
        engine = ReconciliationEngine(ContentSyncAdapter(client, storage, store), store)
        return engine, store

    @pytest.mark.asyncio
    async def test_added_item_is_mirrored_and_indexed(self, temp_root):
        files = {"characters/alice/1.json": document("alice"), "characters/alice/1.png": b"png"}
        engine, store = self.build(temp_root, files)

        report = await engine.process([Commit(id="c1", added=list(files))])

        assert report.successful_operations == 1
        assert report.flushed_collections == 1
        assert (temp_root / "characters/alice/1.json").exists()
        assert (temp_root / "characters/alice/1.png").read_bytes() == b"png"
        on_disk = json.loads((temp_root / "characters/metadata.json").read_text())
        assert len(on_disk) == 1
        assert on_disk[0]["jsonPath"] == "characters/alice/1.json"
        assert on_disk[0]["name"] == "Alice"
        assert on_disk[0]["versions"][0]["sha"] == "c1"
        assert not store.is_dirty("characters")

    @pytest.mark.asyncio
    async def test_removed_item_is_cleared(self, temp_root):
        (temp_root / "items/bob").mkdir(parents=True)
        (temp_root / "items/bob/7.json").write_text("{}")
        (temp_root / "items/bob/7.png").write_bytes(b"png")
        (temp_root / "items/metadata.json").write_text(json.dumps([
            MetadataItem(json_path="items/bob/7.json", id="7").to_dict(),
            MetadataItem(json_path="items/eve/8.json", id="8").to_dict(),
        ]))
        engine, _ = self.build(temp_root, {})

        report = await engine.process([Commit(id="c2", removed=["items/bob/7.json", "items/bob/7.png"])])

        assert report.successful_operations == 1
        assert not (temp_root / "items/bob").exists()
        on_disk = json.loads((temp_root / "items/metadata.json").read_text())
        assert [row["jsonPath"] for row in on_disk] == ["items/eve/8.json"]

    @pytest.mark.asyncio
    async def test_second_commit_appends_version(self, temp_root):
        files = {"characters/alice/1.json": document("alice")}
        engine, store = self.build(temp_root, files)

        await engine.process([Commit(id="c1", added=["characters/alice/1.json"])])
        await engine.process([Commit(id="c2", modified=["characters/alice/1.json"])])

        items = await store.get("characters")
        assert len(items) == 1
        assert [v.sha for v in items[0].versions] == ["c1", "c2"]
