"""Tests for ActionPipeline — extraction through execution, cancel and undo."""

import asyncio
import json

import pytest
import pytest_asyncio

from docpilot.adapters.store.memory_store import InMemoryDocumentStore
from docpilot.domain.models import ActionResult, ActionStatus, ActionType
from docpilot.pipeline import ActionPipeline, format_query_followup

CONV = "conv-1"
PAGE_ID = "drafts.k3j9x8m2q1"
SECTION_KEY = "4b5c6d7e8f"


def _reply(*actions, prose="Here is the plan."):
    blocks = "\n".join(f"```action\n{json.dumps(a)}\n```" for a in actions)
    return f"{prose}\n{blocks}\n"


QUERY = {
    "type": "query",
    "description": "Read the about page",
    "payload": {"query": f'*[_id == "{PAGE_ID}"][0]'},
}
FABRICATED_UPDATE = {
    "type": "update",
    "description": "Rename the hero section",
    "payload": {"documentId": PAGE_ID, "fields": {'pageBuilder[_key=="hero"].label': "Welcome"}},
}
REAL_UPDATE = {
    "type": "update",
    "description": "Rename the first section",
    "payload": {"documentId": PAGE_ID, "fields": {f'pageBuilder[_key=="{SECTION_KEY}"].label': "Welcome"}},
}


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest_asyncio.fixture
async def seeded(store):
    await store.create({
        "_id": PAGE_ID,
        "_type": "page",
        "name": "About",
        "pageBuilder": [{"_key": SECTION_KEY, "_type": "section", "label": "Hero"}],
    })
    return store


@pytest.fixture
def pipeline(store):
    return ActionPipeline(store)


class SlowStore(InMemoryDocumentStore):
    """fetch() blocks until released so a query can be cancelled mid-flight."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch(self, query, params=None):
        self.started.set()
        await self.release.wait()
        return await super().fetch(query, params)


class TestIngest:
    def test_records_actions_and_prose(self, pipeline):
        text = _reply(QUERY, FABRICATED_UPDATE, prose="Let me check the page first.")
        actions = pipeline.ingest(CONV, text)
        assert [a.type for a in actions] == [ActionType.QUERY, ActionType.UPDATE]
        assert pipeline.actions.list(CONV) == actions
        assert pipeline.prose(text) == "Let me check the page first."

    def test_no_actions(self, pipeline):
        assert pipeline.ingest(CONV, "Nothing to do.") == []
        assert CONV not in pipeline.actions


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_query_then_fabricated_key_is_rejected(self, pipeline, seeded):
        query, update = pipeline.ingest(CONV, _reply(QUERY, FABRICATED_UPDATE))
        results = await pipeline.run_batch([query.id, update.id])

        assert results[0].success is True
        assert results[0].data["_id"] == PAGE_ID
        assert results[1].success is False
        assert "hero" in results[1].message
        assert "query" in results[1].message
        assert update.status is ActionStatus.FAILED
        assert update.error == results[1].message
        # nothing written after the seed
        assert seeded.write_count == 1

    @pytest.mark.asyncio
    async def test_real_key_applies(self, pipeline, seeded):
        (update,) = pipeline.ingest(CONV, _reply(REAL_UPDATE))
        result = await pipeline.run(update.id)
        assert result.success is True
        assert update.status is ActionStatus.COMPLETED
        doc = await seeded.get_document(PAGE_ID)
        assert doc["pageBuilder"][0]["label"] == "Welcome"

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, pipeline, seeded):
        bad_delete = {"type": "delete", "description": "Remove old page", "payload": {"documentId": "missing1x"}}
        delete, update = pipeline.ingest(CONV, _reply(bad_delete, REAL_UPDATE))
        results = await pipeline.run_batch([delete, update])
        assert len(results) == 1
        assert delete.status is ActionStatus.FAILED
        assert update.status is ActionStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_action(self, pipeline):
        results = await pipeline.run_batch(["action_nope"])
        assert results[0].success is False
        assert "Unknown action" in results[0].message

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, pipeline, seeded):
        query, update = pipeline.ingest(CONV, _reply(QUERY, REAL_UPDATE))
        results = await pipeline.run_batch([query, update], dry_run=True)
        assert all(r.success for r in results)
        assert results[1].message == "Would update: Rename the first section"
        assert results[1].data["currentValues"]["_id"] == PAGE_ID
        assert update.status is ActionStatus.PENDING
        assert seeded.write_count == 1

    @pytest.mark.asyncio
    async def test_dry_run_reports_every_invalid_action(self, pipeline):
        update, other = pipeline.ingest(CONV, _reply(FABRICATED_UPDATE, FABRICATED_UPDATE))
        results = await pipeline.run_batch([update, other], dry_run=True)
        assert [r.success for r in results] == [False, False]


class TestRun:
    @pytest.mark.asyncio
    async def test_already_run(self, pipeline, seeded):
        (query,) = pipeline.ingest(CONV, _reply(QUERY))
        await pipeline.run(query)
        again = await pipeline.run(query)
        assert again.success is False
        assert "already completed" in again.message

    @pytest.mark.asyncio
    async def test_missing_payload(self, pipeline):
        (delete,) = pipeline.ingest(CONV, _reply({"type": "delete", "payload": {}}))
        result = await pipeline.run(delete)
        assert result.success is False
        assert "Document ID is required" in result.message
        assert delete.status is ActionStatus.FAILED

    @pytest.mark.asyncio
    async def test_deep_page_goes_through_builder(self):
        store = InMemoryDocumentStore(max_nesting_depth=6)
        pipeline = ActionPipeline(store)
        create = {
            "type": "create",
            "description": "Create the landing page",
            "payload": {
                "documentType": "page",
                "fields": {
                    "name": "Landing",
                    "slug": "landing",
                    "pageBuilder": [{"rows": [{"columns": [{"content": [{"_type": "heading", "text": "Hi"}]}]}]}],
                },
            },
        }
        (action,) = pipeline.ingest(CONV, _reply(create))
        result = await pipeline.run(action)
        assert result.success is True
        assert result.data["steps"] == 5
        assert action.status is ActionStatus.COMPLETED
        doc = await store.get_document(result.document_id)
        assert doc["pageBuilder"][0]["rows"][0]["columns"][0]["content"][0]["text"] == "Hi"
        assert pipeline.can_undo(action.id)

    @pytest.mark.asyncio
    async def test_cancel_in_flight(self):
        store = SlowStore()
        pipeline = ActionPipeline(store)
        (query,) = pipeline.ingest(CONV, _reply(QUERY))
        running = asyncio.ensure_future(pipeline.run(query))
        await store.started.wait()
        assert query.status is ActionStatus.EXECUTING

        assert pipeline.cancel(query.id) is True
        result = await running
        assert result.success is False
        assert result.message == "Action cancelled"
        assert query.status is ActionStatus.CANCELLED
        assert pipeline.cancel(query.id) is False

    @pytest.mark.asyncio
    async def test_outer_cancellation_propagates(self):
        store = SlowStore()
        pipeline = ActionPipeline(store)
        (query,) = pipeline.ingest(CONV, _reply(QUERY))
        running = asyncio.ensure_future(pipeline.run(query))
        await store.started.wait()

        running.cancel()
        with pytest.raises(asyncio.CancelledError):
            await running
        assert query.status is ActionStatus.EXECUTING
        assert query.result is None

    def test_cancel_unknown(self, pipeline):
        assert pipeline.cancel("action_nope") is False


class TestUndo:
    @pytest.mark.asyncio
    async def test_undo_delete(self, pipeline, seeded):
        delete_page = {"type": "delete", "description": "Delete about", "payload": {"documentId": PAGE_ID}}
        (delete,) = pipeline.ingest(CONV, _reply(delete_page))
        await pipeline.run(delete)
        assert await seeded.get_document(PAGE_ID) is None
        assert delete.result.pre_state["_id"] == PAGE_ID

        result = await pipeline.undo(delete.id)
        assert result.success is True
        assert (await seeded.get_document(PAGE_ID))["name"] == "About"
        assert pipeline.actions.get(delete.id).result.pre_state is None
        assert pipeline.can_undo(delete.id) is False

    @pytest.mark.asyncio
    async def test_discarded_conversation_drops_snapshots(self, pipeline, seeded):
        (update,) = pipeline.ingest(CONV, _reply(REAL_UPDATE))
        await pipeline.run(update)
        assert pipeline.can_undo(update.id)
        pipeline.discard(CONV)
        assert pipeline.can_undo(update.id) is False
        result = await pipeline.undo(update.id)
        assert "Unknown action" in result.message

    @pytest.mark.asyncio
    async def test_truncate_drops_later_snapshots(self, pipeline, seeded):
        query, update = pipeline.ingest(CONV, _reply(QUERY, REAL_UPDATE))
        await pipeline.run_batch([query, update])
        removed = pipeline.truncate(CONV, 1)
        assert removed == [update]
        assert pipeline.can_undo(update.id) is False


class TestFormatQueryFollowup:
    def test_success(self):
        text = format_query_followup(ActionResult(success=True, message="Found 1 result(s)", data={"_id": "abc"}))
        assert text.startswith("Query results (Found 1 result(s)):")
        assert '"_id": "abc"' in text
        assert "_key" in text

    def test_failure(self):
        text = format_query_followup(ActionResult(success=False, message="Query validation failed: x"))
        assert text == "Query failed: Query validation failed: x"

    def test_truncates_long_results(self):
        result = ActionResult(success=True, message="Found 1 result(s)", data={"body": "x" * 100})
        assert "(truncated)" in format_query_followup(result, max_chars=50)
