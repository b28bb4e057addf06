"""ActionPipeline — extract → validate → build/execute, with cancel and undo.

Owns one ActionStore, one executor, one tree builder and one undo manager.
Actions from a reply run one at a time in extraction order; a batch stops at
the first failure because later actions usually depend on earlier results
(a query supplying the real keys for an update).
"""

import asyncio
import json
import sys
from datetime import datetime
from typing import Dict, List, Optional, Set, Union

from docpilot.action_store import ActionStore
from docpilot.config import EngineConfig
from docpilot.domain.action_parser import extract, missing_fields, strip_action_markup
from docpilot.domain.models import ActionResult, ActionStatus, ActionType, ParsedAction
from docpilot.domain.tree import is_deep_page, page_from_fields
from docpilot.domain.validator import Validator
from docpilot.executor import MutationExecutor
from docpilot.ports.outbound import DesignToolPort, DocumentStorePort
from docpilot.tree_builder import IncrementalTreeBuilder
from docpilot.undo import UndoManager

ActionRef = Union[str, ParsedAction]


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] [pipeline] {msg}", file=sys.stderr)


def format_query_followup(result: ActionResult, max_chars: int = 20000) -> str:
    """Render a query result as a message the LLM can read real IDs and keys from."""
    if not result.success:
        return f"Query failed: {result.message}"
    body = json.dumps(result.data, indent=2, ensure_ascii=False, default=str)
    if len(body) > max_chars:
        body = body[:max_chars] + "\n... (truncated)"
    return (
        f"Query results ({result.message}):\n"
        f"```json\n{body}\n```\n"
        "Use the _id and _key values above in any follow-up update."
    )


class ActionPipeline:
    def __init__(
        self,
        store: DocumentStorePort,
        design: Optional[DesignToolPort] = None,
        config: Optional[EngineConfig] = None,
        actions: Optional[ActionStore] = None,
    ):
        self.config = config or EngineConfig()
        self.store = store
        self.executor = MutationExecutor(store, design=design, config=self.config)
        self.builder = IncrementalTreeBuilder(store, batch_size=self.config.content_batch_size)
        self.undo_manager = UndoManager(store, self.executor.execute)
        self.validator = Validator(min_key_length=self.config.min_key_length)
        self.actions = actions or ActionStore(ttl_seconds=self.config.action_ttl_seconds)
        self.actions.on_drop = self._forget
        self._active_tasks: Dict[str, asyncio.Task] = {}
        self._cancel_requested: Set[str] = set()

    def _forget(self, dropped: List[ParsedAction]) -> None:
        for action in dropped:
            self.undo_manager.discard(action.id)
            self.cancel(action.id)

    def _resolve(self, ref: ActionRef) -> Optional[ParsedAction]:
        if isinstance(ref, ParsedAction):
            return ref
        return self.actions.get(ref)

    # -- parsing --

    def ingest(self, conversation_id: str, text: str) -> List[ParsedAction]:
        """Extract actions from a reply and record them for the conversation."""
        parsed = extract(text)
        if parsed:
            self.actions.add(conversation_id, parsed)
            _log(f"{conversation_id}: {len(parsed)} action(s) extracted")
        return parsed

    @staticmethod
    def prose(text: str) -> str:
        return strip_action_markup(text)

    def validate(self, action: ParsedAction) -> Optional[str]:
        """Return a corrective message, or None when the action may run."""
        problems = missing_fields(action)
        if problems:
            return "; ".join(problems)
        error = self.validator.validate(action)
        return error.message if error else None

    # -- execution --

    async def _dispatch(self, action: ParsedAction) -> ActionResult:
        return await self.undo_manager.capture_and_execute(action)

    async def _build(self, action: ParsedAction) -> ActionResult:
        if not self.store.is_configured:
            return ActionResult(success=False, message="Document store is not configured")
        spec = page_from_fields(action.payload.fields or {}, action.payload.document_id)
        return await self.builder.build_tree(spec)

    def _finish(self, action: ParsedAction, result: ActionResult, status: ActionStatus) -> ActionResult:
        action.status = status
        action.result = result
        action.error = None if status is ActionStatus.COMPLETED else result.message
        self.actions.update(action)
        _log(f"{action.id} {action.type.value} -> {status.value}: {result.message[:120]}")
        return result

    async def run(self, ref: ActionRef) -> ActionResult:
        action = self._resolve(ref)
        if action is None:
            return ActionResult(success=False, message=f"Unknown action {ref}")
        if action.status is not ActionStatus.PENDING:
            return ActionResult(
                success=False,
                message=f"Action {action.id} is already {action.status.value}",
            )

        error = self.validate(action)
        if error:
            return self._finish(action, ActionResult(success=False, message=error), ActionStatus.FAILED)

        action.status = ActionStatus.EXECUTING
        self.actions.update(action)

        p = action.payload
        if action.type is ActionType.CREATE and is_deep_page(p.document_type, p.fields):
            # Builds are not cancellable mid-way; let them reach a consistent shell state.
            result = await self.undo_manager.capture_and_execute(action, runner=self._build)
        else:
            task = asyncio.ensure_future(self._dispatch(action))
            self._active_tasks[action.id] = task
            try:
                result = await task
            except asyncio.CancelledError:
                # only a cancel() call settles the action; outer cancellation propagates
                if action.id not in self._cancel_requested or not task.cancelled():
                    raise
                return self._finish(
                    action,
                    ActionResult(success=False, message="Action cancelled"),
                    ActionStatus.CANCELLED,
                )
            finally:
                self._active_tasks.pop(action.id, None)
                self._cancel_requested.discard(action.id)

        status = ActionStatus.COMPLETED if result.success else ActionStatus.FAILED
        return self._finish(action, result, status)

    async def run_batch(self, refs: List[ActionRef], dry_run: bool = False) -> List[ActionResult]:
        """Run actions in order, stopping at the first failure.

        With ``dry_run`` nothing is written: every action is validated and
        previewed instead, and statuses are left untouched.
        """
        results: List[ActionResult] = []
        for ref in refs:
            action = self._resolve(ref)
            if action is None:
                results.append(ActionResult(success=False, message=f"Unknown action {ref}"))
                break
            if dry_run:
                results.append(await self._dry_run(action))
                continue
            result = await self.run(action)
            results.append(result)
            if not result.success:
                _log(f"batch stopped at {action.id}; {len(refs) - len(results)} action(s) not run")
                break
        return results

    async def _dry_run(self, action: ParsedAction) -> ActionResult:
        error = self.validate(action)
        if error:
            return ActionResult(success=False, message=error)
        if action.type in (ActionType.UPDATE, ActionType.DELETE):
            try:
                preview = await self.executor.preview(action)
            except Exception as e:
                return ActionResult(success=False, message=f"Preview failed: {e}")
        else:
            preview = {"operation": action.type.value, "payload": action.payload.to_dict()}
        return ActionResult(
            success=True,
            message=f"Would {action.type.value}: {action.description}",
            data=preview,
        )

    def cancel(self, action_id: str) -> bool:
        """Abort an in-flight action; False when nothing cancellable is running."""
        task = self._active_tasks.get(action_id)
        if task is None or task.done():
            return False
        self._cancel_requested.add(action_id)
        task.cancel()
        _log(f"cancel requested for {action_id}")
        return True

    async def undo(self, ref: ActionRef) -> ActionResult:
        action = self._resolve(ref)
        if action is None:
            return ActionResult(success=False, message=f"Unknown action {ref}")
        result = await self.undo_manager.undo(action)
        if result.success:
            self.actions.update(action)
        return result

    def can_undo(self, action_id: str) -> bool:
        return self.undo_manager.can_undo(action_id)

    # -- conversation lifecycle --

    def truncate(self, conversation_id: str, keep: int) -> List[ParsedAction]:
        return self.actions.truncate(conversation_id, keep)

    def discard(self, conversation_id: str) -> List[ParsedAction]:
        return self.actions.discard(conversation_id)
