"""UndoManager — pre-state capture and replay for modifying actions.

Snapshots live in a side table keyed by action ID. A successful undo drops
the snapshot and clears ``preState`` on the action's result; undoing an undo
is not supported.
"""

import copy
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from docpilot.domain import paths
from docpilot.domain.models import ActionResult, ActionType, ParsedAction, draft_id, published_id
from docpilot.ports.outbound import Document, DocumentStorePort

Runner = Callable[[ParsedAction], Awaitable[ActionResult]]


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] [undo] {msg}", file=sys.stderr)


@dataclass
class Snapshot:
    action_type: ActionType
    document_id: Optional[str]
    document: Optional[Document] = None
    # update: whether the draft existed before the edit (otherwise it was
    # materialized from the published version and undo removes it)
    existed: bool = True
    field_paths: List[str] = field(default_factory=list)


class UndoManager:
    def __init__(self, store: DocumentStorePort, runner: Runner):
        self.store = store
        self._run = runner
        self._snapshots: Dict[str, Snapshot] = {}

    def can_undo(self, action_id: str) -> bool:
        return action_id in self._snapshots

    def snapshot(self, action_id: str) -> Optional[Snapshot]:
        return self._snapshots.get(action_id)

    def discard(self, action_id: str) -> bool:
        return self._snapshots.pop(action_id, None) is not None

    async def _capture(self, action: ParsedAction) -> Snapshot:
        p = action.payload
        if action.type is ActionType.UPDATE:
            target = draft_id(p.document_id)
            current = await self.store.get_document(target)
            existed = current is not None
            if current is None:
                current = await self.store.get_document(published_id(p.document_id))
            return Snapshot(
                action_type=action.type,
                document_id=target,
                document=current,
                existed=existed,
                field_paths=list(p.fields or {}),
            )
        if action.type is ActionType.DELETE:
            return Snapshot(
                action_type=action.type,
                document_id=p.document_id,
                document=await self.store.get_document(p.document_id),
            )
        # create: nothing exists yet; the ID is known once the write succeeds
        return Snapshot(action_type=action.type, document_id=None, existed=False)

    async def capture_and_execute(self, action: ParsedAction, runner: Optional[Runner] = None) -> ActionResult:
        """Snapshot the target, run the action, attach the snapshot on success."""
        run = runner or self._run
        if not action.is_modifying:
            return await run(action)
        try:
            snap = await self._capture(action)
        except Exception as e:
            _log(f"capture failed for {action.id}: {e}")
            return ActionResult(success=False, message=f"Failed to capture pre-state: {e}")

        result = await run(action)
        if not result.success:
            return result
        if snap.action_type is ActionType.CREATE:
            if not result.document_id:
                return result
            snap.document_id = result.document_id
        self._snapshots[action.id] = snap
        result.pre_state = copy.deepcopy(snap.document) if snap.document is not None else {
            "_id": snap.document_id,
            "_created": True,
        }
        _log(f"captured pre-state for {action.id} ({snap.action_type.value} {snap.document_id})")
        return result

    async def undo(self, action: ParsedAction) -> ActionResult:
        snap = self._snapshots.get(action.id)
        if snap is None:
            return ActionResult(success=False, message=f"Nothing to undo for action {action.id}")
        try:
            result = await self._replay(snap)
        except Exception as e:
            _log(f"undo failed for {action.id}: {e}")
            return ActionResult(success=False, document_id=snap.document_id, message=f"Undo failed: {e}")
        del self._snapshots[action.id]
        if action.result is not None:
            action.result.pre_state = None
        _log(f"undone {action.id}: {result.message}")
        return result

    async def _replay(self, snap: Snapshot) -> ActionResult:
        if snap.action_type is ActionType.CREATE:
            await self.store.delete(snap.document_id)
            return ActionResult(
                success=True,
                document_id=snap.document_id,
                message=f"Removed created document {snap.document_id}",
            )

        if snap.action_type is ActionType.DELETE:
            if snap.document is None:
                raise RuntimeError(f"No snapshot of {snap.document_id} was captured")
            await self.store.create_or_replace(copy.deepcopy(snap.document))
            return ActionResult(
                success=True,
                document_id=snap.document_id,
                message=f"Restored deleted document {snap.document_id}",
            )

        if not snap.existed:
            await self.store.delete(snap.document_id)
            return ActionResult(
                success=True,
                document_id=snap.document_id,
                message=f"Discarded draft {snap.document_id} created by the update",
            )
        restore: Dict[str, Any] = {}
        remove: List[str] = []
        for path in snap.field_paths:
            missing = paths.first_missing_prefix(snap.document, path)
            if missing is None:
                restore[path] = paths.get_at(snap.document, path)
            elif missing not in remove:
                # drop containers the update created along the way, not just the leaf
                remove.append(missing)
        patch = self.store.patch(snap.document_id)
        if restore:
            patch.set(restore)
        if remove:
            patch.unset(remove)
        await patch.commit()
        return ActionResult(
            success=True,
            document_id=snap.document_id,
            message=f"Restored {len(snap.field_paths)} field(s) on {snap.document_id}",
        )
