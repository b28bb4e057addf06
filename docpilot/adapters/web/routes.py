"""Action engine API routes."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from docpilot.domain.action_parser import is_destructive, should_auto_execute
from docpilot.domain.models import ActionResult, ActionStatus, ParsedAction
from docpilot.pipeline import ActionPipeline

actions_router = APIRouter(prefix="/actions", tags=["Actions"])


class ParseRequest(BaseModel):
    conversation_id: str
    text: str


class ActionModel(BaseModel):
    id: str
    type: str
    description: str
    status: str
    payload: Dict[str, Any]
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    is_destructive: bool = False
    auto_execute: bool = False
    can_undo: bool = False


class ParseResponse(BaseModel):
    conversation_id: str
    prose: str
    actions: List[ActionModel]


class RunRequest(BaseModel):
    conversation_id: str
    action_ids: Optional[List[str]] = None
    dry_run: bool = False


class ResultModel(BaseModel):
    success: bool
    message: str = ""
    documentId: Optional[str] = None
    data: Any = None
    preState: Any = None


class RunResponse(BaseModel):
    results: List[ResultModel]
    actions: List[ActionModel]


class ConversationResponse(BaseModel):
    conversation_id: str
    actions: List[ActionModel]


class CancelResponse(BaseModel):
    action_id: str
    cancelled: bool


def _pipeline(request: Request) -> ActionPipeline:
    return request.app.state.pipeline


def _action_model(pipeline: ActionPipeline, action: ParsedAction) -> ActionModel:
    return ActionModel(
        **action.to_dict(),
        is_destructive=is_destructive(action),
        auto_execute=should_auto_execute(action),
        can_undo=pipeline.can_undo(action.id),
    )


def _result_model(result: ActionResult) -> ResultModel:
    return ResultModel(**result.to_dict())


def _require_store(pipeline: ActionPipeline):
    if not pipeline.store.is_configured:
        raise HTTPException(status_code=503, detail="Document store not configured")


@actions_router.post("/parse", response_model=ParseResponse)
async def parse_reply(req: ParseRequest, request: Request):
    pipeline = _pipeline(request)
    actions = pipeline.ingest(req.conversation_id, req.text)
    return ParseResponse(
        conversation_id=req.conversation_id,
        prose=pipeline.prose(req.text),
        actions=[_action_model(pipeline, a) for a in actions],
    )


@actions_router.post("/run", response_model=RunResponse)
async def run_actions(req: RunRequest, request: Request):
    pipeline = _pipeline(request)
    actions = pipeline.actions.list(req.conversation_id)
    if actions is None:
        raise HTTPException(status_code=404, detail=f"Unknown conversation {req.conversation_id}")
    if req.action_ids is None:
        actions = [a for a in actions if a.status is ActionStatus.PENDING]
    else:
        by_id = {a.id: a for a in actions}
        missing = [i for i in req.action_ids if i not in by_id]
        if missing:
            raise HTTPException(status_code=404, detail=f"Unknown action(s): {', '.join(missing)}")
        actions = [by_id[i] for i in req.action_ids]
    if not req.dry_run:
        _require_store(pipeline)
    results = await pipeline.run_batch(actions, dry_run=req.dry_run)
    return RunResponse(
        results=[_result_model(r) for r in results],
        actions=[_action_model(pipeline, a) for a in actions],
    )


@actions_router.get("/{conversation_id}", response_model=ConversationResponse)
async def list_actions(conversation_id: str, request: Request):
    pipeline = _pipeline(request)
    actions = pipeline.actions.list(conversation_id)
    if actions is None:
        raise HTTPException(status_code=404, detail=f"Unknown conversation {conversation_id}")
    return ConversationResponse(
        conversation_id=conversation_id,
        actions=[_action_model(pipeline, a) for a in actions],
    )


@actions_router.post("/{action_id}/undo", response_model=ResultModel)
async def undo_action(action_id: str, request: Request):
    pipeline = _pipeline(request)
    action = pipeline.actions.get(action_id)
    if action is None:
        raise HTTPException(status_code=404, detail=f"Unknown action {action_id}")
    if not pipeline.can_undo(action_id):
        raise HTTPException(status_code=409, detail=f"Action {action_id} cannot be undone")
    _require_store(pipeline)
    return _result_model(await pipeline.undo(action))


@actions_router.post("/{action_id}/cancel", response_model=CancelResponse)
async def cancel_action(action_id: str, request: Request):
    pipeline = _pipeline(request)
    if pipeline.actions.get(action_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown action {action_id}")
    return CancelResponse(action_id=action_id, cancelled=pipeline.cancel(action_id))
