"""MutationExecutor — routes a parsed action to the document store.

Every handler returns an ActionResult; store and transport errors are turned
into ``success=False`` results here and never raised to the caller.
Cancellation (``asyncio.CancelledError``) is not an Exception and propagates.
"""

import base64
import binascii
import json
import re
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from docpilot.config import EngineConfig
from docpilot.domain.models import (
    ActionResult,
    ActionType,
    ParsedAction,
    draft_id,
    published_id,
)
from docpilot.domain.tree import ensure_keys_and_types
from docpilot.domain.keys import generate_key
from docpilot.ports.outbound import DesignToolPort, Document, DocumentStorePort

QUERY_PREFIXES = ("*[", "count(", "coalesce(")
RESTRICTED_QUERY_PATTERNS = (
    re.compile(r"\bsanity::", re.IGNORECASE),
    re.compile(r"_createdAt\s*<"),
    re.compile(r"identity\(\)", re.IGNORECASE),
    re.compile(r"\$.*token", re.IGNORECASE),
)

_DATA_URL_RE = re.compile(r"^data:([\w.+-]+/[\w.+-]+)?(;[\w=-]+)*;base64,", re.IGNORECASE)

# Types that read or write the store.
_STORE_TYPES = frozenset({
    ActionType.CREATE,
    ActionType.UPDATE,
    ActionType.DELETE,
    ActionType.QUERY,
    ActionType.UPLOAD_ASSET,
    ActionType.UPLOAD_EXTERNAL_ASSET,
})


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] [executor] {msg}", file=sys.stderr)


def check_query(query: str, max_length: int = 5000) -> Optional[str]:
    """Return why ``query`` may not be run, or None when it is allowed."""
    trimmed = query.strip()
    if not trimmed.startswith(QUERY_PREFIXES):
        return "Query must start with *[ or count( or coalesce("
    if any(p.search(trimmed) for p in RESTRICTED_QUERY_PATTERNS):
        return "Query contains restricted patterns"
    if len(trimmed) > max_length:
        return f"Query exceeds maximum length of {max_length} characters"
    return None


def count_results(result: Any) -> int:
    if result is None:
        return 0
    if isinstance(result, list):
        return len(result)
    return 1


def asset_reference(asset: Document, filename: Optional[str] = None) -> Dict[str, Any]:
    return {
        "asset": {"_type": "reference", "_ref": asset["_id"]},
        "assetId": asset["_id"],
        "url": asset.get("url"),
        "filename": filename or asset.get("originalFilename"),
    }


def decode_attachment(attachment: Dict[str, Any]) -> Tuple[bytes, Optional[str]]:
    """Decode base64 (optionally a data URL) into bytes and a MIME type."""
    raw = attachment.get("data") or attachment.get("base64") or ""
    if not isinstance(raw, str) or not raw:
        raise ValueError("Attachment has no data")
    mime_type = attachment.get("mimeType") or attachment.get("contentType")
    m = _DATA_URL_RE.match(raw)
    if m:
        mime_type = mime_type or m.group(1)
        raw = raw[m.end():]
    try:
        return base64.b64decode(raw, validate=True), mime_type
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Attachment is not valid base64: {e}") from e


class MutationExecutor:
    """Dispatch table from action type to store primitive."""

    def __init__(
        self,
        store: DocumentStorePort,
        design: Optional[DesignToolPort] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.design = design
        self.config = config or EngineConfig()
        self._handlers = {
            ActionType.CREATE: self._create,
            ActionType.UPDATE: self._update,
            ActionType.DELETE: self._delete,
            ActionType.QUERY: self._query,
            ActionType.NAVIGATE: self._navigate,
            ActionType.EXPLAIN: self._explain,
            ActionType.UPLOAD_ASSET: self._upload_asset,
            ActionType.FETCH_EXTERNAL_FRAME: self._fetch_external_frame,
            ActionType.UPLOAD_EXTERNAL_ASSET: self._upload_external_asset,
        }

    async def execute(self, action: ParsedAction) -> ActionResult:
        handler = self._handlers.get(action.type)
        if handler is None:
            return ActionResult(success=False, message=f"Unknown action type: {action.type}")
        if action.type in _STORE_TYPES and not self.store.is_configured:
            return ActionResult(success=False, message="Document store is not configured")
        _log(f"{action.type.value} {action.id}: {action.description[:80]!r}")
        try:
            result = await handler(action)
        except Exception as e:
            _log(f"{action.type.value} {action.id} failed: {e}")
            return ActionResult(success=False, message=f"Failed to {action.type.value}: {e}")
        if not result.success:
            _log(f"{action.type.value} {action.id} failed: {result.message}")
        return result

    # -- handlers --

    async def _create(self, action: ParsedAction) -> ActionResult:
        p = action.payload
        if not p.document_type:
            return ActionResult(success=False, message="Document type is required for create action")
        doc = {
            "_id": p.document_id or draft_id(f"{p.document_type}-{generate_key()}"),
            "_type": p.document_type,
            **ensure_keys_and_types(p.fields or {}),
        }
        created = await self.store.create(doc)
        return ActionResult(
            success=True,
            document_id=created["_id"],
            message=f"Created {p.document_type} document",
            data=created,
        )

    async def resolve_edit_target(self, document_id: str) -> Tuple[str, Optional[Document]]:
        """Return the draft ID to edit and the current draft, if one exists."""
        target = draft_id(document_id)
        return target, await self.store.get_document(target)

    async def _update(self, action: ParsedAction) -> ActionResult:
        p = action.payload
        if not p.document_id or not p.fields:
            return ActionResult(success=False, message="Document ID and fields are required for update action")
        target, draft = await self.resolve_edit_target(p.document_id)
        if draft is None:
            published = await self.store.get_document(published_id(p.document_id))
            if published is None:
                return ActionResult(success=False, message=f"Document {p.document_id} not found")
            await self.store.create_or_replace({**published, "_id": target})
            _log(f"materialized draft {target} from published version")
        patched = await self.store.patch(target).set(p.fields).commit()
        return ActionResult(
            success=True,
            document_id=patched.get("_id", target),
            message=f"Updated {len(p.fields)} field(s) on {target}",
            data=patched,
        )

    async def _delete(self, action: ParsedAction) -> ActionResult:
        document_id = action.payload.document_id
        if not document_id:
            return ActionResult(success=False, message="Document ID is required for delete action")
        await self.store.delete(document_id)
        return ActionResult(success=True, document_id=document_id, message=f"Deleted document {document_id}")

    async def _query(self, action: ParsedAction) -> ActionResult:
        p = action.payload
        if not p.query:
            return ActionResult(success=False, message="Query is required for query action")
        problem = check_query(p.query, self.config.query_max_length)
        if problem:
            return ActionResult(success=False, message=f"Query validation failed: {problem}")
        result = await self.store.fetch(p.query.strip(), p.params)
        count = count_results(result)
        size = len(json.dumps(result, default=str, ensure_ascii=False).encode("utf-8"))
        if size > self.config.result_max_bytes:
            return ActionResult(
                success=True,
                message=f"Found {count} result(s) (result truncated due to size)",
                data={
                    "_truncated": True,
                    "_message": f"Result exceeds {self.config.result_max_bytes} bytes",
                },
            )
        return ActionResult(success=True, message=f"Found {count} result(s)", data=result)

    async def _navigate(self, action: ParsedAction) -> ActionResult:
        p = action.payload
        if not p.document_id and not p.path:
            return ActionResult(success=False, message="Document ID or path is required")
        return ActionResult(
            success=True,
            document_id=p.document_id,
            message=f"Navigate to {p.path or p.document_id}",
            data={"path": p.path, "documentId": p.document_id},
        )

    async def _explain(self, action: ParsedAction) -> ActionResult:
        return ActionResult(success=True, message=action.payload.explanation or action.description)

    async def _upload_asset(self, action: ParsedAction) -> ActionResult:
        attachment = action.payload.attachment
        if not attachment:
            return ActionResult(success=False, message="An attachment is required for asset upload")
        filename = action.payload.filename or attachment.get("filename")
        # Already uploaded (e.g. by the host while the user attached it).
        if attachment.get("assetId"):
            asset = {"_id": attachment["assetId"], "url": attachment.get("url")}
            return ActionResult(
                success=True,
                document_id=asset["_id"],
                message=f"Using uploaded asset {asset['_id']}",
                data=asset_reference(asset, filename),
            )
        data, mime_type = decode_attachment(attachment)
        kind = "image" if (mime_type or "").startswith("image/") else "file"
        asset = await self.store.upload_asset(kind, data, {"filename": filename, "mimeType": mime_type})
        return ActionResult(
            success=True,
            document_id=asset["_id"],
            message=f"Uploaded {kind} {filename or asset['_id']}",
            data=asset_reference(asset, filename),
        )

    def _design_unavailable(self) -> Optional[ActionResult]:
        if self.design is None or not self.design.is_configured:
            return ActionResult(success=False, message="Design tool is not configured")
        return None

    async def _fetch_external_frame(self, action: ParsedAction) -> ActionResult:
        unavailable = self._design_unavailable()
        if unavailable:
            return unavailable
        p = action.payload
        frame = await self.design.fetch_frame(frame_url=p.frame_url, file_key=p.file_key, node_id=p.node_id)
        return ActionResult(success=frame.success, message=frame.message, data=frame.data)

    async def _upload_external_asset(self, action: ParsedAction) -> ActionResult:
        unavailable = self._design_unavailable()
        if unavailable:
            return unavailable
        p = action.payload
        image = await self.design.export_image(frame_url=p.frame_url, file_key=p.file_key, node_id=p.node_id)
        filename = p.filename or f"frame-{(p.node_id or 'export').replace(':', '-')}"
        if not filename.endswith(".png"):
            filename = f"{filename}.png"
        asset = await self.store.upload_asset("image", image, {"filename": filename, "mimeType": "image/png"})
        return ActionResult(
            success=True,
            document_id=asset["_id"],
            message=f"Imported design asset as {filename}",
            data=asset_reference(asset, filename),
        )

    # -- extras --

    async def preview(self, action: ParsedAction) -> Dict[str, Any]:
        """Describe what ``action`` would do, without writing."""
        p = action.payload
        if action.type is ActionType.CREATE:
            return {"operation": "create", "documentType": p.document_type, "fields": p.fields}
        if action.type is ActionType.UPDATE:
            if not p.document_id:
                return {"operation": "update", "error": "No document ID"}
            _, current = await self.resolve_edit_target(p.document_id)
            if current is None:
                current = await self.store.get_document(published_id(p.document_id))
            return {
                "operation": "update",
                "documentId": p.document_id,
                "currentValues": current,
                "newValues": p.fields,
            }
        if action.type is ActionType.DELETE:
            if not p.document_id:
                return {"operation": "delete", "error": "No document ID"}
            return {"operation": "delete", "document": await self.store.get_document(p.document_id)}
        if action.type is ActionType.QUERY:
            return {"operation": "query", "query": p.query}
        return {"operation": action.type.value}

    async def publish(self, document_id: str) -> ActionResult:
        """Copy the draft onto the published ID and remove the draft."""
        source, target = draft_id(document_id), published_id(document_id)
        try:
            draft = await self.store.get_document(source)
            if draft is None:
                return ActionResult(success=False, message=f"Draft document {source} not found")
            await self.store.create_or_replace({**draft, "_id": target})
            await self.store.delete(source)
        except Exception as e:
            _log(f"publish {document_id} failed: {e}")
            return ActionResult(success=False, message=f"Failed to publish: {e}")
        return ActionResult(success=True, document_id=target, message=f"Published document {target}")

    async def unpublish(self, document_id: str) -> ActionResult:
        """Delete the published variant, keeping (or creating) the draft."""
        target, source = published_id(document_id), draft_id(document_id)
        try:
            published = await self.store.get_document(target)
            if published is None:
                return ActionResult(success=False, message=f"Published document {target} not found")
            if await self.store.get_document(source) is None:
                await self.store.create({**published, "_id": source})
            await self.store.delete(target)
        except Exception as e:
            _log(f"unpublish {document_id} failed: {e}")
            return ActionResult(success=False, message=f"Failed to unpublish: {e}")
        return ActionResult(
            success=True,
            document_id=source,
            message=f"Unpublished document. Draft preserved at {source}",
        )

    async def get_documents_by_type(self, document_type: str, limit: int = 10) -> List[Document]:
        result = await self.store.fetch(
            "*[_type == $type][0...$limit]",
            {"type": document_type, "limit": limit},
        )
        return result or []
