"""Domain data models — pure Python dataclasses."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields as dc_fields
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ActionType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    QUERY = "query"
    NAVIGATE = "navigate"
    EXPLAIN = "explain"
    UPLOAD_ASSET = "uploadAsset"
    FETCH_EXTERNAL_FRAME = "fetchExternalFrame"
    UPLOAD_EXTERNAL_ASSET = "uploadExternalAsset"


class ActionStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Older replies still use the image/figma-specific names.
ACTION_TYPE_ALIASES: Dict[str, ActionType] = {
    "uploadImage": ActionType.UPLOAD_ASSET,
    "fetchFigmaFrame": ActionType.FETCH_EXTERNAL_FRAME,
    "uploadFigmaImage": ActionType.UPLOAD_EXTERNAL_ASSET,
}

MODIFYING_TYPES = frozenset({
    ActionType.CREATE,
    ActionType.UPDATE,
    ActionType.DELETE,
})

READ_ONLY_TYPES = frozenset({
    ActionType.EXPLAIN,
    ActionType.QUERY,
    ActionType.NAVIGATE,
    ActionType.FETCH_EXTERNAL_FRAME,
})

DEFAULT_DESCRIPTIONS: Dict[ActionType, str] = {
    ActionType.CREATE: "Create a new document",
    ActionType.UPDATE: "Update an existing document",
    ActionType.DELETE: "Delete a document",
    ActionType.QUERY: "Query documents",
    ActionType.NAVIGATE: "Navigate to a document",
    ActionType.EXPLAIN: "Explanation",
    ActionType.UPLOAD_ASSET: "Upload an asset",
    ActionType.FETCH_EXTERNAL_FRAME: "Fetch frame data from the design tool",
    ActionType.UPLOAD_EXTERNAL_ASSET: "Upload an image exported from the design tool",
}


def resolve_action_type(value: Any) -> Optional[ActionType]:
    """Map a raw ``type`` value onto the closed action vocabulary."""
    if not isinstance(value, str):
        return None
    if value in ACTION_TYPE_ALIASES:
        return ACTION_TYPE_ALIASES[value]
    try:
        return ActionType(value)
    except ValueError:
        return None


# Payload attribute -> accepted wire names, first match wins.
_WIRE_NAMES: Dict[str, Tuple[str, ...]] = {
    "document_type": ("documentType",),
    "document_id": ("documentId",),
    "fields": ("fields", "data"),
    "query": ("query", "groq"),
    "params": ("params",),
    "path": ("path", "url"),
    "explanation": ("explanation", "message"),
    "filename": ("filename",),
    "attachment": ("attachment", "image", "imageAttachment"),
    "frame_url": ("frameUrl", "figmaUrl", "url"),
    "file_key": ("fileKey", "figmaFileKey"),
    "node_id": ("nodeId", "figmaNodeId"),
}

# Attributes that are meaningful for each action type; the rest stay None.
PAYLOAD_FIELDS: Dict[ActionType, Tuple[str, ...]] = {
    ActionType.CREATE: ("document_type", "document_id", "fields"),
    ActionType.UPDATE: ("document_id", "fields"),
    ActionType.DELETE: ("document_id",),
    ActionType.QUERY: ("query", "params"),
    ActionType.NAVIGATE: ("path", "document_id", "document_type"),
    ActionType.EXPLAIN: ("explanation",),
    ActionType.UPLOAD_ASSET: ("attachment", "filename"),
    ActionType.FETCH_EXTERNAL_FRAME: ("frame_url", "file_key", "node_id"),
    ActionType.UPLOAD_EXTERNAL_ASSET: ("frame_url", "file_key", "node_id", "filename"),
}

_EXPECTED_KINDS: Dict[str, type] = {
    "fields": dict,
    "params": dict,
    "attachment": dict,
}


@dataclass
class ActionPayload:
    """Typed payload; only the attributes listed for the action type are set."""

    document_type: Optional[str] = None
    document_id: Optional[str] = None
    fields: Optional[Dict[str, Any]] = None
    query: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    path: Optional[str] = None
    explanation: Optional[str] = None
    filename: Optional[str] = None
    attachment: Optional[Dict[str, Any]] = None
    frame_url: Optional[str] = None
    file_key: Optional[str] = None
    node_id: Optional[str] = None

    @classmethod
    def from_raw(cls, action_type: ActionType, raw: Any) -> "ActionPayload":
        if not isinstance(raw, dict):
            return cls()
        values: Dict[str, Any] = {}
        for attr in PAYLOAD_FIELDS[action_type]:
            expected = _EXPECTED_KINDS.get(attr, str)
            for wire in _WIRE_NAMES[attr]:
                value = raw.get(wire)
                if value and isinstance(value, expected):
                    values[attr] = value
                    break
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation (camelCase, unset attributes omitted)."""
        out: Dict[str, Any] = {}
        for f in dc_fields(self):
            value = getattr(self, f.name)
            if value is not None:
                out[_WIRE_NAMES[f.name][0]] = value
        return out


@dataclass
class ActionResult:
    success: bool
    message: str = ""
    document_id: Optional[str] = None
    data: Any = None
    pre_state: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "documentId": self.document_id,
            "data": self.data,
            "preState": self.pre_state,
        }


def generate_action_id() -> str:
    return f"action_{uuid.uuid4().hex[:12]}"


@dataclass
class ParsedAction:
    """Typed action extracted from an assistant reply."""

    type: ActionType
    description: str
    payload: ActionPayload = field(default_factory=ActionPayload)
    id: str = field(default_factory=generate_action_id)
    status: ActionStatus = ActionStatus.PENDING
    result: Optional[ActionResult] = None
    error: Optional[str] = None

    @property
    def is_modifying(self) -> bool:
        return self.type in MODIFYING_TYPES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "description": self.description,
            "status": self.status.value,
            "payload": self.payload.to_dict(),
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


DRAFT_PREFIX = "drafts."


def draft_id(document_id: str) -> str:
    return document_id if document_id.startswith(DRAFT_PREFIX) else f"{DRAFT_PREFIX}{document_id}"


def published_id(document_id: str) -> str:
    return document_id[len(DRAFT_PREFIX):] if document_id.startswith(DRAFT_PREFIX) else document_id
