"""Action block parsing.

Pure Python, no framework dependencies.

Three surface syntaxes are recognised, all collected:

1. fenced blocks tagged ``action``
2. fenced blocks tagged ``json`` whose object carries a ``type`` field
3. inline ``[ACTION]{...}[/ACTION]`` markers

Where two syntaxes overlap the higher-priority one claims the text; accepted
actions are returned in source order.
"""

from __future__ import annotations

import json
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Pattern, Tuple

from docpilot.domain.json_repair import safe_loads
from docpilot.domain.models import (
    DEFAULT_DESCRIPTIONS,
    READ_ONLY_TYPES,
    ActionPayload,
    ActionType,
    ParsedAction,
    resolve_action_type,
)

ACTION_FENCE_RE = re.compile(r"```action[ \t]*\n?(.*?)```", re.DOTALL)
JSON_FENCE_RE = re.compile(r"```json[ \t]*\n?(.*?)```", re.DOTALL)
INLINE_ACTION_RE = re.compile(r"\[ACTION\]\s*(\{.*?\})\s*\[/ACTION\]", re.DOTALL)

# (pattern, requires a "type" field before it counts as an action)
_SYNTAXES: Tuple[Tuple[Pattern[str], bool], ...] = (
    (ACTION_FENCE_RE, False),
    (JSON_FENCE_RE, True),
    (INLINE_ACTION_RE, False),
)

DESTRUCTIVE_KEYWORDS = ("delete", "remove", "unpublish", "destroy", "clear", "reset")

_EXCESS_BLANK_LINES_RE = re.compile(r"\n{3,}")


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] [extract] {msg}", file=sys.stderr)


@dataclass
class _Candidate:
    start: int
    end: int
    data: Any
    explicit: bool  # action-specific syntax, stripped even when unparseable


def _claimed(spans: List[Tuple[int, int]], start: int, end: int) -> bool:
    return any(start < s_end and s_start < end for s_start, s_end in spans)


def _scan(text: str) -> List[_Candidate]:
    """Find every action-bearing block, in source order."""
    spans: List[Tuple[int, int]] = []
    found: List[_Candidate] = []
    for pattern, needs_type in _SYNTAXES:
        for match in pattern.finditer(text):
            start, end = match.span()
            if _claimed(spans, start, end):
                continue
            body = match.group(1).strip()
            data = safe_loads(body)
            if needs_type and not (isinstance(data, dict) and "type" in data):
                continue
            if data is None:
                _log(f"Skipping unparseable block: {body[:100]!r}")
            spans.append((start, end))
            found.append(_Candidate(start=start, end=end, data=data, explicit=not needs_type))
    found.sort(key=lambda c: c.start)
    return found


def parse_action_data(data: Any) -> Optional[ParsedAction]:
    """Turn one decoded JSON object into a ParsedAction, or None."""
    if not isinstance(data, dict):
        return None
    action_type = resolve_action_type(data.get("type"))
    if action_type is None:
        _log(f"Dropping object with unknown action type: {data.get('type')!r}")
        return None

    payload_source = data.get("payload")
    if not isinstance(payload_source, dict):
        payload_source = data
    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        description = DEFAULT_DESCRIPTIONS[action_type]

    return ParsedAction(
        type=action_type,
        description=description.strip(),
        payload=ActionPayload.from_raw(action_type, payload_source),
    )


def extract(text: str) -> List[ParsedAction]:
    """Extract actions from assistant reply text."""
    actions: List[ParsedAction] = []
    for candidate in _scan(text):
        if candidate.data is None:
            continue
        action = parse_action_data(candidate.data)
        if action is not None:
            actions.append(action)
    return actions


def strip_action_markup(text: str) -> str:
    """Remove all recognised action syntax, leaving the prose."""
    removals = [
        (c.start, c.end) for c in _scan(text)
        if c.explicit or resolve_action_type(c.data.get("type")) is not None
    ]
    if not removals:
        return text
    pieces = []
    cursor = 0
    for start, end in removals:
        pieces.append(text[cursor:start])
        cursor = end
    pieces.append(text[cursor:])
    return _EXCESS_BLANK_LINES_RE.sub("\n\n", "".join(pieces)).strip()


def is_destructive(action: ParsedAction) -> bool:
    if action.type is ActionType.DELETE:
        return True
    description = action.description.lower()
    return any(keyword in description for keyword in DESTRUCTIVE_KEYWORDS)


def should_auto_execute(action: ParsedAction) -> bool:
    """Read-only actions run immediately; modifying ones wait for the operator."""
    return action.type in READ_ONLY_TYPES


@dataclass
class ActionWithMeta:
    action: ParsedAction
    is_destructive: bool
    auto_execute: bool


def extract_with_meta(text: str) -> List[ActionWithMeta]:
    return [
        ActionWithMeta(
            action=action,
            is_destructive=is_destructive(action),
            auto_execute=should_auto_execute(action),
        )
        for action in extract(text)
    ]


def missing_fields(action: ParsedAction) -> List[str]:
    """Required-payload check, independent of the structural validator."""
    p = action.payload
    errors: List[str] = []
    if action.type is ActionType.CREATE:
        if not p.document_type:
            errors.append("Document type is required for create action")
    elif action.type is ActionType.UPDATE:
        if not p.document_id:
            errors.append("Document ID is required for update action")
        if not p.fields:
            errors.append("Fields are required for update action")
    elif action.type is ActionType.DELETE:
        if not p.document_id:
            errors.append("Document ID is required for delete action")
    elif action.type is ActionType.QUERY:
        if not p.query:
            errors.append("Query is required for query action")
    elif action.type is ActionType.NAVIGATE:
        if not p.document_id and not p.path:
            errors.append("Document ID or path is required for navigate action")
    elif action.type is ActionType.UPLOAD_ASSET:
        if not p.attachment:
            errors.append("An attachment is required for asset upload")
    elif action.type in (ActionType.FETCH_EXTERNAL_FRAME, ActionType.UPLOAD_EXTERNAL_ASSET):
        if not p.frame_url and not (p.file_key and p.node_id):
            errors.append("A frame URL or file key and node ID is required")
    return errors


def format_action_for_display(action: ParsedAction) -> str:
    lines = [f"**{action.description}**", f"Type: {action.type.value}"]
    p = action.payload
    if p.document_type:
        lines.append(f"Document Type: {p.document_type}")
    if p.document_id:
        lines.append(f"Document ID: {p.document_id}")
    if p.query:
        lines.append(f"Query: {p.query}")
    if p.fields:
        lines.append(f"Fields: {json.dumps(p.fields, indent=2, ensure_ascii=False)}")
    return "\n".join(lines)
