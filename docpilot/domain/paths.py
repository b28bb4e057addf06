"""Field-path parsing and evaluation.

Paths look like ``pageBuilder[_key=="abc123def4"].rows[_key=="..."].label``.
A step is either an attribute name, a key predicate, or a numeric index. The
validator rejects numeric indices in caller-supplied paths; the evaluator
still understands them (the backend's ``[-1]`` append anchor uses one).
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Union

_NAME_RE = re.compile(r"[A-Za-z_$][\w$-]*")
_KEY_PREDICATE_RE = re.compile(r"\[\s*_?key\s*==\s*(?:\"([^\"]*)\"|'([^']*)')\s*\]")
_INDEX_RE = re.compile(r"\[\s*(-?\d+)\s*\]")


class FieldPathError(ValueError):
    """Malformed path, or a path that does not resolve against a document."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(f"{message} (path={path!r})" if path else message)
        self.path = path


class PathNotFound(FieldPathError):
    pass


@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class KeyMatch:
    key: str


@dataclass(frozen=True)
class Index:
    index: int


Step = Union[Field, KeyMatch, Index]


def parse_path(path: str) -> List[Step]:
    if not isinstance(path, str) or not path.strip():
        raise FieldPathError("Empty field path", str(path))
    steps: List[Step] = []
    pos = 0
    expect_name = True
    while pos < len(path):
        if expect_name:
            m = _NAME_RE.match(path, pos)
            if not m:
                raise FieldPathError(f"Expected attribute name at position {pos}", path)
            steps.append(Field(m.group(0)))
            pos = m.end()
            expect_name = False
            continue
        ch = path[pos]
        if ch == ".":
            pos += 1
            expect_name = True
            continue
        if ch == "[":
            m = _KEY_PREDICATE_RE.match(path, pos)
            if m:
                value = m.group(1) if m.group(1) is not None else m.group(2)
                steps.append(KeyMatch(value))
                pos = m.end()
                continue
            m = _INDEX_RE.match(path, pos)
            if m:
                steps.append(Index(int(m.group(1))))
                pos = m.end()
                continue
        raise FieldPathError(f"Unexpected {ch!r} at position {pos}", path)
    if expect_name:
        raise FieldPathError("Path ends with '.'", path)
    return steps


def format_path(steps: List[Step]) -> str:
    out = ""
    for step in steps:
        if isinstance(step, Field):
            out += ("." if out else "") + step.name
        elif isinstance(step, KeyMatch):
            out += f'[_key=="{step.key}"]'
        else:
            out += f"[{step.index}]"
    return out


def key_path(*parts: Any) -> str:
    """Build a selector path from alternating names and keys.

    ``key_path("pageBuilder", "k1", "rows")`` ->
    ``pageBuilder[_key=="k1"].rows``
    """
    steps: List[Step] = []
    for i, part in enumerate(parts):
        steps.append(Field(part) if i % 2 == 0 else KeyMatch(part))
    return format_path(steps)


def _find_keyed(items: list, key: str) -> Optional[int]:
    for i, item in enumerate(items):
        if isinstance(item, dict) and item.get("_key") == key:
            return i
    return None


def _step(current: Any, step: Step, path: str) -> Any:
    if isinstance(step, Field):
        if not isinstance(current, dict) or step.name not in current:
            raise PathNotFound(f"Missing attribute {step.name!r}", path)
        return current[step.name]
    if not isinstance(current, list):
        raise PathNotFound("Selector used on a non-array value", path)
    if isinstance(step, KeyMatch):
        idx = _find_keyed(current, step.key)
        if idx is None:
            raise PathNotFound(f"No array element with _key {step.key!r}", path)
        return current[idx]
    try:
        return current[step.index]
    except IndexError:
        raise PathNotFound(f"Index {step.index} out of range", path) from None


def get_at(doc: Any, path: str) -> Any:
    current = doc
    for step in parse_path(path):
        current = _step(current, step, path)
    return current


def has_path(doc: Any, path: str) -> bool:
    try:
        get_at(doc, path)
    except PathNotFound:
        return False
    return True


def first_missing_prefix(doc: Any, path: str) -> Optional[str]:
    """Shortest prefix of ``path`` that does not resolve in ``doc``, or None."""
    steps = parse_path(path)
    current = doc
    for i, step in enumerate(steps):
        try:
            current = _step(current, step, path)
        except PathNotFound:
            return format_path(steps[:i + 1])
    return None


def _resolve_parent(doc: Any, path: str, create: bool):
    steps = parse_path(path)
    current = doc
    for i, step in enumerate(steps[:-1]):
        if create and isinstance(step, Field) and isinstance(current, dict):
            nxt = steps[i + 1]
            if step.name not in current:
                current[step.name] = {} if isinstance(nxt, Field) else []
        current = _step(current, step, path)
    return current, steps[-1]


def set_at(doc: Any, path: str, value: Any) -> None:
    parent, last = _resolve_parent(doc, path, create=True)
    value = copy.deepcopy(value)
    if isinstance(last, Field):
        if not isinstance(parent, dict):
            raise PathNotFound(f"Cannot set {last.name!r} on a non-object", path)
        parent[last.name] = value
        return
    if not isinstance(parent, list):
        raise PathNotFound("Selector used on a non-array value", path)
    if isinstance(last, KeyMatch):
        idx = _find_keyed(parent, last.key)
        if idx is None:
            raise PathNotFound(f"No array element with _key {last.key!r}", path)
    else:
        idx = last.index
        if not -len(parent) <= idx < len(parent):
            raise PathNotFound(f"Index {idx} out of range", path)
    parent[idx] = value


def set_if_missing(doc: Any, path: str, value: Any) -> None:
    if not has_path(doc, path):
        set_at(doc, path, value)


def unset_at(doc: Any, path: str) -> None:
    """Remove the addressed attribute or element; missing targets are ignored."""
    try:
        parent, last = _resolve_parent(doc, path, create=False)
    except PathNotFound:
        return
    if isinstance(last, Field):
        if isinstance(parent, dict):
            parent.pop(last.name, None)
        return
    if not isinstance(parent, list):
        return
    if isinstance(last, KeyMatch):
        idx = _find_keyed(parent, last.key)
        if idx is not None:
            del parent[idx]
    elif -len(parent) <= last.index < len(parent):
        del parent[last.index]


def append_at(doc: Any, path: str, items: List[Any]) -> None:
    target = get_at(doc, path)
    if not isinstance(target, list):
        raise FieldPathError("Append target is not an array", path)
    target.extend(copy.deepcopy(items))


def nesting_depth(value: Any) -> int:
    """Number of nested object/array levels in a JSON value (scalars are 0)."""
    if isinstance(value, dict):
        return 1 + max((nesting_depth(v) for v in value.values()), default=0)
    if isinstance(value, list):
        return 1 + max((nesting_depth(v) for v in value), default=0)
    return 0
