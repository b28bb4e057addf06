"""Pre-flight validation for update actions.

Runs synchronously with no network access. Checks short-circuit on the first
failure and return a message meant to be shown to the LLM so it can correct
itself:

1. no numeric-index selectors in field paths
2. no word-like (guessed) values in key predicates
3. no type-prefixed slug document IDs
4. every element of a structural array carries a proper ``_type`` and ``_key``
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from docpilot.domain.keys import KEY_LENGTH, is_word_like
from docpilot.domain.models import ActionType, ParsedAction, published_id
from docpilot.domain.paths import Field, FieldPathError, Index, KeyMatch, parse_path
from docpilot.domain.tree import COLUMN, CONTENT_BLOCK, CONTENT_BLOCK_TYPES, STRUCTURAL_ARRAYS

NUMERIC_INDEX_RE = re.compile(r"\[\s*-?\d+\s*\]")
KEY_PREDICATE_RE = re.compile(r"\[\s*_?key\s*==\s*[\"']([^\"']*)[\"']\s*\]")
HALLUCINATED_ID_RE = re.compile(r"^(page|post|article|section|block)-[a-z-]+$")

QUERY_FIRST_HINT = (
    "Run a query action first to read the real _id and _key values, "
    "then build the update from the query results."
)


@dataclass
class ValidationError:
    code: str
    message: str
    path: Optional[str] = None

    def __str__(self) -> str:
        return self.message


def _element_label(array_path: str, index: int, item: Any) -> str:
    if isinstance(item, dict) and isinstance(item.get("_key"), str) and item["_key"]:
        return f'{array_path}[_key=="{item["_key"]}"]'
    return f"{array_path}[{index}]"


class Validator:
    """Structural validator; thresholds and vocabulary are configurable."""

    def __init__(
        self,
        min_key_length: int = KEY_LENGTH,
        block_types: Optional[Iterable[str]] = None,
    ):
        self.min_key_length = min_key_length
        self.block_types: FrozenSet[str] = frozenset(
            CONTENT_BLOCK_TYPES if block_types is None else block_types
        )

    # -- public --

    def validate(self, action: ParsedAction) -> Optional[ValidationError]:
        if action.type is not ActionType.UPDATE:
            return None
        fields = action.payload.fields or {}
        return (
            self.check_numeric_indices(fields)
            or self.check_key_predicates(fields)
            or self.check_document_id(action.payload.document_id)
            or self.check_nested_shapes(fields)
        )

    def check_numeric_indices(self, fields: Dict[str, Any]) -> Optional[ValidationError]:
        for path in fields:
            if NUMERIC_INDEX_RE.search(path):
                return ValidationError(
                    code="numeric_index",
                    path=path,
                    message=(
                        f"Field path {path!r} uses a numeric array index. Array items must "
                        'be addressed as [_key=="..."] because positions can change between '
                        f"reads and writes. {QUERY_FIRST_HINT}"
                    ),
                )
        return None

    def check_key_predicates(self, fields: Dict[str, Any]) -> Optional[ValidationError]:
        for path in fields:
            for key in KEY_PREDICATE_RE.findall(path):
                if is_word_like(key, self.min_key_length):
                    return ValidationError(
                        code="hallucinated_key",
                        path=path,
                        message=(
                            f"Key {key!r} in field path {path!r} looks made up. Real keys are "
                            f"random tokens such as \"4b5c6d7e8f\", not names. {QUERY_FIRST_HINT}"
                        ),
                    )
        return None

    def check_document_id(self, document_id: Optional[str]) -> Optional[ValidationError]:
        if not document_id:
            return None
        if HALLUCINATED_ID_RE.match(published_id(document_id)):
            return ValidationError(
                code="hallucinated_document_id",
                message=(
                    f"Document ID {document_id!r} looks invented from the type and a slug. "
                    f"{QUERY_FIRST_HINT}"
                ),
            )
        return None

    def check_nested_shapes(self, fields: Dict[str, Any]) -> Optional[ValidationError]:
        for path, value in fields.items():
            try:
                steps = parse_path(path)
            except FieldPathError as e:
                return ValidationError(code="invalid_path", path=path, message=str(e))
            error = self._check_path_value(path, steps, value)
            if error:
                return error
        return None

    # -- internals --

    def _check_path_value(self, path: str, steps: List, value: Any) -> Optional[ValidationError]:
        last = steps[-1]
        if isinstance(last, Field):
            kind = self._array_kind(steps, len(steps) - 1)
            if kind and isinstance(value, list):
                return self._check_array(path, kind, value)
            return self._walk(path, value, parent_kind=None)

        # Path addresses one element of an array: the value replaces it.
        array_pos = len(steps) - 2
        while array_pos >= 0 and not isinstance(steps[array_pos], Field):
            array_pos -= 1
        if array_pos >= 0:
            kind = self._array_kind(steps, array_pos)
            if kind:
                return self._check_element(path, kind, value)
        return self._walk(path, value, parent_kind=None)

    def _array_kind(self, steps: List, pos: int) -> Optional[str]:
        """Element kind for the array named at ``steps[pos]``, or None."""
        name = steps[pos].name
        kind = STRUCTURAL_ARRAYS.get(name)
        if kind != CONTENT_BLOCK:
            return kind
        # "content" is only structural directly under a column.
        if pos >= 2 and isinstance(steps[pos - 1], (KeyMatch, Index)):
            owner = steps[pos - 2]
            if isinstance(owner, Field) and STRUCTURAL_ARRAYS.get(owner.name) == COLUMN:
                return kind
        return None

    def _check_array(self, where: str, kind: str, items: List[Any]) -> Optional[ValidationError]:
        for i, item in enumerate(items):
            error = self._check_element(_element_label(where, i, item), kind, item)
            if error:
                return error
        return None

    def _check_element(self, where: str, kind: str, item: Any) -> Optional[ValidationError]:
        if kind == CONTENT_BLOCK:
            expected = f"a content block type ({', '.join(sorted(self.block_types)[:4])}, ...)"
        else:
            expected = repr(kind)
        if not isinstance(item, dict):
            return ValidationError(
                code="invalid_element",
                path=where,
                message=f"{where} must be an object with _type {expected} and a random _key.",
            )
        item_type = item.get("_type")
        if not item_type:
            return ValidationError(
                code="missing_type",
                path=where,
                message=f"{where} is missing _type; expected {expected}.",
            )
        if item_type == "object":
            return ValidationError(
                code="placeholder_type",
                path=where,
                message=f"{where} has the placeholder _type \"object\"; expected {expected}.",
            )
        if kind == CONTENT_BLOCK:
            if item_type not in self.block_types:
                return ValidationError(
                    code="unknown_type",
                    path=where,
                    message=f"{where} has unknown block _type {item_type!r}; expected {expected}.",
                )
        elif item_type != kind:
            return ValidationError(
                code="wrong_type",
                path=where,
                message=f"{where} has _type {item_type!r}; expected {expected}.",
            )
        key = item.get("_key")
        if not key or not isinstance(key, str):
            return ValidationError(
                code="missing_key",
                path=where,
                message=f"{where} is missing _key; give it a random 10-character alphanumeric key.",
            )
        if is_word_like(key, self.min_key_length):
            return ValidationError(
                code="hallucinated_key",
                path=where,
                message=(
                    f"{where} uses the word-like _key {key!r}; keys must be random "
                    f"alphanumeric tokens of at least {self.min_key_length} characters."
                ),
            )
        return self._walk(where, item, parent_kind=item_type)

    def _walk(self, where: str, value: Any, parent_kind: Optional[str]) -> Optional[ValidationError]:
        if isinstance(value, dict):
            own_kind = value.get("_type") or parent_kind
            for k, v in value.items():
                kind = STRUCTURAL_ARRAYS.get(k)
                if kind == CONTENT_BLOCK and own_kind != COLUMN:
                    kind = None
                if kind and isinstance(v, list):
                    error = self._check_array(f"{where}.{k}", kind, v)
                else:
                    error = self._walk(f"{where}.{k}", v, parent_kind=None)
                if error:
                    return error
        elif isinstance(value, list):
            for i, item in enumerate(value):
                error = self._walk(f"{where}[{i}]", item, parent_kind=None)
                if error:
                    return error
        return None


def validate(action: ParsedAction, min_key_length: int = KEY_LENGTH) -> Optional[ValidationError]:
    """Module-level convenience wrapper around :class:`Validator`."""
    return Validator(min_key_length=min_key_length).validate(action)
