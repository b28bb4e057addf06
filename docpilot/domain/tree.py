"""Page tree shapes: section -> row -> column -> content block."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from docpilot.domain.keys import generate_key

PAGE_TYPE = "page"
SECTIONS_FIELD = "pageBuilder"

SECTION = "section"
ROW = "row"
COLUMN = "column"
# Marker for "any content block kind"; content has no single expected _type.
CONTENT_BLOCK = "content block"

# Structurally-typed arrays -> kind of element they hold. ``children`` is the
# generic name for a page's section list and is accepted alongside pageBuilder.
STRUCTURAL_ARRAYS: Dict[str, str] = {
    SECTIONS_FIELD: SECTION,
    "children": SECTION,
    "rows": ROW,
    "columns": COLUMN,
    "content": CONTENT_BLOCK,
}

CONTENT_BLOCK_TYPES = frozenset({
    "accordion",
    "blogGrid",
    "breadcrumb",
    "button",
    "card",
    "divider",
    "eyebrow",
    "heading",
    "icon",
    "image",
    "inlineVideo",
    "marquee",
    "modal",
    "richText",
    "slider",
    "spacer",
    "table",
    "tabs",
})

SECTION_DEFAULTS = {"paddingTop": "default", "maxWidth": "container", "minHeight": "auto"}
ROW_DEFAULTS = {"gap": "4"}
COLUMN_DEFAULTS = {"widthDesktop": "auto", "widthMobile": "inherit"}

_SECTION_ATTRS = ("label", "backgroundColor", "paddingTop", "maxWidth", "minHeight")
_ROW_ATTRS = ("horizontalAlign", "verticalAlign", "gap")
_COLUMN_ATTRS = ("widthDesktop", "widthMobile", "verticalAlign", "padding")


@dataclass
class ColumnSpec:
    content: List[Dict[str, Any]] = field(default_factory=list)
    attrs: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RowSpec:
    columns: List[ColumnSpec] = field(default_factory=list)
    attrs: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SectionSpec:
    rows: List[RowSpec] = field(default_factory=list)
    attrs: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> Optional[str]:
        return self.attrs.get("label")


@dataclass
class PageSpec:
    title: str
    slug: str
    sections: List[SectionSpec] = field(default_factory=list)
    document_id: Optional[str] = None


def _pick(raw: Dict[str, Any], names) -> Dict[str, Any]:
    return {name: raw[name] for name in names if raw.get(name) is not None}


def column_from_dict(raw: Dict[str, Any]) -> ColumnSpec:
    content = [b for b in raw.get("content") or [] if isinstance(b, dict)]
    return ColumnSpec(content=content, attrs=_pick(raw, _COLUMN_ATTRS))


def row_from_dict(raw: Dict[str, Any]) -> RowSpec:
    columns = [column_from_dict(c) for c in raw.get("columns") or [] if isinstance(c, dict)]
    return RowSpec(columns=columns, attrs=_pick(raw, _ROW_ATTRS))


def section_from_dict(raw: Dict[str, Any]) -> SectionSpec:
    rows = [row_from_dict(r) for r in raw.get("rows") or [] if isinstance(r, dict)]
    return SectionSpec(rows=rows, attrs=_pick(raw, _SECTION_ATTRS))


def _slug_value(raw: Any) -> str:
    if isinstance(raw, dict):
        return str(raw.get("current") or "")
    return str(raw or "")


def page_from_fields(fields: Dict[str, Any], document_id: Optional[str] = None) -> PageSpec:
    """Build a PageSpec from create-action fields."""
    sections = fields.get(SECTIONS_FIELD) or fields.get("children") or fields.get("sections") or []
    return PageSpec(
        title=str(fields.get("name") or fields.get("title") or ""),
        slug=_slug_value(fields.get("slug")),
        sections=[section_from_dict(s) for s in sections if isinstance(s, dict)],
        document_id=document_id,
    )


def is_deep_page(document_type: Optional[str], fields: Optional[Dict[str, Any]]) -> bool:
    """True when a create payload is a page whose sections already carry rows."""
    if document_type != PAGE_TYPE or not fields:
        return False
    sections = fields.get(SECTIONS_FIELD) or fields.get("children") or fields.get("sections") or []
    return any(isinstance(s, dict) and s.get("rows") for s in sections)


def page_shell(spec: PageSpec) -> Dict[str, Any]:
    doc = {
        "_type": PAGE_TYPE,
        "name": spec.title,
        "slug": {"_type": "slug", "current": spec.slug},
        SECTIONS_FIELD: [],
    }
    if spec.document_id:
        doc["_id"] = spec.document_id
    return doc


def section_shell(spec: SectionSpec) -> Dict[str, Any]:
    return {
        **SECTION_DEFAULTS,
        **spec.attrs,
        "_key": generate_key(),
        "_type": SECTION,
        "rows": [],
    }


def row_shell(spec: RowSpec) -> Dict[str, Any]:
    return {**ROW_DEFAULTS, **spec.attrs, "_key": generate_key(), "_type": ROW, "columns": []}


def column_shell(spec: ColumnSpec) -> Dict[str, Any]:
    return {**COLUMN_DEFAULTS, **spec.attrs, "_key": generate_key(), "_type": COLUMN, "content": []}


def rekey(value: Any) -> Any:
    """Copy ``value`` giving every object inside an array a fresh random key."""
    if isinstance(value, list):
        out = []
        for item in value:
            item = rekey(item)
            if isinstance(item, dict):
                item["_key"] = generate_key()
            out.append(item)
        return out
    if isinstance(value, dict):
        return {k: rekey(v) for k, v in value.items() if k != "_key"}
    return copy.deepcopy(value)


def prepare_block(block: Dict[str, Any]) -> Dict[str, Any]:
    """Content block with a fresh key at its own level and at every nested array."""
    prepared = rekey(block)
    prepared["_key"] = generate_key()
    return prepared


def ensure_keys_and_types(value: Any, array_kind: Optional[str] = None) -> Any:
    """Fill ``_type`` on structural elements and give every array object a random key.

    Caller-suggested keys are discarded so word-like guesses never reach the
    store.
    """
    if isinstance(value, list):
        out = []
        for item in value:
            if isinstance(item, dict):
                item = ensure_keys_and_types(item)
                item["_key"] = generate_key()
                if array_kind and array_kind != CONTENT_BLOCK and not item.get("_type"):
                    item["_type"] = array_kind
            else:
                item = copy.deepcopy(item)
            out.append(item)
        return out
    if isinstance(value, dict):
        return {
            k: ensure_keys_and_types(v, STRUCTURAL_ARRAYS.get(k))
            for k, v in value.items()
            if k != "_key"
        }
    return copy.deepcopy(value)
