"""Tests for domain/tree.py and domain/keys.py."""

import re

import pytest

from docpilot.domain.keys import KEY_LENGTH, generate_key, is_word_like
from docpilot.domain.tree import (
    COLUMN_DEFAULTS,
    ROW_DEFAULTS,
    SECTION_DEFAULTS,
    ColumnSpec,
    PageSpec,
    RowSpec,
    SectionSpec,
    column_shell,
    ensure_keys_and_types,
    is_deep_page,
    page_from_fields,
    page_shell,
    prepare_block,
    row_shell,
    section_shell,
)

KEY_RE = re.compile(r"[a-z0-9]{10}")


class TestKeys:
    def test_generated_key_shape(self):
        key = generate_key()
        assert len(key) == KEY_LENGTH
        assert KEY_RE.fullmatch(key)

    def test_keys_are_unique(self):
        assert len({generate_key() for _ in range(200)}) == 200

    @pytest.mark.parametrize("value", ["hero", "hero-row", "main-content", "a"])
    def test_word_like(self, value):
        assert is_word_like(value) is True

    @pytest.mark.parametrize("value", ["4b5c6d7e8f", "herosection", "Hero", "row1", "-hero"])
    def test_not_word_like(self, value):
        assert is_word_like(value) is False


class TestPageFromFields:
    def test_reads_nested_structure(self):
        spec = page_from_fields({
            "name": "About",
            "slug": {"_type": "slug", "current": "about"},
            "pageBuilder": [
                {"label": "Hero", "rows": [
                    {"gap": "8", "columns": [
                        {"widthDesktop": "6", "content": [{"_type": "heading", "text": "Hi"}]},
                    ]},
                ]},
            ],
        }, document_id="drafts.about")
        assert spec.title == "About"
        assert spec.slug == "about"
        assert spec.document_id == "drafts.about"
        section = spec.sections[0]
        assert section.label == "Hero"
        assert section.rows[0].attrs == {"gap": "8"}
        assert section.rows[0].columns[0].content == [{"_type": "heading", "text": "Hi"}]

    def test_accepts_children_and_string_slug(self):
        spec = page_from_fields({"title": "T", "slug": "t", "children": [{"rows": []}]})
        assert spec.title == "T"
        assert spec.slug == "t"
        assert len(spec.sections) == 1

    def test_is_deep_page(self):
        assert is_deep_page("page", {"pageBuilder": [{"rows": [{}]}]}) is True
        assert is_deep_page("page", {"pageBuilder": [{"rows": []}]}) is False
        assert is_deep_page("post", {"pageBuilder": [{"rows": [{}]}]}) is False
        assert is_deep_page("page", None) is False


class TestShells:
    def test_page_shell(self):
        doc = page_shell(PageSpec(title="Home", slug="home"))
        assert doc == {
            "_type": "page",
            "name": "Home",
            "slug": {"_type": "slug", "current": "home"},
            "pageBuilder": [],
        }

    def test_page_shell_with_id(self):
        assert page_shell(PageSpec(title="x", slug="x", document_id="abc"))["_id"] == "abc"

    def test_section_shell_defaults_and_attrs(self):
        shell = section_shell(SectionSpec(rows=[RowSpec()], attrs={"label": "Hero", "maxWidth": "full"}))
        assert shell["_type"] == "section"
        assert shell["rows"] == []
        assert shell["label"] == "Hero"
        assert shell["maxWidth"] == "full"
        assert shell["paddingTop"] == SECTION_DEFAULTS["paddingTop"]
        assert KEY_RE.fullmatch(shell["_key"])

    def test_row_and_column_shells(self):
        row = row_shell(RowSpec())
        column = column_shell(ColumnSpec(content=[{"_type": "heading"}]))
        assert row["gap"] == ROW_DEFAULTS["gap"]
        assert row["columns"] == []
        assert column["widthMobile"] == COLUMN_DEFAULTS["widthMobile"]
        assert column["content"] == []

    def test_shell_keys_are_fresh(self):
        assert section_shell(SectionSpec())["_key"] != section_shell(SectionSpec())["_key"]


class TestKeyAssignment:
    def test_prepare_block_replaces_keys(self):
        block = {"_type": "tabs", "_key": "tabs", "items": [{"_key": "tab-one", "title": "A"}]}
        prepared = prepare_block(block)
        assert KEY_RE.fullmatch(prepared["_key"])
        assert KEY_RE.fullmatch(prepared["items"][0]["_key"])
        assert block["_key"] == "tabs"

    def test_ensure_keys_and_types_fills_structure(self):
        fields = {
            "pageBuilder": [
                {"_key": "hero", "rows": [
                    {"columns": [{"content": [{"_type": "heading"}]}]},
                ]},
            ],
        }
        out = ensure_keys_and_types(fields)
        section = out["pageBuilder"][0]
        row = section["rows"][0]
        column = row["columns"][0]
        block = column["content"][0]
        assert (section["_type"], row["_type"], column["_type"]) == ("section", "row", "column")
        assert block["_type"] == "heading"
        for item in (section, row, column, block):
            assert KEY_RE.fullmatch(item["_key"])
        assert section["_key"] != "hero"

    def test_ensure_keeps_existing_types_and_scalars(self):
        out = ensure_keys_and_types({"title": "x", "tags": ["a", "b"], "pageBuilder": [{"_type": "banner"}]})
        assert out["title"] == "x"
        assert out["tags"] == ["a", "b"]
        assert out["pageBuilder"][0]["_type"] == "banner"
