"""Tests for domain/validator.py — structural pre-flight checks for updates."""

import pytest

from docpilot.domain.models import ActionPayload, ActionType, ParsedAction
from docpilot.domain.paths import key_path
from docpilot.domain.validator import QUERY_FIRST_HINT, Validator, validate

SECTION_KEY = "4b5c6d7e8f"
ROW_KEY = "a1b2c3d4e5"
COLUMN_KEY = "k1l2m3n4o5"
DOC_ID = "3f9a1c7e-55b2-4c0e-9d61-0a8b2e4f7c13"


def _update(fields, document_id=DOC_ID):
    return ParsedAction(
        type=ActionType.UPDATE,
        description="Edit page",
        payload=ActionPayload(document_id=document_id, fields=fields),
    )


class TestNumericIndices:
    def test_rejects_numeric_index(self):
        error = validate(_update({"pageBuilder[0].label": "Hero"}))
        assert error.code == "numeric_index"
        assert error.path == "pageBuilder[0].label"
        assert QUERY_FIRST_HINT in error.message

    def test_rejects_nested_numeric_index(self):
        path = f'pageBuilder[_key=="{SECTION_KEY}"].rows[ 2 ].gap'
        assert validate(_update({path: "4"})).code == "numeric_index"

    def test_numeric_checked_before_keys(self):
        fields = {'pageBuilder[_key=="hero"].label': "x", "pageBuilder[1].label": "y"}
        assert validate(_update(fields)).code == "numeric_index"


class TestKeyPredicates:
    @pytest.mark.parametrize("key", ["hero", "hero-row", "main-section", "cta"])
    def test_rejects_word_like_keys(self, key):
        error = validate(_update({f'pageBuilder[_key=="{key}"].label': "x"}))
        assert error.code == "hallucinated_key"
        assert "query" in error.message.lower()

    def test_accepts_plain_key_predicate_syntax(self):
        error = validate(_update({'pageBuilder[key=="hero"].label': "x"}))
        assert error.code == "hallucinated_key"

    def test_accepts_random_token(self):
        assert validate(_update({f'pageBuilder[_key=="{SECTION_KEY}"].label': "Hero"})) is None

    def test_threshold_is_configurable(self):
        action = _update({'pageBuilder[_key=="hero"].label': "x"})
        assert Validator(min_key_length=4).validate(action) is None
        assert Validator(min_key_length=5).validate(action).code == "hallucinated_key"

    def test_short_alphanumeric_not_word_like(self):
        assert validate(_update({'pageBuilder[_key=="ab12"].label': "x"})) is None


class TestDocumentId:
    @pytest.mark.parametrize("document_id", [
        "page-about-us",
        "post-hello-world",
        "article-news",
        "section-hero",
        "block-cta",
        "drafts.page-about-us",
    ])
    def test_rejects_type_slug_ids(self, document_id):
        error = validate(_update({"title": "x"}, document_id=document_id))
        assert error.code == "hallucinated_document_id"
        assert QUERY_FIRST_HINT in error.message

    @pytest.mark.parametrize("document_id", [DOC_ID, "page-k3j9x0q2lm", "drafts.homepage"])
    def test_accepts_real_ids(self, document_id):
        assert validate(_update({"title": "x"}, document_id=document_id)) is None


class TestNestedShapes:
    def test_valid_section_array(self):
        fields = {
            "pageBuilder": [
                {"_type": "section", "_key": SECTION_KEY, "rows": [
                    {"_type": "row", "_key": ROW_KEY, "columns": [
                        {"_type": "column", "_key": COLUMN_KEY, "content": [
                            {"_type": "heading", "_key": "z9y8x7w6v5", "text": "Hi"},
                        ]},
                    ]},
                ]},
            ],
        }
        assert validate(_update(fields)) is None

    def test_missing_type(self):
        error = validate(_update({"pageBuilder": [{"_key": SECTION_KEY, "rows": []}]}))
        assert error.code == "missing_type"
        assert "'section'" in error.message
        assert error.path == f'pageBuilder[_key=="{SECTION_KEY}"]'

    def test_placeholder_object_type(self):
        error = validate(_update({"pageBuilder": [{"_type": "object", "_key": SECTION_KEY}]}))
        assert error.code == "placeholder_type"

    def test_wrong_type_for_position(self):
        error = validate(_update({"pageBuilder": [{"_type": "row", "_key": SECTION_KEY}]}))
        assert error.code == "wrong_type"
        assert "expected 'section'" in error.message

    def test_missing_key(self):
        error = validate(_update({"pageBuilder": [{"_type": "section"}]}))
        assert error.code == "missing_key"
        assert error.path == "pageBuilder[0]"

    def test_word_like_nested_key(self):
        error = validate(_update({"pageBuilder": [{"_type": "section", "_key": "hero"}]}))
        assert error.code == "hallucinated_key"

    def test_element_path_checks_nested_rows(self):
        path = f'pageBuilder[_key=="{SECTION_KEY}"]'
        value = {"_type": "section", "_key": SECTION_KEY, "rows": [{"_type": "row"}]}
        error = validate(_update({path: value}))
        assert error.code == "missing_key"
        assert error.path == f"{path}.rows[0]"

    def test_unknown_content_block_type(self):
        path = key_path("pageBuilder", SECTION_KEY, "rows", ROW_KEY, "columns", COLUMN_KEY, "content")
        error = validate(_update({path: [{"_type": "widget", "_key": "p1q2r3s4t5"}]}))
        assert error.code == "unknown_type"

    def test_block_vocabulary_extendable(self):
        path = key_path("pageBuilder", SECTION_KEY, "rows", ROW_KEY, "columns", COLUMN_KEY, "content")
        action = _update({path: [{"_type": "widget", "_key": "p1q2r3s4t5"}]})
        assert Validator(block_types={"widget"}).validate(action) is None

    def test_content_outside_column_is_free_form(self):
        assert validate(_update({"content": [{"foo": "bar"}]})) is None

    def test_rows_nested_in_plain_object(self):
        fields = {"layout": {"rows": [{"_type": "object", "_key": ROW_KEY}]}}
        assert validate(_update(fields)).code == "placeholder_type"

    def test_invalid_path(self):
        assert validate(_update({"pageBuilder..label": "x"})).code == "invalid_path"


class TestScope:
    def test_only_update_is_validated(self):
        action = ParsedAction(
            type=ActionType.CREATE,
            description="Create page",
            payload=ActionPayload(document_type="page", fields={"pageBuilder[0]": {}}),
        )
        assert validate(action) is None

    def test_str_is_message(self):
        error = validate(_update({"pageBuilder[0].label": "x"}))
        assert str(error) == error.message
