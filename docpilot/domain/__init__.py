"""Domain layer — pure Python, no framework dependencies."""

from docpilot.domain.models import (
    ActionPayload,
    ActionResult,
    ActionStatus,
    ActionType,
    ParsedAction,
)
from docpilot.domain.action_parser import extract, strip_action_markup, missing_fields
from docpilot.domain.json_repair import repair, safe_loads
from docpilot.domain.keys import generate_key, is_word_like
from docpilot.domain.validator import ValidationError, Validator, validate

__all__ = [
    "ActionPayload",
    "ActionResult",
    "ActionStatus",
    "ActionType",
    "ParsedAction",
    "extract",
    "strip_action_markup",
    "missing_fields",
    "repair",
    "safe_loads",
    "generate_key",
    "is_word_like",
    "ValidationError",
    "Validator",
    "validate",
]
