"""Best-effort JSON recovery for action blocks.

Two textual fixes, then one retry. Anything that
still fails to parse is reported as ``None`` and must be dropped by the caller.
"""

import json
import re
from typing import Any, Optional

# Each pattern matches a whole string literal first so its contents are skipped.
_STRING = r'"(?:[^"\\]|\\.)*"'
_TRAILING_COMMA_RE = re.compile(_STRING + r"|,\s*([}\]])")
# Bare object keys directly after "{" or ",".
_BARE_KEY_RE = re.compile(_STRING + r"|([{,]\s*)([A-Za-z_$][\w$-]*)(\s*):")


class JSONRepairError(ValueError):
    """Raised by :func:`loads_repaired` when the text cannot be recovered."""


def _drop_comma(m: "re.Match[str]") -> str:
    return m.group(0) if m.group(1) is None else m.group(1)


def _quote_key(m: "re.Match[str]") -> str:
    if m.group(1) is None:
        return m.group(0)
    return f'{m.group(1)}"{m.group(2)}"{m.group(3)}:'


def repair(text: str) -> str:
    """Strip trailing commas and quote bare keys, leaving string literals alone."""
    cleaned = _TRAILING_COMMA_RE.sub(_drop_comma, text)
    return _BARE_KEY_RE.sub(_quote_key, cleaned)


def loads_repaired(text: str) -> Any:
    """Parse ``text`` as JSON, retrying once on the repaired text."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(repair(text))
    except json.JSONDecodeError as e:
        raise JSONRepairError(f"unrecoverable JSON: {e.msg} at pos {e.pos}") from e


def safe_loads(text: str) -> Optional[Any]:
    """Like :func:`loads_repaired` but returns ``None`` instead of raising."""
    try:
        return loads_repaired(text)
    except JSONRepairError:
        return None
