"""Array-item keys.

Stored keys are random lowercase alphanumeric tokens. Short word-like values
("hero", "hero-row") are what an LLM produces when it guesses a key instead of
reading one from a query result.
"""

import re
import secrets
import string

KEY_ALPHABET = string.ascii_lowercase + string.digits
KEY_LENGTH = 10

_WORD_LIKE_RE = re.compile(r"[a-z][a-z-]*")


def generate_key(length: int = KEY_LENGTH) -> str:
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))


def is_word_like(value: str, min_length: int = KEY_LENGTH) -> bool:
    """True for short lowercase letter/hyphen values such as ``hero-row``."""
    return len(value) < min_length and _WORD_LIKE_RE.fullmatch(value) is not None
