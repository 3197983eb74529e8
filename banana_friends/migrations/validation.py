"""
Checks every rewritten title or prompt must pass before it is written back
"""
import re
from typing import Optional

NO_CHANGE_SENTINEL = "NO_CHANGE"

# The control token only; ordinary "no change(s)" wording is prompt content
SENTINEL_PATTERN = r"(?<![A-Za-z0-9])NO_CHANGE(?![A-Za-z0-9])"
_SENTINEL = re.compile(SENTINEL_PATTERN, re.IGNORECASE)
_BACKREFERENCE = re.compile(r"\$\d|\\\d")
_ROLE_PREFIX = re.compile(r"^\s*(TITLE|PROMPT|INPUT|OUTPUT)\s*:", re.IGNORECASE | re.MULTILINE)


class InvalidRewrite(ValueError):
    """A rewritten value must not be persisted"""


def contains_sentinel(text: Optional[str]) -> bool:
    return bool(text) and bool(_SENTINEL.search(text))


def contains_backreference(text: Optional[str]) -> bool:
    return bool(text) and bool(_BACKREFERENCE.search(text))


def validate_prompt_text(text: Optional[str], field: str = "prompt", max_length: int = 10000) -> str:
    """
    Return text unchanged if it is safe to persist, raise InvalidRewrite otherwise
    """
    if text is None or not text.strip():
        raise InvalidRewrite(f"{field} is empty")
    if contains_sentinel(text):
        raise InvalidRewrite(f"{field} contains the {NO_CHANGE_SENTINEL} sentinel")
    if contains_backreference(text):
        raise InvalidRewrite(f"{field} contains an unexpanded regex backreference")
    if _ROLE_PREFIX.search(text):
        raise InvalidRewrite(f"{field} contains a role prefix")
    if len(text) > max_length:
        raise InvalidRewrite(f"{field} is longer than {max_length} characters")
    return text
