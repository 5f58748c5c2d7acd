"""
Text normalization for email bodies.

Turns raw HTML (or plain text) into a single-line string that the amount and
date extractors can scan: markup removed, entities decoded, whitespace
collapsed.
"""

import html
import re
from typing import Optional

_TAG_RE = re.compile(r"<[^>]*>")
_ANGLE_RE = re.compile(r"[<>]")
_WHITESPACE_RE = re.compile(r"\s+")


def _unescape_fully(value: str) -> str:
    """Decode HTML entities until the string stops changing (handles "&amp;lt;")."""
    while True:
        decoded = html.unescape(value)
        if decoded == value:
            return value
        value = decoded


def normalize_text(raw: Optional[str]) -> str:
    """
    Strip markup and collapse whitespace.

    Tags are removed before entities are decoded, so an encoded "&lt;" in the
    text is kept as content and cannot swallow the words after it. Angle
    brackets left over after decoding are replaced by a space.

    Examples:
        "<p>Betrag&nbsp;CHF 12.50</p>"  -> "Betrag CHF 12.50"
        "Total\\n\\n  809.00"            -> "Total 809.00"
        None                            -> ""
    """
    if not raw:
        return ""

    text = _TAG_RE.sub(" ", raw)
    text = _unescape_fully(text)
    text = _ANGLE_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()
