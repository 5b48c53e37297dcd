"""Text sanitization for everything that enters the model prompt.

Two pure transforms live here:

- ``strip_control_chars`` removes NUL and other C0/DEL control characters
  while keeping tab, newline and carriage return.  Applied to every incoming
  chat message.
- ``sanitize_external_text`` is applied to every free-text field fetched from
  GitHub, Jira or the team roster before it is placed in the context block.
  It flattens markup, removes angle brackets so fetched data can never open
  or close one of the context section tags, collapses whitespace and caps the
  length as the very last step.
"""

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TAG = re.compile(r"<[^>]*>")
_ANGLE_BRACKETS = re.compile(r"[<>]")
_NAMED_ENTITY = re.compile(r"&[a-z]+;", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

# Entities decoded to their literal character.  Anything else becomes a space.
_ENTITIES: dict[str, str] = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
}
_KNOWN_ENTITY = re.compile("|".join(re.escape(e) for e in _ENTITIES), re.IGNORECASE)


def strip_control_chars(text: str) -> str:
    """Remove control characters, preserving ``\\t``, ``\\n`` and ``\\r``."""
    return _CONTROL_CHARS.sub("", text)


def sanitize_external_text(text: object, max_length: int) -> str:
    """Return *text* as a single plain-text line of at most *max_length* chars.

    Non-string and empty input yields ``""``.  Entities are decoded before
    tags are stripped so that encoded markup (``&lt;script&gt;``) is removed
    too; any ``<`` or ``>`` left afterwards is dropped.
    """
    if not isinstance(text, str) or not text:
        return ""

    cleaned = _KNOWN_ENTITY.sub(lambda m: _ENTITIES[m.group(0).lower()], text)
    cleaned = _NAMED_ENTITY.sub(" ", cleaned)
    cleaned = _TAG.sub(" ", cleaned)
    cleaned = _ANGLE_BRACKETS.sub(" ", cleaned)
    cleaned = strip_control_chars(cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[:max_length]
