"""
Textual PII scrubbing for log lines and exception messages.

Best-effort only: values are removed when they appear as "key": "value" or
key=value pairs for the known personal fields. Free text that carries
personal data in any other shape passes through unchanged.
"""
import re
from typing import Mapping, Optional

PII_FIELDS = (
    "forename",
    "surname",
    "mobile",
    "email",
    "location",
    "dateOfBirth",
    "date_of_birth",
)

_QUOTED_PATTERNS = [re.compile(r'"%s"\s*:\s*"[^"]*"' % field) for field in PII_FIELDS]
_UNQUOTED_PATTERNS = [re.compile(r"%s=[^,\s)]+" % field) for field in PII_FIELDS]

_SEPARATOR_CLEANUP = (
    (re.compile(r",\s*,"), ","),
    (re.compile(r",\s*\}"), "}"),
    (re.compile(r"\{\s*,"), "{"),
    (re.compile(r",\s*\)"), ")"),
    (re.compile(r"\(\s*,"), "("),
)


def strip_pii(text: str) -> str:
    """Remove known personal fields from text and tidy the separators left behind."""
    if not text:
        return text
    for pattern in _QUOTED_PATTERNS:
        text = pattern.sub("", text)
    for pattern in _UNQUOTED_PATTERNS:
        text = pattern.sub("", text)
    # Repeat until stable; removing adjacent fields leaves chained commas
    previous = None
    while previous != text:
        previous = text
        for pattern, replacement in _SEPARATOR_CLEANUP:
            text = pattern.sub(replacement, text)
    return text


def context_tag(crn: Optional[str] = None, uuid: Optional[str] = None) -> str:
    parts = []
    if crn:
        parts.append(f"crn={crn}")
    if uuid:
        parts.append(f"uuid={uuid}")
    return f"[{', '.join(parts)}]" if parts else ""


def sanitize_message(message: Optional[str], crn: Optional[str] = None, uuid: Optional[str] = None) -> str:
    """
    Scrub a message and append a context tag carrying only crn/uuid.

    Args:
        message: Free text, possibly containing personal fields
        crn: Case reference to tag the message with
        uuid: Entity identifier to tag the message with

    Returns:
        Sanitized message
    """
    cleaned = strip_pii(message or "")
    tag = context_tag(crn, uuid)
    if tag:
        return f"{cleaned} {tag}" if cleaned else tag
    return cleaned


def sanitize_exception(exc: BaseException, crn: Optional[str] = None, uuid: Optional[str] = None) -> str:
    """Sanitized exception message, falling back to the exception class name."""
    message = str(exc) or type(exc).__name__
    return sanitize_message(message, crn=crn, uuid=uuid)


def sanitize_for_fallback(exc: BaseException, context: Optional[Mapping[str, object]] = None) -> str:
    """Single-line description of an exception suitable for last-resort logging."""
    context_str = ", ".join(f"{key}={value}" for key, value in (context or {}).items())
    return strip_pii(
        f"errorType={type(exc).__name__}, message={str(exc) or 'none'}, context={{{context_str}}}"
    )
