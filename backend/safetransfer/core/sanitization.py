"""
SafeTransfer Input Sanitization Module

Field-aware cleaning of raw form input before it reaches the external authority,
plus advisory detection of script-injection and SQL-injection payloads.

Features:
- Generic text cleaning (script blocks, markup, inline handlers, dangerous URIs)
- Per-field cleaners for documents, fiscal codes, phones, emails, names, amounts
- Dangerous pattern detection with xss / sql_injection classification
- Recursive sanitization of nested payloads

Every cleaner is total (never raises) and idempotent.
"""

import math
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Pattern, Union

import structlog

from ..constants import (
    MAX_DOCUMENT_NUMBER_LENGTH,
    MAX_EMAIL_LENGTH,
    MAX_FISCAL_CODE_LENGTH,
    MAX_NAME_LENGTH,
    MAX_PHONE_LENGTH,
)
from .config import get_settings

logger = structlog.get_logger()

SecurityAlertHook = Callable[[str, str], None]

CENT = Decimal("0.01")


class FieldKind(str, Enum):
    """Kinds of input field, each with its own cleaner."""

    TEXT = "text"
    DOCUMENT_NUMBER = "document_number"
    FISCAL_CODE = "fiscal_code"
    PHONE = "phone"
    EMAIL = "email"
    NAME = "name"
    AMOUNT = "amount"


class PatternCategory(str, Enum):
    """Category reported for a detected dangerous payload."""

    XSS = "xss"
    SQL_INJECTION = "sql_injection"


@dataclass
class SanitizationConfig:
    """Pattern sets used for dangerous payload detection."""

    xss_patterns: List[Pattern] = field(
        default_factory=lambda: [
            re.compile(r"<script", re.IGNORECASE),
            re.compile(r"javascript:", re.IGNORECASE),
            re.compile(r"on\w+\s*=", re.IGNORECASE),
            re.compile(r"data:\s*text/html", re.IGNORECASE),
            re.compile(r"<\s*img[^>]+onerror", re.IGNORECASE),
            re.compile(r"<\s*svg[^>]+onload", re.IGNORECASE),
            re.compile(r"<\s*iframe", re.IGNORECASE),
            re.compile(r"<\s*embed", re.IGNORECASE),
            re.compile(r"<\s*object", re.IGNORECASE),
        ]
    )

    sql_patterns: List[Pattern] = field(
        default_factory=lambda: [
            re.compile(r"'\s*or\s*'1'\s*=\s*'1", re.IGNORECASE),
            re.compile(r";\s*drop\s+table", re.IGNORECASE),
            re.compile(r";\s*delete\s+from", re.IGNORECASE),
            re.compile(r"union\s+select", re.IGNORECASE),
            re.compile(r"--\s*$"),
            re.compile(r"/\*.*\*/", re.DOTALL),
        ]
    )


class DangerousPatternDetector:
    """Detect (never strip) injection payloads in a string."""

    def __init__(self, config: Optional[SanitizationConfig] = None):
        self.config = config or SanitizationConfig()

    def category(self, text: Any) -> Optional[PatternCategory]:
        """
        Classify the first dangerous pattern found in text.

        Args:
            text: Value to inspect; non-strings are never dangerous

        Returns:
            The pattern category, or None when the text is clean
        """
        if not text or not isinstance(text, str):
            return None

        if any(pattern.search(text) for pattern in self.config.xss_patterns):
            return PatternCategory.XSS
        if any(pattern.search(text) for pattern in self.config.sql_patterns):
            return PatternCategory.SQL_INJECTION
        return None

    def is_dangerous(self, text: Any) -> bool:
        return self.category(text) is not None


default_detector = DangerousPatternDetector()


# Generic text cleaning steps, applied in order until the value is stable
_SCRIPT_BLOCK = re.compile(
    r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE
)
_MARKUP_TAG = re.compile(r"<[^>]*>")
_EVENT_HANDLER = re.compile(r"on\w+\s*=\s*[\"'][^\"']*[\"']", re.IGNORECASE)
_JAVASCRIPT_URI = re.compile(r"javascript:", re.IGNORECASE)
_BASE64_DATA_URI = re.compile(r"data:\s*[^,]*base64", re.IGNORECASE)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE = re.compile(r"\s+")

_TEXT_STEPS = (
    (_SCRIPT_BLOCK, ""),
    (_MARKUP_TAG, ""),
    (_EVENT_HANDLER, ""),
    (_JAVASCRIPT_URI, ""),
    (_BASE64_DATA_URI, ""),
    (_CONTROL_CHARS, ""),
    (_WHITESPACE, " "),
)

_NOT_DOCUMENT_CHAR = re.compile(r"[^A-Z0-9\-]")
_NOT_FISCAL_CHAR = re.compile(r"[^A-Z0-9]")
_NOT_PHONE_CHAR = re.compile(r"[^0-9+\-\s()]")
_NOT_EMAIL_CHAR = re.compile(r"[^a-z0-9@._\-+]")
_NUMERIC_PREFIX = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def _clean_text_once(value: str) -> str:
    for pattern, replacement in _TEXT_STEPS:
        value = pattern.sub(replacement, value)
    return value.strip()


def sanitize_input(value: Any) -> str:
    """
    Clean generic free text.

    Removing one payload can expose another (``javajavascript:script:``),
    so the cleaning steps repeat until the output stops changing.

    Args:
        value: Raw input; anything that is not a string yields ""

    Returns:
        Cleaned single-line text
    """
    if not value or not isinstance(value, str):
        return ""

    cleaned = _clean_text_once(value)
    while True:
        again = _clean_text_once(cleaned)
        if again == cleaned:
            return cleaned
        cleaned = again


def escape_html(value: Any) -> str:
    """Escape HTML special characters for safe echo."""
    if not value or not isinstance(value, str):
        return ""

    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#039;")
    )


def sanitize_for_query(value: Any) -> str:
    """Strip SQL statement separators and comments; double single quotes."""
    if not value or not isinstance(value, str):
        return ""

    value = value.replace("'", "''")
    for token in ("--", "/*", "*/", ";"):
        value = value.replace(token, "")
    return value.strip()


def sanitize_document_number(value: Any) -> str:
    if not value or not isinstance(value, str):
        return ""
    return _NOT_DOCUMENT_CHAR.sub("", value.upper())[:MAX_DOCUMENT_NUMBER_LENGTH]


def sanitize_fiscal_code(value: Any) -> str:
    if not value or not isinstance(value, str):
        return ""
    return _NOT_FISCAL_CHAR.sub("", value.upper())[:MAX_FISCAL_CODE_LENGTH]


def sanitize_phone(value: Any) -> str:
    if not value or not isinstance(value, str):
        return ""
    return _NOT_PHONE_CHAR.sub("", value)[:MAX_PHONE_LENGTH]


def sanitize_email(value: Any) -> str:
    if not value or not isinstance(value, str):
        return ""
    return _NOT_EMAIL_CHAR.sub("", value.lower())[:MAX_EMAIL_LENGTH]


def _is_name_char(char: str) -> bool:
    return char.isalpha() or char.isspace() or char in "-'."


def sanitize_name(value: Any) -> str:
    """
    Clean a person or business name.

    Keeps letters of any script (accents included), spaces, hyphens,
    apostrophes and periods.
    """
    if not value or not isinstance(value, str):
        return ""

    kept = "".join(char for char in value if _is_name_char(char))
    collapsed = _WHITESPACE.sub(" ", kept).strip()
    return collapsed[:MAX_NAME_LENGTH].rstrip()


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        return value if value.is_finite() else None

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return Decimal(repr(value)) if isinstance(value, float) else Decimal(value)

    if isinstance(value, str):
        cleaned = re.sub(r"[^0-9.]", "", value)
        match = _NUMERIC_PREFIX.match(cleaned)
        if not match:
            return None
        try:
            return Decimal(match.group())
        except InvalidOperation:
            return None

    return None


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount for validation, without clamping.

    Unlike sanitize_amount this keeps the sign and any over-ceiling value,
    so the validation gate sees what the user actually typed.

    Returns:
        Amount rounded to cents, or None when unparseable
    """
    if isinstance(value, str):
        cleaned = re.sub(r"[^0-9.\-]", "", value)
        try:
            parsed = Decimal(cleaned)
        except InvalidOperation:
            return None
        if not parsed.is_finite():
            return None
    else:
        parsed = _to_decimal(value)
        if parsed is None:
            return None

    if abs(parsed) >= Decimal("1e15"):
        return parsed
    return parsed.quantize(CENT, rounding=ROUND_HALF_UP)


def sanitize_amount(
    value: Union[str, int, float, Decimal, None], ceiling: Optional[Decimal] = None
) -> Decimal:
    """
    Coerce a monetary amount into [0, ceiling] with two decimals.

    This clamp is a display safeguard only. An over-ceiling transfer must
    still be rejected by validation; it is never silently reduced.

    Args:
        value: Number or numeric string (currency symbols and separators allowed)
        ceiling: Upper bound; defaults to the configured transfer ceiling

    Returns:
        Clamped amount, or Decimal("0.00") for unparseable input
    """
    if ceiling is None:
        ceiling = get_settings().TRANSFER_CEILING
    upper = Decimal(ceiling).quantize(CENT, rounding=ROUND_HALF_UP)

    parsed = _to_decimal(value)
    if parsed is None:
        return Decimal("0.00")

    # Clamp before quantizing; quantize overflows on huge exponents
    clamped = max(Decimal("0"), min(upper, parsed))
    return clamped.quantize(CENT, rounding=ROUND_HALF_UP)


def contains_dangerous_patterns(value: Any) -> bool:
    """
    Advisory check for script or SQL injection payloads.

    Detection only; use it to raise a security signal even when the
    field cleaner would strip the payload anyway.
    """
    return default_detector.is_dangerous(value)


def dangerous_pattern_category(value: Any) -> Optional[str]:
    """Return "xss", "sql_injection" or None."""
    category = default_detector.category(value)
    return category.value if category else None


def sanitize_object(obj: Any) -> Any:
    """
    Recursively apply generic text cleaning to every string leaf.

    Dicts, lists and tuples are rebuilt; other values pass through untouched.
    None is returned unchanged.
    """
    if obj is None:
        return None
    if isinstance(obj, str):
        return sanitize_input(obj)
    if isinstance(obj, dict):
        return {key: sanitize_object(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [sanitize_object(item) for item in obj]
    if isinstance(obj, tuple):
        return tuple(sanitize_object(item) for item in obj)
    return obj


_CLEANERS: Dict[FieldKind, Callable[[Any], str]] = {
    FieldKind.TEXT: sanitize_input,
    FieldKind.DOCUMENT_NUMBER: sanitize_document_number,
    FieldKind.FISCAL_CODE: sanitize_fiscal_code,
    FieldKind.PHONE: sanitize_phone,
    FieldKind.EMAIL: sanitize_email,
    FieldKind.NAME: sanitize_name,
}

FIELD_KINDS: Dict[str, FieldKind] = {
    "document_number": FieldKind.DOCUMENT_NUMBER,
    "fiscal_code": FieldKind.FISCAL_CODE,
    "phone": FieldKind.PHONE,
    "email": FieldKind.EMAIL,
    "full_name": FieldKind.NAME,
    "recipient_name": FieldKind.NAME,
    "business_name": FieldKind.NAME,
    "amount": FieldKind.AMOUNT,
    "commission_amount": FieldKind.AMOUNT,
}


def sanitize(
    kind: Union[FieldKind, str], value: Any, ceiling: Optional[Decimal] = None
) -> Union[str, Decimal]:
    """
    Clean a value according to its field kind.

    Args:
        kind: FieldKind (or its string value); unknown kinds use TEXT
        value: Raw input
        ceiling: Amount ceiling override for FieldKind.AMOUNT

    Returns:
        Decimal for amounts, str for everything else
    """
    try:
        kind = FieldKind(kind)
    except ValueError:
        kind = FieldKind.TEXT

    if kind is FieldKind.AMOUNT:
        return sanitize_amount(value, ceiling)
    return _CLEANERS[kind](value)


def field_kind_for(field_name: str) -> FieldKind:
    """Map a form field name to its FieldKind."""
    return FIELD_KINDS.get(field_name, FieldKind.TEXT)


def sanitize_field(
    field_name: str,
    value: Any,
    on_security_alert: Optional[SecurityAlertHook] = None,
    ceiling: Optional[Decimal] = None,
) -> Union[str, Decimal]:
    """
    Clean a form field by name, raising a security signal when needed.

    The detector runs on the raw value first, so a payload the cleaner
    strips is still reported.

    Args:
        field_name: Form field name, e.g. "document_number"
        value: Raw value
        on_security_alert: Called with (field_name, category) on detection
        ceiling: Amount ceiling override

    Returns:
        Cleaned value
    """
    category = dangerous_pattern_category(value)
    if category:
        logger.warning(
            "Dangerous input pattern detected", field=field_name, category=category
        )
        if on_security_alert:
            on_security_alert(field_name, category)

    return sanitize(field_kind_for(field_name), value, ceiling)
