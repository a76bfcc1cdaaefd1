"""Field-level parsing of OCR provider output.

The provider returns each field in one of several shapes. ``classify_field``
turns a raw field into an explicit variant, and the ``parse_*`` helpers
convert a variant into a domain primitive. None of the helpers raise on
missing or malformed input: they fall back to a documented default and log
a warning instead, so a single bad field never aborts a document.

Supported raw shapes:
- ``{"content": "..."}``
- ``{"value": "..."}`` or ``{"value": 12.5}``
- ``{"value": {"text": "..."}}``
- ``{"value": {"amount": 12.5, "currencySymbol": "$", "currencyCode": "USD"}}``
- ``{"values": [{"properties": {...}}]}``
- ``{"valueArray": [{"valueObject": {...}}]}`` (legacy)
- Azure REST typed keys (``valueString``, ``valueDate``, ``valueNumber``,
  ``valueInteger``, ``valueCurrency``)
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Union

from dateutil import parser as date_parser

from services.normalization.schema import Currency, Money

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_DAYS = 30
UNKNOWN_PARTNER_ID = "unknown-vendor"
PARTNER_ID_MAX_LENGTH = 44

RawField = Mapping[str, Any]


@dataclass(frozen=True)
class TextField:
    """Field carrying only recognized text."""

    content: str


@dataclass(frozen=True)
class ScalarField:
    """Field with a typed scalar value (string or number)."""

    value: str | int | float
    content: str | None = None

    @property
    def is_numeric(self) -> bool:
        return isinstance(self.value, (int, float))


@dataclass(frozen=True)
class NestedTextField:
    """Field whose value is an object holding the text."""

    text: str
    content: str | None = None


@dataclass(frozen=True)
class StructuredMoneyField:
    """Currency field already split into amount, symbol and code."""

    amount: float | None
    currency_symbol: str | None = None
    currency_code: str | None = None
    content: str | None = None


@dataclass(frozen=True)
class RepeatedField:
    """Group of sub-field maps, e.g. invoice line items.

    Attributes:
        items: One mapping of sub-field name to raw field per entry
        legacy: True when read from the ``valueArray``/``valueObject`` shape
    """

    items: tuple[Mapping[str, Any], ...] = field(default_factory=tuple)
    legacy: bool = False
    content: str | None = None


@dataclass(frozen=True)
class EmptyField:
    """Present field without any usable value."""

    content: str | None = None


OcrField = Union[
    TextField, ScalarField, NestedTextField, StructuredMoneyField, RepeatedField, EmptyField
]
_VARIANTS = (TextField, ScalarField, NestedTextField, StructuredMoneyField, RepeatedField, EmptyField)

_DDMMYY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$")
_DDMMYYYY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_LEADING_FLOAT = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+))")
_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_SYMBOL = re.compile(r"^(\D+)")
_NET_TERMS = re.compile(r"net\s+(\d{1,4})", re.IGNORECASE)
_DAY_TERMS = re.compile(r"\b(\d{1,4})\s*(?:days?\b|d\b)", re.IGNORECASE)
_BARE_TERMS = re.compile(r"^\s*(\d{1,4})\s*$")
_RUPIAH = "Rp"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _string_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _sub_fields(entry: Any, key: str) -> Mapping[str, Any]:
    if isinstance(entry, Mapping):
        nested = entry.get(key)
        if isinstance(nested, Mapping):
            return nested
    return {}


def classify_field(raw: Any) -> OcrField | None:
    """Normalize a raw provider field into its variant.

    Args:
        raw: Field as found in the OCR payload (or an already classified field)

    Returns:
        Classified field, or None when the field is absent
    """
    if raw is None:
        return None
    if isinstance(raw, _VARIANTS):
        return raw
    if isinstance(raw, str):
        return TextField(content=raw)
    if not isinstance(raw, Mapping):
        logger.debug(f"Ignoring OCR field of unsupported type {type(raw).__name__}")
        return EmptyField()

    content = _string_or_none(raw.get("content"))

    values = raw.get("values")
    if isinstance(values, list):
        return RepeatedField(
            items=tuple(_sub_fields(entry, "properties") for entry in values),
            content=content,
        )

    value_array = raw.get("valueArray")
    if isinstance(value_array, list):
        return RepeatedField(
            items=tuple(_sub_fields(entry, "valueObject") for entry in value_array),
            legacy=True,
            content=content,
        )

    value = raw.get("value")
    if _is_number(value) or isinstance(value, str):
        return ScalarField(value=value, content=content)
    if isinstance(value, Mapping):
        if "amount" in value:
            return _money_field(value, content)
        if isinstance(value.get("text"), str):
            return NestedTextField(text=value["text"], content=content)

    currency = raw.get("valueCurrency")
    if isinstance(currency, Mapping):
        return _money_field(currency, content)

    for typed_key in ("valueNumber", "valueInteger", "valueString", "valueDate"):
        typed = raw.get(typed_key)
        if _is_number(typed) or isinstance(typed, str):
            return ScalarField(value=typed, content=content)

    if content is not None:
        return TextField(content=content)
    return EmptyField()


def _money_field(value: Mapping[str, Any], content: str | None) -> StructuredMoneyField:
    amount = value.get("amount")
    return StructuredMoneyField(
        amount=float(amount) if _is_number(amount) else None,
        currency_symbol=_string_or_none(value.get("currencySymbol")) or None,
        currency_code=_string_or_none(value.get("currencyCode")) or None,
        content=content,
    )


def _clean_text(text: str) -> str | None:
    cleaned = re.sub(r"\r?\n", " ", text.strip())
    return cleaned or None


def field_content(raw: Any) -> str | None:
    """Best-effort textual content of a field.

    Priority: ``content`` string, then string ``value``, then ``value.text``.
    Newlines become spaces and the result is trimmed.

    Args:
        raw: Raw or classified field

    Returns:
        Text content, or None when the field has no usable text
    """
    ocr_field = classify_field(raw)
    if ocr_field is None:
        return None

    if ocr_field.content is not None:
        text = _clean_text(ocr_field.content)
        if text is not None:
            return text

    if isinstance(ocr_field, ScalarField) and isinstance(ocr_field.value, str):
        return _clean_text(ocr_field.value)
    if isinstance(ocr_field, NestedTextField):
        return _clean_text(ocr_field.text)
    return None


def first_content(*raw_fields: Any) -> str | None:
    """Content of the first field in a fallback chain that has any."""
    for raw in raw_fields:
        text = field_content(raw)
        if text:
            return text
    return None


def parse_date(raw: Any, optional: bool = False) -> date | None:
    """Resolve a date field.

    ``DD/MM/YY`` and ``DD/MM/YYYY`` are matched explicitly before ISO and
    generic parsing. Two-digit years below 50 are 20xx, others 19xx.

    Args:
        raw: Raw or classified field
        optional: Return None instead of today's date when the field is empty

    Returns:
        Parsed date. Today's date when the content is missing (and the field
        is not optional) or cannot be parsed.
    """
    text = field_content(raw)
    if not text:
        if optional:
            return None
        logger.warning("Date field missing, using current date as fallback")
        return date.today()

    parsed = _parse_date_text(text)
    if parsed is None:
        logger.warning(f"Invalid date format: {text}, using current date")
        return date.today()
    return parsed


def _parse_date_text(text: str) -> date | None:
    short = _DDMMYY.match(text)
    if short:
        day, month, year = (int(part) for part in short.groups())
        year += 2000 if year < 50 else 1900
        return _safe_date(year, month, day)

    long = _DDMMYYYY.match(text)
    if long:
        day, month, year = (int(part) for part in long.groups())
        return _safe_date(year, month, day)

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError):
        return None


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _leading_float(text: str) -> float | None:
    match = _LEADING_FLOAT.match(text)
    return float(match.group(1)) if match else None


def _parse_rupiah(text: str) -> Money:
    numeric = re.sub(_RUPIAH, "", text, flags=re.IGNORECASE)
    numeric = numeric.replace(".", "").replace(",", ".").strip()
    return Money(
        amount=_leading_float(numeric),
        currency=Currency(symbol=_RUPIAH, code="IDR"),
    )


def parse_currency(raw: Any) -> Money:
    """Parse a monetary field.

    A direct numeric value is an amount without currency. Structured money
    objects are used as-is unless the text carries a Rupiah marker, which
    forces dot-thousands/comma-decimal parsing and ``Rp``/``IDR``. Free text
    is stripped to digits, periods and minus signs; a leading non-digit run
    becomes the currency symbol. The currency code is never guessed from
    free text.

    Args:
        raw: Raw or classified field

    Returns:
        Money, with a null amount when nothing could be parsed
    """
    ocr_field = classify_field(raw)
    if ocr_field is None:
        return Money.empty()

    if isinstance(ocr_field, ScalarField) and ocr_field.is_numeric:
        return Money(amount=float(ocr_field.value))

    text = field_content(ocr_field)

    if isinstance(ocr_field, StructuredMoneyField) and ocr_field.amount is not None:
        if text and _RUPIAH in text:
            return _parse_rupiah(text)
        return Money(
            amount=ocr_field.amount,
            currency=Currency(symbol=ocr_field.currency_symbol, code=ocr_field.currency_code),
        )

    if not text:
        return Money.empty()
    if _RUPIAH in text:
        return _parse_rupiah(text)

    amount = _leading_float(_NON_NUMERIC.sub("", text))
    if amount is None:
        logger.debug(f"Could not parse amount from '{text}'")
        return Money.empty()

    symbol_match = _LEADING_SYMBOL.match(text)
    symbol = symbol_match.group(1).strip() if symbol_match else None
    return Money(amount=amount, currency=Currency(symbol=symbol or None))


def parse_numeric(raw: Any) -> float | None:
    """Parse a plain number (quantities and the like).

    Args:
        raw: Raw or classified field

    Returns:
        Parsed number, or None when missing or invalid
    """
    ocr_field = classify_field(raw)
    if isinstance(ocr_field, ScalarField) and ocr_field.is_numeric:
        return float(ocr_field.value)

    text = field_content(ocr_field)
    if not text:
        return None
    return _leading_float(_NON_NUMERIC.sub("", text))


def payment_term_days(payment_terms: str | None, default: int = DEFAULT_PAYMENT_DAYS) -> int:
    """Extract the day count from free-text payment terms.

    Tries ``net N``, then ``N day(s)`` / ``Nd``, then a bare integer.
    Non-positive or missing values fall back to ``default``.
    """
    if not payment_terms:
        return default

    for pattern in (_NET_TERMS, _DAY_TERMS, _BARE_TERMS):
        match = pattern.search(payment_terms)
        if match:
            days = int(match.group(1))
            return days if days > 0 else default
    return default


def calculate_due_date(
    document_date: date, payment_terms: str | None, default_days: int = DEFAULT_PAYMENT_DAYS
) -> date:
    """Due date derived from the document date and payment terms.

    Args:
        document_date: Date the document was issued
        payment_terms: Free-text payment terms (e.g. "Net 30", "14 days")
        default_days: Term applied when none can be read

    Returns:
        document_date plus the payment term
    """
    return document_date + timedelta(days=payment_term_days(payment_terms, default_days))


def generate_partner_id(name: str | None) -> str:
    """URL-safe slug for a partner name, at most 44 characters.

    Args:
        name: Partner or vendor name

    Returns:
        Lowercase hyphenated slug, or "unknown-vendor" for empty input
    """
    if not name:
        return UNKNOWN_PARTNER_ID

    slug = re.sub(r"[^a-z0-9]", "-", name.lower())
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    return slug[:PARTNER_ID_MAX_LENGTH] or UNKNOWN_PARTNER_ID
