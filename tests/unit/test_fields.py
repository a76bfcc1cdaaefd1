"""Unit tests for OCR field parsing.

Tests cover:
- Field shape classification
- Text content extraction
- Date parsing and fallbacks
- Currency and numeric parsing (including Rupiah)
- Due date calculation and partner slugs
"""

from datetime import date

import pytest

from services.normalization.fields import (
    EmptyField,
    NestedTextField,
    RepeatedField,
    ScalarField,
    StructuredMoneyField,
    TextField,
    calculate_due_date,
    classify_field,
    field_content,
    first_content,
    generate_partner_id,
    parse_currency,
    parse_date,
    parse_numeric,
    payment_term_days,
)


class TestClassifyField:
    """Test raw field classification."""

    def test_missing_field(self) -> None:
        """Should return None for an absent field."""
        assert classify_field(None) is None

    def test_content_only(self) -> None:
        """Should classify plain content as text."""
        assert classify_field({"content": "INV-1"}) == TextField(content="INV-1")

    def test_scalar_value(self) -> None:
        """Should classify numeric and string values as scalars."""
        assert classify_field({"value": 42}) == ScalarField(value=42)
        assert classify_field({"value": "abc", "content": "abc"}) == ScalarField(
            value="abc", content="abc"
        )

    def test_nested_text(self) -> None:
        """Should classify value objects with text."""
        assert classify_field({"value": {"text": "hello"}}) == NestedTextField(text="hello")

    def test_structured_money(self) -> None:
        """Should classify value objects with an amount as money."""
        result = classify_field(
            {"value": {"amount": 110, "currencySymbol": "$", "currencyCode": "USD"}}
        )
        assert result == StructuredMoneyField(amount=110.0, currency_symbol="$", currency_code="USD")

    def test_azure_currency(self) -> None:
        """Should classify Azure valueCurrency fields as money."""
        result = classify_field({"valueCurrency": {"amount": 5.5, "currencyCode": "EUR"}, "content": "5,50 €"})
        assert isinstance(result, StructuredMoneyField)
        assert result.amount == 5.5
        assert result.currency_code == "EUR"

    def test_azure_typed_scalars(self) -> None:
        """Should read Azure typed keys as scalars."""
        assert classify_field({"valueNumber": 3}) == ScalarField(value=3)
        assert classify_field({"valueDate": "2023-05-15"}) == ScalarField(value="2023-05-15")

    def test_repeated_values(self) -> None:
        """Should read values/properties as repeated entries."""
        result = classify_field({"values": [{"properties": {"Description": {"content": "A"}}}]})
        assert isinstance(result, RepeatedField)
        assert result.legacy is False
        assert result.items[0]["Description"] == {"content": "A"}

    def test_repeated_legacy(self) -> None:
        """Should read valueArray/valueObject as legacy repeated entries."""
        result = classify_field({"valueArray": [{"valueObject": {"Amount": {"value": 1}}}]})
        assert isinstance(result, RepeatedField)
        assert result.legacy is True

    def test_unusable_field(self) -> None:
        """Should classify fields without a usable value as empty."""
        assert classify_field({"confidence": 0.4}) == EmptyField()
        assert classify_field(12) == EmptyField()


class TestFieldContent:
    """Test textual content extraction."""

    def test_content_preferred(self) -> None:
        """Should prefer content over value."""
        assert field_content({"content": "from content", "value": "from value"}) == "from content"

    def test_newlines_replaced(self) -> None:
        """Should collapse line breaks into spaces and trim."""
        assert field_content({"content": "  123 Main St\r\nSpringfield \n"}) == "123 Main St Springfield"

    def test_value_fallback(self) -> None:
        """Should fall back to string value then nested text."""
        assert field_content({"value": "Acme"}) == "Acme"
        assert field_content({"value": {"text": "Nested"}}) == "Nested"

    def test_empty_content_falls_through(self) -> None:
        """Should use the value when content is blank."""
        assert field_content({"content": "   ", "value": "Acme"}) == "Acme"

    def test_numeric_value_has_no_content(self) -> None:
        """Should not stringify numeric values."""
        assert field_content({"value": 42}) is None

    def test_first_content(self) -> None:
        """Should return the first non-empty field in a chain."""
        assert first_content(None, {"content": ""}, {"content": "Third"}) == "Third"
        assert first_content(None, {}) is None


class TestParseDate:
    """Test date parsing."""

    @pytest.mark.parametrize(
        ("content", "expected"),
        [
            ("15/05/23", date(2023, 5, 15)),
            ("15/05/2023", date(2023, 5, 15)),
            ("2023-05-15", date(2023, 5, 15)),
            ("01/02/49", date(2049, 2, 1)),
            ("01/02/50", date(1950, 2, 1)),
        ],
    )
    def test_supported_formats(self, content: str, expected: date) -> None:
        """Should parse day-first and ISO dates."""
        assert parse_date({"content": content}) == expected

    def test_generic_format(self) -> None:
        """Should parse other common formats."""
        assert parse_date({"content": "May 15, 2023"}) == date(2023, 5, 15)

    def test_missing_date_uses_today(self) -> None:
        """Should substitute today for a missing required date."""
        assert parse_date(None) == date.today()

    def test_missing_optional_date(self) -> None:
        """Should return None for a missing optional date."""
        assert parse_date({"content": ""}, optional=True) is None

    def test_invalid_date_uses_today(self, caplog: pytest.LogCaptureFixture) -> None:
        """Should substitute today and warn for unparseable dates."""
        assert parse_date({"content": "not a date"}) == date.today()
        assert "Invalid date format" in caplog.text

    def test_impossible_day_uses_today(self) -> None:
        """Should not raise for out-of-range days."""
        assert parse_date({"content": "31/02/2023"}) == date.today()


class TestParseCurrency:
    """Test monetary parsing."""

    def test_numeric_value(self) -> None:
        """Should use numeric values directly without a currency."""
        money = parse_currency({"value": 42})
        assert money.amount == 42.0
        assert money.currency.is_empty

    @pytest.mark.parametrize(("content", "symbol"), [("$123.45", "$"), ("£123.45", "£")])
    def test_symbol_prefix(self, content: str, symbol: str) -> None:
        """Should read the amount and leading symbol."""
        money = parse_currency({"content": content})
        assert money.amount == 123.45
        assert money.currency.symbol == symbol
        assert money.currency.code is None

    def test_digits_without_symbol(self) -> None:
        """Should parse the amount and leave the symbol empty."""
        money = parse_currency({"content": "123.45 EUR"})
        assert money.amount == 123.45
        assert money.currency.symbol is None

    def test_unparseable_text(self) -> None:
        """Should return an empty amount for text without digits."""
        money = parse_currency({"content": "abc"})
        assert money.amount is None
        assert money.currency.is_empty

    def test_missing_field(self) -> None:
        """Should return an empty amount for a missing field."""
        assert parse_currency(None).amount is None

    def test_structured_money(self) -> None:
        """Should use structured amount and currency as-is."""
        money = parse_currency(
            {"value": {"amount": 110.0, "currencySymbol": "$", "currencyCode": "USD"}, "content": "$110.00"}
        )
        assert money.amount == 110.0
        assert money.currency.symbol == "$"
        assert money.currency.code == "USD"

    def test_rupiah_overrides_structured_value(self) -> None:
        """Should re-parse Rupiah text with dot thousands."""
        money = parse_currency(
            {"value": {"amount": 67.998, "currencySymbol": "$", "currencyCode": "USD"}, "content": "Rp67.998"}
        )
        assert money.amount == 67998.0
        assert money.currency.symbol == "Rp"
        assert money.currency.code == "IDR"

    def test_rupiah_decimal_comma(self) -> None:
        """Should treat the comma as the decimal separator for Rupiah."""
        money = parse_currency({"content": "Rp 1.250.000,50"})
        assert money.amount == 1250000.5
        assert money.currency.code == "IDR"


class TestParseNumeric:
    """Test numeric parsing."""

    def test_numeric_value(self) -> None:
        """Should return numeric values directly."""
        assert parse_numeric({"value": 3}) == 3.0

    def test_text_value(self) -> None:
        """Should strip non-numeric characters from text."""
        assert parse_numeric({"content": "2 pcs"}) == 2.0

    def test_invalid(self) -> None:
        """Should return None for missing or invalid input."""
        assert parse_numeric(None) is None
        assert parse_numeric({"content": "n/a"}) is None


class TestDueDate:
    """Test payment terms and due date calculation."""

    @pytest.mark.parametrize(
        ("terms", "days"),
        [
            ("Net 30", 30),
            ("net 45", 45),
            ("Payment within 14 days", 14),
            ("10d", 10),
            ("60", 60),
            ("", 30),
            (None, 30),
            ("Due on receipt", 30),
            ("Net -10", 30),
            ("0 days", 30),
        ],
    )
    def test_payment_term_days(self, terms: str | None, days: int) -> None:
        """Should extract the day count or fall back to 30."""
        assert payment_term_days(terms) == days

    def test_calculate_due_date(self) -> None:
        """Should add the payment term to the document date."""
        assert calculate_due_date(date(2023, 5, 15), "Net 30") == date(2023, 6, 14)
        assert calculate_due_date(date(2023, 5, 15), None) == date(2023, 6, 14)

    def test_custom_default(self) -> None:
        """Should use the configured default term."""
        assert calculate_due_date(date(2023, 1, 1), "", default_days=10) == date(2023, 1, 11)


class TestGeneratePartnerId:
    """Test partner slug generation."""

    def test_slug(self) -> None:
        """Should lowercase and hyphenate names."""
        assert generate_partner_id("Acme Corp Ltd.") == "acme-corp-ltd"

    def test_collapses_separators(self) -> None:
        """Should collapse runs of separators."""
        assert generate_partner_id("  PT. Maju -- Jaya  ") == "pt-maju-jaya"

    @pytest.mark.parametrize("name", [None, "", "!!!"])
    def test_unknown(self, name: str | None) -> None:
        """Should fall back for empty names."""
        assert generate_partner_id(name) == "unknown-vendor"

    def test_max_length(self) -> None:
        """Should cap slugs at 44 characters."""
        assert len(generate_partner_id("a" * 100)) == 44
