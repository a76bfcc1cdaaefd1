"""Unit tests for invoice and purchase order mapping.

Tests cover:
- Payload validation
- End-to-end invoice normalization
- Purchase order field variants
- Due date and currency fallbacks
"""

from datetime import date, timedelta
from typing import Any

import pytest

from services.normalization.mapper import (
    InvoiceMapper,
    PurchaseOrderMapper,
    create_mapper,
    extract_fields,
)
from services.normalization.schema import DocumentStatus, DocumentType
from services.shared.errors import ValidationError


def payload_with(fields: dict[str, Any]) -> dict[str, Any]:
    return {"documents": [{"fields": fields}]}


class TestPayloadValidation:
    """Test structural validation of OCR payloads."""

    @pytest.mark.parametrize(
        "payload",
        [None, [], {}, {"documents": []}, {"documents": None}, {"documents": [{}]}, {"documents": ["x"]}],
    )
    def test_invalid_payload(self, payload: Any) -> None:
        """Should reject payloads without a document field map."""
        with pytest.raises(ValidationError):
            extract_fields(payload)

    def test_missing_partner(self, invoice_payload: dict[str, Any]) -> None:
        """Should require a partner id."""
        with pytest.raises(ValidationError, match="Partner ID is required"):
            InvoiceMapper().map(invoice_payload, None)

    def test_empty_fields_are_valid(self) -> None:
        """Should map a document with no recognized fields."""
        document = InvoiceMapper().map(payload_with({}), "partner-1")

        assert document.document_number is None
        assert document.document_date == date.today()
        assert document.due_date == date.today() + timedelta(days=30)
        assert document.total_amount is None
        assert document.items == ()


class TestInvoiceMapper:
    """Test invoice normalization."""

    def test_end_to_end(self, invoice_payload: dict[str, Any]) -> None:
        """Should normalize header, totals, parties and items."""
        document = InvoiceMapper().map(invoice_payload, "partner-1")

        assert document.document_type is DocumentType.INVOICE
        assert document.document_number == "INV-1001"
        assert document.reference_number == "PO-77"
        assert document.document_date == date(2023, 5, 15)
        assert document.due_date == date(2023, 6, 15)
        assert document.total_amount == 110.0
        assert document.subtotal_amount == 100.0
        assert document.tax_amount == 5.0
        assert document.discount_amount is None
        assert document.currency.symbol == "$"
        assert document.currency.code == "USD"
        assert document.payment_terms == "Net 30"
        assert document.partner_id == "partner-1"
        assert document.status is DocumentStatus.ANALYZED
        assert document.customer.name == "Globex Inc"
        assert document.vendor.name == "Acme Corp Ltd."
        assert [item.description for item in document.items] == ["Widget", "Gadget"]

    def test_record_columns(self, invoice_payload: dict[str, Any]) -> None:
        """Should flatten into invoice columns."""
        record = InvoiceMapper().map(invoice_payload, "partner-1").to_record()

        assert record["invoice_number"] == "INV-1001"
        assert record["invoice_date"] == date(2023, 5, 15)
        assert record["purchase_order_id"] == "PO-77"
        assert record["currency_code"] == "USD"
        assert record["status"] == "Analyzed"
        assert "po_number" not in record

    def test_due_date_from_terms(self) -> None:
        """Should derive the due date from payment terms when none is given."""
        document = InvoiceMapper().map(
            payload_with({"InvoiceDate": {"content": "2023-01-10"}, "PaymentTerm": {"content": "Net 15"}}),
            "partner-1",
        )
        assert document.due_date == date(2023, 1, 25)

    def test_configured_default_term(self) -> None:
        """Should use the configured default term without payment terms."""
        mapper = InvoiceMapper(default_payment_days=7)
        document = mapper.map(payload_with({"InvoiceDate": {"content": "2023-01-10"}}), "partner-1")
        assert document.due_date == date(2023, 1, 17)

    def test_subtotal_falls_back_to_total(self) -> None:
        """Should use the total when no subtotal is present."""
        document = InvoiceMapper().map(payload_with({"Total": {"content": "€42.00"}}), "partner-1")

        assert document.total_amount == 42.0
        assert document.subtotal_amount == 42.0
        assert document.currency.symbol == "€"

    def test_currency_from_first_non_empty_amount(self) -> None:
        """Should take the currency from the first amount that has one."""
        document = InvoiceMapper().map(
            payload_with({"InvoiceTotal": {"value": 10}, "SubTotal": {"content": "£8.00"}}),
            "partner-1",
        )
        assert document.currency.symbol == "£"


class TestPurchaseOrderMapper:
    """Test purchase order normalization."""

    def test_end_to_end(self, purchase_order_payload: dict[str, Any]) -> None:
        """Should read PO numbers, Rupiah totals and derived due dates."""
        document = PurchaseOrderMapper().map(purchase_order_payload, "partner-2")

        assert document.document_type is DocumentType.PURCHASE_ORDER
        assert document.document_number == "PO-2024-01"
        assert document.reference_number == "INV-9"
        assert document.document_date == date(2024, 3, 1)
        assert document.due_date == date(2024, 3, 15)
        assert document.total_amount == 1500000.0
        assert document.subtotal_amount == 1500000.0
        assert document.currency.symbol == "Rp"
        assert document.currency.code == "IDR"
        assert document.vendor.name == "PT Maju Jaya"
        assert document.customer.is_present is False

    def test_record_columns(self, purchase_order_payload: dict[str, Any]) -> None:
        """Should flatten into purchase order columns."""
        record = PurchaseOrderMapper().map(purchase_order_payload, "partner-2").to_record()

        assert record["po_number"] == "PO-2024-01"
        assert record["po_date"] == date(2024, 3, 1)
        assert record["invoice_id"] == "INV-9"
        assert "invoice_number" not in record

    def test_alternate_field_names(self) -> None:
        """Should fall back to PONumber, PODate and DeliveryDate."""
        document = PurchaseOrderMapper().map(
            payload_with(
                {
                    "PONumber": {"content": "PO-5"},
                    "PODate": {"content": "2024-02-01"},
                    "DeliveryDate": {"content": "2024-02-20"},
                }
            ),
            "partner-2",
        )

        assert document.document_number == "PO-5"
        assert document.document_date == date(2024, 2, 1)
        assert document.due_date == date(2024, 2, 20)


class TestCreateMapper:
    """Test mapper factory."""

    def test_create_invoice_mapper(self) -> None:
        """Should create an invoice mapper."""
        assert isinstance(create_mapper(DocumentType.INVOICE), InvoiceMapper)

    def test_create_purchase_order_mapper(self) -> None:
        """Should accept the enum value and pass the default term."""
        mapper = create_mapper("PurchaseOrder", default_payment_days=45)  # type: ignore[arg-type]

        assert isinstance(mapper, PurchaseOrderMapper)
        assert mapper.default_payment_days == 45
