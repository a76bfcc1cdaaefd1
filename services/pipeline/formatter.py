"""Caller-facing views of persisted documents."""

from typing import Any

from services.normalization.schema import DocumentStatus, DocumentType
from services.repositories.base import Record

PLACEHOLDER_MESSAGES = {
    DocumentStatus.PROCESSING.value: "Document is still being processed",
    DocumentStatus.FAILED.value: "Document processing failed",
}


def _party_details(party: Record | None) -> dict[str, Any]:
    if not party:
        return {"id": None, "name": None, "recipient_name": None, "address": "", "tax_id": None}
    return {
        "id": party.get("id"),
        "name": party.get("name"),
        "recipient_name": party.get("recipient_name"),
        "address": party.get("address") or "",
        "tax_id": party.get("tax_id"),
    }


def _items(items: list[Record] | None) -> list[dict[str, Any]]:
    return [
        {
            "amount": item.get("amount"),
            "description": item.get("description"),
            "quantity": item.get("quantity"),
            "unit": item.get("unit"),
            "unit_price": item.get("unit_price"),
        }
        for item in items or []
    ]


def _document_details(document_type: DocumentType, record: Record) -> tuple[str, dict[str, Any]]:
    if document_type is DocumentType.INVOICE:
        return "invoice_details", {
            "invoice_number": record.get("invoice_number"),
            "purchase_order_id": record.get("purchase_order_id"),
            "invoice_date": record.get("invoice_date"),
            "due_date": record.get("due_date"),
            "payment_terms": record.get("payment_terms"),
        }
    return "purchase_order_details", {
        "po_number": record.get("po_number"),
        "invoice_id": record.get("invoice_id"),
        "po_date": record.get("po_date"),
        "due_date": record.get("due_date"),
        "payment_terms": record.get("payment_terms"),
        "status": record.get("status"),
    }


def format_document(
    document_type: DocumentType,
    record: Record,
    items: list[Record] | None,
    customer: Record | None,
    vendor: Record | None,
) -> dict[str, Any]:
    """Full view of an analyzed document with its parties and items.

    Args:
        document_type: Invoice or purchase order
        record: Persisted document record
        items: Line items joined with their catalog descriptions
        customer: Linked customer record, if any
        vendor: Linked vendor record, if any

    Returns:
        ``{"data": {"documents": [{"header": ..., "items": [...]}]}}``
    """
    details_key, details = _document_details(DocumentType(document_type), record)
    formatted = {
        "header": {
            details_key: details,
            "vendor_details": _party_details(vendor),
            "customer_details": _party_details(customer),
            "financial_details": {
                "currency": {
                    "currency_symbol": record.get("currency_symbol"),
                    "currency_code": record.get("currency_code"),
                },
                "total_amount": record.get("total_amount"),
                "subtotal_amount": record.get("subtotal_amount"),
                "discount_amount": record.get("discount_amount"),
                "total_tax_amount": record.get("tax_amount"),
            },
            "partner_details": {"id": record.get("partner_id")},
            "file_details": {
                "original_filename": record.get("original_filename"),
                "file_size": record.get("file_size"),
                "file_url": record.get("file_url"),
            },
        },
        "items": _items(items),
    }
    return {"data": {"documents": [formatted]}}


def format_placeholder(record: Record) -> dict[str, Any]:
    """View returned while a document is not (or could not be) analyzed."""
    status = record.get("status")
    return {
        "id": record.get("id"),
        "status": status,
        "message": PLACEHOLDER_MESSAGES.get(status, "Document is not available"),
        "data": {"documents": []},
    }
