"""Normalized financial document models.

Canonical, locale-independent records produced from an OCR payload.
"""

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DocumentStatus(str, Enum):
    """Lifecycle status of a persisted document."""

    PROCESSING = "Processing"
    ANALYZED = "Analyzed"
    FAILED = "Failed"


class DocumentType(str, Enum):
    """Supported financial document types."""

    INVOICE = "Invoice"
    PURCHASE_ORDER = "PurchaseOrder"


class Currency(BaseModel):
    """Currency attached to a monetary amount."""

    model_config = ConfigDict(frozen=True)

    symbol: str | None = None
    code: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.symbol is None and self.code is None


class Money(BaseModel):
    """Monetary amount with its currency.

    A missing amount never carries a currency.
    """

    model_config = ConfigDict(frozen=True)

    amount: float | None = None
    currency: Currency = Field(default_factory=Currency)

    @model_validator(mode="before")
    @classmethod
    def _drop_currency_without_amount(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("amount") is None:
            return {**data, "currency": Currency()}
        return data

    @classmethod
    def empty(cls) -> "Money":
        return cls()


class PartyData(BaseModel):
    """Customer or vendor details extracted from a document."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    address: str | None = None
    recipient_name: str | None = None
    tax_id: str | None = None

    @property
    def is_present(self) -> bool:
        """A party without a name is treated as no party at all."""
        return bool(self.name)

    def lookup_attributes(self) -> dict[str, str]:
        """Attributes used to find an existing party record."""
        attrs = {"name": self.name or ""}
        if self.tax_id:
            attrs["tax_id"] = self.tax_id
        if self.address:
            attrs["address"] = self.address
        return attrs


class LineItem(BaseModel):
    """Single line of a document."""

    model_config = ConfigDict(frozen=True)

    description: str | None = None
    quantity: float | None = None
    unit: str | None = None
    unit_price: float | None = None
    amount: float | None = None
    product_code: str | None = None


class NormalizedDocument(BaseModel):
    """Canonical invoice or purchase order record.

    Built once per processing run and never mutated afterwards. Persistence
    column names differ per document type, see ``to_record``.
    """

    model_config = ConfigDict(frozen=True)

    document_type: DocumentType
    document_number: str | None = None
    document_date: date
    due_date: date
    reference_number: str | None = None

    total_amount: float | None = None
    subtotal_amount: float | None = None
    discount_amount: float | None = None
    tax_amount: float | None = None
    currency: Currency = Field(default_factory=Currency)

    payment_terms: str | None = None
    partner_id: str
    status: DocumentStatus = DocumentStatus.ANALYZED

    customer: PartyData = Field(default_factory=PartyData)
    vendor: PartyData = Field(default_factory=PartyData)
    items: tuple[LineItem, ...] = ()

    def to_record(self) -> dict[str, Any]:
        """Flatten into the persisted column layout for this document type.

        Returns:
            Column name to value mapping (parties and items excluded)
        """
        if self.document_type is DocumentType.INVOICE:
            header = {
                "invoice_number": self.document_number,
                "invoice_date": self.document_date,
                "purchase_order_id": self.reference_number,
            }
        else:
            header = {
                "po_number": self.document_number,
                "po_date": self.document_date,
                "invoice_id": self.reference_number,
            }

        return {
            **header,
            "due_date": self.due_date,
            "total_amount": self.total_amount,
            "subtotal_amount": self.subtotal_amount,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "currency_symbol": self.currency.symbol,
            "currency_code": self.currency.code,
            "payment_terms": self.payment_terms,
            "partner_id": self.partner_id,
            "status": self.status.value,
        }

    def summary(self) -> dict[str, Any]:
        """Short description used in processing logs."""
        return {
            "number": self.document_number,
            "date": self.document_date.isoformat(),
            "total": self.total_amount,
            "customer": self.customer.name,
            "vendor": self.vendor.name,
            "items": len(self.items),
        }
