"""Map OCR payloads into normalized invoice and purchase order records.

Structural problems with the payload (no documents, no field map, no
partner) are caller bugs and raise ``ValidationError``. Sparse or
malformed individual fields are expected and degrade to defaults.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date
from typing import Any

from services.normalization.entities import EntityExtractor
from services.normalization.fields import (
    DEFAULT_PAYMENT_DAYS,
    calculate_due_date,
    field_content,
    first_content,
    parse_currency,
    parse_date,
)
from services.normalization.schema import (
    Currency,
    DocumentStatus,
    DocumentType,
    Money,
    NormalizedDocument,
)
from services.shared.errors import ValidationError

logger = logging.getLogger(__name__)


def _first_present(fields: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if fields.get(name) is not None:
            return fields[name]
    return None


def extract_fields(ocr_payload: Any) -> Mapping[str, Any]:
    """Field map of the first analyzed document.

    Args:
        ocr_payload: ``{"documents": [{"fields": {...}}]}``

    Returns:
        Field name to raw field mapping

    Raises:
        ValidationError: If the payload has no documents or no field map
    """
    if not isinstance(ocr_payload, Mapping):
        raise ValidationError("Invalid OCR result format")

    documents = ocr_payload.get("documents")
    if not isinstance(documents, list) or not documents:
        raise ValidationError("Invalid OCR result format: no documents")

    fields = documents[0].get("fields") if isinstance(documents[0], Mapping) else None
    if not isinstance(fields, Mapping):
        raise ValidationError("Invalid OCR result format: document has no fields")
    return fields


def resolve_currency(*amounts: Money) -> Currency:
    """First non-empty currency in precedence order."""
    for money in amounts:
        if not money.currency.is_empty:
            return money.currency
    return Currency()


class DocumentMapper(ABC):
    """Base mapper shared by the invoice and purchase order variants.

    Subclasses only decide which provider fields hold the document number,
    dates and cross-reference.
    """

    document_type: DocumentType

    def __init__(
        self,
        entity_extractor: EntityExtractor | None = None,
        default_payment_days: int = DEFAULT_PAYMENT_DAYS,
    ) -> None:
        self.entities = entity_extractor or EntityExtractor()
        self.default_payment_days = default_payment_days

    @abstractmethod
    def _header(self, fields: Mapping[str, Any]) -> tuple[str | None, date, date | None, str | None]:
        """Document number, document date, provider due date, cross-reference."""

    def map(self, ocr_payload: Any, partner_id: str | None) -> NormalizedDocument:
        """Produce a normalized document from an OCR payload.

        Args:
            ocr_payload: Raw OCR result (``{"documents": [{"fields": ...}]}``)
            partner_id: Identifier of the uploading partner

        Returns:
            Normalized document record

        Raises:
            ValidationError: If the payload shape is invalid or partner_id is empty
        """
        fields = extract_fields(ocr_payload)
        if not partner_id:
            raise ValidationError("Partner ID is required")

        number, document_date, due_date, reference = self._header(fields)

        total = parse_currency(_first_present(fields, "InvoiceTotal", "Total"))
        subtotal = parse_currency(fields.get("SubTotal"))
        discount = parse_currency(_first_present(fields, "TotalDiscount", "Discount"))
        tax = parse_currency(_first_present(fields, "TotalTax", "Tax"))

        subtotal_amount = subtotal.amount if subtotal.amount is not None else total.amount
        payment_terms = field_content(fields.get("PaymentTerm"))

        if due_date is None:
            due_date = calculate_due_date(document_date, payment_terms, self.default_payment_days)

        document = NormalizedDocument(
            document_type=self.document_type,
            document_number=number,
            document_date=document_date,
            due_date=due_date,
            reference_number=reference,
            total_amount=total.amount,
            subtotal_amount=subtotal_amount,
            discount_amount=discount.amount,
            tax_amount=tax.amount,
            currency=resolve_currency(total, subtotal, discount, tax),
            payment_terms=payment_terms,
            partner_id=partner_id,
            status=DocumentStatus.ANALYZED,
            customer=self.entities.extract_customer(fields),
            vendor=self.entities.extract_vendor(fields),
            items=tuple(self.entities.extract_line_items(fields.get("Items"))),
        )

        logger.debug(f"Mapped {self.document_type.value}: {document.summary()}")
        return document


class InvoiceMapper(DocumentMapper):
    """Maps prebuilt-invoice results into invoice records."""

    document_type = DocumentType.INVOICE

    def _header(self, fields: Mapping[str, Any]) -> tuple[str | None, date, date | None, str | None]:
        return (
            field_content(fields.get("InvoiceId")),
            parse_date(fields.get("InvoiceDate")),
            parse_date(fields.get("DueDate"), optional=True),
            field_content(fields.get("PurchaseOrder")),
        )


class PurchaseOrderMapper(DocumentMapper):
    """Maps analyzed purchase orders into purchase order records."""

    document_type = DocumentType.PURCHASE_ORDER

    def _header(self, fields: Mapping[str, Any]) -> tuple[str | None, date, date | None, str | None]:
        return (
            first_content(fields.get("PurchaseOrder"), fields.get("PONumber")),
            parse_date(_first_present(fields, "InvoiceDate", "PODate")),
            parse_date(_first_present(fields, "DueDate", "DeliveryDate"), optional=True),
            field_content(fields.get("InvoiceId")),
        )


_MAPPERS: dict[DocumentType, type[DocumentMapper]] = {
    DocumentType.INVOICE: InvoiceMapper,
    DocumentType.PURCHASE_ORDER: PurchaseOrderMapper,
}


def create_mapper(
    document_type: DocumentType, default_payment_days: int = DEFAULT_PAYMENT_DAYS
) -> DocumentMapper:
    """Mapper for the given document type.

    Args:
        document_type: Invoice or purchase order
        default_payment_days: Payment term applied when none can be read

    Returns:
        Configured mapper instance
    """
    return _MAPPERS[DocumentType(document_type)](default_payment_days=default_payment_days)
