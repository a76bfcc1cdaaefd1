"""Composite entity extraction: customer, vendor and line items.

Each attribute reads an ordered fallback chain of provider field names and
takes the first one with content.
"""

import logging
from collections.abc import Mapping
from typing import Any

from services.normalization.fields import (
    RepeatedField,
    classify_field,
    field_content,
    first_content,
    parse_currency,
    parse_numeric,
)
from services.normalization.schema import LineItem, PartyData

logger = logging.getLogger(__name__)

Fields = Mapping[str, Any]


class EntityExtractor:
    """Builds parties and line items out of an OCR field map."""

    CUSTOMER_NAME = ("CustomerName", "BillingAddressRecipient")
    CUSTOMER_ADDRESS = ("CustomerAddress", "BillingAddress", "ShippingAddress")
    CUSTOMER_RECIPIENT = ("CustomerAddressRecipient", "CustomerName")
    CUSTOMER_TAX_ID = ("CustomerTaxId", "VatNumber", "TaxId")

    VENDOR_NAME = ("VendorName",)
    VENDOR_ADDRESS = ("VendorAddress",)
    VENDOR_RECIPIENT = ("VendorAddressRecipient", "VendorName")
    VENDOR_TAX_ID = ("VendorTaxId", "VendorVatNumber", "SupplierTaxId")

    ITEM_DESCRIPTION = ("Description", "ProductName", "ProductCode")
    ITEM_PRODUCT_CODE = ("ProductCode", "ItemCode")
    ITEM_UNIT_PRICE = ("UnitPrice", "Price")
    ITEM_AMOUNT = ("Amount", "LineTotal")

    @staticmethod
    def _first(fields: Fields, names: tuple[str, ...]) -> str | None:
        return first_content(*(fields.get(name) for name in names))

    @staticmethod
    def _first_present(fields: Fields, names: tuple[str, ...]) -> Any:
        for name in names:
            if fields.get(name) is not None:
                return fields[name]
        return None

    def extract_customer(self, fields: Fields) -> PartyData:
        """Customer details from the field map."""
        return PartyData(
            name=self._first(fields, self.CUSTOMER_NAME),
            address=field_content(self._first_present(fields, self.CUSTOMER_ADDRESS)),
            recipient_name=self._first(fields, self.CUSTOMER_RECIPIENT),
            tax_id=self._first(fields, self.CUSTOMER_TAX_ID),
        )

    def extract_vendor(self, fields: Fields) -> PartyData:
        """Vendor details from the field map."""
        return PartyData(
            name=self._first(fields, self.VENDOR_NAME),
            address=self._first(fields, self.VENDOR_ADDRESS),
            recipient_name=self._first(fields, self.VENDOR_RECIPIENT),
            tax_id=self._first(fields, self.VENDOR_TAX_ID),
        )

    def extract_line_items(self, items_field: Any) -> list[LineItem]:
        """Line items from the provider's items field.

        Supports the repeated-group shape and the legacy
        ``valueArray``/``valueObject`` shape. When no structured items are
        present, the raw text of the field becomes a single item.

        Args:
            items_field: Raw ``Items`` field (may be absent)

        Returns:
            Extracted line items, empty when the field has nothing usable
        """
        ocr_field = classify_field(items_field)
        if ocr_field is None:
            return []

        if isinstance(ocr_field, RepeatedField) and ocr_field.items:
            return [self._line_item(entry) for entry in ocr_field.items]

        content = field_content(ocr_field)
        if content:
            logger.debug("Items field has no structured entries, using raw content")
            return [LineItem(description=content)]
        return []

    def _line_item(self, entry: Fields) -> LineItem:
        return LineItem(
            description=self._first(entry, self.ITEM_DESCRIPTION),
            quantity=parse_numeric(entry.get("Quantity")),
            unit=field_content(entry.get("Unit")),
            unit_price=parse_currency(self._first_present(entry, self.ITEM_UNIT_PRICE)).amount,
            amount=parse_currency(self._first_present(entry, self.ITEM_AMOUNT)).amount,
            product_code=self._first(entry, self.ITEM_PRODUCT_CODE),
        )
