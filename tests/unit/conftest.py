"""Shared fixtures: OCR payloads, a minimal PDF and an in-process Redis."""

from typing import Any
from unittest.mock import MagicMock

import pytest

SAMPLE_PDF = (
    b"%PDF-1.4\n"
    b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
    b"2 0 obj\n<< /Type /Pages /Kids [] /Count 0 >>\nendobj\n"
    b"xref\n0 3\n0000000000 65535 f \n0000000009 00000 n \n0000000058 00000 n \n"
    b"trailer\n<< /Size 3 /Root 1 0 R >>\n"
    b"startxref\n110\n%%EOF\n"
)


def build_invoice_payload() -> dict[str, Any]:
    """Invoice analysis result covering parties, totals and two line items."""
    return {
        "documents": [
            {
                "fields": {
                    "InvoiceId": {"content": "INV-1001"},
                    "InvoiceDate": {"content": "15/05/2023"},
                    "DueDate": {"content": "2023-06-15"},
                    "PurchaseOrder": {"content": "PO-77"},
                    "PaymentTerm": {"content": "Net 30"},
                    "InvoiceTotal": {
                        "value": {"amount": 110.0, "currencySymbol": "$", "currencyCode": "USD"},
                        "content": "$110.00",
                    },
                    "SubTotal": {
                        "value": {"amount": 100.0, "currencySymbol": "$", "currencyCode": "USD"},
                        "content": "$100.00",
                    },
                    "TotalTax": {
                        "value": {"amount": 5.0, "currencySymbol": "$", "currencyCode": "USD"},
                        "content": "$5.00",
                    },
                    "CustomerName": {"content": "Globex Inc"},
                    "CustomerAddress": {"content": "1 Market St\nSpringfield"},
                    "CustomerTaxId": {"content": "GB123"},
                    "VendorName": {"content": "Acme Corp Ltd."},
                    "VendorAddress": {"content": "9 Industrial Way"},
                    "Items": {
                        "values": [
                            {
                                "properties": {
                                    "Description": {"content": "Widget"},
                                    "Quantity": {"value": 2},
                                    "UnitPrice": {"content": "$25.00"},
                                    "Amount": {"content": "$50.00"},
                                    "ProductCode": {"content": "W-1"},
                                }
                            },
                            {
                                "properties": {
                                    "Description": {"content": "Gadget"},
                                    "Quantity": {"value": 1},
                                    "Unit": {"content": "pcs"},
                                    "Amount": {"value": 50},
                                }
                            },
                        ]
                    },
                }
            }
        ]
    }


@pytest.fixture
def invoice_payload() -> dict[str, Any]:
    """Sample invoice OCR payload."""
    return build_invoice_payload()


@pytest.fixture
def purchase_order_payload() -> dict[str, Any]:
    """Purchase order analyzed with the invoice model."""
    return {
        "documents": [
            {
                "fields": {
                    "PurchaseOrder": {"content": "PO-2024-01"},
                    "InvoiceId": {"content": "INV-9"},
                    "InvoiceDate": {"content": "01/03/24"},
                    "PaymentTerm": {"content": "14 days"},
                    "Total": {"content": "Rp1.500.000"},
                    "VendorName": {"content": "PT Maju Jaya"},
                    "Items": {
                        "valueArray": [
                            {
                                "valueObject": {
                                    "ProductName": {"valueString": "Kopi"},
                                    "Quantity": {"valueNumber": 10},
                                    "Price": {"content": "Rp150.000"},
                                    "LineTotal": {"content": "Rp1.500.000"},
                                }
                            }
                        ]
                    },
                }
            }
        ]
    }


@pytest.fixture
def sample_pdf() -> bytes:
    """Smallest structurally complete, unencrypted PDF."""
    return SAMPLE_PDF


class FakeRedis:
    """Dict-backed stand-in for the arq Redis pool.

    Stores values as bytes like a client without ``decode_responses`` and
    records enqueued jobs instead of running them.
    """

    def __init__(self) -> None:
        self.values: dict[str, bytes] = {}
        self.lists: dict[str, list[bytes]] = {}
        self.jobs: list[tuple[str | None, str, dict[str, Any]]] = []
        self.closed = False

    @staticmethod
    def _encode(value: Any) -> bytes:
        return value.encode() if isinstance(value, str) else value

    async def get(self, key: str) -> bytes | None:
        return self.values.get(key)

    async def set(self, key: str, value: Any, nx: bool = False) -> bool | None:
        if nx and key in self.values:
            return None
        self.values[key] = self._encode(value)
        return True

    async def rpush(self, key: str, *values: Any) -> int:
        self.lists.setdefault(key, []).extend(self._encode(value) for value in values)
        return len(self.lists[key])

    async def lrange(self, key: str, start: int, end: int) -> list[bytes]:
        values = self.lists.get(key, [])
        return values[start:] if end == -1 else values[start : end + 1]

    async def enqueue_job(self, function: str, _job_id: str | None = None, **kwargs: Any) -> MagicMock | None:
        if _job_id is not None and any(job_id == _job_id for job_id, _, _ in self.jobs):
            return None
        self.jobs.append((_job_id, function, kwargs))
        return MagicMock(job_id=_job_id)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Empty in-process Redis."""
    return FakeRedis()
