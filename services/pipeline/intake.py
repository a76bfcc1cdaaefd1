"""File intake shared by the invoice and purchase order pipelines.

Validates an upload and stores the original bytes before any record is
created. Failures here abort acceptance entirely.

PDF checks run in this order:
1. MIME type, extension and ``%PDF-`` signature
2. Encryption (``/Encrypt`` near the end of the file)
3. Structure (trailer, xref table, ``startxref`` offset, ``%%EOF``)
"""

import asyncio
import logging
import re
from pathlib import Path

from services.normalization.fields import generate_partner_id
from services.shared.errors import (
    CorruptPdfError,
    EncryptedPdfError,
    PayloadTooLargeError,
    StorageError,
    UnsupportedFileTypeError,
    ValidationError,
)
from services.storage.service import ObjectStore

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
PDF_EXTENSION = ".pdf"
PDF_SIGNATURE = b"%PDF-"
# The trailer dictionary sits at the end of the file
ENCRYPTION_SCAN_BYTES = 8192

_STRUCTURE_MARKERS = (b"trailer", b"xref", b"startxref", b"%%EOF")
_STARTXREF_OFFSET = re.compile(rb"startxref\s*(\d+)")
_OBJECT_HEADER = re.compile(rb"\d{1,10} \d{1,10} obj")


def is_pdf_encrypted(content: bytes) -> bool:
    """Check whether the PDF trailer references an encryption dictionary."""
    return b"/Encrypt" in content[-ENCRYPTION_SCAN_BYTES:]


def check_pdf_integrity(content: bytes) -> bool:
    """Check that a PDF has the structure a reader needs to open it.

    The file must contain a trailer, an xref table, a ``startxref`` offset
    placed before the last ``%%EOF`` marker, and at least one indirect
    object header.

    Args:
        content: PDF bytes

    Returns:
        True if the structure is complete
    """
    if not content or not all(marker in content for marker in _STRUCTURE_MARKERS):
        return False

    startxref_section = content[content.rfind(b"startxref") : content.rfind(b"%%EOF")]
    if _STARTXREF_OFFSET.search(startxref_section) is None:
        return False
    return _OBJECT_HEADER.search(content) is not None


def validate_pdf(content: bytes, filename: str, content_type: str | None = None) -> None:
    """Reject uploads that are not readable, unencrypted PDFs.

    Args:
        content: Uploaded bytes
        filename: Original filename
        content_type: MIME type declared by the client, if known

    Raises:
        UnsupportedFileTypeError: If the MIME type, extension or signature is wrong
        EncryptedPdfError: If the PDF is encrypted
        CorruptPdfError: If the PDF structure is incomplete
    """
    if content_type is not None and content_type != PDF_MIME_TYPE:
        raise UnsupportedFileTypeError("File format is not PDF")
    if Path(filename).suffix.lower() != PDF_EXTENSION:
        raise UnsupportedFileTypeError("File format is not PDF")
    if not content.startswith(PDF_SIGNATURE):
        raise UnsupportedFileTypeError("File format is not PDF")
    if is_pdf_encrypted(content):
        raise EncryptedPdfError("PDF is encrypted")
    if not check_pdf_integrity(content):
        raise CorruptPdfError("PDF file is invalid")


class FileIntake:
    """Validation and storage of uploaded documents."""

    def __init__(self, store: ObjectStore, max_size_bytes: int) -> None:
        """Initialize intake.

        Args:
            store: Object store receiving the original files
            max_size_bytes: Largest accepted upload
        """
        self.store = store
        self.max_size_bytes = max_size_bytes

    def validate(
        self,
        content: bytes | None,
        partner_id: str | None,
        filename: str | None,
        content_type: str | None = None,
    ) -> None:
        """Check an upload before anything is stored.

        Args:
            content: Uploaded bytes
            partner_id: Uploading partner
            filename: Original filename
            content_type: MIME type declared by the client, if known

        Raises:
            ValidationError: If the file, filename or partner is missing, or
                the file is not a valid PDF (see ``validate_pdf``)
            PayloadTooLargeError: If the file exceeds the size limit
        """
        if content is None:
            raise ValidationError("File not found")
        if not content:
            raise ValidationError("Invalid file: empty or missing content")
        if not filename:
            raise ValidationError("Invalid file: missing filename")
        if not partner_id:
            raise ValidationError("Partner ID is required")
        if len(content) > self.max_size_bytes:
            raise PayloadTooLargeError("File size exceeds maximum limit")
        validate_pdf(content, filename, content_type)

    async def store_file(self, content: bytes, filename: str, partner_id: str) -> str:
        """Store the original document under the partner's prefix.

        Args:
            content: Document bytes
            filename: Original filename
            partner_id: Uploading partner

        Returns:
            URL of the stored file

        Raises:
            StorageError: If the object store rejects the upload
        """
        try:
            return await asyncio.to_thread(
                self.store.put_file, content, filename, generate_partner_id(partner_id)
            )
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Error uploading {filename} to storage: {e}")
            raise StorageError("Failed to upload file to storage") from e
