"""Error taxonomy for document ingestion.

Validation and not-found errors are raised synchronously to callers.
Provider and storage errors carry a stable, human-readable message so
they can be surfaced or logged without leaking provider internals.
"""


class DocumentProcessingError(Exception):
    """Base class for all document ingestion errors."""


class ValidationError(DocumentProcessingError):
    """Caller supplied missing or malformed input."""


class NotFoundError(DocumentProcessingError):
    """Requested document does not exist."""


class ForbiddenError(DocumentProcessingError):
    """Caller is not allowed to act on the requested document."""


class StorageError(DocumentProcessingError):
    """Object storage rejected an operation."""


class DocumentAnalysisError(DocumentProcessingError):
    """OCR provider failed to analyze a document.

    Attributes:
        status_code: HTTP status code reported by the provider, if any
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @classmethod
    def from_status(cls, status_code: int | None) -> "DocumentAnalysisError":
        """Build an error with the stable message for a provider status code.

        Args:
            status_code: HTTP status code from the provider

        Returns:
            DocumentAnalysisError with a user-facing message
        """
        if status_code == 503:
            message = "Service is temporarily unavailable. Please try again later."
        elif status_code == 409:
            message = "Conflict error occurred. Please check the document and try again."
        else:
            message = "Failed to process the document"
        return cls(message, status_code=status_code)


class PayloadTooLargeError(ValidationError):
    """Uploaded file exceeds the configured size limit."""


class UnsupportedFileTypeError(ValidationError):
    """Uploaded file is not a PDF (MIME type, extension or signature)."""


class EncryptedPdfError(ValidationError):
    """Uploaded PDF is password protected."""


class CorruptPdfError(ValidationError):
    """Uploaded PDF lacks the trailer, cross-reference or EOF structure."""
