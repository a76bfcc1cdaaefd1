"""Prometheus metrics for document processing.

Declared beside the pipeline so the API and the arq worker record the same
collectors without the worker importing the HTTP layer.
"""

from prometheus_client import Counter, Histogram

documents_submitted_total = Counter(
    "documents_submitted_total",
    "Total documents accepted for processing",
    ["document_type"],
)

document_processing_total = Counter(
    "document_processing_total",
    "Total background processing runs by outcome",
    ["document_type", "status"],  # Analyzed, Failed
)

document_upload_size_bytes = Histogram(
    "document_upload_size_bytes",
    "Document upload size in bytes",
    buckets=(1024, 10240, 102400, 1048576, 10485760, 20971520),  # 1KB to 20MB
)

ocr_processing_duration_seconds = Histogram(
    "ocr_processing_duration_seconds",
    "OCR analysis duration in seconds",
    ["document_type"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)
