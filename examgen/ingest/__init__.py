"""Source document retrieval."""

from examgen.ingest.document_fetcher import (
    DocumentFetcher,
    DocumentFetchError,
    DocumentNotFoundError,
    pdf_bytes_to_text,
)

__all__ = ["DocumentFetchError", "DocumentFetcher", "DocumentNotFoundError", "pdf_bytes_to_text"]
