"""Fetch a source document (URL or local path) and return its plain text.

PDF bytes are converted with pdfplumber; anything else is decoded as text.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path

import httpx
import pdfplumber

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = (404, 410)


class DocumentFetchError(Exception):
    """Raised when a document cannot be fetched or read (possibly transient)."""


class DocumentNotFoundError(DocumentFetchError):
    """Raised when the source document does not exist."""


def _is_pdf(content: bytes, content_type: str = "", name: str = "") -> bool:
    return (
        content[:5] == b"%PDF-"
        or "application/pdf" in content_type.lower()
        or name.lower().endswith(".pdf")
    )


def pdf_bytes_to_text(content: bytes) -> str:
    """Concatenate the extracted text of every page, separated by blank lines."""
    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            pages = []
            for page in pdf.pages:
                try:
                    text = page.extract_text()
                except Exception:
                    text = ""
                pages.append(text or "")
    except Exception as e:
        raise DocumentFetchError(f"Could not parse PDF: {e}") from e
    return "\n\n".join(p for p in pages if p.strip())


class DocumentFetcher:
    """Read documents over HTTP(S) or from the local filesystem, truncated to max_chars."""

    def __init__(self, timeout: float = 30.0, max_chars: int = 60_000):
        self._timeout = timeout
        self._max_chars = max_chars

    def fetch(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            text = self._fetch_remote(url)
        else:
            text = self._read_local(url)
        if len(text) > self._max_chars:
            logger.info("Truncating document from %d to %d chars", len(text), self._max_chars)
            text = text[: self._max_chars]
        return text

    def _fetch_remote(self, url: str) -> str:
        try:
            with httpx.Client(follow_redirects=True, timeout=self._timeout) as client:
                response = client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code in _NOT_FOUND_CODES:
                raise DocumentNotFoundError(f"Document not found: {url}") from e
            raise DocumentFetchError(f"Fetching {url} failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise DocumentFetchError(f"Fetching {url} failed: {e}") from e

        content_type = response.headers.get("content-type", "")
        if _is_pdf(response.content, content_type, url.split("?", 1)[0]):
            return pdf_bytes_to_text(response.content)
        return response.text

    def _read_local(self, path_str: str) -> str:
        path = Path(path_str.removeprefix("file://"))
        if not path.exists():
            raise DocumentNotFoundError(f"Document not found: {path}")
        content = path.read_bytes()
        if _is_pdf(content, name=path.name):
            return pdf_bytes_to_text(content)
        return content.decode("utf-8", errors="replace")
