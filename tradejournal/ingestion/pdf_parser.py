"""
PDF opening & text extraction via PyMuPDF (fitz).

Responsibilities
- Accept caller-supplied documents (path or in-memory bytes).
- Open them inside a scope that always releases the native document.
- Expose page count and per-page text as ``PageContent``.
"""

from __future__ import annotations

import hashlib
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Union

import fitz  # PyMuPDF

from tradejournal.ingestion.errors import DocumentParseError, PageReadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentFile:
    """A readable document as handed over by the caller (file picker, CLI …)."""

    name: str
    path: Path | None = None
    data: bytes | None = None
    password: str | None = None

    @classmethod
    def from_path(cls, path: Union[str, Path], password: str | None = None) -> "DocumentFile":
        path = Path(path)
        return cls(name=path.name, path=path, password=password)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, password: str | None = None) -> "DocumentFile":
        return cls(name=name, data=data, password=password)


DocumentInput = Union[DocumentFile, str, Path]


def as_document_file(source: DocumentInput) -> DocumentFile:
    if isinstance(source, DocumentFile):
        return source
    if isinstance(source, (str, Path)):
        return DocumentFile.from_path(source)
    raise TypeError(f"Unsupported document input: {type(source).__name__}")


@dataclass(frozen=True)
class PageContent:
    """Text extracted from one page (0-based ``page_index``)."""

    page_index: int
    text: str


class SourceDocument:
    """An open PDF. Only valid inside ``open_document``'s ``with`` block."""

    def __init__(self, name: str, doc: fitz.Document) -> None:
        self.name = name
        self._doc = doc

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def load_page(self, index: int) -> fitz.Page:
        """Return the native page, raising ``PageReadError`` on failure."""
        if not 0 <= index < self.page_count:
            raise PageReadError(
                f"{self.name}: page index {index} out of range (0..{self.page_count - 1})"
            )
        try:
            return self._doc.load_page(index)
        except (RuntimeError, ValueError) as exc:
            raise PageReadError(f"{self.name}: cannot load page {index}: {exc}") from exc

    def read_page(self, index: int) -> PageContent:
        page = self.load_page(index)
        try:
            raw = page.get_text("dict", flags=fitz.TEXT_PRESERVE_WHITESPACE)
        except (RuntimeError, ValueError) as exc:
            raise PageReadError(f"{self.name}: cannot extract text of page {index}: {exc}") from exc

        parts: list[str] = []
        for b in raw["blocks"]:
            if b["type"] != 0:  # image block
                continue
            for line in b.get("lines", []):
                for span in line.get("spans", []):
                    txt = span.get("text", "").strip()
                    if txt:
                        parts.append(txt)

        return PageContent(page_index=index, text=" ".join(parts))

    def __repr__(self) -> str:
        return f"SourceDocument({self.name!r}, pages={self.page_count})"


def document_fingerprint(source: DocumentInput) -> str:
    """SHA-256 of the document's bytes, streamed from disk for path inputs.

    Raises ``OSError`` if a path input cannot be read.
    """
    file = as_document_file(source)
    h = hashlib.sha256()
    if file.data is not None:
        h.update(file.data)
    elif file.path is not None:
        with open(file.path, "rb") as f:
            for block in iter(lambda: f.read(1 << 20), b""):
                h.update(block)
    return h.hexdigest()


def _open_native(file: DocumentFile) -> fitz.Document:
    # filetype="pdf" stops MuPDF from opening arbitrary text/image files
    try:
        if file.data is not None:
            return fitz.open(stream=file.data, filetype="pdf")
        if file.path is not None:
            return fitz.open(str(file.path), filetype="pdf")
    except (RuntimeError, ValueError, OSError) as exc:
        raise DocumentParseError(f"{file.name}: not a readable PDF: {exc}") from exc
    raise DocumentParseError(f"{file.name}: neither a path nor data was supplied")


@contextmanager
def open_document(source: DocumentInput) -> Iterator[SourceDocument]:
    """Open *source* and yield a ``SourceDocument``; always closes it.

    Raises ``DocumentParseError`` for malformed files and for encrypted
    files opened without the right password.
    """
    file = as_document_file(source)
    doc = _open_native(file)
    try:
        if doc.needs_pass:
            if not file.password or not doc.authenticate(file.password):
                raise DocumentParseError(f"{file.name}: encrypted and no valid password supplied")
        logger.debug("Opened %s (%d pages).", file.name, doc.page_count)
        yield SourceDocument(file.name, doc)
    finally:
        doc.close()


def page_count(doc: SourceDocument) -> int:
    return doc.page_count


def read_page(doc: SourceDocument, index: int) -> PageContent:
    return doc.read_page(index)
