"""Text helpers for the document ingestion pipeline.

- :func:`clean_text` collapses every whitespace run to a single space.
- :class:`TextChunker` splits cleaned text into overlapping word windows.
- :func:`content_hash` is the SHA-256 hex digest used for deduplication.
- :func:`html_to_text` strips markup from fetched web pages.
"""

from __future__ import annotations

import hashlib
import re

from bs4 import BeautifulSoup

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """Collapse whitespace runs into single spaces and trim the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def content_hash(content: str) -> str:
    """Return the lowercase SHA-256 hex digest of the UTF-8 encoded *content*."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def html_to_text(html: str) -> str:
    """Drop scripts, styles and tags from *html* and return the visible text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return clean_text(soup.get_text(separator=" "))


class TextChunker:
    """Splits text into overlapping windows of whole words.

    Windows start every ``chunk_size - overlap`` words; the final window is
    the first one that reaches the end of the text, so the tail is never
    emitted twice.

    Parameters
    ----------
    chunk_size:
        Maximum words per chunk (default 1000).
    overlap:
        Words shared by consecutive chunks (default 200).  Must be smaller
        than ``chunk_size``.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError("overlap must be between 0 and chunk_size - 1")
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    def chunk(self, text: str) -> list[str]:
        words = text.split()
        if not words:
            return []

        step = self._chunk_size - self._overlap
        chunks: list[str] = []
        for start in range(0, len(words), step):
            chunks.append(" ".join(words[start : start + self._chunk_size]))
            if start + self._chunk_size >= len(words):
                break
        return chunks
