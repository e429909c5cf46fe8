"""Unit tests for the text helpers: whitespace cleaning, hashing, chunking, HTML."""

from __future__ import annotations

import pytest

from queue_processor.utils.text import TextChunker, clean_text, content_hash, html_to_text


class TestCleanText:
    def test_collapses_all_whitespace_runs(self) -> None:
        assert clean_text("  hello\n\n\tworld   again ") == "hello world again"

    def test_empty_input(self) -> None:
        assert clean_text(" \n\t ") == ""


class TestContentHash:
    def test_known_sha256_digest(self) -> None:
        assert content_hash("hello world") == (
            "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"
        )

    def test_digest_is_lowercase_hex(self) -> None:
        digest = content_hash("Some Text")
        assert len(digest) == 64
        assert digest == digest.lower()


class TestTextChunker:
    def test_short_text_is_one_chunk(self) -> None:
        assert TextChunker(chunk_size=100, overlap=20).chunk("hello world") == ["hello world"]

    def test_empty_text_has_no_chunks(self) -> None:
        assert TextChunker().chunk("") == []

    def test_windows_overlap_by_configured_words(self) -> None:
        words = " ".join(f"w{i}" for i in range(10))
        chunks = TextChunker(chunk_size=4, overlap=1).chunk(words)

        assert chunks == ["w0 w1 w2 w3", "w3 w4 w5 w6", "w6 w7 w8 w9"]

    def test_tail_is_not_emitted_twice(self) -> None:
        words = " ".join(f"w{i}" for i in range(5))
        chunks = TextChunker(chunk_size=4, overlap=2).chunk(words)

        assert chunks == ["w0 w1 w2 w3", "w2 w3 w4"]

    @pytest.mark.parametrize("chunk_size, overlap", [(0, 0), (10, 10), (10, -1)])
    def test_invalid_configuration_is_rejected(self, chunk_size: int, overlap: int) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=chunk_size, overlap=overlap)


class TestHtmlToText:
    def test_strips_tags_scripts_and_styles(self) -> None:
        html = "<html><head><style>p{}</style><script>var x;</script></head><body><p>Hi <b>there</b></p></body></html>"
        assert html_to_text(html) == "Hi there"
