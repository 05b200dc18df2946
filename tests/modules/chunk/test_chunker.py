"""Tests for markdown chunking."""

import pytest

from dataroom_rag.infrastructure.extraction import PAGE_BREAK_PLACEHOLDER
from dataroom_rag.modules.chunk.services import DocumentChunker, create_page_ranges, has_meaningful_content
from dataroom_rag.modules.common.exceptions import IndexingError, IndexingErrorKind

IDENTIFIERS = {
    "document_id": "doc_1",
    "document_name": "report.pdf",
    "dataroom_id": "dr_1",
    "team_id": "team_1",
    "content_type": "application/pdf",
}


@pytest.fixture
def chunker():
    return DocumentChunker()


@pytest.fixture
def small_chunker():
    """Chunker with token limits small enough that short test documents split."""
    return DocumentChunker(target_tokens=20, min_tokens=5, max_tokens=30)


@pytest.mark.parametrize(
    "pages,expected",
    [
        ([1, 2, 3, 5], ["1-3", "5"]),
        ([4], ["4"]),
        ([3, 1, 2, 2], ["1-3"]),
        ([1, 3, 5], ["1", "3", "5"]),
        ([], ["1"]),
    ],
)
def test_create_page_ranges(pages, expected):
    assert create_page_ranges(pages) == expected


def test_meaningful_content_ignores_headers():
    assert has_meaningful_content("# Title\n\n## Subtitle") is False
    assert has_meaningful_content("# Title\n\nShort body text here.") is True


def test_empty_markdown_is_rejected(chunker: DocumentChunker):
    with pytest.raises(IndexingError) as exc_info:
        chunker.create_chunks("   \n", **IDENTIFIERS)

    assert exc_info.value.kind == IndexingErrorKind.PROCESSING
    assert exc_info.value.context["document_id"] == "doc_1"


def test_invalid_sizes_are_rejected():
    with pytest.raises(ValueError):
        DocumentChunker(target_tokens=100, min_tokens=200, max_tokens=300)


def test_sections_carry_headers_and_pages():
    chunker = DocumentChunker(target_tokens=50, min_tokens=5, max_tokens=80)
    markdown = (
        "# Intro\n\nAlpha paragraph with enough words to count as meaningful content here.\n"
        f"{PAGE_BREAK_PLACEHOLDER}## Details\n\nBeta paragraph continues on the second page with more words to read.\n"
        f"{PAGE_BREAK_PLACEHOLDER}Gamma paragraph lands on the third page of the same section."
    )

    chunks = chunker.create_chunks(markdown, **IDENTIFIERS)

    assert [chunk.id for chunk in chunks] == ["doc_1_chunk_0", "doc_1_chunk_1"]
    intro, details = chunks
    assert intro.metadata.section_header == "Intro"
    assert intro.metadata.header_hierarchy == ["Intro"]
    assert intro.metadata.page_ranges == ["1"]
    assert details.metadata.section_header == "Details"
    assert details.metadata.header_hierarchy == ["Intro", "Details"]
    assert details.metadata.page_ranges == ["2-3"]
    assert details.metadata.chunk_index == 1
    assert "Gamma paragraph" in details.content
    assert details.metadata.dataroom_id == "dr_1"
    assert details.metadata.content_type == "application/pdf"


def test_small_sections_are_merged(chunker: DocumentChunker):
    markdown = (
        "# Summary\n\nThe company closed the year with strong cash reserves.\n\n"
        "# Risks\n\nCustomer concentration remains the largest risk factor."
    )

    [chunk] = chunker.create_chunks(markdown, **IDENTIFIERS)

    assert chunk.metadata.section_header == "Summary + Risks"
    assert "strong cash reserves" in chunk.content
    assert "Customer concentration" in chunk.content
    assert chunk.metadata.is_small_chunk is True


def test_setext_and_html_headers_start_sections():
    chunker = DocumentChunker(target_tokens=50, min_tokens=5, max_tokens=80)
    markdown = (
        "Overview\n========\n\nThe overview section describes the business in several words.\n\n"
        "<h2>Market</h2>\n\nThe market section explains the competitive landscape in detail."
    )

    chunks = chunker.create_chunks(markdown, **IDENTIFIERS)

    assert [chunk.metadata.section_header for chunk in chunks] == ["Overview", "Market"]
    assert chunks[1].metadata.header_hierarchy == ["Overview", "Market"]


def test_oversized_section_is_split_by_paragraph(small_chunker: DocumentChunker):
    paragraphs = [
        "Revenue grew steadily across every region during the fiscal year.",
        "Operating costs declined after the consolidation of two warehouses.",
        "The board approved a new share buyback program in the spring.",
        "Hiring slowed in the second half as the company prioritised margins.",
        "Management expects moderate growth to continue into next year.",
    ]
    markdown = "# Annual Review\n\n" + "\n\n".join(paragraphs)

    chunks = small_chunker.create_chunks(markdown, **IDENTIFIERS)

    assert len(chunks) > 1
    assert all(chunk.metadata.section_header == "Annual Review" for chunk in chunks)
    assert all(chunk.metadata.token_count <= small_chunker.max_tokens for chunk in chunks)
    combined = "\n".join(chunk.content for chunk in chunks)
    for paragraph in paragraphs:
        assert paragraph in combined


def test_oversized_paragraph_is_split_by_sentence(small_chunker: DocumentChunker):
    numbers = ("one", "two", "three", "four", "five", "six")
    sentences = [f"Sentence number {number} describes one more fact about the company." for number in numbers]
    markdown = "# Facts\n\n" + " ".join(sentences)

    chunks = small_chunker.create_chunks(markdown, **IDENTIFIERS)

    assert len(chunks) > 1
    assert chunks[-1].content.endswith("Sentence number six describes one more fact about the company.")


def test_duplicate_sections_are_dropped(chunker: DocumentChunker):
    section = "# Notes\n\nThis disclaimer is repeated on every page of the document."

    chunks = chunker.create_chunks(f"{section}\n\n{section}", **IDENTIFIERS)

    assert len(chunks) == 1


def test_image_placeholders_are_removed(chunker: DocumentChunker):
    markdown = "# Figures\n\n<!-- image -->\n\nThe chart above shows revenue by quarter for the last two years."

    [chunk] = chunker.create_chunks(markdown, **IDENTIFIERS)

    assert "image" not in chunk.content
    assert "The chart above" in chunk.content


def test_header_only_markdown_has_no_chunks(chunker: DocumentChunker):
    assert chunker.create_chunks("# Cover\n\n## Contents", **IDENTIFIERS) == []


def test_chunk_hash_depends_on_document(chunker: DocumentChunker):
    markdown = "# Terms\n\nStandard terms and conditions apply to every agreement."

    [first] = chunker.create_chunks(markdown, **IDENTIFIERS)
    [second] = chunker.create_chunks(markdown, **{**IDENTIFIERS, "document_id": "doc_2"})

    assert first.content == second.content
    assert first.chunk_hash != second.chunk_hash
