"""Markdown-aware chunking of extracted documents."""

import hashlib
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ...infrastructure.extraction import PAGE_BREAK_PLACEHOLDER
from ..common.exceptions import IndexingError, IndexingErrorKind
from ..common.utils.token_estimator import TokenEstimator
from .schemas import ChunkMetadata, DocumentChunk

DEFAULT_SECTION_HEADER = "Introduction"

_MARKDOWN_HEADER = re.compile(r"^(#{1,6})\s+(.+)$")
_HTML_HEADER = re.compile(r"<h([1-6])[^>]*>(.+?)</h[1-6]>", re.IGNORECASE)
_SETEXT_H1 = re.compile(r"^={3,}\s*$")
_SETEXT_H2 = re.compile(r"^-{3,}\s*$")
_IMAGE_PLACEHOLDER = re.compile(r"<!--\s*image\s*-->", re.IGNORECASE)
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


@dataclass
class _Line:
    text: str
    number: int
    page: int


@dataclass
class _Segment:
    header: str
    hierarchy: List[str]
    lines: List[_Line] = field(default_factory=list)

    @property
    def content(self) -> str:
        return "\n".join(line.text for line in self.lines).strip()


@dataclass
class _Piece:
    content: str
    pages: List[int]
    start_line: int
    end_line: int


def create_page_ranges(pages: Iterable[int]) -> List[str]:
    """Collapse page numbers into ranges, e.g. ``[1, 2, 3, 5]`` -> ``["1-3", "5"]``."""
    ordered = sorted(set(pages))
    if not ordered:
        return ["1"]

    ranges: List[str] = []
    start = previous = ordered[0]
    for page in ordered[1:]:
        if page == previous + 1:
            previous = page
            continue
        ranges.append(str(start) if start == previous else f"{start}-{previous}")
        start = previous = page
    ranges.append(str(start) if start == previous else f"{start}-{previous}")
    return ranges


def has_meaningful_content(text: str) -> bool:
    """Whether ``text`` holds more than headers, rules and whitespace."""
    body = "\n".join(
        line for line in text.splitlines() if not _MARKDOWN_HEADER.match(line) and not _SETEXT_H1.match(line)
    )
    return len(re.findall(r"\w", body)) >= 10


def chunk_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


class DocumentChunker:
    """Splits markdown into section-aligned chunks near a token target.

    Sections are delimited by markdown, HTML and setext headers. A section
    that fits within ``max_tokens`` becomes one chunk; a larger one is packed
    paragraph by paragraph (then sentence by sentence) up to
    ``target_tokens``. Chunks below ``min_tokens`` are merged into their
    neighbour when the result still fits. Page numbers come from the
    ``---PAGE_BREAK---`` markers the converter leaves between pages.
    """

    def __init__(
        self,
        target_tokens: int = 800,
        min_tokens: int = 100,
        max_tokens: int = 1200,
        model: str = "default",
    ):
        if not 0 < min_tokens <= target_tokens <= max_tokens:
            raise ValueError("Chunk sizes must satisfy 0 < min_tokens <= target_tokens <= max_tokens")
        self.target_tokens = target_tokens
        self.min_tokens = min_tokens
        self.max_tokens = max_tokens
        self.model = model

    def count_tokens(self, text: str) -> int:
        return TokenEstimator.estimate_tokens(text, self.model)

    def create_chunks(
        self,
        markdown: str,
        document_id: str,
        document_name: str,
        dataroom_id: str,
        team_id: str,
        content_type: str = "document",
    ) -> List[DocumentChunk]:
        """Chunk a document's markdown.

        Raises:
            IndexingError: ``processing`` kind, if ``markdown`` is empty
        """
        if not markdown or not markdown.strip():
            raise IndexingError(
                IndexingErrorKind.PROCESSING,
                "Text content is required for chunking",
                {"operation": "create_chunks", "document_id": document_id},
            )

        pieces: List[Tuple[_Segment, _Piece]] = []
        for segment in self._segments(self._lines(markdown)):
            for piece in self._split_segment(segment):
                pieces.append((segment, piece))

        merged = self._merge_small(self._deduplicate(pieces))

        chunks: List[DocumentChunk] = []
        for index, (section_header, hierarchy, piece) in enumerate(merged):
            token_count = self.count_tokens(piece.content)
            chunks.append(
                DocumentChunk(
                    id=f"{document_id}_chunk_{index}",
                    content=piece.content,
                    chunk_hash=chunk_hash(piece.content + document_id),
                    metadata=ChunkMetadata(
                        document_id=document_id,
                        document_name=document_name,
                        dataroom_id=dataroom_id,
                        team_id=team_id,
                        content_type=content_type,
                        chunk_index=index,
                        token_count=token_count,
                        page_ranges=create_page_ranges(piece.pages),
                        section_header=section_header,
                        header_hierarchy=hierarchy,
                        is_small_chunk=token_count < self.min_tokens,
                        start_line=piece.start_line,
                        end_line=piece.end_line,
                    ),
                )
            )
        return chunks

    @staticmethod
    def _lines(markdown: str) -> List[_Line]:
        lines: List[_Line] = []
        number = 0
        for page_index, page in enumerate(markdown.split(PAGE_BREAK_PLACEHOLDER), start=1):
            for text in page.splitlines():
                cleaned = _IMAGE_PLACEHOLDER.sub("", text).rstrip()
                lines.append(_Line(cleaned, number, page_index))
                number += 1
        return lines

    @staticmethod
    def _header(lines: List[_Line], index: int) -> Optional[Tuple[int, str, int]]:
        """``(level, text, lines consumed)`` if a header starts at ``index``."""
        text = lines[index].text
        match = _MARKDOWN_HEADER.match(text)
        if match:
            return len(match.group(1)), match.group(2).strip(), 1
        match = _HTML_HEADER.search(text)
        if match:
            return int(match.group(1)), re.sub(r"<[^>]+>", "", match.group(2)).strip(), 1
        if text.strip() and index + 1 < len(lines):
            underline = lines[index + 1].text
            if _SETEXT_H1.match(underline):
                return 1, text.strip(), 2
            if _SETEXT_H2.match(underline):
                return 2, text.strip(), 2
        return None

    def _segments(self, lines: List[_Line]) -> List[_Segment]:
        segments: List[_Segment] = []
        hierarchy: List[str] = []
        current = _Segment(DEFAULT_SECTION_HEADER, [])

        index = 0
        while index < len(lines):
            header = self._header(lines, index)
            if header is None:
                current.lines.append(lines[index])
                index += 1
                continue

            level, text, consumed = header
            if has_meaningful_content(current.content):
                segments.append(current)

            hierarchy = hierarchy[: level - 1] + [""] * max(0, level - 1 - len(hierarchy)) + [text]
            current = _Segment(text, list(hierarchy), lines=list(lines[index : index + consumed]))
            index += consumed

        if has_meaningful_content(current.content):
            segments.append(current)
        return segments

    def _split_segment(self, segment: _Segment) -> List[_Piece]:
        content = segment.content
        if not content:
            return []
        if self.count_tokens(content) <= self.max_tokens:
            return [self._piece(segment.lines)]

        paragraphs: List[List[_Line]] = []
        block: List[_Line] = []
        for line in segment.lines:
            if line.text.strip():
                block.append(line)
            elif block:
                paragraphs.append(block)
                block = []
        if block:
            paragraphs.append(block)

        pieces: List[_Piece] = []
        current: List[_Line] = []
        current_tokens = 0
        for paragraph in paragraphs:
            paragraph_text = "\n".join(line.text for line in paragraph)
            paragraph_tokens = self.count_tokens(paragraph_text)

            if paragraph_tokens > self.target_tokens:
                if current:
                    pieces.append(self._piece(current))
                    current, current_tokens = [], 0
                pieces.extend(self._split_paragraph(paragraph))
                continue

            if current and current_tokens + paragraph_tokens > self.target_tokens:
                pieces.append(self._piece(current))
                current, current_tokens = [], 0
            current.extend(paragraph)
            current_tokens += paragraph_tokens

        if current:
            pieces.append(self._piece(current))
        return pieces

    def _split_paragraph(self, paragraph: List[_Line]) -> List[_Piece]:
        """Pack the sentences of an oversized paragraph up to the token target."""
        pages = sorted({line.page for line in paragraph})
        start_line, end_line = paragraph[0].number, paragraph[-1].number
        sentences = [s.strip() for s in _SENTENCE_END.split(" ".join(line.text.strip() for line in paragraph))]
        sentences = [s for s in sentences if s]

        pieces: List[_Piece] = []
        current = ""
        for sentence in sentences:
            candidate = f"{current} {sentence}" if current else sentence
            if current and self.count_tokens(candidate) > self.target_tokens:
                pieces.append(_Piece(current, pages, start_line, end_line))
                current = sentence
            else:
                current = candidate
        if current:
            pieces.append(_Piece(current, pages, start_line, end_line))
        return pieces

    @staticmethod
    def _piece(lines: List[_Line]) -> _Piece:
        content = "\n".join(line.text for line in lines).strip()
        content = re.sub(r"\n{3,}", "\n\n", content)
        return _Piece(content, [line.page for line in lines], lines[0].number, lines[-1].number)

    @staticmethod
    def _deduplicate(pieces: List[Tuple[_Segment, _Piece]]) -> List[Tuple[_Segment, _Piece]]:
        seen = set()
        unique = []
        for segment, piece in pieces:
            digest = chunk_hash(piece.content)
            if digest in seen:
                continue
            seen.add(digest)
            unique.append((segment, piece))
        return unique

    def _merge_small(self, pieces: List[Tuple[_Segment, _Piece]]) -> List[Tuple[str, List[str], _Piece]]:
        """Fold pieces under ``min_tokens`` into the following piece when the result fits."""
        merged: List[Tuple[str, List[str], _Piece]] = []
        index = 0
        while index < len(pieces):
            segment, piece = pieces[index]
            header, hierarchy = segment.header, segment.hierarchy

            if self.count_tokens(piece.content) < self.min_tokens and index + 1 < len(pieces):
                next_segment, next_piece = pieces[index + 1]
                content = f"{piece.content}\n\n{next_piece.content}"
                if self.count_tokens(content) <= self.max_tokens:
                    combined = _Piece(content, piece.pages + next_piece.pages, piece.start_line, next_piece.end_line)
                    combined_header = header if header == next_segment.header else f"{header} + {next_segment.header}"
                    merged.append((combined_header, next_segment.hierarchy, combined))
                    index += 2
                    continue

            merged.append((header, hierarchy, piece))
            index += 1
        return merged
