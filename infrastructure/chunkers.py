# infrastructure/chunkers.py
"""
Text chunking strategies for the indexing pipeline.

Two interchangeable implementations of IChunker:
- RecursiveChunker: generic text, hierarchy of separators with word-aligned overlap
- MarkdownChunker: splits on ATX headers, keeps each section's header with its text

Sizes are measured in characters.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from config import settings
from core.domain import Chunk
from core.enums import ChunkingStrategy
from core.exceptions import ConfigurationError
from core.interfaces import IChunker

logger = logging.getLogger(settings.LOGGER_NAME)

DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]

# ATX header: 1-6 leading '#', at least one blank, then the title
HEADER_PATTERN = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*$", re.MULTILINE)
PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


class RecursiveChunker(IChunker):
    """
    Recursive separator-based splitter.

    The first separator present in the text is used to split it; pieces are
    packed greedily into chunks of at most chunk_size characters. A piece that
    is itself too large is split again with the remaining, finer separators.
    The empty-string separator splits into single characters, so recursion
    always terminates.

    Each new buffer started after a flush is seeded with the tail of the
    previous chunk (at most chunk_overlap characters, starting on a word
    boundary). Sub-chunks produced by splitting an oversized piece do not
    receive overlap from the chunk flushed before them.
    """

    strategy = ChunkingStrategy.RECURSIVE.value

    def __init__(
        self,
        chunk_size: int = 500,
        chunk_overlap: int = 100,
        separators: Optional[List[str]] = None,
    ):
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({chunk_overlap}) must be >= 0 and less than chunk_size ({chunk_size})"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators) if separators is not None else list(DEFAULT_SEPARATORS)
        if not self.separators:
            raise ConfigurationError("At least one separator is required")

    def chunk(self, text: str, metadata: Dict[str, Any]) -> List[Chunk]:
        pieces = [piece.strip() for piece in self._split_text(text, self.separators)]
        pieces = [piece for piece in pieces if piece]

        chunks = [
            Chunk(
                id=str(uuid.uuid4()),
                text=piece,
                index=index,
                metadata={**metadata, "chunk_index": index, "total_chunks": len(pieces)},
            )
            for index, piece in enumerate(pieces)
        ]
        logger.debug(f"Recursive chunker produced {len(chunks)} chunks from {len(text)} chars")
        return chunks

    def _split_text(self, text: str, separators: List[str]) -> List[str]:
        final_chunks: List[str] = []

        # First (coarsest) separator present in the text
        separator = separators[-1]
        finer_separators: List[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                finer_separators = separators[i + 1:]
                break

        splits = text.split(separator) if separator else list(text)

        current = ""
        last = len(splits) - 1
        for i, split in enumerate(splits):
            # The separator only exists between splits, never after the last one
            piece = split + separator if i < last else split

            if len(current) + len(piece) <= self.chunk_size:
                current += piece
                continue

            if current:
                final_chunks.append(current)

            if len(piece) > self.chunk_size and finer_separators:
                final_chunks.extend(self._split_text(piece, finer_separators))
                current = ""
            else:
                previous = final_chunks[-1] if final_chunks else ""
                current = self._get_overlap(previous, self.chunk_size - len(piece)) + piece

        if current:
            final_chunks.append(current)

        return [chunk for chunk in final_chunks if chunk.strip()]

    def _get_overlap(self, previous: str, budget: int) -> str:
        """
        Tail of the previous chunk used to seed the next buffer.

        Never longer than chunk_overlap nor than the room left next to the
        incoming piece, and never starts in the middle of a word.
        """
        size = min(self.chunk_overlap, budget)
        if size <= 0 or not previous:
            return ""

        if len(previous) <= size:
            return previous.lstrip()

        window = previous[-size:]
        starts_mid_word = not previous[-size - 1].isspace() and not window[0].isspace()
        if starts_mid_word:
            first_space = window.find(" ")
            if first_space == -1:
                return ""
            window = window[first_space + 1:]

        return window.lstrip()


@dataclass
class MarkdownSection:
    header: str
    level: int
    content: str


class MarkdownChunker(IChunker):
    """
    Structure-aware splitter for Markdown.

    Text is partitioned into sections bounded by ATX headers (level 0 for text
    before the first header). A section that fits in max_chunk_size becomes one
    chunk; a larger one is packed paragraph by paragraph. Every chunk keeps its
    section's header in metadata and, when include_headers is set, as its first line.
    """

    strategy = ChunkingStrategy.MARKDOWN.value

    def __init__(self, max_chunk_size: int = 800, include_headers: bool = True):
        if max_chunk_size <= 0:
            raise ConfigurationError(f"max_chunk_size must be positive, got {max_chunk_size}")
        self.max_chunk_size = max_chunk_size
        self.include_headers = include_headers
        # Fallback for single paragraphs larger than max_chunk_size
        self._paragraph_splitter = RecursiveChunker(chunk_size=max_chunk_size, chunk_overlap=0)

    def chunk(self, text: str, metadata: Dict[str, Any]) -> List[Chunk]:
        chunks: List[Chunk] = []

        for section in self._split_by_sections(text):
            if len(section.content) > self.max_chunk_size:
                bodies = self._split_large_section(section)
            else:
                bodies = [section.content]

            for body in bodies:
                index = len(chunks)
                chunks.append(Chunk(
                    id=str(uuid.uuid4()),
                    text=self._format_section(section, body),
                    index=index,
                    metadata={
                        **metadata,
                        "header": section.header,
                        "header_level": section.level,
                        "chunk_index": index,
                    },
                ))

        logger.debug(f"Markdown chunker produced {len(chunks)} chunks from {len(text)} chars")
        return chunks

    def _split_by_sections(self, text: str) -> List[MarkdownSection]:
        sections: List[MarkdownSection] = []
        header, level, last_end = "", 0, 0

        for match in HEADER_PATTERN.finditer(text):
            content = text[last_end:match.start()].strip()
            if content:
                sections.append(MarkdownSection(header=header, level=level, content=content))
            header = match.group(2).strip()
            level = len(match.group(1))
            last_end = match.end()

        remaining = text[last_end:].strip()
        if remaining:
            sections.append(MarkdownSection(header=header, level=level, content=remaining))

        # No headers and no body text under any header: the whole document is one section
        if not sections and text.strip():
            sections.append(MarkdownSection(header="", level=0, content=text.strip()))

        return sections

    def _split_large_section(self, section: MarkdownSection) -> List[str]:
        bodies: List[str] = []
        current = ""

        for paragraph in PARAGRAPH_BREAK.split(section.content):
            paragraph = paragraph.strip()
            if not paragraph:
                continue

            if len(paragraph) > self.max_chunk_size:
                if current:
                    bodies.append(current)
                    current = ""
                bodies.extend(
                    chunk.text for chunk in self._paragraph_splitter.chunk(paragraph, {})
                )
                continue

            if current and len(current) + len(paragraph) + 2 > self.max_chunk_size:
                bodies.append(current)
                current = paragraph
            else:
                current = f"{current}\n\n{paragraph}" if current else paragraph

        if current:
            bodies.append(current)

        return bodies

    def _format_section(self, section: MarkdownSection, body: str) -> str:
        if self.include_headers and section.header and section.level > 0:
            return f"{'#' * section.level} {section.header}\n\n{body}"
        return body


def create_chunker(strategy: Optional[str] = None, **options: Any) -> IChunker:
    """Build a chunker by strategy name, falling back to settings for unset options."""
    strategy = strategy or settings.CHUNKING_STRATEGY

    if strategy == ChunkingStrategy.RECURSIVE.value:
        return RecursiveChunker(
            chunk_size=options.get("chunk_size", settings.CHUNK_SIZE),
            chunk_overlap=options.get("chunk_overlap", settings.CHUNK_OVERLAP),
            separators=options.get("separators"),
        )
    if strategy == ChunkingStrategy.MARKDOWN.value:
        return MarkdownChunker(
            max_chunk_size=options.get("max_chunk_size", settings.MARKDOWN_MAX_CHUNK_SIZE),
            include_headers=options.get("include_headers", settings.MARKDOWN_INCLUDE_HEADERS),
        )
    raise ConfigurationError(f"Unknown chunking strategy: {strategy}")
