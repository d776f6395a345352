"""Text normalization and metadata extraction before chunking."""

from __future__ import annotations

import logging
import math
import re
from typing import Any

from core.models import CanonicalDocument, DocumentMetadata
from ingestion.chunker import estimate_tokens

logger = logging.getLogger(__name__)

_HORIZONTAL_WS = re.compile(r"[ \t]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_PARAGRAPH_BREAK = re.compile(r"\n\n+")

_SPANISH_MARKERS = ["el", "la", "de", "que", "y", "en", "un", "por", "para", "con"]
_ENGLISH_MARKERS = ["the", "and", "of", "to", "a", "in", "for", "is", "on", "that"]


def normalize_text(raw_content: str) -> str:
    """Normalize line endings and whitespace into the canonical form."""
    content = raw_content.replace("\r\n", "\n")
    content = _HORIZONTAL_WS.sub(" ", content)
    content = _EXCESS_NEWLINES.sub("\n\n", content)
    content = "\n".join(line.strip() for line in content.split("\n"))
    return content.strip()


def process_document(
    raw_content: str, file_name: str, file_type: str, file_size: int
) -> CanonicalDocument:
    """Build the canonical document for an uploaded source.

    Args:
        raw_content: Text as produced by the extraction front-end
        file_name: Original file name
        file_type: File type (extension without dot, e.g. "pdf")
        file_size: Size of the original file in bytes

    Returns:
        CanonicalDocument with normalized content and descriptive metadata
    """
    content = normalize_text(raw_content)

    metadata = DocumentMetadata(
        file_name=file_name,
        file_type=file_type,
        file_size=file_size,
        char_count=len(content),
        token_estimate=estimate_tokens(content),
        line_count=len(content.split("\n")),
        paragraph_count=len([p for p in _PARAGRAPH_BREAK.split(content) if p.strip()]),
        custom=extract_file_type_metadata(content, file_type),
    )

    logger.info(
        "Processed %s: %d -> %d characters, %d paragraphs",
        file_name,
        len(raw_content),
        metadata.char_count,
        metadata.paragraph_count,
    )
    return CanonicalDocument(content=content, raw_content=raw_content, metadata=metadata)


def extract_file_type_metadata(content: str, file_type: str) -> dict[str, Any]:
    """Structure hints specific to a file type. Unknown types yield ``{}``."""
    kind = file_type.lower()
    if kind == "pdf":
        return _pdf_metadata(content)
    if kind in ("md", "markdown"):
        return _markdown_metadata(content)
    if kind in ("txt", "text"):
        return _text_metadata(content)
    return {}


def _pdf_metadata(content: str) -> dict[str, Any]:
    # ~3000 characters per page
    return {
        "estimated_pages": math.ceil(len(content) / 3000),
        "has_tables": bool(re.search(r"\|.*\|.*\|", content)),
        "has_lists": bool(re.search(r"^\s*[-*]\s+", content, re.MULTILINE)),
    }


def _markdown_metadata(content: str) -> dict[str, Any]:
    headers = re.findall(r"^(#{1,6})\s+(.+)$", content, re.MULTILINE)
    return {
        "header_count": len(headers),
        "header_levels": [
            {"level": len(hashes), "title": title.strip()} for hashes, title in headers
        ],
        "code_block_count": len(re.findall(r"```[\s\S]*?```", content)),
        "link_count": len(re.findall(r"\[.+?\]\(.+?\)", content)),
        "image_count": len(re.findall(r"!\[.+?\]\(.+?\)", content)),
    }


def _text_metadata(content: str) -> dict[str, Any]:
    word_count = len(content.split())
    return {
        "word_count": word_count,
        "reading_time_minutes": math.ceil(word_count / 200),
        "has_numbered_lists": bool(re.search(r"^\s*\d+\.\s+", content, re.MULTILINE)),
        "has_bullet_lists": bool(re.search(r"^\s*[-*]\s+", content, re.MULTILINE)),
    }


def clean_text_for_embedding(text: str) -> str:
    """Strip URLs, e-mail addresses and repeated punctuation."""
    cleaned = re.sub(r"https?://\S+", "", text)
    cleaned = re.sub(r"[\w.-]+@[\w.-]+\.\w+", "", cleaned)
    cleaned = re.sub(r"[!?]{2,}", "!", cleaned)
    cleaned = re.sub(r"\.{3,}", "...", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip()


def detect_language(text: str) -> str:
    """Guess "es" or "en" from stop-word hits; "unknown" on a tie."""
    sample = text[:1000].lower()

    def hits(words: list[str]) -> int:
        return sum(1 for w in words if re.search(rf"\b{w}\b", sample))

    spanish, english = hits(_SPANISH_MARKERS), hits(_ENGLISH_MARKERS)
    if spanish > english:
        return "es"
    if english > spanish:
        return "en"
    return "unknown"


def split_into_sections(content: str) -> list[tuple[str, str]]:
    """Split on markdown headers (``#`` to ``###``).

    Returns (section_title, section_content) tuples. Text before the first
    header is titled "Introduction"; a document without headers becomes a
    single "Document" section.
    """
    header_pattern = re.compile(r"^#{1,3}\s+(.+)$", re.MULTILINE)
    sections: list[tuple[str, str]] = []

    matches = list(header_pattern.finditer(content))
    if not matches:
        return [("Document", content.strip())]

    preamble = content[: matches[0].start()].strip()
    if preamble:
        sections.append(("Introduction", preamble))

    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(content)
        body = content[match.end() : end].strip()
        if body:
            sections.append((match.group(1).strip(), body))

    return sections
