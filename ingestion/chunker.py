"""Document chunking: recursive, semantic (sentence-based) and fixed-size.

All strategies share the same contract:

- options are validated before any splitting happens;
- empty input yields one empty chunk, input no longer than ``chunk_size``
  yields a single chunk equal to the input;
- chunk ``index`` values are contiguous and 0-based;
- ``start_pos``/``end_pos`` are document-relative, ``end_pos`` exclusive.

Recursive and fixed chunks are exact substrings of the input, so
``end_pos - start_pos == char_count``. Semantic chunks are rebuilt from
sentences joined by a single space; their offsets span the first and last
sentence in the source text and ``char_count`` is the rebuilt length.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable

from core.config import settings
from core.errors import InvalidChunkOptions
from core.models import Chunk, ChunkMetadata, ChunkOptions

logger = logging.getLogger(__name__)

# Sections -> paragraphs -> lines -> sentence ends -> clauses -> words
DEFAULT_SEPARATORS: list[str] = [
    "\n\n\n",
    "\n\n",
    "\n",
    ". ",
    "! ",
    "? ",
    "; ",
    ", ",
    " ",
]

_SENTENCE_END = re.compile(r"[.!?]+\s+")


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per 4 characters, rounded up."""
    return math.ceil(len(text) / 4)


def validate_options(options: ChunkOptions) -> None:
    """Raise InvalidChunkOptions if the size/overlap constraints are violated."""
    if options.chunk_size <= 0:
        raise InvalidChunkOptions("chunk_size must be positive")
    if options.chunk_overlap < 0:
        raise InvalidChunkOptions("chunk_overlap cannot be negative")
    if options.chunk_overlap >= options.chunk_size:
        raise InvalidChunkOptions("chunk_overlap must be less than chunk_size")
    if options.strategy not in _STRATEGIES:
        raise InvalidChunkOptions(f"Unknown chunking strategy: {options.strategy}")


def default_options() -> ChunkOptions:
    return ChunkOptions(
        strategy=settings.chunk_strategy,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        min_chunk_size=settings.min_chunk_size,
    )


def chunk_document(content: str, options: ChunkOptions | None = None) -> list[Chunk]:
    """Split ``content`` into chunks using ``options.strategy``.

    Args:
        content: Canonical document text
        options: Chunking options (default: built from settings)

    Returns:
        Chunks in document order

    Raises:
        InvalidChunkOptions: If the options are invalid. Nothing is split.
    """
    if options is None:
        options = default_options()
    validate_options(options)

    if len(content) <= options.chunk_size:
        return [_make_chunk(content, start_pos=0)]

    chunks = _STRATEGIES[options.strategy](content, options)

    if options.min_chunk_size:
        filtered = filter_chunks(chunks, options.min_chunk_size)
        if filtered:
            chunks = filtered
        else:
            logger.warning(
                "All %d chunks are below min_chunk_size=%d, keeping them",
                len(chunks),
                options.min_chunk_size,
            )

    chunks = _renumber(chunks)
    logger.debug(
        "Chunked %d characters into %d chunks (strategy=%s, size=%d, overlap=%d)",
        len(content),
        len(chunks),
        options.strategy,
        options.chunk_size,
        options.chunk_overlap,
    )
    return chunks


# ---------------------------------------------------------------------------
# Fixed
# ---------------------------------------------------------------------------


def _fixed_chunks(
    text: str,
    options: ChunkOptions,
    offset: int = 0,
    custom: dict[str, Any] | None = None,
) -> list[Chunk]:
    """Stride slicing: chunk i starts at i * (chunk_size - chunk_overlap)."""
    step = options.chunk_size - options.chunk_overlap
    chunks: list[Chunk] = []
    start = 0

    while start < len(text):
        end = min(start + options.chunk_size, len(text))
        chunks.append(
            _make_chunk(
                text[start:end],
                start_pos=offset + start,
                index=len(chunks),
                has_overlap=bool(chunks) and options.chunk_overlap > 0,
                custom=custom,
            )
        )
        if end == len(text):
            break
        start += step

    return chunks


# ---------------------------------------------------------------------------
# Recursive
# ---------------------------------------------------------------------------


def _recursive_chunks(text: str, options: ChunkOptions) -> list[Chunk]:
    separators = (
        options.separators if options.separators is not None else DEFAULT_SEPARATORS
    )
    return _recursive_split(text, list(separators), options, offset=0)


def _recursive_split(
    text: str, separators: list[str], options: ChunkOptions, offset: int
) -> list[Chunk]:
    """Greedily pack separator-delimited pieces into chunks.

    Buffers are tracked as ``[start, end)`` ranges of ``text`` so every chunk
    is an exact substring. Pieces larger than ``chunk_size`` are split again
    with the remaining separators, and with fixed slicing once none are left.
    """
    size = options.chunk_size
    overlap = options.chunk_overlap

    if len(text) <= size:
        return [_make_chunk(text, start_pos=offset)] if text else []

    if not separators:
        return _fixed_chunks(text, options, offset)

    separator, remaining = separators[0], separators[1:]
    if not separator:
        return _recursive_split(text, remaining, options, offset)

    chunks: list[Chunk] = []
    buf_start: int | None = None
    buf_end = 0
    buf_has_overlap = False
    pos = 0

    for piece in text.split(separator):
        piece_start = pos
        piece_end = pos + len(piece)
        pos = piece_end + len(separator)

        if buf_start is not None and piece_end - buf_start <= size:
            buf_end = piece_end
            continue

        if buf_start is not None:
            # Overflow: emit the buffer, then seed the next one with its tail
            emitted_start, emitted_end = buf_start, buf_end
            if emitted_end > emitted_start:
                chunks.append(
                    _make_chunk(
                        text[emitted_start:emitted_end],
                        start_pos=offset + emitted_start,
                        has_overlap=buf_has_overlap,
                    )
                )
            buf_start = None

            if len(piece) <= size and overlap > 0:
                seed_start = max(emitted_start, emitted_end - overlap)
                if seed_start < emitted_end and piece_end - seed_start <= size:
                    buf_start, buf_end, buf_has_overlap = seed_start, piece_end, True
                    continue

        if len(piece) <= size:
            buf_start, buf_end, buf_has_overlap = piece_start, piece_end, False
        else:
            chunks.extend(
                _recursive_split(piece, remaining, options, offset + piece_start)
            )

    if buf_start is not None and buf_end > buf_start:
        chunks.append(
            _make_chunk(
                text[buf_start:buf_end],
                start_pos=offset + buf_start,
                has_overlap=buf_has_overlap,
            )
        )

    return chunks


# ---------------------------------------------------------------------------
# Semantic
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Sentence:
    text: str
    start: int
    end: int


def split_into_sentences(text: str) -> list[Sentence]:
    """Split on runs of ``.``/``!``/``?`` followed by whitespace.

    Sentences are stripped; their ``start``/``end`` point at the stripped text
    in ``text``. Blank segments are dropped.
    """
    sentences: list[Sentence] = []
    last = 0

    for match in _SENTENCE_END.finditer(text):
        _append_sentence(text, last, match.end(), sentences)
        last = match.end()

    if last < len(text):
        _append_sentence(text, last, len(text), sentences)

    return sentences


def _append_sentence(text: str, start: int, end: int, out: list[Sentence]) -> None:
    segment = text[start:end]
    stripped = segment.strip()
    if not stripped:
        return
    begin = start + (len(segment) - len(segment.lstrip()))
    out.append(Sentence(stripped, begin, begin + len(stripped)))


def _joined_length(sentences: list[Sentence]) -> int:
    if not sentences:
        return 0
    return sum(len(s.text) for s in sentences) + len(sentences) - 1


def _overlap_sentences(sentences: list[Sentence], overlap: int) -> list[Sentence]:
    """Longest trailing run of whole sentences whose joined length fits ``overlap``."""
    run: list[Sentence] = []
    for sentence in reversed(sentences):
        candidate = [sentence] + run
        if _joined_length(candidate) > overlap:
            break
        run = candidate
    return run


def _sentence_chunk(sentences: list[Sentence], has_overlap: bool) -> Chunk:
    return _make_chunk(
        " ".join(s.text for s in sentences),
        start_pos=sentences[0].start,
        end_pos=sentences[-1].end,
        has_overlap=has_overlap,
        custom={"sentence_count": len(sentences)},
    )


def _semantic_chunks(text: str, options: ChunkOptions) -> list[Chunk]:
    size = options.chunk_size
    chunks: list[Chunk] = []
    current: list[Sentence] = []
    current_has_overlap = False

    sentences = split_into_sentences(text)
    if not sentences:
        # Whitespace-only input has no sentences to group
        return _fixed_chunks(text, options)

    for sentence in sentences:
        if current and _joined_length(current + [sentence]) <= size:
            current.append(sentence)
            continue

        if current:
            chunks.append(_sentence_chunk(current, current_has_overlap))
            carried = _overlap_sentences(current, options.chunk_overlap)
            current = []
            if carried and _joined_length(carried + [sentence]) <= size:
                current, current_has_overlap = carried + [sentence], True
                continue

        if len(sentence.text) <= size:
            current, current_has_overlap = [sentence], False
        else:
            # A single sentence longer than chunk_size
            chunks.extend(
                _fixed_chunks(
                    sentence.text, options, sentence.start, {"sentence_count": 1}
                )
            )

    if current:
        chunks.append(_sentence_chunk(current, current_has_overlap))

    return chunks


_STRATEGIES: dict[str, Callable[[str, ChunkOptions], list[Chunk]]] = {
    "recursive": _recursive_chunks,
    "semantic": _semantic_chunks,
    "fixed": _fixed_chunks,
}


# ---------------------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------------------


def filter_chunks(chunks: list[Chunk], min_size: int) -> list[Chunk]:
    """Drop chunks shorter than ``min_size`` characters."""
    return _renumber([c for c in chunks if len(c.content) >= min_size])


def merge_small_chunks(
    chunks: list[Chunk], min_size: int, max_size: int
) -> list[Chunk]:
    """Coalesce adjacent chunks when either is below ``min_size``.

    Merged content is joined with a single space and never exceeds
    ``max_size`` characters.
    """
    merged: list[Chunk] = []
    current: Chunk | None = None

    for chunk in chunks:
        if current is None:
            current = chunk
            continue

        undersized = len(current.content) < min_size or len(chunk.content) < min_size
        combined_length = len(current.content) + 1 + len(chunk.content)

        if undersized and combined_length <= max_size:
            current = _merge_pair(current, chunk)
        else:
            merged.append(current)
            current = chunk

    if current is not None:
        merged.append(current)

    return _renumber(merged)


def _merge_pair(first: Chunk, second: Chunk) -> Chunk:
    content = f"{first.content} {second.content}"
    custom = dict(first.metadata.custom)
    if "sentence_count" in custom and "sentence_count" in second.metadata.custom:
        custom["sentence_count"] += second.metadata.custom["sentence_count"]

    return first.model_copy(
        update={
            "content": content,
            "metadata": first.metadata.model_copy(
                update={
                    "end_pos": max(first.metadata.end_pos, second.metadata.end_pos),
                    "char_count": len(content),
                    "token_estimate": estimate_tokens(content),
                    "custom": custom,
                }
            ),
        }
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_chunk(
    content: str,
    start_pos: int,
    index: int = 0,
    has_overlap: bool = False,
    end_pos: int | None = None,
    custom: dict[str, Any] | None = None,
) -> Chunk:
    return Chunk(
        content=content,
        index=index,
        metadata=ChunkMetadata(
            start_pos=start_pos,
            end_pos=start_pos + len(content) if end_pos is None else end_pos,
            token_estimate=estimate_tokens(content),
            char_count=len(content),
            has_overlap=has_overlap,
            custom=dict(custom) if custom else {},
        ),
    )


def _renumber(chunks: list[Chunk]) -> list[Chunk]:
    return [
        chunk if chunk.index == i else chunk.model_copy(update={"index": i})
        for i, chunk in enumerate(chunks)
    ]
