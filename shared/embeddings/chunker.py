"""Text chunking.

Sizes are expressed in estimated tokens. A token is approximated as four
characters, which is close enough for English text and keeps chunking free
of any tokenizer dependency.

Strategies:
    fixed     Sliding character window with overlap.
    semantic  Paragraphs (blank-line separated) packed up to the budget.
    hybrid    Like semantic, but paragraphs over budget are split into
              sentences, and sentences over budget into fixed windows.
"""

import logging
import math
import re

from shared.embeddings.scheduling import yield_control
from shared.errors import InvalidConfigError
from shared.models.chunk import ChunkOptions, ChunkStats, TextChunk

DEFAULT_LOGGER = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
CHUNK_SEPARATOR = "\n\n---CHUNK---\n\n"
PARAGRAPH_JOINER = "\n\n"
SENTENCE_JOINER = " "

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def tokens_to_chars(tokens: int) -> int:
    return tokens * CHARS_PER_TOKEN


##########################################
############### STRATEGIES ###############
##########################################

def _fixed_windows(text: str, char_budget: int, char_overlap: int) -> list[tuple[int, int]]:
    """Return (start, end) windows covering the text. Stops once a window reaches the end."""
    windows: list[tuple[int, int]] = []
    step = char_budget - char_overlap
    start = 0
    while start < len(text):
        end = min(start + char_budget, len(text))
        windows.append((start, end))
        if end >= len(text):
            break
        start += step
    return windows


def _pack(pieces: list[str], char_budget: int, char_overlap: int, joiner: str) -> list[str]:
    """Greedily join pieces until the next one would exceed the budget.

    After a flush, the next chunk is seeded with the trailing char_overlap
    characters of the flushed one.
    """
    packed: list[str] = []
    current = ""
    for piece in pieces:
        candidate = f"{current}{joiner}{piece}" if current else piece
        if current and len(candidate) > char_budget:
            packed.append(current)
            seed = current[-char_overlap:] if char_overlap > 0 else ""
            current = f"{seed}{joiner}{piece}" if seed else piece
        else:
            current = candidate
    if current:
        packed.append(current)
    return packed


def _split_paragraphs(text: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT.split(text) if p.strip()]


def _split_sentences(paragraph: str, char_budget: int, char_overlap: int) -> list[str]:
    sentences: list[str] = []
    for sentence in _SENTENCE_SPLIT.split(paragraph):
        sentence = sentence.strip()
        if not sentence:
            continue
        if len(sentence) > char_budget:
            sentences.extend(sentence[s:e] for s, e in _fixed_windows(sentence, char_budget, char_overlap))
        else:
            sentences.append(sentence)
    return sentences


def _with_positions(texts: list[str], char_overlap: int) -> list[TextChunk]:
    # positions are approximate for the packing strategies, joiners collapse whitespace
    chunks: list[TextChunk] = []
    start = 0
    for index, chunk in enumerate(texts):
        end = start + len(chunk)
        chunks.append(TextChunk(text=chunk, index=index, start_pos=start, end_pos=end))
        start = max(0, end - char_overlap)
    return chunks


def _chunk_fixed(text: str, char_budget: int, char_overlap: int) -> list[TextChunk]:
    return [
        TextChunk(text=text[start:end], index=index, start_pos=start, end_pos=end)
        for index, (start, end) in enumerate(_fixed_windows(text, char_budget, char_overlap))
    ]


def _chunk_semantic(text: str, char_budget: int, char_overlap: int) -> list[TextChunk]:
    packed = _pack(_split_paragraphs(text), char_budget, char_overlap, PARAGRAPH_JOINER)
    return _with_positions(packed, char_overlap)


def _chunk_hybrid(text: str, char_budget: int, char_overlap: int) -> list[TextChunk]:
    packed: list[str] = []
    run: list[str] = []
    for paragraph in _split_paragraphs(text):
        if len(paragraph) <= char_budget:
            run.append(paragraph)
            continue
        # oversized paragraph: flush the pending run, then pack its sentences on their own
        if run:
            packed.extend(_pack(run, char_budget, char_overlap, PARAGRAPH_JOINER))
            run = []
        sentences = _split_sentences(paragraph, char_budget, char_overlap)
        packed.extend(_pack(sentences, char_budget, char_overlap, SENTENCE_JOINER))
    if run:
        packed.extend(_pack(run, char_budget, char_overlap, PARAGRAPH_JOINER))
    return _with_positions(packed, char_overlap)


_STRATEGIES = {
    "fixed": _chunk_fixed,
    "semantic": _chunk_semantic,
    "hybrid": _chunk_hybrid,
}


##########################################
################# PUBLIC #################
##########################################

def chunk_text(text: str, options: ChunkOptions, logger: logging.Logger | None = None) -> list[TextChunk]:
    """Split text into overlapping chunks.

    Args:
        text (str): The text to split.
        options (ChunkOptions): Chunk size and overlap in tokens, and the strategy.
        logger (logging.Logger | None): Receives the warning about an unknown strategy.

    Returns:
        list[TextChunk]: Chunks in order. Empty for blank input; a single chunk
        spanning the whole text when it already fits the budget.

    Raises:
        InvalidConfigError: If chunk_size <= 0 or chunk_overlap is not in [0, chunk_size).
    """
    if options.chunk_size <= 0:
        raise InvalidConfigError("Chunk size must be positive")
    if options.chunk_overlap < 0 or options.chunk_overlap >= options.chunk_size:
        raise InvalidConfigError("Overlap must be between 0 and chunk size")

    if not text or not text.strip():
        return []

    char_budget = tokens_to_chars(options.chunk_size)
    char_overlap = tokens_to_chars(options.chunk_overlap)
    if len(text) <= char_budget:
        return [TextChunk(text=text, index=0, start_pos=0, end_pos=len(text))]

    strategy = _STRATEGIES.get(options.strategy)
    if strategy is None:
        (logger or DEFAULT_LOGGER).warning("Unknown chunking strategy '%s', falling back to 'hybrid'.", options.strategy)
        strategy = _chunk_hybrid
    return strategy(text, char_budget, char_overlap)


async def chunk_text_async(text: str, options: ChunkOptions, logger: logging.Logger | None = None) -> list[TextChunk]:
    """Same as chunk_text, but yields to the event loop before starting."""
    await yield_control()
    return chunk_text(text, options, logger=logger)


def merge_chunks(chunks: list[TextChunk]) -> str:
    """Join chunk texts with a visible separator, for inspection and debugging."""
    return CHUNK_SEPARATOR.join(chunk.text for chunk in chunks)


def get_chunk_stats(chunks: list[TextChunk]) -> ChunkStats:
    if not chunks:
        return ChunkStats(
            total_chunks=0,
            total_characters=0,
            avg_chunk_size=0,
            min_chunk_size=0,
            max_chunk_size=0,
            estimated_tokens=0,
        )
    sizes = [len(chunk.text) for chunk in chunks]
    total = sum(sizes)
    return ChunkStats(
        total_chunks=len(chunks),
        total_characters=total,
        avg_chunk_size=round(total / len(chunks)),
        min_chunk_size=min(sizes),
        max_chunk_size=max(sizes),
        estimated_tokens=math.ceil(total / CHARS_PER_TOKEN),
    )
