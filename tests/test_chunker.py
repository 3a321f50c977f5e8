import asyncio
import logging

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from shared.embeddings.chunker import (
    CHUNK_SEPARATOR,
    chunk_text,
    chunk_text_async,
    estimate_tokens,
    get_chunk_stats,
    merge_chunks,
)
from shared.errors import InvalidConfigError
from shared.models.chunk import ChunkOptions


def opts(size, overlap, strategy="fixed"):
    return ChunkOptions(chunk_size=size, chunk_overlap=overlap, strategy=strategy)


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


@pytest.mark.parametrize("size,overlap", [(0, 0), (-1, 0), (10, 10), (10, 11), (10, -1)])
def test_invalid_options_raise(size, overlap):
    with pytest.raises(InvalidConfigError):
        chunk_text("some text", opts(size, overlap))


@pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
def test_blank_text_gives_no_chunks(text):
    assert chunk_text(text, opts(10, 2)) == []


def test_text_within_budget_is_single_chunk():
    chunks = chunk_text("short text", opts(10, 2, "hybrid"))
    assert len(chunks) == 1
    assert chunks[0].text == "short text"
    assert (chunks[0].start_pos, chunks[0].end_pos) == (0, 10)


def test_fixed_windows_without_overlap():
    chunks = chunk_text("x" * 100, opts(10, 0))
    assert [(c.start_pos, c.end_pos) for c in chunks] == [(0, 40), (40, 80), (80, 100)]
    assert [c.index for c in chunks] == [0, 1, 2]


def test_fixed_windows_with_overlap():
    text = "".join(chr(ord("a") + i % 26) for i in range(100))
    chunks = chunk_text(text, opts(10, 2))
    assert [(c.start_pos, c.end_pos) for c in chunks] == [(0, 40), (32, 72), (64, 100)]
    for c in chunks:
        assert c.text == text[c.start_pos:c.end_pos]


def test_semantic_packs_paragraphs_with_overlap_seed():
    paragraphs = ["a" * 30, "b" * 30, "c" * 30]
    chunks = chunk_text("\n\n".join(paragraphs), opts(10, 1, "semantic"))
    assert [c.text for c in chunks] == [
        "a" * 30,
        "aaaa\n\n" + "b" * 30,
        "bbbb\n\n" + "c" * 30,
    ]


def test_semantic_without_overlap_keeps_paragraphs_whole():
    text = "first paragraph here.\n\nsecond one.\n\n\n\nthird paragraph is here."
    chunks = chunk_text(text, opts(9, 0, "semantic"))
    assert [c.text for c in chunks] == ["first paragraph here.\n\nsecond one.", "third paragraph is here."]


def test_hybrid_splits_oversized_paragraph_on_sentences():
    sentences = ["Alpha beta gamma delta.", "Epsilon zeta eta theta!", "Iota kappa lambda mu?"]
    text = "Intro line.\n\n" + " ".join(sentences)
    chunks = chunk_text(text, opts(7, 0, "hybrid"))
    texts = [c.text for c in chunks]
    assert texts[0] == "Intro line."
    assert texts[1:] == sentences
    # punctuation kept exactly once
    assert all(".." not in t and ". ." not in t for t in texts)


def test_hybrid_hard_splits_sentence_longer_than_budget():
    text = "a" * 100 + "\n\nend."
    chunks = chunk_text(text, opts(10, 0, "hybrid"))
    assert [c.text for c in chunks] == ["a" * 40, "a" * 40, "a" * 20, "end."]


def test_unknown_strategy_falls_back_to_hybrid():
    text = "Intro line.\n\n" + "Alpha beta gamma delta. Epsilon zeta eta theta!"
    assert chunk_text(text, opts(7, 0, "bogus")) == chunk_text(text, opts(7, 0, "hybrid"))


def test_unknown_strategy_warns_on_given_logger(caplog):
    logger = logging.getLogger("ingestion-test")
    text = "Alpha beta gamma delta. " * 10
    with caplog.at_level(logging.WARNING, logger="ingestion-test"):
        chunk_text(text, opts(7, 0, "bogus"), logger=logger)
    assert [r.name for r in caplog.records] == ["ingestion-test"]
    assert "Unknown chunking strategy 'bogus'" in caplog.text


def test_chunk_text_async_matches_sync():
    text = "word " * 300
    options = opts(20, 5, "hybrid")
    assert asyncio.run(chunk_text_async(text, options)) == chunk_text(text, options)


def test_merge_chunks_and_stats():
    chunks = chunk_text("x" * 100, opts(10, 0))
    assert merge_chunks(chunks) == CHUNK_SEPARATOR.join(["x" * 40, "x" * 40, "x" * 20])
    stats = get_chunk_stats(chunks)
    assert stats.total_chunks == 3
    assert stats.total_characters == 100
    assert stats.avg_chunk_size == 33
    assert (stats.min_chunk_size, stats.max_chunk_size) == (20, 40)
    assert stats.estimated_tokens == 25


def test_stats_of_no_chunks():
    assert get_chunk_stats([]).total_chunks == 0


@settings(max_examples=60, deadline=None)
@given(
    text=st.text(min_size=1, max_size=600),
    size=st.integers(min_value=1, max_value=40),
    data=st.data(),
    strategy=st.sampled_from(["fixed", "semantic", "hybrid"]),
)
def test_chunking_is_deterministic(text, size, data, strategy):
    overlap = data.draw(st.integers(min_value=0, max_value=size - 1))
    options = opts(size, overlap, strategy)
    assert chunk_text(text, options) == chunk_text(text, options)


@settings(max_examples=60, deadline=None)
@given(
    text=st.text(min_size=1, max_size=600),
    size=st.integers(min_value=1, max_value=40),
    data=st.data(),
)
def test_fixed_strategy_overlap_law(text, size, data):
    overlap = data.draw(st.integers(min_value=0, max_value=size - 1))
    chunks = chunk_text(text, opts(size, overlap))
    if not text.strip():
        assert chunks == []
        return
    assert chunks[0].start_pos == 0
    assert chunks[-1].end_pos == len(text)
    for c in chunks:
        assert c.text == text[c.start_pos:c.end_pos]
        assert len(c.text) <= size * 4
    for prev, nxt in zip(chunks, chunks[1:]):
        assert nxt.start_pos == prev.end_pos - overlap * 4
