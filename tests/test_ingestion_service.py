import asyncio

import pytest

from services.ingestion.IngestionService import IngestionService
from shared.embeddings.chunker import chunk_text
from shared.models.chunk import ChunkOptions
from shared.models.document import VectorMetadata
from shared.models.search import VectorFilter

TEXT = " ".join(f"Sentence {i} talks about topic {i}." for i in range(12))
OPTIONS = ChunkOptions(chunk_size=10, chunk_overlap=0, strategy="fixed")


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def ingestion(helper_config, engine, embed_client):
    return IngestionService(helper_config=helper_config, vector_store=engine.store, embed_client=embed_client)


def test_ingest_text_stores_every_chunk_with_position(ingestion, engine):
    progress = []
    meta = VectorMetadata(type="file", file_id="notes.md", title="Notes")
    report = run(ingestion.ingest_text(TEXT, meta, OPTIONS, on_progress=lambda done, total: progress.append((done, total))))

    assert report.total_chunks == len(chunk_text(TEXT, OPTIONS)) > 1
    assert report.failed == 0
    assert not report.quota_reached
    assert len(report.stored_ids) == report.total_chunks
    assert progress[-1] == (report.total_chunks, report.total_chunks)

    docs = run(engine.store.get_all_vectors(VectorFilter(file_id="notes.md")))
    assert [d.metadata.chunk_index for d in docs] == list(range(report.total_chunks))
    assert {d.metadata.total_chunks for d in docs} == {report.total_chunks}
    assert {d.metadata.title for d in docs} == {"Notes"}


def test_ingest_uses_configured_chunking(ingestion, monkeypatch):
    monkeypatch.setenv("EMBEDDINGS_CHUNK_SIZE", "10")
    monkeypatch.setenv("EMBEDDINGS_CHUNK_OVERLAP", "0")
    monkeypatch.setenv("EMBEDDINGS_CHUNKING_STRATEGY", "fixed")
    report = run(ingestion.ingest_text(TEXT, VectorMetadata(type="file")))
    assert report.total_chunks == len(chunk_text(TEXT, OPTIONS))


def test_blank_text_stores_nothing(ingestion, embed_client):
    report = run(ingestion.ingest_text("   \n\n  ", VectorMetadata(type="file")))
    assert report.total_chunks == 0
    assert report.stored_ids == []
    assert embed_client.calls == []


def test_embedding_failures_are_counted_and_skipped(ingestion, embed_client):
    chunks = chunk_text(TEXT, OPTIONS)
    embed_client.failing.add(chunks[1].text)
    report = run(ingestion.ingest_text(TEXT, VectorMetadata(type="file"), OPTIONS))
    assert report.failed == 1
    assert len(report.stored_ids) == len(chunks) - 1


def test_quota_stops_remaining_chunks(ingestion, monkeypatch):
    monkeypatch.setenv("EMBEDDINGS_MAX_EMBEDDINGS_PER_FILE", "2")
    report = run(ingestion.ingest_text(TEXT, VectorMetadata(type="file", file_id="big.txt"), OPTIONS))
    assert report.quota_reached
    assert len(report.stored_ids) == 2
    assert report.failed == report.total_chunks - 2


def test_store_documents_overrides_file_id(ingestion, engine, embed_client):
    embed_client.failing.add("unreachable")
    ids = run(ingestion.store_documents(
        [
            ("first document", VectorMetadata(type="file", file_id="a")),
            ("unreachable", VectorMetadata(type="file")),
            ("second document", VectorMetadata(type="file")),
        ],
        file_id="shared",
    ))
    assert len(ids) == 2
    docs = run(engine.store.get_all_vectors(VectorFilter(file_id="shared")))
    assert [d.content for d in docs] == ["first document", "second document"]


def test_store_chat_message(ingestion, engine):
    doc_id = run(ingestion.store_chat_message("hello there", "user", "session-1", title="Greeting", message_id="m1"))
    doc = run(engine.store.get_document(doc_id))
    assert doc.metadata.type == "chat"
    assert doc.metadata.role == "user"
    assert doc.metadata.chat_id == "session-1"
    assert doc.metadata.source == "Greeting"

    # the same message again is deduplicated
    assert run(ingestion.store_chat_message("hello there", "user", "session-1", message_id="m1")) == doc_id


def test_store_chat_message_returns_zero_on_failure(ingestion, embed_client):
    embed_client.failing.add("lost message")
    assert run(ingestion.store_chat_message("lost message", "assistant", "session-1")) == 0
