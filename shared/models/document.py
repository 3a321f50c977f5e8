"""Documents stored in the vector store and their metadata."""

from typing import Literal

from pydantic import BaseModel, Field

from shared.helper.clock import now_ms

DocumentType = Literal["chat", "file", "webpage"]
MessageRole = Literal["user", "assistant", "system"]


class VectorMetadata(BaseModel):
    """Metadata stored alongside each vector.

    Attributes:
        type:         Origin of the content ("chat", "file" or "webpage").
        source:       Free-form origin label (file name, page title, ...).
        session_id:   Chat session the content belongs to. Scope of deduplication.
        file_id:      Source file. Scope of the per-file quota.
        url:          Source URL for webpage content.
        title:        Human-readable title, used when building RAG context.
        timestamp:    Creation time in epoch milliseconds. Eviction order.
        chunk_index:  Zero-based position of this chunk within its source.
        total_chunks: Number of chunks the source was split into.
        role:         Author role for chat messages.
        chat_id:      Chat the message belongs to.
        message_id:   Stable message identifier, used for deduplication.
    """

    type: DocumentType
    source: str | None = None
    session_id: str | None = None
    file_id: str | None = None
    url: str | None = None
    title: str | None = None
    timestamp: int = Field(default_factory=now_ms)
    chunk_index: int | None = None
    total_chunks: int | None = None
    role: MessageRole | None = None
    chat_id: str | None = None
    message_id: str | None = None


class VectorDocument(BaseModel):
    """A chunk of text with its embedding.

    ``id`` is assigned by the persistence backend. ``normalized_embedding``
    has unit length whenever ``embedding`` is non-zero.
    """

    id: int | None = None
    content: str
    embedding: list[float]
    normalized_embedding: list[float] | None = None
    norm: float | None = None
    metadata: VectorMetadata
