from typing import Literal

from pydantic import BaseModel, Field

from shared.models.document import DocumentType, MessageRole, VectorMetadata


class StoreVectorRequest(BaseModel):
    content: str
    embedding: list[float] = Field(min_length=1)
    metadata: VectorMetadata


class IngestRequest(BaseModel):
    text: str
    metadata: VectorMetadata
    chunk_size: int | None = None
    chunk_overlap: int | None = None
    strategy: str | None = None


class ChatMessageRequest(BaseModel):
    content: str
    role: MessageRole
    session_id: str
    title: str | None = None
    message_id: str | None = None


class SemanticSearchRequest(BaseModel):
    """Either a precomputed embedding or a query text to embed."""

    query: str | None = None
    embedding: list[float] | None = None
    limit: int | None = Field(default=None, gt=0)
    min_similarity: float | None = None
    type: DocumentType | None = None
    session_id: str | None = None
    file_id: str | list[str] | None = None


class HybridSearchRequest(SemanticSearchRequest):
    query: str
    keyword_weight: float = Field(default=0.7, ge=0)
    semantic_weight: float = Field(default=0.3, ge=0)


class KeywordSearchRequest(BaseModel):
    query: str
    limit: int = Field(default=50, gt=0)
    fuzzy: float = Field(default=0.2, ge=0)
    prefix: bool = True
    combine_with: Literal["AND", "OR"] = "OR"


class ContextRequest(BaseModel):
    query: str
    file_ids: list[str] | None = None
    limit: int | None = Field(default=None, gt=0)
    min_similarity: float | None = None
    type: DocumentType | None = None
    session_id: str | None = None
