"""Search options, filters and results."""

from typing import Literal

from pydantic import BaseModel, Field

from shared.models.document import DocumentType, VectorDocument


class VectorFilter(BaseModel):
    """Equality filter over document metadata. Unset fields match everything.

    A list ``file_id`` matches any of the given files; an empty list matches nothing.
    """

    type: DocumentType | None = None
    session_id: str | None = None
    file_id: str | list[str] | None = None
    url: str | None = None
    message_id: str | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in type(self).model_fields)

    def matches(self, doc: VectorDocument) -> bool:
        meta = doc.metadata
        if self.type is not None and meta.type != self.type:
            return False
        if self.session_id is not None and meta.session_id != self.session_id:
            return False
        if self.url is not None and meta.url != self.url:
            return False
        if self.message_id is not None and meta.message_id != self.message_id:
            return False
        if self.file_id is not None:
            if isinstance(self.file_id, list):
                return meta.file_id in self.file_id
            return meta.file_id == self.file_id
        return True


class SearchOptions(BaseModel):
    """Options for a semantic search. Unset limit and threshold fall back to the engine config."""

    limit: int | None = Field(default=None, gt=0)
    min_similarity: float | None = None
    type: DocumentType | None = None
    session_id: str | None = None
    file_id: str | list[str] | None = None

    def to_filter(self) -> VectorFilter:
        return VectorFilter(type=self.type, session_id=self.session_id, file_id=self.file_id)


class HybridSearchOptions(SearchOptions):
    keyword_weight: float = Field(default=0.7, ge=0)
    semantic_weight: float = Field(default=0.3, ge=0)


class KeywordSearchOptions(BaseModel):
    limit: int = Field(default=50, gt=0)
    fuzzy: float = Field(default=0.2, ge=0)
    prefix: bool = True
    combine_with: Literal["AND", "OR"] = "OR"


class SearchResult(BaseModel):
    document: VectorDocument
    similarity: float


class KeywordSearchResult(BaseModel):
    id: int
    score: float
    document: VectorDocument
    matched_terms: list[str] = []


class CacheEntry(BaseModel):
    results: list[SearchResult]
    timestamp: int
