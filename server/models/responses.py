from pydantic import BaseModel

from shared.models.search import KeywordSearchResult, SearchResult
from shared.models.stats import KeywordIndexStats, VectorIndexStats


class StoreVectorResponse(BaseModel):
    id: int


class DeleteResponse(BaseModel):
    deleted: int


class SearchResponse(BaseModel):
    results: list[SearchResult]
    total: int


class KeywordSearchResponse(BaseModel):
    results: list[KeywordSearchResult]
    total: int


class ContextResponse(BaseModel):
    context: str


class IndexStatsResponse(BaseModel):
    vector_index: VectorIndexStats
    keyword_index: KeywordIndexStats


class IndexBuildResponse(IndexStatsResponse):
    started: bool
