from fastapi import APIRouter, Depends, HTTPException, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import ContextRequest, HybridSearchRequest, KeywordSearchRequest, SemanticSearchRequest
from server.models.responses import ContextResponse, KeywordSearchResponse, SearchResponse
from shared.models.embedding import EmbeddingError
from shared.models.search import HybridSearchOptions, KeywordSearchOptions, SearchOptions

router = APIRouter(prefix="/search", tags=["search"])


async def _query_embedding(request: Request, body: SemanticSearchRequest) -> list[float]:
    """Use the given embedding, or embed the query text.

    Raises:
        HTTPException: 400 if neither is given, 502 if the embedding provider fails.
    """
    if body.embedding:
        return body.embedding
    if not body.query:
        raise HTTPException(status_code=400, detail="Either 'embedding' or 'query' is required")
    result = await request.app.state.embed_client.generate_embedding(body.query)
    if isinstance(result, EmbeddingError):
        raise HTTPException(status_code=502, detail=f"Embedding failed ({result.code}): {result.error}")
    return result.embedding


@router.post("/semantic")
async def search_semantic(
    request: Request,
    body: SemanticSearchRequest,
    _: None = Depends(verify_api_key),
) -> SearchResponse:
    """Nearest neighbours of a query embedding or query text."""
    embedding = await _query_embedding(request, body)
    options = SearchOptions(
        limit=body.limit,
        min_similarity=body.min_similarity,
        type=body.type,
        session_id=body.session_id,
        file_id=body.file_id,
    )
    results = await request.app.state.retrieval_service.search_similar_vectors(embedding, options)
    return SearchResponse(results=results, total=len(results))


@router.post("/keyword")
async def search_keyword(
    request: Request,
    body: KeywordSearchRequest,
    _: None = Depends(verify_api_key),
) -> KeywordSearchResponse:
    options = KeywordSearchOptions(
        limit=body.limit,
        fuzzy=body.fuzzy,
        prefix=body.prefix,
        combine_with=body.combine_with,
    )
    results = await request.app.state.retrieval_service.search_keyword(body.query, options)
    return KeywordSearchResponse(results=results, total=len(results))


@router.post("/hybrid")
async def search_hybrid(
    request: Request,
    body: HybridSearchRequest,
    _: None = Depends(verify_api_key),
) -> SearchResponse:
    """Keyword and semantic relevance fused with the given weights."""
    embedding = await _query_embedding(request, body)
    options = HybridSearchOptions(
        limit=body.limit,
        min_similarity=body.min_similarity,
        type=body.type,
        session_id=body.session_id,
        file_id=body.file_id,
        keyword_weight=body.keyword_weight,
        semantic_weight=body.semantic_weight,
    )
    results = await request.app.state.retrieval_service.search_hybrid(body.query, embedding, options)
    return SearchResponse(results=results, total=len(results))


@router.post("/context")
async def retrieve_context(
    request: Request,
    body: ContextRequest,
    _: None = Depends(verify_api_key),
) -> ContextResponse:
    """Prompt context for a query. Empty when nothing relevant is found or retrieval fails."""
    options = SearchOptions(
        limit=body.limit,
        min_similarity=body.min_similarity,
        type=body.type,
        session_id=body.session_id,
    )
    context = await request.app.state.retrieval_service.retrieve_context(body.query, file_ids=body.file_ids, options=options)
    return ContextResponse(context=context)
