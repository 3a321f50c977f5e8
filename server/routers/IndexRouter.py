from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.responses import IndexBuildResponse, IndexStatsResponse

router = APIRouter(prefix="/index", tags=["index"])


@router.post("/build")
async def build_indexes(
    request: Request,
    _: None = Depends(verify_api_key),
) -> IndexBuildResponse:
    """Rebuild the vector and keyword indexes from the store. started is False if a build was already running."""
    retrieval_service = request.app.state.retrieval_service
    started = await retrieval_service.build_indexes()
    vector_stats, keyword_stats = retrieval_service.get_index_stats()
    return IndexBuildResponse(started=started, vector_index=vector_stats, keyword_index=keyword_stats)


@router.delete("")
async def clear_indexes(
    request: Request,
    _: None = Depends(verify_api_key),
) -> IndexStatsResponse:
    """Drop the derived indexes. They are rebuilt lazily on the next search."""
    retrieval_service = request.app.state.retrieval_service
    retrieval_service.clear_indexes()
    vector_stats, keyword_stats = retrieval_service.get_index_stats()
    return IndexStatsResponse(vector_index=vector_stats, keyword_index=keyword_stats)


@router.get("/stats")
async def get_index_stats(
    request: Request,
    _: None = Depends(verify_api_key),
) -> IndexStatsResponse:
    vector_stats, keyword_stats = request.app.state.retrieval_service.get_index_stats()
    return IndexStatsResponse(vector_index=vector_stats, keyword_index=keyword_stats)
