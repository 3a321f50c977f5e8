from fastapi import APIRouter, Depends, HTTPException, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import ChatMessageRequest, IngestRequest, StoreVectorRequest
from server.models.responses import DeleteResponse, StoreVectorResponse
from shared.errors import InvalidConfigError, QuotaExceededError
from shared.models.chunk import ChunkOptions
from shared.models.document import DocumentType, VectorDocument
from shared.models.ingestion import IngestionReport
from shared.models.search import VectorFilter
from shared.models.stats import StorageStats

router = APIRouter(prefix="/memory", tags=["memory"])


def filter_params(
    type: DocumentType | None = None,
    session_id: str | None = None,
    file_id: str | None = None,
    url: str | None = None,
    message_id: str | None = None,
) -> VectorFilter:
    return VectorFilter(type=type, session_id=session_id, file_id=file_id, url=url, message_id=message_id)


@router.post("/vectors")
async def store_vector(
    request: Request,
    body: StoreVectorRequest,
    _: None = Depends(verify_api_key),
) -> StoreVectorResponse:
    """Store a precomputed embedding. Returns the id of an existing duplicate if there is one."""
    try:
        doc_id = await request.app.state.vector_store.store_vector(body.content, body.embedding, body.metadata)
    except QuotaExceededError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return StoreVectorResponse(id=doc_id)


@router.post("/ingest")
async def ingest_text(
    request: Request,
    body: IngestRequest,
    _: None = Depends(verify_api_key),
) -> IngestionReport:
    """Chunk, embed and store a text."""
    options = None
    if body.chunk_size is not None or body.chunk_overlap is not None or body.strategy is not None:
        config = request.app.state.helper_config.get_embedding_config()
        options = ChunkOptions(
            chunk_size=body.chunk_size if body.chunk_size is not None else config.chunk_size,
            chunk_overlap=body.chunk_overlap if body.chunk_overlap is not None else config.chunk_overlap,
            strategy=body.strategy or config.chunking_strategy,
        )
    try:
        return await request.app.state.ingestion_service.ingest_text(body.text, body.metadata, options=options)
    except InvalidConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/chat")
async def store_chat_message(
    request: Request,
    body: ChatMessageRequest,
    _: None = Depends(verify_api_key),
) -> StoreVectorResponse:
    """Store a chat message. id is 0 when the message could not be stored."""
    doc_id = await request.app.state.ingestion_service.store_chat_message(
        body.content, body.role, body.session_id, title=body.title, message_id=body.message_id,
    )
    return StoreVectorResponse(id=doc_id)


@router.get("/vectors")
async def get_vectors_by_context(
    request: Request,
    filters: VectorFilter = Depends(filter_params),
    _: None = Depends(verify_api_key),
) -> list[VectorDocument]:
    return await request.app.state.vector_store.get_vectors_by_context(filters)


@router.delete("/vectors")
async def delete_vectors(
    request: Request,
    filters: VectorFilter = Depends(filter_params),
    _: None = Depends(verify_api_key),
) -> DeleteResponse:
    """Delete vectors matching the query filters. Without filters everything is deleted."""
    return DeleteResponse(deleted=await request.app.state.vector_store.delete_vectors(filters))


@router.delete("")
async def clear_all_vectors(
    request: Request,
    type: DocumentType | None = None,
    _: None = Depends(verify_api_key),
) -> DeleteResponse:
    return DeleteResponse(deleted=await request.app.state.vector_store.clear_all_vectors(type))


@router.get("/stats")
async def get_storage_stats(
    request: Request,
    _: None = Depends(verify_api_key),
) -> StorageStats:
    return await request.app.state.vector_store.get_storage_stats()


@router.post("/deduplicate")
async def remove_duplicate_vectors(
    request: Request,
    _: None = Depends(verify_api_key),
) -> DeleteResponse:
    return DeleteResponse(deleted=await request.app.state.vector_store.remove_duplicate_vectors())
