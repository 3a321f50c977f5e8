"""FastAPI application entry point for the memory engine."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.store.StoreClientManager import StoreClientManager
from shared.embeddings.KeywordIndex import KeywordIndex
from shared.embeddings.SearchCache import SearchCache
from shared.embeddings.VectorIndex import VectorIndex
from shared.embeddings.VectorStore import VectorStore
from services.ingestion.IngestionService import IngestionService
from services.retrieval.RetrievalService import RetrievalService
from server.routers.MemoryRouter import router as memory_router
from server.routers.SearchRouter import router as search_router
from server.routers.IndexRouter import router as index_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


def init_services(
    app: FastAPI,
    helper_config: HelperConfig,
    store_client: StoreClientInterface,
    embed_client: EmbedClientInterface,
) -> None:
    """Wire the engine components onto app.state. The indexes are shared by the store and the retrieval service."""
    search_cache = SearchCache(helper_config=helper_config)
    vector_index = VectorIndex(helper_config=helper_config, store_client=store_client)
    keyword_index = KeywordIndex(helper_config=helper_config)
    vector_store = VectorStore(
        helper_config=helper_config,
        store_client=store_client,
        vector_index=vector_index,
        keyword_index=keyword_index,
        search_cache=search_cache,
    )

    app.state.helper_config = helper_config
    app.state.store_client = store_client
    app.state.embed_client = embed_client
    app.state.vector_store = vector_store
    app.state.retrieval_service = RetrievalService(
        helper_config=helper_config,
        vector_store=vector_store,
        embed_client=embed_client,
        vector_index=vector_index,
        keyword_index=keyword_index,
        search_cache=search_cache,
    )
    app.state.ingestion_service = IngestionService(
        helper_config=helper_config,
        vector_store=vector_store,
        embed_client=embed_client,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    helper_config = HelperConfig(logger=logging)
    # fail fast on a broken EMBEDDINGS_* configuration
    helper_config.get_embedding_config()

    store_client = StoreClientManager(helper_config=helper_config).get_client()
    embed_client = EmbedClientManager(helper_config=helper_config).get_client()

    logging.info("Booting all clients...")
    for client in [store_client, embed_client]:
        await client.boot()
    logging.info("All clients booted successfully.")

    init_services(app, helper_config, store_client, embed_client)
    await check_connections(store_client, embed_client)

    # indexes are derived state, rebuild them from the store on startup
    await app.state.retrieval_service.ensure_ready()

    # while the app is running...
    yield

    logging.info("Shutting down, closing all clients...")
    for client in [embed_client, store_client]:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="memory_rag_engine",
    description=(
        "Local-first hybrid retrieval engine for retrieval-augmented chat. "
        "Stores chunk embeddings durably and serves semantic, keyword and hybrid "
        "search plus ready-to-use prompt context."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(memory_router)
app.include_router(search_router)
app.include_router(index_router)


async def check_connections(store_client: StoreClientInterface, embed_client: EmbedClientInterface) -> None:
    """Check connectivity to all configured backends on startup.

    Embedding failures are non-fatal: stored memory stays searchable with
    precomputed embeddings, and context retrieval fails open.

    Raises:
        RuntimeError: If the store is not usable.
    """
    if not await store_client.do_healthcheck():
        raise RuntimeError(f"Store client '{store_client.get_engine_name()}' is not usable. Cannot serve requests.")

    if not await embed_client.do_healthcheck():
        logging.warning(
            "Embed client '%s' is not reachable. Text queries and ingestion will fail until it is.",
            embed_client.get_engine_name(),
        )
        return
    try:
        dimension = await embed_client.do_fetch_embedding_dimension()
        logging.info("Embedding model '%s' produces %d-dimensional vectors.", embed_client.embed_model, dimension)
    except (RuntimeError, ValueError) as e:
        logging.warning("Could not read details of embedding model '%s': %s", embed_client.embed_model, e)


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting memory_rag_engine API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
