"""Ingestion runner entry point.

Chunks, embeds and stores local text files into the vector store.

Usage:
    python -m services.ingestion.ingest_runner notes.md docs/guide.txt
    python -m services.ingestion.ingest_runner --stats
"""

import argparse
import asyncio
import os

from services.ingestion.IngestionService import IngestionService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.store.StoreClientManager import StoreClientManager
from shared.embeddings.KeywordIndex import KeywordIndex
from shared.embeddings.SearchCache import SearchCache
from shared.embeddings.VectorIndex import VectorIndex
from shared.embeddings.VectorStore import VectorStore
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.document import VectorMetadata


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest text files into the local memory store.")
    parser.add_argument("paths", nargs="*", help="Text files to ingest.")
    parser.add_argument("--type", dest="doc_type", choices=["file", "webpage", "chat"], default="file")
    parser.add_argument("--session-id", default=None, help="Session the content belongs to.")
    parser.add_argument("--stats", action="store_true", help="Print storage statistics and exit.")
    parser.add_argument("--deduplicate", action="store_true", help="Remove duplicate vectors after ingesting.")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """Run the ingestion pipeline for the given files."""
    args = parse_args(argv)
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    store_client = StoreClientManager(helper_config=config).get_client()
    embed_client = EmbedClientManager(helper_config=config).get_client()

    try:
        # the store is required, without it there is nothing to ingest into
        try:
            await store_client.boot()
            if not await store_client.do_healthcheck():
                raise RuntimeError("healthcheck failed")
        except Exception as e:
            logger.error(f"Error booting store client {store_client.get_engine_name()}: {e}. Aborting.")
            return

        search_cache = SearchCache(helper_config=config)
        vector_index = VectorIndex(helper_config=config, store_client=store_client)
        keyword_index = KeywordIndex(helper_config=config)
        vector_store = VectorStore(
            helper_config=config,
            store_client=store_client,
            vector_index=vector_index,
            keyword_index=keyword_index,
            search_cache=search_cache,
        )

        if args.stats:
            stats = await vector_store.get_storage_stats()
            logger.info(
                "Store holds %d vectors (%.2f MB): %s",
                stats.total_vectors, stats.total_size_mb, stats.counts_by_type,
            )
            return

        if not args.paths:
            logger.warning("No files given, nothing to ingest.")
            return

        await embed_client.boot()
        if not await embed_client.do_healthcheck():
            logger.error(f"Embed client {embed_client.get_engine_name()} is not reachable. Aborting.")
            return

        ingestion = IngestionService(helper_config=config, vector_store=vector_store, embed_client=embed_client)
        for path in args.paths:
            try:
                with open(path, "r", encoding="utf-8") as f:
                    text = f.read()
            except OSError as e:
                logger.error(f"Could not read '{path}': {e}. Skipping.")
                continue
            metadata = VectorMetadata(
                type=args.doc_type,
                source=os.path.basename(path),
                title=os.path.basename(path),
                file_id=os.path.abspath(path),
                session_id=args.session_id,
            )
            await ingestion.ingest_text(
                text,
                metadata,
                on_progress=lambda done, total, p=path: logger.info("%s: embedded %d/%d chunks", p, done, total),
            )

        if args.deduplicate:
            await vector_store.remove_duplicate_vectors()
    finally:
        await embed_client.close()
        await store_client.close()


if __name__ == "__main__":
    asyncio.run(main())
