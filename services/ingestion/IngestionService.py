"""Ingestion pipeline: text -> chunks -> embeddings -> vector store."""

from typing import Callable

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.embeddings.VectorStore import VectorStore
from shared.embeddings.chunker import chunk_text_async
from shared.errors import QuotaExceededError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import ChunkOptions
from shared.models.document import MessageRole, VectorMetadata
from shared.models.embedding import EmbeddingError
from shared.models.ingestion import IngestionReport

ProgressCallback = Callable[[int, int], None]


class IngestionService:
    def __init__(
        self,
        helper_config: HelperConfig,
        vector_store: VectorStore,
        embed_client: EmbedClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._store = vector_store
        self._embed_client = embed_client

    ##########################################
    ################ INGEST ##################
    ##########################################

    async def ingest_text(
        self,
        text: str,
        metadata: VectorMetadata,
        options: ChunkOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> IngestionReport:
        """Chunk, embed and store a text.

        Chunks that cannot be embedded or stored are logged and counted as
        failed. Reaching the per-file quota stops the remaining chunks.

        Args:
            text (str): The text to ingest.
            metadata (VectorMetadata): Metadata shared by all chunks; chunk_index and
                total_chunks are filled in per chunk.
            options (ChunkOptions | None): Chunking parameters, defaults from EMBEDDINGS_* config.
            on_progress (ProgressCallback | None): Called with (embedded, total) after every batch.

        Returns:
            IngestionReport: Stored ids and failure counts.
        """
        if options is None:
            config = self._helper_config.get_embedding_config()
            options = ChunkOptions(
                chunk_size=config.chunk_size,
                chunk_overlap=config.chunk_overlap,
                strategy=config.chunking_strategy,
            )

        chunks = await chunk_text_async(text, options, logger=self.logging)
        report = IngestionReport(total_chunks=len(chunks))
        if not chunks:
            return report

        embeddings = await self._embed_client.generate_embeddings_batch(
            [chunk.text for chunk in chunks],
            on_progress=on_progress,
        )

        for chunk, embedding in zip(chunks, embeddings):
            if isinstance(embedding, EmbeddingError):
                self.logging.warning("Chunk %d not embedded (%s): %s", chunk.index, embedding.code, embedding.error)
                report.failed += 1
                continue
            chunk_meta = metadata.model_copy(update={"chunk_index": chunk.index, "total_chunks": len(chunks)})
            try:
                report.stored_ids.append(await self._store.store_vector(chunk.text, embedding.embedding, chunk_meta))
            except QuotaExceededError as e:
                self.logging.warning("%s. Skipping the remaining chunks.", e)
                report.quota_reached = True
                report.failed += len(chunks) - chunk.index
                break
            except ValueError as e:
                self.logging.error("Chunk %d could not be stored: %s", chunk.index, e)
                report.failed += 1

        self.logging.info(
            "Ingested %d of %d chunks from '%s' (%d failed).",
            len(report.stored_ids), len(chunks), metadata.source or metadata.title or metadata.type, report.failed,
        )
        return report

    async def store_documents(self, documents: list[tuple[str, VectorMetadata]], file_id: str | None = None) -> list[int]:
        """Embed and store whole documents one by one, skipping failures.

        Args:
            documents (list[tuple[str, VectorMetadata]]): Content and metadata pairs.
            file_id (str | None): Overrides the file_id of every document when set.

        Returns:
            list[int]: Ids of the stored documents.
        """
        ids: list[int] = []
        for content, metadata in documents:
            if file_id is not None:
                metadata = metadata.model_copy(update={"file_id": file_id})
            embedding = await self._embed_client.generate_embedding(content)
            if isinstance(embedding, EmbeddingError):
                self.logging.warning("Document not embedded (%s): %s", embedding.code, embedding.error)
                continue
            try:
                ids.append(await self._store.store_vector(content, embedding.embedding, metadata))
            except (QuotaExceededError, ValueError) as e:
                self.logging.warning("Document not stored: %s", e)
        return ids

    async def store_chat_message(
        self,
        content: str,
        role: MessageRole,
        session_id: str,
        title: str | None = None,
        message_id: str | None = None,
    ) -> int:
        """Store one chat message as memory.

        Returns:
            int: The stored id, or 0 if the message could not be embedded or stored.
        """
        embedding = await self._embed_client.generate_embedding(content)
        if isinstance(embedding, EmbeddingError):
            self.logging.warning("Chat message not embedded (%s): %s", embedding.code, embedding.error)
            return 0
        metadata = VectorMetadata(
            type="chat",
            role=role,
            session_id=session_id,
            chat_id=session_id,
            title=title,
            source=title,
            message_id=message_id,
        )
        try:
            return await self._store.store_vector(content, embedding.embedding, metadata)
        except (QuotaExceededError, ValueError) as e:
            self.logging.warning("Chat message not stored: %s", e)
            return 0
