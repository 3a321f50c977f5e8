from pydantic import BaseModel


class IngestionReport(BaseModel):
    """Outcome of ingesting one text.

    Attributes:
        stored_ids:   Ids of stored (or deduplicated) chunks, in chunk order.
        failed:       Chunks that could not be embedded or stored.
        total_chunks: Number of chunks the text was split into.
        quota_reached: True when the per-file quota stopped the ingestion early.
    """

    stored_ids: list[int] = []
    failed: int = 0
    total_chunks: int = 0
    quota_reached: bool = False
