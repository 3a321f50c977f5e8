from typing import Literal

from pydantic import BaseModel

ChunkingStrategy = Literal["fixed", "semantic", "hybrid"]


class ChunkOptions(BaseModel):
    """Chunking parameters. Sizes are in estimated tokens (about 4 characters each).

    The strategy is kept as a plain string so that unknown values can fall
    back to "hybrid" instead of failing validation.
    """

    chunk_size: int
    chunk_overlap: int
    strategy: str = "hybrid"


class TextChunk(BaseModel):
    text: str
    index: int
    start_pos: int
    end_pos: int


class ChunkStats(BaseModel):
    total_chunks: int
    total_characters: int
    avg_chunk_size: int
    min_chunk_size: int
    max_chunk_size: int
    estimated_tokens: int
