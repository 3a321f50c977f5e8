"""Vector helpers shared by the store, the vector index and brute-force search.

Embeddings are kept as plain float lists in the models (they are persisted as
JSON); numpy is used for the arithmetic.
"""

import json
from typing import Sequence

import numpy as np

from shared.errors import DimensionMismatchError
from shared.models.document import VectorDocument

BYTES_PER_FLOAT = 4
DOCUMENT_OVERHEAD_BYTES = 100


def normalize_vector(vector: Sequence[float]) -> tuple[list[float], float]:
    """Scale a vector to unit length.

    Returns:
        tuple[list[float], float]: The normalised vector and the original L2 norm.
        A zero (or empty) vector yields a zero vector and a norm of 0.
    """
    arr = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(arr)) if arr.size else 0.0
    if norm == 0.0:
        return [0.0] * arr.size, 0.0
    return (arr / norm).tolist(), norm


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Plain cosine similarity. Returns 0 when either vector has zero length."""
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    if not a:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def cosine_similarity_optimized(
    query_normalized: Sequence[float],
    query_norm: float,
    doc_embedding: Sequence[float],
    doc_norm: float | None = None,
    doc_normalized: Sequence[float] | None = None,
) -> float:
    """Cosine similarity between a pre-normalised query and a stored document.

    Uses the cheapest available path: a dot product when the document's
    normalised embedding is known, the stored norm when only that is known,
    and a full norm computation otherwise.

    Raises:
        DimensionMismatchError: If query and document dimensions differ.
    """
    if len(query_normalized) != len(doc_embedding):
        raise DimensionMismatchError(len(query_normalized), len(doc_embedding))
    if not query_normalized or query_norm == 0:
        return 0.0

    query = np.asarray(query_normalized, dtype=np.float64)
    if doc_normalized is not None and len(doc_normalized) == len(query_normalized):
        return float(np.dot(query, np.asarray(doc_normalized, dtype=np.float64)))

    doc = np.asarray(doc_embedding, dtype=np.float64)
    if doc_norm is None:
        doc_norm = float(np.linalg.norm(doc))
    if doc_norm == 0:
        return 0.0
    return float(np.dot(query, doc) / doc_norm)


def estimate_storage_size(doc: VectorDocument) -> int:
    """Approximate persisted size of a document in bytes."""
    embedding_bytes = len(doc.embedding) * BYTES_PER_FLOAT
    normalized_bytes = len(doc.normalized_embedding or []) * BYTES_PER_FLOAT
    content_bytes = len(doc.content.encode("utf-8"))
    metadata_bytes = len(json.dumps(doc.metadata.model_dump(exclude_none=True)))
    return embedding_bytes + normalized_bytes + content_bytes + metadata_bytes + DOCUMENT_OVERHEAD_BYTES
