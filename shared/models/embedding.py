from pydantic import BaseModel


class EmbeddingResult(BaseModel):
    embedding: list[float]
    model: str


class EmbeddingError(BaseModel):
    """Failed embedding request, returned as a value instead of raised.

    Attributes:
        error: Human-readable description.
        code:  HTTP_<status>, INVALID_RESPONSE or NETWORK_ERROR.
    """

    error: str
    code: str
