import asyncio
import hashlib
from abc import abstractmethod
from collections import OrderedDict
from typing import Callable

import httpx

from shared.clients.HttpClientInterface import HttpClientInterface
from shared.errors import EmbeddingRequestError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.clock import now_ms
from shared.models.embedding import EmbeddingError, EmbeddingResult

DEFAULT_EMBED_MODEL = "mxbai-embed-large"
EMBED_CACHE_MAX_ENTRIES = 100
EMBED_CACHE_TTL_MS = 24 * 60 * 60 * 1000
BATCH_DELAY_SECONDS = 0.1

ProgressCallback = Callable[[int, int], None]


class EmbedClientInterface(HttpClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=DEFAULT_EMBED_MODEL)

        # content hash -> (embedding, model, stored at ms)
        self._embedding_cache: OrderedDict[str, tuple[list[float], str, int]] = OrderedDict()
        self._clock = now_ms

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests (e.g. "/api/embed").
        """
        pass

    @abstractmethod
    def get_endpoint_model_details(self) -> str:
        """
        Returns the endpoint path for model details requests (e.g. "/api/show").
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str], model: str) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.
            model (str): The embedding model to use.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        """
        Extracts the embedding vector size from the model information response.

        Raises:
            ValueError: If the vector size cannot be determined.
        """
        pass

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    ##########################################
    ################# CACHE ##################
    ##########################################

    @staticmethod
    def _cache_key(text: str, model: str) -> str:
        return hashlib.sha256(f"{model}\x00{text}".encode("utf-8")).hexdigest()

    def _cache_get(self, key: str) -> tuple[list[float], str] | None:
        entry = self._embedding_cache.get(key)
        if entry is None:
            return None
        embedding, model, stored_at = entry
        if self._clock() - stored_at >= EMBED_CACHE_TTL_MS:
            del self._embedding_cache[key]
            return None
        return embedding, model

    def _cache_set(self, key: str, embedding: list[float], model: str) -> None:
        self._embedding_cache.pop(key, None)
        while len(self._embedding_cache) >= EMBED_CACHE_MAX_ENTRIES:
            self._embedding_cache.popitem(last=False)
        self._embedding_cache[key] = (embedding, model, self._clock())

    def clear_embedding_cache(self) -> None:
        self._embedding_cache.clear()

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_dimension(self) -> int:
        """Ask the backend how many dimensions the configured model produces.

        Raises:
            RuntimeError: If the model details cannot be fetched (e.g. unknown model).
            ValueError: If the details do not name a dimension.
        """
        response = await self.do_request(
            method="POST",
            json={"name": self.embed_model},
            endpoint=self.get_endpoint_model_details(),
            raise_on_error=True,
        )
        return self.extract_vector_size_from_model_info(model_info=response.json())

    async def do_embed(self, texts: list[str] | str, model: str | None = None) -> list[list[float]]:
        """Send an embedding request and return the extracted vectors.

        Args:
            texts (list[str] | str): One or more texts to embed.
            model (str | None): Model override, defaults to EMBED_MODEL.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            EmbeddingRequestError: If the backend answers with a non-200 status (code HTTP_<status>).
            ValueError: If the response does not contain valid embeddings.
            httpx.HTTPError: If the backend cannot be reached.
        """
        texts = [texts] if isinstance(texts, str) else texts
        body = self.get_embed_payload(texts, model or self.embed_model)
        response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingRequestError(
                f"Embedding request failed with status {response.status_code}",
                code=f"HTTP_{response.status_code}",
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ValueError(f"Embedding response is not valid JSON: {e}") from e
        return self.extract_embeddings_from_response(data)

    async def generate_embedding(self, text: str, model: str | None = None) -> EmbeddingResult | EmbeddingError:
        """Embed a single text. Provider failures are returned, never raised.

        Args:
            text (str): The text to embed.
            model (str | None): Model override, defaults to EMBED_MODEL.

        Returns:
            EmbeddingResult | EmbeddingError: The embedding, or an error value with code
            HTTP_<status>, INVALID_RESPONSE or NETWORK_ERROR.
        """
        model = model or self.embed_model
        caching = self._helper_config.get_embedding_config().enable_caching
        key = self._cache_key(text, model)
        if caching:
            cached = self._cache_get(key)
            if cached is not None:
                return EmbeddingResult(embedding=cached[0], model=cached[1])

        try:
            vectors = await self.do_embed([text], model=model)
        except EmbeddingRequestError as e:
            return EmbeddingError(error=str(e), code=e.code)
        except ValueError as e:
            self.logging.warning("Invalid embedding response from '%s': %s", self.get_engine_name(), e)
            return EmbeddingError(error=str(e), code="INVALID_RESPONSE")
        except httpx.HTTPError as e:
            self.logging.warning("Embedding backend '%s' not reachable: %s", self.get_engine_name(), e)
            return EmbeddingError(error=f"Network error: {e}", code="NETWORK_ERROR")

        embedding = [float(v) for v in vectors[0]]
        if caching:
            self._cache_set(key, embedding, model)
        return EmbeddingResult(embedding=embedding, model=model)

    async def generate_embeddings_batch(
        self,
        texts: list[str],
        model: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[EmbeddingResult | EmbeddingError]:
        """Embed many texts in groups of EMBEDDINGS_BATCH_SIZE.

        Texts in a group are embedded concurrently; progress is reported as
        (done, total) after every group, with a short pause between groups.

        Returns:
            list[EmbeddingResult | EmbeddingError]: One entry per input text, in input order.
        """
        batch_size = self._helper_config.get_embedding_config().batch_size
        results: list[EmbeddingResult | EmbeddingError] = []
        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            results.extend(await asyncio.gather(*[self.generate_embedding(text, model=model) for text in batch]))
            if on_progress:
                on_progress(len(results), len(texts))
            if len(results) < len(texts):
                await asyncio.sleep(BATCH_DELAY_SECONDS)
        return results
