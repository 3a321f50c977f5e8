from numbers import Real

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

DEFAULT_BASE_URL = "http://localhost:11434"


class EmbedClientOllama(EmbedClientInterface):
    """Embeddings from a local Ollama server via /api/embed.

    Settings: EMBED_OLLAMA_BASE_URL, EMBED_OLLAMA_API_KEY (for servers behind
    an authenticating proxy), EMBED_OLLAMA_KEEP_ALIVE (how long Ollama keeps
    the model loaded, e.g. "5m") and EMBED_OLLAMA_TRUNCATE (cut inputs to the
    model context instead of failing).
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=DEFAULT_BASE_URL)
        self._api_key = self.get_config_val("API_KEY", default="")
        self._keep_alive = self.get_config_val("KEEP_ALIVE", default="")
        self._truncate = self.get_config_val("TRUNCATE", default=True, val_type="bool")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=DEFAULT_BASE_URL),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="KEEP_ALIVE", val_type="string", default=""),
            EnvConfig(env_key="TRUNCATE", val_type="bool", default=True),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/api/version"

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def get_endpoint_model_details(self) -> str:
        return "/api/show"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str], model: str) -> dict:
        payload: dict = {"model": model, "input": texts, "truncate": self._truncate}
        if self._keep_alive:
            payload["keep_alive"] = self._keep_alive
        return payload

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        # the key is prefixed with the model family, e.g. "bert.embedding_length"
        for key, value in model_info.get("model_info", {}).items():
            if key.endswith(".embedding_length"):
                return int(value)
        raise ValueError(f"Could not determine embedding vector size for model {self.embed_model}")

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Vectors from an /api/embed response: {"model": ..., "embeddings": [[...], ...]}.

        Raises:
            ValueError: If embeddings are missing, empty or not numeric.
        """
        if not isinstance(response_data, dict):
            raise ValueError(f"Ollama response is not an object but {type(response_data).__name__}")
        embeddings = response_data.get("embeddings")
        if not isinstance(embeddings, list) or not embeddings:
            raise ValueError(f"Ollama response does not contain embeddings. Response keys: {list(response_data.keys())}")
        for index, vector in enumerate(embeddings):
            if not isinstance(vector, list) or not vector:
                raise ValueError(f"Embedding {index} in the Ollama response is empty")
            if not all(isinstance(v, Real) and not isinstance(v, bool) for v in vector):
                raise ValueError(f"Embedding {index} in the Ollama response is not numeric")
        return embeddings
