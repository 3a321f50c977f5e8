from shared.clients.ClientManager import ClientManager
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface


class EmbedClientManager(ClientManager):
    """Embedding provider from EMBED_ENGINE, "ollama" by default."""

    client_type = "embed"
    default_engine = "ollama"

    def get_client(self) -> EmbedClientInterface:
        return self.client
