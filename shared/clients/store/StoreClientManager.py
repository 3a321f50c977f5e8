from shared.clients.ClientManager import ClientManager
from shared.clients.store.StoreClientInterface import StoreClientInterface


class StoreClientManager(ClientManager):
    """Persistence backend from STORE_ENGINE: "sqlite" (default) or "memory"."""

    client_type = "store"
    default_engine = "sqlite"

    def get_client(self) -> StoreClientInterface:
        return self.client
