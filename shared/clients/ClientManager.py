import importlib

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class ClientManager:
    """Selects a backend from {TYPE}_ENGINE and instantiates it.

    The engine name maps to a module by convention: engine "sqlite" of type
    "store" is shared.clients.store.sqlite.StoreClientSqlite.
    """

    client_type: str = ""
    default_engine: str = ""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        engine = self.helper_config.get_string_val(f"{self.client_type.upper()}_ENGINE", default=self.default_engine)
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> ClientInterface:
        """
        Raises:
            ValueError: If no client exists for the configured engine.
        """
        engine = self._get_engine_from_env()
        prefix = self.client_type.capitalize()
        class_name = f"{prefix}Client{engine}"
        try:
            module = importlib.import_module(f"shared.clients.{self.client_type}.{engine.lower()}.{class_name}")
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported {self.client_type} engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated %s client for engine: %s", self.client_type, engine)
        return client

    def get_client(self) -> ClientInterface:
        return self.client
