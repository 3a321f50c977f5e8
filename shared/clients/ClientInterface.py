from abc import ABC, abstractmethod
from typing import Any, Callable

from shared.errors import InvalidConfigError
from shared.models.config import EnvConfig
from shared.helper.HelperConfig import HelperConfig


class ClientInterface(ABC):
    """Backend client: identity, namespaced env configuration and lifecycle.

    Every client is addressed by a type ("store", "embed") and an engine
    ("sqlite", "ollama"). Its settings live in {TYPE}_{ENGINE}_{KEY}
    variables, e.g. STORE_SQLITE_PATH or EMBED_OLLAMA_BASE_URL, and are
    checked once when the client is created.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """Read every required setting once so that a broken setup fails at startup.

        Raises:
            InvalidConfigError: Listing every missing or malformed setting.
        """
        problems: list[str] = []
        for config in self._get_required_config():
            try:
                self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)
            except ValueError as e:
                problems.append(str(e))
        if problems:
            raise InvalidConfigError(
                f"{self.get_client_type()} client '{self.get_engine_name()}' is misconfigured: " + " ".join(problems)
            )

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        """
        Returns the client type, e.g. "store" or "embed".
        """
        pass

    def get_engine_name(self) -> str:
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        """
        Returns the engine name as used in module and class names, e.g. "Sqlite".
        """
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Returns the settings this client reads, with their types and defaults.
        A default of None makes the setting mandatory.
        """
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        return f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}_{raw_key.upper()}"

    def _getter_for(self, val_type: str) -> Callable[..., Any]:
        getters = {
            "string": self._helper_config.get_string_val,
            "number": self._helper_config.get_number_val,
            "bool": self._helper_config.get_bool_val,
            "list": self._helper_config.get_list_val,
        }
        if val_type not in getters:
            raise InvalidConfigError(f"Unsupported config value type '{val_type}' in {self.get_client_type()} client '{self.get_engine_name()}'.")
        return getters[val_type]

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """Read one of this client's settings.

        Args:
            raw_key (str): Key without the {TYPE}_{ENGINE}_ prefix, e.g. "PATH".
            default (Any): Value used when the variable is unset.
            val_type (str): "string", "number", "bool" or "list".
        """
        return self._getter_for(val_type)(self._get_config_key_name(raw_key), default=default)

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    @abstractmethod
    async def boot(self) -> None:
        """Acquire connections and any other resources needed by the client."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release all resources acquired in boot()."""
        pass

    @abstractmethod
    async def do_healthcheck(self) -> bool:
        """
        Returns True if the backend is usable.
        """
        pass
