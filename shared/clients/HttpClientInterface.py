from abc import abstractmethod

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class HttpClientInterface(ClientInterface):
    """Client whose backend speaks HTTP. One httpx.AsyncClient lives from boot() to close().

    The request timeout in seconds comes from {TYPE}_TIMEOUT (default 30).
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.timeout = helper_config.get_number_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0)
        self._client: httpx.AsyncClient | None = None

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """
        Returns the headers authenticating against the backend, {} when none are needed.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """
        Returns the backend base URL, e.g. "http://localhost:11434".
        """
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """
        Returns the path answered with 2xx while the backend is up.
        """
        pass

    def _build_url(self, endpoint: str) -> str:
        path = endpoint.strip().lstrip("/")
        base = self._get_base_url().rstrip("/")
        return f"{base}/{path}" if path else base

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def do_healthcheck(self) -> bool:
        try:
            response = await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck())
        except httpx.HTTPError as e:
            self.logging.warning("Healthcheck of %s client '%s' failed: %s", self.get_client_type(), self.get_engine_name(), e)
            return False
        return response.is_success

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_request(
        self,
        method: str = "GET",
        endpoint: str = "",
        json: dict | None = None,
        params: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send a request to {base_url}/{endpoint} with the auth headers.

        Args:
            method (str): HTTP method.
            endpoint (str): Path below the base URL, leading slash optional.
            json (dict | None): JSON body.
            params (dict | None): Query parameters.
            raise_on_error (bool): Raise on a non-2xx status instead of returning the response.

        Raises:
            RuntimeError: If the client is not booted, or on a non-2xx status with raise_on_error.
            httpx.HTTPError: If the request itself fails (connection, timeout).
        """
        if self._client is None:
            raise RuntimeError("HTTP client not initialised. Call boot() before making requests.")

        url = self._build_url(endpoint)
        response = await self._client.request(
            method,
            url,
            json=json,
            params=params,
            headers=self._get_auth_header(),
            timeout=self.timeout,
        )
        if raise_on_error and not response.is_success:
            self.logging.error("Request to %s failed with status %d: %s", url, response.status_code, response.text[:200])
            raise RuntimeError(f"Request to {url} failed with status {response.status_code}")
        return response
