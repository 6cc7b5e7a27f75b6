from abc import ABC, abstractmethod
from typing import Any

import httpx
from httpx._types import QueryParamTypes

from shared.exceptions.RAGErrors import ProviderError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


class ClientInterface(ABC):
    """Base for every HTTP provider: embedding, LLM, vector store and reward backends.

    Settings are named <TYPE>_<ENGINE>_<KEY> (e.g. EMBED_OLLAMA_BASE_URL) and are
    resolved once on construction, so a misconfigured engine fails at startup
    rather than on the first request.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.timeout = helper_config.get_number_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0)
        self._client: httpx.AsyncClient | None = None
        self.settings: dict[str, Any] = self.load_settings()

    ##########################################
    ################ CONFIG ##################
    ##########################################

    @abstractmethod
    def _get_env_settings(self) -> list[EnvConfig]:
        """Settings this engine reads, keyed without the <TYPE>_<ENGINE>_ prefix."""
        pass

    def load_settings(self) -> dict[str, Any]:
        """Resolve all engine settings from the environment.

        Raises:
            ValueError: If a setting without default is unset or a value has the wrong type.
        """
        return {
            setting.env_key.upper(): self.get_config_val(setting.env_key, default=setting.default, val_type=setting.val_type)
            for setting in self._get_env_settings()
        }

    def _get_config_key_name(self, raw_key: str) -> str:
        """E.g. "BASE_URL" -> "EMBED_OLLAMA_BASE_URL"."""
        return f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        key = self._get_config_key_name(raw_key)
        readers = {
            "string": self._helper_config.get_string_val,
            "number": self._helper_config.get_number_val,
            "bool": self._helper_config.get_bool_val,
            "list": self._helper_config.get_list_val,
        }
        reader = readers.get(val_type)
        if reader is None:
            raise ValueError(f"Unsupported setting type '{val_type}' for {key}.")
        return reader(key, default=default)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_client_type(self) -> str:
        """Lowercase client type, e.g. "embed"."""
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        pass

    def get_engine_name(self) -> str:
        """Lowercase engine name, e.g. "ollama"."""
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    def _get_auth_header(self) -> dict:
        """Bearer auth from the API_KEY setting, when the engine has one."""
        api_key = self.settings.get("API_KEY")
        return {"Authorization": f"Bearer {api_key}"} if api_key else {}

    def _get_base_url(self) -> str:
        return self.settings["BASE_URL"]

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """Path checked on startup; "" for the base URL itself."""
        pass

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Open the HTTP client.

        Args:
            transport (httpx.AsyncBaseTransport | None): Optional transport, e.g.
                ``httpx.MockTransport`` in tests.
        """
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_healthcheck(self) -> httpx.Response:
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck())

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_request(
        self,
        method: str = "GET",
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send one request to the backend.

        Provider bodies of failed calls are logged here (truncated) and never put
        into the raised error.

        Args:
            method: HTTP method.
            json: JSON body.
            params: Query parameters.
            endpoint: Path appended to the base URL; "" for the base URL itself.
            additional_headers: Headers merged over the auth header.
            raise_on_error: Raise ProviderError on a non-2xx status.

        Raises:
            RuntimeError: If boot() was not called.
            ProviderError: On timeout or transport failure (retryable), or on a
                non-2xx status when raise_on_error is set (retryable for 429 and 5xx).
        """
        if self._client is None:
            raise RuntimeError(f"{self.get_client_type()} client '{self.get_engine_name()}' used before boot().")

        path = endpoint.strip()
        url = self._get_base_url().rstrip("/") + ("/" + path.lstrip("/") if path else "")
        headers = {**self._get_auth_header(), **(additional_headers or {})}
        label = f"{self.get_client_type()} backend '{self.get_engine_name()}'"

        try:
            response = await self._client.request(method, url, headers=headers, params=params, json=json, timeout=self.timeout)
        except httpx.TimeoutException as e:
            self.logging.error("%s %s timed out after %ss: %s", method, url, self.timeout, e)
            raise ProviderError(f"{label} timed out.", retryable=True) from e
        except httpx.TransportError as e:
            self.logging.error("%s %s failed: %s", method, url, e)
            raise ProviderError(f"{label} is unreachable.", retryable=True) from e

        if raise_on_error and not response.is_success:
            self.logging.error("%s %s returned %d: %s", method, url, response.status_code, response.text[:200])
            raise ProviderError(
                f"{label} returned status {response.status_code}.",
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )
        return response

    async def do_request_json(self, method: str = "GET", endpoint: str = "", **kwargs: Any) -> dict:
        """do_request with raise_on_error, returning the decoded JSON object.

        Raises:
            ProviderError: As do_request, or if the body is not a JSON object.
        """
        response = await self.do_request(method=method, endpoint=endpoint, raise_on_error=True, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            self.logging.error("%s %s returned a non-JSON body: %s", method, endpoint, response.text[:200])
            raise ProviderError(f"{self.get_client_type()} backend '{self.get_engine_name()}' returned an invalid response.") from e
        if not isinstance(data, dict):
            raise ProviderError(f"{self.get_client_type()} backend '{self.get_engine_name()}' returned an invalid response.")
        return data
