from typing import Any

from shared.helper.HelperConfig import HelperConfig


class ClientManager:
    """Loads the engine class named by a <TYPE>_ENGINE setting.

    Engine "ollama" for prefix "EmbedClient" resolves to the class
    EmbedClientOllama in <package>.ollama.EmbedClientOllama. Subclasses set
    the class attributes and may pass extra constructor arguments.
    """

    engine_env_key: str = ""
    package: str = ""
    class_prefix: str = ""
    default_engine: str | None = None
    optional: bool = False

    def __init__(self, helper_config: HelperConfig, **client_kwargs: Any):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._client_kwargs = client_kwargs
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """Capitalised engine name, e.g. "Ollama"; "" when an optional engine is off.

        Raises:
            ValueError: If a mandatory engine is not configured.
        """
        default = "" if self.optional and self.default_engine is None else self.default_engine
        engine = self.helper_config.get_string_val(self.engine_env_key, default=default).strip().lower()
        if engine in ("", "none"):
            if self.optional:
                return ""
            raise ValueError(f"No engine specified in configuration ({self.engine_env_key}).")
        return engine.capitalize()

    def _initialize_client(self) -> Any:
        engine = self._get_engine_from_env()
        if not engine:
            self.logging.info("%s is not set, %s disabled.", self.engine_env_key, self.class_prefix)
            return None

        class_name = f"{self.class_prefix}{engine}"
        try:
            module = __import__(f"{self.package}.{engine.lower()}.{class_name}", fromlist=[class_name])
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported engine '{engine}' for {self.engine_env_key}. Error: {e}") from e

        client = client_class(helper_config=self.helper_config, **self._client_kwargs)
        self.logging.debug("Instantiated %s for engine: %s", class_name, engine)
        return client

    def get_client(self) -> Any:
        return self.client
