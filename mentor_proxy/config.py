"""Configuration management for the mentor proxy."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from mentor_proxy.llm.models import ProviderConfig

# Map provider names to environment variable names
PROVIDER_KEY_MAP = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}

DEFAULT_APP_URL = "http://localhost:3000"


class Configuration:
    """Manages configuration and environment variables for the proxy."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self._config = self._load_yaml_config(config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load configuration from YAML file."""
        config_path = (
            config_path
            or os.getenv("MENTOR_PROXY_CONFIG")
            or os.path.join(os.path.dirname(__file__), "config.yaml")
        )
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def active_provider(self) -> str:
        return self._config.get("llm", {}).get("active", "openrouter")

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        A missing key is not an error here: requests fail individually with
        NotConfiguredError so the process can still start and report health.

        Returns:
            The API key, or an empty string when it is not set.

        Raises:
            ValueError: If the provider has no known API key variable.
        """
        env_key = PROVIDER_KEY_MAP.get(self.active_provider)
        if not env_key:
            raise ValueError(
                f"Unknown provider '{self.active_provider}' - no API key mapping found"
            )
        return os.getenv(env_key, "").strip()

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Returns:
            Active LLM provider configuration dictionary.

        Raises:
            ValueError: If the active provider or one of its required keys is missing.
        """
        providers = self._config.get("llm", {}).get("providers", {})

        if self.active_provider not in providers:
            raise ValueError(
                f"Active provider '{self.active_provider}' not found in providers config"
            )

        llm_config = providers[self.active_provider]
        required_keys = ["base_url", "model", "temperature", "max_tokens"]
        for key in required_keys:
            if key not in llm_config:
                raise ValueError(
                    f"Required LLM configuration parameter '{key}' not found. "
                    "All LLM parameters must be explicitly configured."
                )
        return llm_config

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client configuration for the active LLM provider.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If a configured value is out of range.
        """
        http_config = self.get_llm_config().get("http_client", {})

        max_conn = http_config.get("max_connections", 100)
        max_keepalive = http_config.get("max_keepalive", 20)
        if max_conn < 1:
            raise ValueError("http_client.max_connections must be at least 1")
        if max_keepalive > max_conn:
            raise ValueError("http_client.max_keepalive must be <= max_connections")

        return http_config

    def get_server_config(self) -> dict[str, Any]:
        """Get HTTP server configuration from YAML."""
        return self._config.get("server", {})

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})

    def get_provider_config(self) -> ProviderConfig:
        """Build the immutable provider settings handed to the upstream client."""
        llm_config = self.get_llm_config()
        http_config = self.get_http_client_config()

        app_url = (
            os.getenv("APP_URL")
            or self.get_server_config().get("app_url")
            or DEFAULT_APP_URL
        )

        return ProviderConfig(
            provider=self.active_provider,
            base_url=llm_config["base_url"],
            model=llm_config["model"],
            api_key=self.llm_api_key,
            temperature=float(llm_config["temperature"]),
            max_tokens=int(llm_config["max_tokens"]),
            app_name=llm_config.get("app_name"),
            app_url=app_url,
            max_connections=http_config.get("max_connections", 100),
            max_keepalive=http_config.get("max_keepalive", 20),
            connect_timeout=http_config.get("connect_timeout", 10.0),
            read_timeout=http_config.get("read_timeout", 60.0),
            write_timeout=http_config.get("write_timeout", 10.0),
            pool_timeout=http_config.get("pool_timeout", 10.0),
        )
