"""Gateway configuration from environment variables (and an optional .env file).

Environment Variables:
- ENABLE_GUARD_API: moderate tool results through the classifier ("true"/"false")
- API_KEY: bearer credential for the classifier; required when moderation is enabled
- GUARD_API_URL: classifier base URL
- MCP_GUARD_CONNECT_TIMEOUT: per-backend connection timeout in seconds
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import AliasChoices, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_guard.errors import ConfigurationError

DEFAULT_GUARD_API_URL = "https://api.generalanalysis.com"
DEFAULT_CONNECT_TIMEOUT = 30.0


@dataclass(frozen=True)
class GatewayConfig:
    """Validated runtime configuration.

    Construct through GatewaySettings.to_config() (or validate()) so the
    moderation/credential invariant holds.
    """

    moderation_enabled: bool = False
    credential: str | None = None
    guard_api_url: str = DEFAULT_GUARD_API_URL
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    def validate(self) -> GatewayConfig:
        if self.moderation_enabled and not self.credential:
            raise ConfigurationError("ENABLE_GUARD_API is true but API_KEY environment variable is not set")
        return self


class GatewaySettings(BaseSettings):
    """Gateway settings read from the process environment.

    Usage:
        config = GatewaySettings().to_config()  # raises ConfigurationError
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    enable_guard_api: bool = Field(
        default=False,
        validation_alias=AliasChoices("ENABLE_GUARD_API", "enable_guard_api"),
        description="Moderate tool results through the classifier",
    )
    api_key: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("API_KEY", "api_key"), description="Classifier credential"
    )
    guard_api_url: str = Field(
        default=DEFAULT_GUARD_API_URL,
        validation_alias=AliasChoices("GUARD_API_URL", "guard_api_url"),
        description="Classifier base URL",
    )
    connect_timeout: float = Field(
        default=DEFAULT_CONNECT_TIMEOUT,
        gt=0,
        validation_alias=AliasChoices("MCP_GUARD_CONNECT_TIMEOUT", "connect_timeout"),
        description="Per-backend connection timeout (seconds)",
    )

    def to_config(self) -> GatewayConfig:
        """Freeze into a GatewayConfig, enforcing the credential requirement.

        Raises:
            ConfigurationError: If moderation is enabled without a credential
        """
        credential = self.api_key.get_secret_value() if self.api_key else None
        return GatewayConfig(
            moderation_enabled=self.enable_guard_api,
            credential=credential or None,
            guard_api_url=self.guard_api_url,
            connect_timeout=self.connect_timeout,
        ).validate()


def load_config() -> GatewayConfig:
    """Read settings from the environment and validate them.

    Raises:
        ConfigurationError: On unparseable values or a missing credential
    """
    try:
        settings = GatewaySettings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid gateway settings: {e}") from e
    return settings.to_config()
