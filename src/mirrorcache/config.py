from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PORT = 6379


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MIRRORCACHE_", env_file=".env", extra="ignore", populate_by_name=True
    )

    app_name: str = "mirrorcache"

    # Backend servers: "host:port[:weight],host:port[:weight]"
    servers: str = Field(default="127.0.0.1:6379", validation_alias="CACHE_SERVERS")
    socket_timeout: float | None = Field(default=2.0, validation_alias="CACHE_SOCKET_TIMEOUT")
    connect_timeout: float | None = Field(default=1.0, validation_alias="CACHE_CONNECT_TIMEOUT")

    # Key derivation
    key_salt: str = Field(default="", validation_alias="CACHE_KEY_SALT")
    global_prefix: str = ""
    namespace: str = "default"

    # Extra group registrations applied on top of the built-in defaults
    global_groups: str = ""
    non_persistent_groups: str = ""

    # Observability
    log_level: str = "INFO"
    log_json: bool = False
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")

    def server_specs(self) -> list[tuple[str, int, int]]:
        """Parse the configured server list into (host, port, weight) tuples."""
        specs: list[tuple[str, int, int]] = []
        for entry in _split_csv(self.servers):
            host, _, rest = entry.partition(":")
            port_text, _, weight_text = rest.partition(":")
            specs.append(
                (
                    host or "127.0.0.1",
                    int(port_text) if port_text else DEFAULT_PORT,
                    int(weight_text) if weight_text else 1,
                )
            )
        return specs

    def extra_global_groups(self) -> list[str]:
        return _split_csv(self.global_groups)

    def extra_non_persistent_groups(self) -> list[str]:
        return _split_csv(self.non_persistent_groups)


settings = Settings()
