"""Connection configuration."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_PORT,
    MAX_CLIENT_VER,
    MIN_CLIENT_VER,
)


class ClientConfig(BaseModel):
    """Everything needed to open and run one gateway connection."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(DEFAULT_HOST, description="Gateway host name or address")
    port: int = Field(DEFAULT_PORT, ge=1, le=65535, description="Gateway API socket port")
    client_id: int = Field(0, ge=0, description="Unique id of this API client on the gateway")
    connect_timeout: float = Field(DEFAULT_CONNECT_TIMEOUT, gt=0, description="TCP connect timeout in seconds")
    handshake_timeout: float = Field(
        DEFAULT_HANDSHAKE_TIMEOUT, gt=0, description="Seconds to wait for the server version"
    )
    request_timeout: float | None = Field(None, gt=0, description="Default reply timeout, None waits forever")
    connection_options: str | None = Field(None, description="Options appended to the version range")
    opt_capabilities: str = Field("", description="Optional capabilities sent with START_API")
    min_client_version: int = Field(MIN_CLIENT_VER, ge=1)
    max_client_version: int = Field(MAX_CLIENT_VER, ge=1)

    @model_validator(mode="after")
    def _check_versions(self) -> "ClientConfig":
        if self.min_client_version > self.max_client_version:
            raise ValueError("min_client_version is greater than max_client_version")
        return self
