"""Negotiated session state shared by every layer of a connection."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import MAX_CLIENT_VER, MIN_CLIENT_VER
from .errors import UnsupportedFeatureError
from .versions import min_server_version


class NegotiatedSession(BaseModel):
    """Outcome of the version handshake, immutable once created."""

    model_config = ConfigDict(frozen=True)

    min_client_version: int = Field(MIN_CLIENT_VER, ge=1, description="Lowest version this client speaks")
    max_client_version: int = Field(MAX_CLIENT_VER, ge=1, description="Highest version this client speaks")
    server_version: int = Field(..., ge=1, description="Version chosen by the gateway")
    connection_time: str = Field("", description="Gateway-local connection timestamp, verbatim")

    @model_validator(mode="after")
    def _check_range(self) -> "NegotiatedSession":
        if self.min_client_version > self.max_client_version:
            raise ValueError("min_client_version is greater than max_client_version")
        return self

    def supports(self, feature: str) -> bool:
        """Whether the negotiated server version has ``feature``."""
        return self.server_version >= min_server_version(feature)

    def require(self, feature: str) -> None:
        """Raise UnsupportedFeatureError unless ``feature`` is available."""
        required = min_server_version(feature)
        if self.server_version < required:
            raise UnsupportedFeatureError(feature, required, self.server_version)
