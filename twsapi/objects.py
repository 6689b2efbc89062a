"""Value objects handed back to API callers."""

from pydantic import BaseModel, Field

from .constants import NO_REQUEST_ID
from .registry import Message


class AccountValue(BaseModel):
    """A single account attribute (tag) with its value."""

    account: str
    tag: str
    value: str
    currency: str = ""

    @classmethod
    def from_message(cls, message: Message) -> "AccountValue":
        """Build from a decoded ACCOUNT_SUMMARY message."""
        return cls(
            account=message.get("account", ""),
            tag=message.get("tag", ""),
            value=message.get("value", ""),
            currency=message.get("currency", ""),
        )

    def as_float(self) -> float | None:
        """The value as a number, or None when it is not numeric."""
        try:
            return float(self.value)
        except ValueError:
            return None


class GatewayNotice(BaseModel):
    """An error or informational message the gateway sent on its own."""

    request_id: int = Field(..., description="Request the notice refers to, -1 for none")
    code: int
    message: str
    advanced_order_reject_json: str | None = None

    @classmethod
    def from_message(cls, message: Message) -> "GatewayNotice":
        """Build from a decoded ERR_MSG message."""
        return cls(
            request_id=message.get("req_id", NO_REQUEST_ID),
            code=message.get("error_code", 0),
            message=message.get("error_string", ""),
            advanced_order_reject_json=message.get("advanced_order_reject_json"),
        )
