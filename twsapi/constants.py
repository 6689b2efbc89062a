"""Gateway protocol constants and enums."""

from enum import IntEnum

# ----------------------------------------------------------------------------
# Wire constants
# ----------------------------------------------------------------------------

API_PREFIX = b"API\0"  # raw, un-prefixed magic sent before the version range
MIN_CLIENT_VER = 100
MAX_CLIENT_VER = 176
MAX_MSG_LEN = 0xFFFFFF  # 16 MiB - 1, the gateway's own frame limit
LENGTH_PREFIX_BYTES = 4

# ----------------------------------------------------------------------------
# Connection defaults
# ----------------------------------------------------------------------------

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7497  # paper trading TWS
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_HANDSHAKE_TIMEOUT = 60.0
RECV_CHUNK_BYTES = 64 << 10

# ----------------------------------------------------------------------------
# Message identifiers
# ----------------------------------------------------------------------------


class OutMsg(IntEnum):
    """Outbound (client to gateway) message type identifiers."""

    REQ_MARKET_DATA_TYPE = 59
    REQ_ACCOUNT_SUMMARY = 62
    CANCEL_ACCOUNT_SUMMARY = 63
    START_API = 71
    REQ_USER_INFO = 104


class InMsg(IntEnum):
    """Inbound (gateway to client) message type identifiers."""

    ERR_MSG = 4
    NEXT_VALID_ID = 9
    MANAGED_ACCTS = 15
    CURRENT_TIME = 49
    MARKET_DATA_TYPE = 58
    ACCOUNT_SUMMARY = 63
    ACCOUNT_SUMMARY_END = 64
    USER_INFO = 107


# ----------------------------------------------------------------------------
# Closed value enumerations
# ----------------------------------------------------------------------------


class MarketDataType(IntEnum):
    """Market data flavours accepted by REQ_MARKET_DATA_TYPE."""

    REALTIME = 1
    FROZEN = 2
    DELAYED = 3
    DELAYED_FROZEN = 4


NO_REQUEST_ID = -1  # request id the gateway uses for unsolicited notices
