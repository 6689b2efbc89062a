"""Declarative schemas for the messages this client speaks."""

from .constants import InMsg, MarketDataType, OutMsg
from .correlator import ReplyFamily
from .fields import FieldType
from .registry import FieldSpec, MessageRegistry, MessageSchema
from .session import NegotiatedSession

INT = FieldType.INT
FLOAT = FieldType.FLOAT
STR = FieldType.STRING
ENUM = FieldType.ENUM

# ----------------------------------------------------------------------------
# Outbound
# ----------------------------------------------------------------------------

START_API_OLD = MessageSchema(
    OutMsg.START_API,
    "START_API",
    (
        FieldSpec("version", INT, default=2),
        FieldSpec("client_id", INT),
    ),
)

START_API = MessageSchema(
    OutMsg.START_API,
    "START_API",
    (
        FieldSpec("version", INT, default=2),
        FieldSpec("client_id", INT),
        FieldSpec("opt_capabilities", STR, since="optional_capabilities", default=""),
    ),
)


def select_start_api(session: NegotiatedSession | None) -> MessageSchema:
    """Servers before optional capabilities reject the longer START_API."""
    if session is not None and session.supports("optional_capabilities"):
        return START_API
    return START_API_OLD


REQ_ACCOUNT_SUMMARY = MessageSchema(
    OutMsg.REQ_ACCOUNT_SUMMARY,
    "REQ_ACCOUNT_SUMMARY",
    (
        FieldSpec("version", INT, default=1),
        FieldSpec("req_id", INT),
        FieldSpec("group", STR),
        FieldSpec("tags", STR),
    ),
)

CANCEL_ACCOUNT_SUMMARY = MessageSchema(
    OutMsg.CANCEL_ACCOUNT_SUMMARY,
    "CANCEL_ACCOUNT_SUMMARY",
    (
        FieldSpec("version", INT, default=1),
        FieldSpec("req_id", INT),
    ),
)

REQ_MARKET_DATA_TYPE = MessageSchema(
    OutMsg.REQ_MARKET_DATA_TYPE,
    "REQ_MARKET_DATA_TYPE",
    (
        FieldSpec("version", INT, default=1),
        FieldSpec("market_data_type", ENUM, enum=MarketDataType),
    ),
)

REQ_USER_INFO = MessageSchema(
    OutMsg.REQ_USER_INFO,
    "REQ_USER_INFO",
    (FieldSpec("req_id", INT),),
)

# ----------------------------------------------------------------------------
# Inbound
# ----------------------------------------------------------------------------

ERR_MSG = MessageSchema(
    InMsg.ERR_MSG,
    "ERR_MSG",
    (
        FieldSpec("version", INT),
        FieldSpec("req_id", INT),
        FieldSpec("error_code", INT),
        FieldSpec("error_string", STR),
        FieldSpec("advanced_order_reject_json", STR, since="advanced_order_reject"),
    ),
)

NEXT_VALID_ID = MessageSchema(
    InMsg.NEXT_VALID_ID,
    "NEXT_VALID_ID",
    (
        FieldSpec("version", INT),
        FieldSpec("order_id", INT),
    ),
)

MANAGED_ACCTS = MessageSchema(
    InMsg.MANAGED_ACCTS,
    "MANAGED_ACCTS",
    (
        FieldSpec("version", INT),
        FieldSpec("accounts_list", STR),
    ),
)

CURRENT_TIME = MessageSchema(
    InMsg.CURRENT_TIME,
    "CURRENT_TIME",
    (
        FieldSpec("version", INT),
        FieldSpec("time", INT),
    ),
)

MARKET_DATA_TYPE = MessageSchema(
    InMsg.MARKET_DATA_TYPE,
    "MARKET_DATA_TYPE",
    (
        FieldSpec("version", INT),
        FieldSpec("req_id", INT),
        FieldSpec("market_data_type", ENUM, enum=MarketDataType),
    ),
)

ACCOUNT_SUMMARY = MessageSchema(
    InMsg.ACCOUNT_SUMMARY,
    "ACCOUNT_SUMMARY",
    (
        FieldSpec("version", INT),
        FieldSpec("req_id", INT),
        FieldSpec("account", STR),
        FieldSpec("tag", STR),
        FieldSpec("value", STR),  # not always numeric, e.g. AccountType
        FieldSpec("currency", STR),
    ),
)

ACCOUNT_SUMMARY_END = MessageSchema(
    InMsg.ACCOUNT_SUMMARY_END,
    "ACCOUNT_SUMMARY_END",
    (
        FieldSpec("version", INT),
        FieldSpec("req_id", INT),
    ),
)

USER_INFO = MessageSchema(
    InMsg.USER_INFO,
    "USER_INFO",
    (
        FieldSpec("req_id", INT),
        FieldSpec("white_branding_id", STR),
    ),
)

# ----------------------------------------------------------------------------
# Reply families
# ----------------------------------------------------------------------------

ACCOUNT_SUMMARY_REPLY = ReplyFamily(
    "account_summary",
    terminal=frozenset({InMsg.ACCOUNT_SUMMARY_END}),
    partial=frozenset({InMsg.ACCOUNT_SUMMARY}),
    key=lambda message: (message.get("account"), message.get("tag")),
)

USER_INFO_REPLY = ReplyFamily("user_info", terminal=frozenset({InMsg.USER_INFO}))

REPLY_FAMILIES = (ACCOUNT_SUMMARY_REPLY, USER_INFO_REPLY)
ERROR_TYPES = frozenset({InMsg.ERR_MSG})


def terminal_types() -> frozenset[int]:
    """Every type id that ends a reply in some family."""
    return frozenset().union(*(family.terminal for family in REPLY_FAMILIES))


def build_registry() -> MessageRegistry:
    """Build the registry of every schema declared above."""
    registry = MessageRegistry()
    registry.add_outbound(OutMsg.START_API, select_start_api)
    for schema in (REQ_ACCOUNT_SUMMARY, CANCEL_ACCOUNT_SUMMARY, REQ_MARKET_DATA_TYPE, REQ_USER_INFO):
        registry.add_outbound(schema.type_id, schema)
    for schema in (
        ERR_MSG,
        NEXT_VALID_ID,
        MANAGED_ACCTS,
        CURRENT_TIME,
        MARKET_DATA_TYPE,
        ACCOUNT_SUMMARY,
        ACCOUNT_SUMMARY_END,
        USER_INFO,
    ):
        registry.add_inbound(schema)
    return registry
