"""Minimum server versions for version-gated protocol features."""

MIN_SERVER_VERSIONS: dict[str, int] = {
    "delta_neutral": 40,
    "req_mkt_data_conid": 47,
    "req_market_data_type": 55,
    "acct_summary": 67,
    "trading_class": 68,
    "linking": 70,
    "optional_capabilities": 72,
    "user_info": 166,
    "advanced_order_reject": 166,
}


def min_server_version(feature: str) -> int:
    """Return the lowest server version that supports ``feature``.

    Raises:
        KeyError: If the feature is not in the table
    """
    try:
        return MIN_SERVER_VERSIONS[feature]
    except KeyError:
        raise KeyError(f"Unknown protocol feature: {feature!r}") from None
