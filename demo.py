#!/usr/bin/env python3
"""Demo script: connect to a gateway and print the account summary."""

import argparse
import logging

from rich.console import Console
from rich.table import Table

from twsapi import Client, ClientConfig, GatewayNotice, InMsg, MarketDataType, OutMsg, TWSError
from twsapi.testing import FakeGateway

console = Console()


def on_event(message):
    """Print gateway notices; everything else is shown dimmed."""
    if message.type_id == InMsg.ERR_MSG:
        notice = GatewayNotice.from_message(message)
        console.print(f"[yellow]notice {notice.code}[/yellow] (request {notice.request_id}): {notice.message}")
    else:
        console.print(f"[dim]{message.name} {message.fields}[/dim]")


def greet(session, fields):
    """What a real gateway sends once the API is started."""
    session.send([InMsg.MANAGED_ACCTS, 1, "DU123456"])
    session.send([InMsg.NEXT_VALID_ID, 1, 1])
    session.send([InMsg.ERR_MSG, 2, -1, 2104, "Market data farm connection is OK:usfarm", ""])


def show_account_summary(client: Client, tags: str) -> None:
    values = client.req_account_summary("All", tags, timeout=10.0)

    table = Table(title=f"Account summary (server version {client.server_version})")
    table.add_column("Account")
    table.add_column("Tag")
    table.add_column("Value", justify="right")
    table.add_column("Currency")
    for value in values:
        table.add_row(value.account, value.tag, value.value, value.currency)
    console.print(table)


def run(config: ClientConfig, tags: str) -> None:
    with Client(config, on_event=on_event) as client:
        console.print(f"Connected at {client.connection_time}")
        client.req_market_data_type(MarketDataType.DELAYED)
        show_account_summary(client, tags)
        if client.session.supports("user_info"):
            console.print(f"White branding id: {client.req_user_info(timeout=10.0)!r}")


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=7497)
    parser.add_argument("--client-id", type=int, default=0)
    parser.add_argument("--tags", default="NetLiquidation,TotalCashValue,AccountType")
    parser.add_argument("--fake", action="store_true", help="run against an in-process fake gateway")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.fake:
        gateway = FakeGateway()
        gateway.on(OutMsg.START_API, greet)
        gateway.start()
        args.host, args.port = gateway.host, gateway.port
    else:
        gateway = None

    config = ClientConfig(host=args.host, port=args.port, client_id=args.client_id, handshake_timeout=10.0)
    try:
        run(config, args.tags)
    except TWSError as exc:
        console.print(f"[red]{exc}[/red]")
    except OSError as exc:
        console.print(f"[red]Cannot reach gateway at {args.host}:{args.port}: {exc}[/red]")
    finally:
        if gateway is not None:
            gateway.stop()


if __name__ == "__main__":
    main()
