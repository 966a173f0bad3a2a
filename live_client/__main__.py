"""Tail the live gateway from a terminal.

Prints every classified event of the session and, optionally, sends one
direct message.  Defaults come from ``LIVE_*`` environment variables.

    python -m live_client --url ws://localhost:8081 --token <JWT> --user-id 7

    # Join two groups and say hello to user 9
    python -m live_client --token <JWT> --user-id 7 --groups 3,4 --send-to 9 --text hello
"""

import argparse
import asyncio
import logging
import signal

from . import ChatApi, LiveClient, LiveConfig, LiveError
from .types import ConnectionState, InboundEvent


def _print_event(event: InboundEvent) -> None:
    sender = event.sender.username or event.sender.id if event.sender else "-"
    print(f"[{event.kind.value}] {sender}: {event.body}")


async def main(config: LiveConfig, groups: list[str], send_to: str | None, text: str) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with LiveClient(
        config.ws_url,
        local_user_id=config.user_id,
        token=config.token,
        path=config.path,
        reconnect=config.reconnect,
    ) as live:
        for add_listener in (
            live.add_on_private_message,
            live.add_on_group_message,
            live.add_on_notification,
        ):
            add_listener(_print_event)
        live.connection_state.subscribe(lambda state: print(f"-- {state.value}"))

        if config.api_url:
            async with ChatApi(config.api_url, token=config.token) as api:
                try:
                    await live.load_initial_counts(api)
                except LiveError as exc:
                    print(f"-- could not load unread counts: {exc}")
                else:
                    print(f"-- unread: {live.get_stats()['unread']}")

        for group_id in groups:
            await live.subscribe_to_group(group_id, is_member=True)

        if send_to:
            try:
                await asyncio.wait_for(_wait_connected(live), timeout=10.0)
                await live.send_private_message(send_to, text)
            except (LiveError, asyncio.TimeoutError) as exc:
                print(f"-- send failed: {exc}")

        print("Listening for events... (Ctrl+C to stop)\n")
        await stop.wait()


async def _wait_connected(live: LiveClient) -> None:
    while live.state != ConnectionState.CONNECTED:
        await asyncio.sleep(0.1)


def cli() -> None:
    env = LiveConfig.from_env()

    parser = argparse.ArgumentParser(description="Live gateway tail")
    parser.add_argument("--url", default=env.ws_url, help="WebSocket base URL")
    parser.add_argument("--api-url", default=env.api_url, help="REST gateway URL")
    parser.add_argument("--token", default=env.token, help="Session JWT")
    parser.add_argument("--user-id", default=env.user_id, help="Signed-in user id")
    parser.add_argument("--groups", default="", help="Comma-separated group ids to join")
    parser.add_argument("--send-to", default=None, help="Send one message to this user id")
    parser.add_argument("--text", default="hello", help="Text for --send-to")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    if not args.user_id:
        parser.error("--user-id (or LIVE_USER_ID) is required")

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    env.ws_url = args.url
    env.api_url = args.api_url
    env.token = args.token
    env.user_id = args.user_id
    groups = [g.strip() for g in args.groups.split(",") if g.strip()]
    asyncio.run(main(env, groups, args.send_to, args.text))


if __name__ == "__main__":
    cli()
