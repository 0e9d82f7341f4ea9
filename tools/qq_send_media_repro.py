#!/usr/bin/env python3
"""
qq-send-media-repro: push a video and a text file into a QQ group over OneBot.

Manual reproduction script for media delivery problems. Sends, in order
and one at a time:
  1. a start notice (text)
  2. the mp4 as a video segment
  3. the txt as a file segment
  4. the mp4 via upload_group_file
  5. the txt via upload_group_file
  6. a done notice (text)

Every request and response is logged as "-> {...}" / "<- {...}".

Usage:
    python -m tools.qq_send_media_repro --ws ws://127.0.0.1:3001 --token xxx \\
        --group 883766069 --mp4 /openclaw_media/test.mp4 --txt /openclaw_media/test.txt

The endpoint and token fall back to ONEBOT_WS_URL and ONEBOT_ACCESS_TOKEN.
Paths must be readable by the OneBot server as well as by this script.

Exit Codes:
- 0: Success
- 1: Runtime failure (connection, timeout, action failed)
- 2: Missing or invalid arguments, input file not found
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from clients.onebot_client import OneBotClient
from qq_bot.config import DEFAULT_ONEBOT_TIMEOUT, OneBotConfig, load_env_file
from qq_bot.segments import file_segment, video_segment

logger = logging.getLogger("qq_send_media_repro")

DEFAULT_GROUP = "883766069"

USAGE = (
    "Usage: python -m tools.qq_send_media_repro --ws ws://127.0.0.1:3001 --token xxx "
    "--group 883766069 --mp4 /openclaw_media/test.mp4 --txt /openclaw_media/test.txt"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qq-send-media-repro",
        description="Send video and file messages to a QQ group over OneBot WebSocket.",
    )
    parser.add_argument("--ws", help="OneBot WebSocket URL (default: $ONEBOT_WS_URL).")
    parser.add_argument("--token", help="Access token (default: $ONEBOT_ACCESS_TOKEN).")
    parser.add_argument(
        "--group", default=DEFAULT_GROUP, help=f"Target group id (default: {DEFAULT_GROUP})."
    )
    parser.add_argument("--mp4", help="Video file to send.")
    parser.add_argument("--txt", help="Text file to send.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help=f"Seconds to wait for each response (default: {DEFAULT_ONEBOT_TIMEOUT:g}).",
    )
    parser.add_argument(
        "--env-file", help="KEY=value file loaded before reading the environment."
    )
    return parser


async def run_repro(
    client: OneBotClient,
    group_id: int,
    mp4: str,
    txt: str,
    timeout: Optional[float] = None,
) -> None:
    """Run the six-step send sequence; each step waits for its response."""
    mp4_name = os.path.basename(mp4)
    txt_name = os.path.basename(txt)

    start = f"qq-send-media repro start mp4={mp4_name} txt={txt_name}"
    steps = [
        ("send_group_msg", lambda: client.send_group_msg(group_id, start, timeout=timeout)),
        ("send_group_msg", lambda: client.send_group_msg(
            group_id, [video_segment(mp4)], timeout=timeout)),
        ("send_group_msg", lambda: client.send_group_msg(
            group_id, [file_segment(txt, txt_name)], timeout=timeout)),
        ("upload_group_file", lambda: client.upload_group_file(
            group_id, mp4, mp4_name, timeout=timeout)),
        ("upload_group_file", lambda: client.upload_group_file(
            group_id, txt, txt_name, timeout=timeout)),
        ("send_group_msg", lambda: client.send_group_msg(
            group_id, "qq-send-media repro done", timeout=timeout)),
    ]

    for action, send in steps:
        response = await send()
        client.check_response(response, action)


async def _run(ws_url: str, token: str, group_id: int, mp4: str, txt: str, timeout: float) -> None:
    client = OneBotClient(ws_url, access_token=token, default_timeout=timeout, echo_prefix="repro")
    await client.connect()
    try:
        await run_repro(client, group_id, mp4, txt)
    finally:
        await client.disconnect()


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s - %(name)s: %(message)s",
    )

    args = build_parser().parse_args(argv)

    if args.env_file:
        load_env_file(args.env_file)
    config = OneBotConfig.from_env()

    ws_url = args.ws or config.ws_url
    token = args.token or config.access_token
    timeout = args.timeout if args.timeout is not None else config.timeout

    if not ws_url or not args.mp4 or not args.txt:
        print(USAGE, file=sys.stderr)
        return 2

    if not os.path.isfile(args.mp4):
        print(f"mp4 not found: {args.mp4}", file=sys.stderr)
        return 2
    if not os.path.isfile(args.txt):
        print(f"txt not found: {args.txt}", file=sys.stderr)
        return 2

    try:
        group_id = int(args.group, 10)
    except ValueError:
        print(f"invalid --group: {args.group}", file=sys.stderr)
        return 2

    if timeout <= 0:
        print(f"invalid --timeout: {timeout}", file=sys.stderr)
        return 2

    try:
        asyncio.run(_run(ws_url, token, group_id, args.mp4, args.txt, timeout))
    except Exception as e:
        logger.error(f"ERROR {e}", exc_info=True)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
