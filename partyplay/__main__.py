#!/usr/bin/env python3
# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
partyplay server

Loads plugins and backends from config.json and runs until SIGINT/SIGTERM.

Usage:
    python -m partyplay [--config PATH] [--verbose]
"""

import argparse
import asyncio
import logging
import os
import signal

from .lib.watchdog import heartbeat_loop
from .player import Player

logger = logging.getLogger("partyplay")


async def main():
    player = Player()
    await player.init()
    heartbeat = asyncio.create_task(heartbeat_loop())

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)
    try:
        await stop_event.wait()
    finally:
        heartbeat.cancel()
        await player.shutdown()


def run():
    parser = argparse.ArgumentParser(prog="partyplay", description=__doc__.splitlines()[1])
    parser.add_argument("--config", help="path to config.json")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if args.config:
        os.environ["PARTYPLAY_CONFIG"] = args.config

    asyncio.run(main())


if __name__ == "__main__":
    run()
