#!/usr/bin/env python3
"""Websocket client for a running carsim server.

Connects to ``/ws``, optionally sends commands, then prints every
``car_state_update`` as a one-line gauge readout (or raw JSON).

Examples::

    python scripts/watch_state.py --speed 3
    python scripts/watch_state.py --plug --count 20 --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import aiohttp

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from carsim._constants import (  # noqa: E402
    PLUG_CONNECTION_EVENT,
    SET_MOTOR_SPEED_EVENT,
    STATE_UPDATE_EVENT,
)


def _format_line(view: dict[str, Any]) -> str:
    indicators = view.get("indicators", {})
    lights = ",".join(name for name, on in indicators.items() if on) or "-"
    return (
        f"rpm={view['rpm']:>3} power={view['power']:>5.1f}kW "
        f"battery={view['battery']:>5.1f}% temp={view['temperature']:>4.1f}C "
        f"gear={view['gear']:<3} speed={view['motor_speed']} "
        f"running={view['is_running']} charging={view['charging']} lights={lights}"
    )


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch carsim state updates")
    parser.add_argument("--url", default="http://localhost:5000/ws", help="Websocket endpoint")
    parser.add_argument("--speed", type=int, choices=range(0, 5), help="Send set_motor_speed first")
    parser.add_argument("--plug", action="store_true", help="Send plug_connection first")
    parser.add_argument("--count", type=int, default=0, help="Stop after N updates (0 = forever)")
    parser.add_argument("--json", action="store_true", help="Print raw JSON views")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    received = 0
    async with aiohttp.ClientSession() as session:
        try:
            ws = await session.ws_connect(args.url)
        except aiohttp.ClientError as exc:
            print(f"Cannot connect to {args.url}: {exc}", file=sys.stderr)
            return 1

        async with ws:
            if args.plug:
                await ws.send_json({"event": PLUG_CONNECTION_EVENT})
            if args.speed is not None:
                await ws.send_json({"event": SET_MOTOR_SPEED_EVENT, "data": {"speed": args.speed}})

            async for msg in ws:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    break
                frame = json.loads(msg.data)
                if frame.get("event") != STATE_UPDATE_EVENT:
                    continue
                view = frame["data"]
                print(json.dumps(view) if args.json else _format_line(view))
                received += 1
                if args.count and received >= args.count:
                    break
    return 0


def main() -> int:
    args = _parse_args()
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
