"""aiohttp application hosting the realtime websocket channel.

Frames are JSON text messages of the form ``{"event": ..., "data": ...}``.
The server pushes ``car_state_update``; clients send ``set_motor_speed``
and ``plug_connection``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import weakref
from collections.abc import AsyncIterator, Callable
from typing import Any

import aiohttp
from aiohttp import web

from carsim._mqtt import MqttBridge
from carsim.exceptions import StateStoreError
from carsim.simulator import CarSimulator

_logger = logging.getLogger(__name__)

SIMULATOR_KEY = web.AppKey("simulator", CarSimulator)
WEBSOCKETS_KEY = web.AppKey("websockets", weakref.WeakSet)


class WebSocketSubscriber:
    """Broadcast subscriber backed by one websocket connection."""

    def __init__(self, ws: web.WebSocketResponse, peer: str | None = None) -> None:
        self._ws = ws
        self.peer = peer

    def __repr__(self) -> str:
        return f"WebSocketSubscriber(peer={self.peer!r})"

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        await self._ws.send_json({"event": event, "data": payload})


ANY_ORIGIN = "*"


def _origin_allowed(origin: str | None, allowed: tuple[str, ...]) -> bool:
    # Non-browser clients send no Origin header.
    if origin is None or ANY_ORIGIN in allowed:
        return True
    return origin in allowed


async def _handle_frame(simulator: CarSimulator, raw: str) -> None:
    try:
        frame = json.loads(raw)
    except ValueError:
        _logger.debug("Ignoring non-JSON frame: %.64s", raw)
        return
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        _logger.debug("Ignoring frame without event: %.64s", raw)
        return
    try:
        await simulator.dispatch(frame["event"], frame.get("data"))
    except StateStoreError as exc:
        _logger.warning("Command %s failed: %s", frame["event"], exc)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def handle_websocket(request: web.Request) -> web.WebSocketResponse:
    simulator = request.app[SIMULATOR_KEY]
    if not _origin_allowed(request.headers.get("Origin"), simulator.config.cors_origins):
        raise web.HTTPForbidden(text="Origin not allowed")

    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)
    request.app[WEBSOCKETS_KEY].add(ws)
    subscriber = WebSocketSubscriber(ws, peer=request.remote)
    _logger.info("Client connected: %s", subscriber.peer)

    try:
        await simulator.connect(subscriber)
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                await _handle_frame(simulator, msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                _logger.warning("Websocket error from %s: %s", subscriber.peer, ws.exception())
    finally:
        simulator.disconnect(subscriber)
        request.app[WEBSOCKETS_KEY].discard(ws)
        _logger.info("Client disconnected: %s", subscriber.peer)
    return ws


def _simulation_ctx(run_loop: bool) -> Callable[[web.Application], AsyncIterator[None]]:
    async def simulation_ctx(app: web.Application) -> AsyncIterator[None]:
        simulator = app[SIMULATOR_KEY]
        await simulator.start(run_loop=run_loop)
        bridge: MqttBridge | None = None
        if simulator.config.mqtt_enabled:
            bridge = MqttBridge.from_config(simulator, simulator.config, loop=asyncio.get_running_loop())
            try:
                bridge.start()
                await simulator.connect(bridge)
            except OSError:
                _logger.warning("MQTT bridge unavailable; continuing without it", exc_info=True)
                bridge = None
        try:
            yield
        finally:
            if bridge is not None:
                simulator.disconnect(bridge)
                bridge.stop()
            await simulator.stop()

    return simulation_ctx


async def _close_websockets(app: web.Application) -> None:
    for ws in set(app[WEBSOCKETS_KEY]):
        await ws.close(code=aiohttp.WSCloseCode.GOING_AWAY, message=b"Server shutdown")


def create_app(simulator: CarSimulator, *, run_loop: bool = True) -> web.Application:
    """Build the aiohttp application.

    The simulator is started when the application starts up and stopped on
    cleanup; a store failure at startup aborts the application.
    """
    app = web.Application()
    app[SIMULATOR_KEY] = simulator
    app[WEBSOCKETS_KEY] = weakref.WeakSet()
    app.router.add_get("/", handle_health)
    app.router.add_get("/ws", handle_websocket)
    app.cleanup_ctx.append(_simulation_ctx(run_loop))
    app.on_shutdown.append(_close_websockets)
    return app
