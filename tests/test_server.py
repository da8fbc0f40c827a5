from __future__ import annotations

from typing import Any

import aiohttp
import pytest
from aiohttp import test_utils, web

from carsim.config import SimulatorConfig
from carsim.exceptions import StateStoreError, StateStoreUnavailableError
from carsim.models.car_state import CarState
from carsim.server import create_app
from carsim.simulator import CarSimulator
from carsim.state.backends import MemoryBackend


class _UnreachableBackend:
    async def get(self, key: str) -> dict[str, Any] | None:
        raise StateStoreError("connection refused", key=key)

    async def set(self, key: str, record: dict[str, Any]) -> None:
        raise StateStoreError("connection refused", key=key)


def _client(state: CarState | None = None, **config: Any) -> test_utils.TestClient:
    initial = {"carState": state.to_record()} if state is not None else None
    simulator = CarSimulator(SimulatorConfig(**config), backend=MemoryBackend(initial))
    # The loop is not started so that every frame below is caused by the test.
    return test_utils.TestClient(test_utils.TestServer(create_app(simulator, run_loop=False)))


@pytest.mark.asyncio
async def test_health_endpoint() -> None:
    async with _client() as client:
        resp = await client.get("/")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_new_client_receives_current_state() -> None:
    async with _client(CarState(battery=64.44)) as client:
        ws = await client.ws_connect("/ws")
        frame = await ws.receive_json(timeout=1.0)
        await ws.close()

    assert frame["event"] == "car_state_update"
    assert frame["data"]["battery"] == 64.4
    assert frame["data"]["indicators"]["battery_low"] is False


@pytest.mark.asyncio
async def test_commands_are_applied_and_broadcast_to_all_clients() -> None:
    async with _client() as client:
        sender = await client.ws_connect("/ws")
        watcher = await client.ws_connect("/ws")
        await sender.receive_json(timeout=1.0)
        await watcher.receive_json(timeout=1.0)

        await sender.send_json({"event": "set_motor_speed", "data": {"speed": 2}})

        for ws in (sender, watcher):
            frame = await ws.receive_json(timeout=1.0)
            assert frame["event"] == "car_state_update"
            assert frame["data"]["gear"] == "1:3"
            assert frame["data"]["is_running"] is True
        await sender.close()
        await watcher.close()


@pytest.mark.asyncio
async def test_malformed_frames_are_ignored() -> None:
    async with _client() as client:
        ws = await client.ws_connect("/ws")
        await ws.receive_json(timeout=1.0)

        await ws.send_str("not json")
        await ws.send_json(["no", "event"])
        await ws.send_json({"event": "set_motor_speed", "data": {"speed": 9}})
        await ws.send_json({"event": "plug_connection"})

        frame = await ws.receive_json(timeout=1.0)
        assert frame["data"]["charging"] is True
        await ws.close()


@pytest.mark.asyncio
async def test_rejected_command_sends_nothing() -> None:
    async with _client(CarState(is_running=True, motor_speed=1)) as client:
        ws = await client.ws_connect("/ws")
        await ws.receive_json(timeout=1.0)

        await ws.send_json({"event": "plug_connection"})

        with pytest.raises(TimeoutError):
            await ws.receive(timeout=0.1)
        await ws.close()


@pytest.mark.asyncio
async def test_disallowed_origin_is_refused() -> None:
    async with _client(cors_origins=("http://localhost:5173",)) as client:
        with pytest.raises(aiohttp.WSServerHandshakeError) as excinfo:
            await client.ws_connect("/ws", headers={"Origin": "http://evil.example"})
        assert excinfo.value.status == 403

        ws = await client.ws_connect("/ws", headers={"Origin": "http://localhost:5173"})
        frame = await ws.receive_json(timeout=1.0)
        assert frame["event"] == "car_state_update"
        await ws.close()


@pytest.mark.asyncio
async def test_startup_fails_when_store_unreachable() -> None:
    simulator = CarSimulator(SimulatorConfig(), backend=_UnreachableBackend())
    runner = web.AppRunner(create_app(simulator, run_loop=False))

    with pytest.raises(StateStoreUnavailableError):
        await runner.setup()


@pytest.mark.asyncio
async def test_wildcard_origin_allows_any_browser() -> None:
    async with _client(cors_origins=("*",)) as client:
        ws = await client.ws_connect("/ws", headers={"Origin": "http://elsewhere.example"})
        frame = await ws.receive_json(timeout=1.0)
        assert frame["event"] == "car_state_update"
        await ws.close()


@pytest.mark.asyncio
async def test_empty_origin_list_refuses_browsers() -> None:
    async with _client(cors_origins=()) as client:
        with pytest.raises(aiohttp.WSServerHandshakeError) as excinfo:
            await client.ws_connect("/ws", headers={"Origin": "http://localhost:5173"})
        assert excinfo.value.status == 403
