# src/hummingbird_sim/telemetry/ws_server.py
"""
WebSocket server for watching and flying the hummingbird.

Responsibilities:
- Run the environment loop on a steady cadence (fixed 50 Hz physics steps)
- Stream "view" frames to connected clients over WebSocket
- Handle simple commands: play/pause, speed, held keys, freeze/unfreeze, reset

Anything simulation-related lives in hummingbird_sim.api (EnvController) and
the domain modules. Run with:  python -m hummingbird_sim.telemetry.ws_server
"""

from __future__ import annotations

# stdlib
import asyncio
import contextlib
import json
import os
import time
import traceback
from typing import Any, Dict

# web framework
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect
import uvicorn

# sim API
from hummingbird_sim.api import EnvController
from hummingbird_sim.config import SIM_TICK_HZ
from hummingbird_sim.domain.agents.heuristic import KeyState
from hummingbird_sim.domain.agents.hummingbird import FreezeError


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Optional fixed seed for reproducible demo sessions.
SEED = int(os.environ["HUMMINGBIRD_SEED"]) if os.environ.get("HUMMINGBIRD_SEED") else None

# Single controller shared across all client sessions (gameplay mode, manual control).
_sim = EnvController(seed=SEED, training_mode=False)


# ---------------------------------------------------------------------------
# Simulation loop (background task)
# ---------------------------------------------------------------------------

async def sim_loop() -> None:
    """
    Background task that advances the environment in real time.
    Very large dt spikes (after reload/breakpoints) are clamped.
    """
    tick = 1.0 / SIM_TICK_HZ
    last = time.perf_counter()
    print(f"[sim] loop starting @ {SIM_TICK_HZ} Hz")

    while True:
        now = time.perf_counter()
        dt = now - last
        last = now

        if dt > 0.2:
            dt = 0.2

        try:
            _sim.advance(dt)
        except Exception as e:
            # Never let a transient sim error kill the loop.
            print("[sim] step error:", repr(e))
            traceback.print_exc()

        remain = tick - (time.perf_counter() - now)
        await asyncio.sleep(remain if remain > 0 else 0)


# ---------------------------------------------------------------------------
# WebSocket client session
# ---------------------------------------------------------------------------

class ClientSession:
    """
    One instance per connected WebSocket client.

    - On connect: start a sender task that pushes "view" frames at `self.hz`.
    - On message: handle 'subscribe' (set stream rate) and 'cmd' (control sim).
    """

    def __init__(self, ws: WebSocket) -> None:
        self.ws = ws
        self.send_task: asyncio.Task | None = None
        self.hz: int = 30

    async def run(self) -> None:
        await self.ws.accept()
        print("[ws] connected")
        self.send_task = asyncio.create_task(self._sender())

        try:
            while True:
                raw = await self.ws.receive_text()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    await self._error("bad json")
                    continue
                if not isinstance(data, dict):
                    await self._error("message must be a json object")
                    continue
                await self._handle(data)

        except WebSocketDisconnect:
            print("[ws] disconnected")

        finally:
            if self.send_task:
                self.send_task.cancel()

    async def _sender(self) -> None:
        while True:
            await asyncio.sleep(1.0 / max(1, self.hz))
            try:
                view = _sim.get_view()
                await self.ws.send_text(json.dumps({"type": "view", "payload": view}))
            except (WebSocketDisconnect, RuntimeError) as e:
                # Most commonly the socket was closed; stop the sender.
                print("[ws] sender stopping:", repr(e))
                break

    async def _handle(self, data: Dict[str, Any]) -> None:
        msg_type = data.get("type")

        if msg_type == "subscribe":
            try:
                hz = int(data.get("hz", 30))
            except (TypeError, ValueError):
                await self._error("subscribe requires an integer 'hz'")
                return
            self.hz = max(1, min(120, hz))
            await self._ack({"subscribe_hz": self.hz})
            print(f"[ws] subscribe -> {self.hz} Hz")
            return

        if msg_type != "cmd":
            await self._error(f"Unknown type: {msg_type}")
            return

        action = data.get("action")

        # --- Basic controls -------------------------------------------------
        if action == "toggle":
            paused = _sim.toggle_paused()
            await self._ack({"paused": paused})

        elif action == "play":
            _sim.set_paused(False)
            await self._ack({"paused": False})

        elif action == "pause":
            _sim.set_paused(True)
            await self._ack({"paused": True})

        elif action == "speed":
            try:
                value = float(data.get("value", 1.0))
            except (TypeError, ValueError):
                await self._error("speed requires a numeric 'value'")
            else:
                _sim.set_speed(value)
                await self._ack({"speed": value})

        elif action == "reset":
            _sim.reset()
            await self._ack({"episode": _sim.agent.episode})

        # --- Manual flight ----------------------------------------------------
        elif action == "keys":
            keys = data.get("keys", [])
            if not isinstance(keys, list):
                await self._error("keys requires a list of held key names")
                return
            if _sim.set_keys(KeyState.from_pressed(keys)):
                await self._ack({"keys": keys})
            else:
                await self._error("manual control is not active")

        elif action in ("freeze", "unfreeze"):
            try:
                if action == "freeze":
                    _sim.freeze()
                else:
                    _sim.unfreeze()
            except FreezeError as e:
                await self._error(str(e))
            else:
                await self._ack({"frozen": _sim.agent.frozen})

        else:
            await self._error(f"Unknown action: {action}")

    # -----------------------------------------------------------------------
    # Small helpers
    # -----------------------------------------------------------------------

    async def _ack(self, payload: Dict[str, Any]) -> None:
        await self.ws.send_text(json.dumps({"type": "ack", "payload": payload}))

    async def _error(self, message: str) -> None:
        await self.ws.send_text(json.dumps({"type": "error", "message": message}))


# ---------------------------------------------------------------------------
# HTTP routes and ASGI app
# ---------------------------------------------------------------------------

async def status(request):
    """Current view as plain JSON (handy for curl and health checks)."""
    return JSONResponse(_sim.get_view())


async def ws_endpoint(ws: WebSocket):
    session = ClientSession(ws)
    await session.run()


@contextlib.asynccontextmanager
async def lifespan(app):
    """Start the background loop on startup; cancel it on shutdown."""
    task = asyncio.create_task(sim_loop())
    print("[app] sim loop task created")
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


routes = [
    Route("/", endpoint=status),
    WebSocketRoute("/ws", endpoint=ws_endpoint),
]

app = Starlette(routes=routes, lifespan=lifespan)


def main() -> None:
    uvicorn.run(app, host=os.environ.get("HOST", "127.0.0.1"), port=int(os.environ.get("PORT", "8000")))


if __name__ == "__main__":
    main()
