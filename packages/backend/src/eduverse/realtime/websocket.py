"""WebSocket endpoint — live counter pushes to dashboard badges.

Learn: Each client connects to /ws/schools/{school_id}/counters/{name}
?token=JWT. The connection *is* the counter's scope:

1. Accept, build a LiveCounter acting as the token's user
2. set_scope(school_id) — resolves identity, subscribes, counts
3. Every state change is queued and sent as a CounterFrame
4. On disconnect the counter is closed, releasing the registration

Two concurrent tasks run, as with any long-lived socket here: one drains
the frame queue to the client, one reads from the client (ping/pong and
explicit "refresh" requests). When either finishes, both stop.
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from eduverse.api.deps import get_backend
from eduverse.backend.client import BackendClient
from eduverse.counters.live import CounterState
from eduverse.schemas.counter import CounterFrame
from eduverse.services.counter_service import CounterNotFoundError, CounterService

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws/schools/{school_id}/counters/{name}")
async def counter_websocket(
    websocket: WebSocket,
    school_id: str,
    name: str,
    backend: BackendClient = Depends(get_backend),
):
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4001, reason="Authentication required")
        return

    frames: asyncio.Queue[CounterState] = asyncio.Queue()
    try:
        counter = CounterService(backend.with_token(token)).live(name, on_state=frames.put_nowait)
    except CounterNotFoundError:
        await websocket.close(code=4004, reason=f"Unknown counter: {name}")
        return

    await websocket.accept()
    logger.info("eduverse.ws.connected", school=school_id, counter=name)

    async def frame_sender():
        while True:
            state = await frames.get()
            frame = CounterFrame.from_state(name, state)
            await websocket.send_text(frame.model_dump_json())

    async def client_listener():
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    msg = json.loads(data)
                except json.JSONDecodeError:
                    continue
                if not isinstance(msg, dict):
                    continue
                if msg.get("type") == "ping":
                    await websocket.send_text(json.dumps({"type": "pong"}))
                elif msg.get("type") == "refresh":
                    await counter.refresh()
        except WebSocketDisconnect:
            pass

    sender_task = asyncio.create_task(frame_sender())
    client_task = asyncio.create_task(client_listener())

    try:
        await counter.set_scope(school_id)

        done, pending = await asyncio.wait(
            [sender_task, client_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning("eduverse.ws.task_failed", error=str(task.exception()))
    finally:
        for task in (sender_task, client_task):
            task.cancel()
        await counter.close()
        logger.info("eduverse.ws.disconnected", school=school_id, counter=name)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
