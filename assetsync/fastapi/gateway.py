from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from ..bus import JobEventBus

logger = logging.getLogger("assetsync.gateway")


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Client messages are ignored; only the disconnect matters
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def stream_job_events(websocket: WebSocket, bus: JobEventBus, job_id: str) -> int:
    """Serve one connection: replay burst, then live events until terminal.

    A client disconnect ends the loop and is never treated as a cancellation.
    Returns the number of events sent.
    """
    await websocket.accept()
    peer = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
    logger.info(f"[WS] connect: job_id={job_id}, peer={peer}")

    sent = 0
    watcher = asyncio.create_task(_wait_for_disconnect(websocket))
    with bus.subscribe(job_id) as sub:
        try:
            for event in sub.replay:
                await websocket.send_text(event.to_json())
                sent += 1

            while not sub.finished:
                next_event = asyncio.ensure_future(sub.get())
                done, _ = await asyncio.wait(
                    {next_event, watcher}, return_when=asyncio.FIRST_COMPLETED
                )
                if next_event not in done:
                    next_event.cancel()
                    logger.info(f"[WS] client closed WS for job {job_id}")
                    break
                event = next_event.result()
                if event is None:
                    break
                await websocket.send_text(event.to_json())
                sent += 1

        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"[WS] transport error for job {job_id}: {e!r}")

        finally:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
                await watcher
            if (
                websocket.application_state == WebSocketState.CONNECTED
                and websocket.client_state == WebSocketState.CONNECTED
            ):
                with contextlib.suppress(RuntimeError):
                    await websocket.close()

    if sub.dropped:
        logger.warning(f"[WS] job {job_id}: subscriber dropped {sub.dropped} events")
    logger.info(f"[WS] session stopped for job {job_id} ({sent} events sent)")
    return sent
