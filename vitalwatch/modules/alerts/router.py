"""WebSocket and SSE endpoints for dashboard alert consumers."""

import asyncio
import json

import structlog
from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from vitalwatch.core.services import Services
from vitalwatch.modules.alerts.schemas import Alert
from vitalwatch.shared import deps

router = APIRouter()
log = structlog.get_logger()

ALERT_STREAM_EVENTS = ("alert", "device_offline", "device_online")
KEEPALIVE_SECONDS = 30.0


@router.websocket("/ws")
async def websocket_alerts(
    websocket: WebSocket,
    device_id: str | None = None,
    services: Services = Depends(deps.get_services),
) -> None:
    manager = services.manager
    await manager.connect(websocket, device_id=device_id, events=ALERT_STREAM_EVENTS)
    log.info("alerts websocket connected", device_id=device_id or "*")
    try:
        while True:
            # Inbound frames are ignored; the loop only waits for the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        log.info("alerts websocket disconnected", device_id=device_id or "*")
    finally:
        manager.disconnect(websocket)


@router.get("/stream")
async def stream_alerts(
    request: Request,
    device_id: str | None = None,
    services: Services = Depends(deps.get_services),
) -> StreamingResponse:
    """
    Server-Sent Events stream of alerts and device liveness changes.

    Query Parameters:
    - device_id: MAC address to follow; omit (or pass "*") for every device

    A keepalive comment is sent every 30 seconds while idle.
    """
    manager = services.manager

    async def event_generator():
        queue: asyncio.Queue = asyncio.Queue(maxsize=100)
        manager.subscribe_sse(queue, device_id=device_id, events=ALERT_STREAM_EVENTS)
        log.info("sse alert stream connected", device_id=device_id or "*")

        try:
            while True:
                if await request.is_disconnected():
                    log.info("sse client disconnected", device_id=device_id or "*")
                    break

                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                    yield f"event: {payload.get('event', 'message')}\ndata: {json.dumps(payload)}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"

        except Exception as exc:
            log.error("sse stream error", error=str(exc), device_id=device_id or "*")
        finally:
            manager.unsubscribe_sse(queue)
            log.info("sse alert stream closed", device_id=device_id or "*")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{device_id}", response_model=list[Alert])
async def recent_alerts(
    device_id: str,
    services: Services = Depends(deps.get_services),
) -> list[Alert]:
    """Most recent alerts for a device, newest first."""
    return services.alerts.recent(device_id.strip().upper())
