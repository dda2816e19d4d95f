"""Dashboard endpoints: start/stop a device monitor, read its snapshot, or follow it live."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from vitalwatch.core.services import Services
from vitalwatch.modules.monitoring.schemas import MonitorLease, MonitorSnapshot, SnapshotEvent
from vitalwatch.shared import deps

router = APIRouter()
log = structlog.get_logger()


def _device_key(device_id: str) -> str:
    return device_id.strip().upper()


@router.post("/{device_id}", response_model=MonitorLease, summary="Start (or join) a device monitor")
async def acquire_monitor(
    device_id: str,
    services: Services = Depends(deps.get_services),
) -> MonitorLease:
    device_key = _device_key(device_id)
    await services.monitors.acquire(device_key)
    return MonitorLease(device_id=device_key, viewers=services.monitors.viewers(device_key))


@router.delete("/{device_id}", response_model=MonitorLease, summary="Leave a device monitor")
async def release_monitor(
    device_id: str,
    services: Services = Depends(deps.get_services),
) -> MonitorLease:
    device_key = _device_key(device_id)
    if not await services.monitors.release(device_key):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Monitor not found")
    return MonitorLease(device_id=device_key, viewers=services.monitors.viewers(device_key))


@router.get("/{device_id}", response_model=MonitorSnapshot, summary="Current dashboard state")
async def read_snapshot(
    device_id: str,
    services: Services = Depends(deps.get_services),
) -> MonitorSnapshot:
    monitor = services.monitors.get(_device_key(device_id))
    if monitor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Monitor not found")
    return monitor.snapshot()


@router.websocket("/ws/{device_id}")
async def websocket_monitor(
    websocket: WebSocket,
    device_id: str,
    services: Services = Depends(deps.get_services),
) -> None:
    """
    Live dashboard feed for one device.
    Sends a snapshot on connect, then snapshot, alert and liveness events as they happen.
    """
    device_key = _device_key(device_id)
    await websocket.accept()
    monitor = await services.monitors.acquire(device_key)
    services.manager.register(websocket, device_id=device_key)
    log.info("monitor websocket connected", device_id=device_key)
    try:
        await websocket.send_json(
            SnapshotEvent(snapshot=monitor.snapshot()).model_dump(by_alias=True, mode="json")
        )
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        log.info("monitor websocket disconnected", device_id=device_key)
    finally:
        services.manager.disconnect(websocket)
        await services.monitors.release(device_key)
