"""WebSocket endpoint for devices streaming readings."""

import json

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from vitalwatch.modules.vitals.schemas import ReadingCreate
from vitalwatch.modules.vitals.service import ReadingService

router = APIRouter()
log = structlog.get_logger()


async def _process_device_message(raw_message: str, service: ReadingService) -> bool:
    """Store one inbound frame; returns False when the frame was ignored."""
    try:
        data = json.loads(raw_message)
        if not isinstance(data, dict):
            return False
        await service.ingest(ReadingCreate.model_validate(data))
    except (json.JSONDecodeError, ValidationError):
        # Ignore invalid data rather than tearing down the socket
        return False
    return True


@router.websocket("/ws/device")
async def websocket_device(
    websocket: WebSocket,
    service: ReadingService = Depends(ReadingService),
) -> None:
    """
    WebSocket endpoint for wearables (producer).
    Each text frame is one JSON reading; invalid frames are dropped.
    """
    await websocket.accept()
    log.info("device websocket connected")
    try:
        while True:
            raw_message = await websocket.receive_text()
            await _process_device_message(raw_message, service)
    except WebSocketDisconnect:
        log.info("device websocket disconnected")
