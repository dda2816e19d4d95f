"""Compose reading HTTP and WebSocket routers."""

from fastapi import APIRouter

from .http import create_reading, create_readings_bulk, read_recent, router as http_router
from .ws_device import _process_device_message, router as ws_device_router

router = APIRouter()
router.include_router(http_router)
router.include_router(ws_device_router)

__all__ = [
    "router",
    "create_reading",
    "create_readings_bulk",
    "read_recent",
    "_process_device_message",
]
