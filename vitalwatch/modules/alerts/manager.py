import asyncio
import json
from typing import Any, Iterable

from fastapi import WebSocket


class AlertConnectionManager:
    """Dashboard subscribers (WebSocket + SSE) keyed by device; "*" receives every device."""

    def __init__(self) -> None:
        self._connections: dict[str, list[tuple[WebSocket, frozenset[str] | None]]] = {}
        self._sse_queues: dict[str, list[tuple[asyncio.Queue[dict[str, Any]], frozenset[str] | None]]] = {}

    # ========== WebSocket ==========

    async def connect(
        self,
        websocket: WebSocket,
        device_id: str | None,
        events: Iterable[str] | None = None,
    ) -> None:
        await websocket.accept()
        self.register(websocket, device_id, events)

    def register(
        self,
        websocket: WebSocket,
        device_id: str | None,
        events: Iterable[str] | None = None,
    ) -> None:
        """Track an already accepted socket."""
        device_key = self._normalize_device_id(device_id)
        self._connections.setdefault(device_key, []).append((websocket, _event_filter(events)))

    def disconnect(self, websocket: WebSocket) -> None:
        for device_key, entries in list(self._connections.items()):
            remaining = [entry for entry in entries if entry[0] is not websocket]
            if remaining:
                self._connections[device_key] = remaining
            else:
                self._connections.pop(device_key, None)

    # ========== SSE ==========

    def subscribe_sse(
        self,
        queue: asyncio.Queue[dict[str, Any]],
        device_id: str | None,
        events: Iterable[str] | None = None,
    ) -> None:
        device_key = self._normalize_device_id(device_id)
        self._sse_queues.setdefault(device_key, []).append((queue, _event_filter(events)))

    def unsubscribe_sse(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        for device_key, entries in list(self._sse_queues.items()):
            remaining = [entry for entry in entries if entry[0] is not queue]
            if remaining:
                self._sse_queues[device_key] = remaining
            else:
                self._sse_queues.pop(device_key, None)

    # ========== Broadcast ==========

    @property
    def subscriber_count(self) -> int:
        sockets = sum(len(entries) for entries in self._connections.values())
        queues = sum(len(entries) for entries in self._sse_queues.values())
        return sockets + queues

    async def send_to_device(self, device_id: str, payload: dict[str, Any]) -> None:
        """Deliver to both transports; broken sockets are dropped, slow queues skipped."""
        event = str(payload.get("event", ""))
        message = json.dumps(payload)
        sent_to_ws: set[int] = set()
        for socket in self._iter_sockets(device_id, event):
            socket_id = id(socket)
            if socket_id in sent_to_ws:
                continue
            try:
                await socket.send_text(message)
                sent_to_ws.add(socket_id)
            except Exception:
                self.disconnect(socket)

        sent_to_sse: set[int] = set()
        for queue in self._iter_sse_queues(device_id, event):
            queue_id = id(queue)
            if queue_id in sent_to_sse:
                continue
            try:
                queue.put_nowait(payload)
                sent_to_sse.add(queue_id)
            except asyncio.QueueFull:
                # Client can't keep up
                pass

    def _iter_sockets(self, device_id: str, event: str) -> Iterable[WebSocket]:
        device_key = self._normalize_device_id(device_id)
        for key in {device_key, "*"}:
            for socket, events in list(self._connections.get(key, [])):
                if events is None or event in events:
                    yield socket

    def _iter_sse_queues(
        self, device_id: str, event: str
    ) -> Iterable[asyncio.Queue[dict[str, Any]]]:
        device_key = self._normalize_device_id(device_id)
        for key in {device_key, "*"}:
            for queue, events in list(self._sse_queues.get(key, [])):
                if events is None or event in events:
                    yield queue

    @staticmethod
    def _normalize_device_id(device_id: str | None) -> str:
        if not device_id or device_id.strip().lower() in {"*", "all"}:
            return "*"
        return device_id.strip().upper()


def _event_filter(events: Iterable[str] | None) -> frozenset[str] | None:
    if events is None:
        return None
    return frozenset(events)
