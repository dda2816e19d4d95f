"""
Example SSE client for dashboard alerts.

Connects to the alert stream and prints alerts and device liveness changes.

Usage:
    python examples/sse_alert_client.py --device-id AA:BB:CC:DD:EE:01
    python examples/sse_alert_client.py            # every device
"""

import argparse
import asyncio
import json
from typing import Any

import httpx


class AlertSSEClient:
    """Client for consuming alert notifications via SSE."""

    def __init__(self, base_url: str, device_id: str | None = None):
        self.base_url = base_url.rstrip("/")
        self.device_id = device_id
        self.running = False

    async def connect(self) -> None:
        """Connect to the SSE stream and process events."""
        params = {"device_id": self.device_id} if self.device_id else {}
        url = f"{self.base_url}/api/v1/alerts/stream"
        print(f"Connecting to {url} (device: {self.device_id or 'all'})")
        print("-" * 60)

        self.running = True
        try:
            async with httpx.AsyncClient(timeout=None) as client:
                async with client.stream("GET", url, params=params) as response:
                    if response.status_code != 200:
                        print(f"Error: {response.status_code}")
                        print(await response.aread())
                        return

                    print("✓ Connected to alert stream")
                    async for line in response.aiter_lines():
                        if not self.running:
                            break
                        if line.startswith("data:"):
                            try:
                                self.handle_event(json.loads(line[5:].strip()))
                            except json.JSONDecodeError as e:
                                print(f"Error parsing event: {e}")
                        elif line.startswith(":"):
                            # Keepalive comment
                            print(".", end="", flush=True)
        except httpx.HTTPError as e:
            print(f"\nConnection error: {e}")
        finally:
            self.running = False
            print("Disconnected from alert stream")

    def handle_event(self, payload: dict[str, Any]) -> None:
        event = payload.get("event", "unknown")
        print("\n" + "=" * 60)
        if event == "alert":
            alert = payload.get("alert", {})
            print("🚨 ALERT")
            print(f"Device: {alert.get('deviceId')}")
            print(f"Vital: {alert.get('kind')} = {alert.get('value')}")
            print(f"Message: {alert.get('message')}")
            print(f"Time: {alert.get('time')}")
        elif event in ("device_offline", "device_online"):
            print(f"{'⚠️  OFFLINE' if event == 'device_offline' else '✓ ONLINE'}: {payload.get('deviceId')}")
            print(f"Last activity: {payload.get('lastActivity')}")
        else:
            print(json.dumps(payload, indent=2))
        print("=" * 60)


async def main() -> None:
    parser = argparse.ArgumentParser(description="SSE alert client")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--device-id", help="MAC address to follow (default: every device)")
    args = parser.parse_args()

    await AlertSSEClient(base_url=args.base_url, device_id=args.device_id).connect()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting...")
