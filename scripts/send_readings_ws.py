#!/usr/bin/env python3
"""
Simulate a wearable over the device WebSocket.

Sends a few healthy readings, then a run of high heart rate readings long
enough to raise an alert, then optionally a fall.
"""

import argparse
import asyncio
import json
from datetime import datetime, timezone

import websockets


def _reading(device_id: str, heart_rate: float, body_activity: str = "Active") -> dict:
    return {
        "deviceId": device_id,
        "heartRate": heart_rate,
        "temperature": 36.8,
        "respiratoryRate": 16,
        "bloodPressure": "120/80",
        "bodyActivity": body_activity,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def send_readings(base_url: str, device_id: str, critical: int, fall: bool, interval: float) -> None:
    uri = f"{base_url.rstrip('/')}/api/v1/readings/ws/device"
    print(f"📡 Connecting to {uri}")

    async with websockets.connect(uri) as websocket:
        print("✅ Connected!")
        for heart_rate in (72, 75, 78):
            await websocket.send(json.dumps(_reading(device_id, heart_rate)))
            print(f"   Sent healthy reading: {heart_rate} bpm")
            await asyncio.sleep(interval)

        for i in range(critical):
            heart_rate = 150 + i
            await websocket.send(json.dumps(_reading(device_id, heart_rate)))
            print(f"   Sent critical reading {i + 1}: {heart_rate} bpm")
            await asyncio.sleep(interval)

        if fall:
            await websocket.send(json.dumps(_reading(device_id, 80, body_activity="Fallen")))
            print("   Sent fall")

    print("\n✅ All readings sent. Watch the alert stream:")
    print(f"   curl -N 'http://localhost:8000/api/v1/alerts/stream?device_id={device_id}'")


def main() -> None:
    parser = argparse.ArgumentParser(description="Device reading simulator")
    parser.add_argument("--base-url", default="ws://localhost:8000")
    parser.add_argument("--device-id", default="AA:BB:CC:DD:EE:01")
    parser.add_argument("--critical", type=int, default=5, help="number of critical readings")
    parser.add_argument("--fall", action="store_true", help="finish with a fall")
    parser.add_argument("--interval", type=float, default=0.5)
    args = parser.parse_args()

    try:
        asyncio.run(send_readings(args.base_url, args.device_id, args.critical, args.fall, args.interval))
    except KeyboardInterrupt:
        print("\n👋 Cancelled")


if __name__ == "__main__":
    main()
