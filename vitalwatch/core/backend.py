"""Explicitly constructed handle on persistence and row-change notifications."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import DuplicateKeyError

from vitalwatch.core.changefeed import ChangeEventType, ChangeFeed, Subscription
from vitalwatch.core.config import Settings
from vitalwatch.core.db import init_db
from vitalwatch.modules.devices.models import Device
from vitalwatch.modules.employees.models import Employee
from vitalwatch.modules.vitals.models import HealthStatus
from vitalwatch.modules.vitals.schemas import ReadingCreate, VitalReading

log = structlog.get_logger()

READINGS_TABLE = "health_status"
EMPLOYEES_TABLE = "employees"
DEVICE_FILTER_COLUMN = "mac_address"


def _row_record(row: HealthStatus) -> dict[str, Any]:
    """Shape a stored row the way change notifications deliver it."""
    return {
        "mac_address": row.mac_address,
        "heart_rate": row.heart_rate,
        "temperature": row.temperature,
        "respiratory_rate": row.respiratory_rate,
        "blood_pressure": row.blood_pressure,
        "body_activity": row.body_activity,
        "updated_at": row.updated_at.isoformat(),
    }


class BackendClient:
    """
    Persistence and change notifications behind one object.

    Created once at startup, passed to every component that reads or writes rows,
    and closed at shutdown. Nothing else talks to MongoDB directly.
    """

    def __init__(self, config: Settings, feed: ChangeFeed | None = None) -> None:
        self._config = config
        self.feed = feed or ChangeFeed(queue_size=config.SUBSCRIPTION_QUEUE_SIZE)
        self._mongo: AsyncIOMotorClient | None = None

    async def connect(self) -> None:
        self._mongo = await init_db(self._config)
        log.info("backend connected", database=self._config.MONGODB_DB_NAME)

    async def close(self) -> None:
        self.feed.close()
        if self._mongo is not None:
            self._mongo.close()
            self._mongo = None

    # ========== Readings ==========

    async def fetch_recent(self, device_id: str, limit: int = 10) -> list[VitalReading]:
        """Return the newest `limit` valid readings for a device, newest first."""
        rows: list[HealthStatus] = (
            await HealthStatus.find(HealthStatus.mac_address == device_id)
            .sort("-updated_at")
            .limit(limit)
            .to_list()
        )
        readings: list[VitalReading] = []
        for row in rows:
            reading = VitalReading.from_row(_row_record(row))
            if reading is not None:
                readings.append(reading)
        return readings

    async def insert_reading(self, reading_in: ReadingCreate) -> VitalReading:
        """Persist a reading, refresh its device's activity, and notify subscribers."""
        # MongoDB keeps milliseconds; the pushed copy must match what a later fetch returns
        timestamp = _to_millis(reading_in.timestamp or datetime.now(timezone.utc))
        row = HealthStatus(
            mac_address=reading_in.device_id,
            heart_rate=reading_in.heart_rate,
            temperature=reading_in.temperature,
            respiratory_rate=reading_in.respiratory_rate,
            blood_pressure=(
                reading_in.blood_pressure.as_string() if reading_in.blood_pressure else None
            ),
            body_activity=(
                reading_in.body_activity.value if reading_in.body_activity else None
            ),
            updated_at=timestamp,
        )
        await row.insert()
        await self._record_activity(row.mac_address, timestamp)

        record = _row_record(row)
        self.feed.publish(READINGS_TABLE, ChangeEventType.INSERT, record)
        return VitalReading.model_validate(record)

    # ========== Devices ==========

    async def list_devices(self) -> list[Device]:
        devices: list[Device] = await Device.find().sort("mac_address").to_list()
        return devices

    async def get_device(self, mac_address: str) -> Device | None:
        device: Device | None = await Device.find_one(Device.mac_address == mac_address)
        return device

    async def assign_device(self, mac_address: str, employee_name: str) -> Device:
        device = await self.get_device(mac_address)
        if device is None:
            device = Device(mac_address=mac_address, assigned_employee=employee_name)
            await device.insert()
            return device
        device.assigned_employee = employee_name
        await device.save()
        return device

    async def _record_activity(self, mac_address: str, at: datetime) -> None:
        device = await self.get_device(mac_address)
        if device is None:
            try:
                await Device(mac_address=mac_address, last_activity=at).insert()
                return
            except DuplicateKeyError:
                # Another reading registered the device first
                device = await self.get_device(mac_address)
                if device is None:
                    return
        if device.last_activity is not None and _as_utc(device.last_activity) >= at:
            return
        device.last_activity = at
        await device.save()

    # ========== Employees ==========

    async def insert_employee(self, employee: Employee) -> Employee:
        await employee.insert()
        self.feed.publish(
            EMPLOYEES_TABLE,
            ChangeEventType.INSERT,
            {"id": str(employee.id), "name": employee.name, "device_mac": employee.device_mac},
        )
        return employee

    async def list_employees(self) -> list[Employee]:
        employees: list[Employee] = await Employee.find().sort("name").to_list()
        return employees

    async def get_employee(self, employee_id: str) -> Employee | None:
        if not ObjectId.is_valid(employee_id):
            return None
        employee: Employee | None = await Employee.get(employee_id)
        return employee

    # ========== Change notifications ==========

    def subscribe(
        self,
        table: str,
        event: ChangeEventType = ChangeEventType.ALL,
        device_id: str | None = None,
    ) -> Subscription:
        column_filter = {DEVICE_FILTER_COLUMN: device_id} if device_id else None
        return self.feed.subscribe(table, event=event, column_filter=column_filter)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.feed.unsubscribe(subscription)


def _to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
