from datetime import datetime, timezone
from typing import List

from fastapi import Depends

from vitalwatch.core.services import Services
from vitalwatch.modules.devices.models import Device
from vitalwatch.modules.devices.schemas import DeviceResponse
from vitalwatch.shared import deps


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DeviceService:
    def __init__(self, services: Services = Depends(deps.get_services)) -> None:
        self._backend = services.backend
        self._liveness = services.liveness

    def describe(self, device: Device, now: datetime | None = None) -> DeviceResponse:
        """Attach the derived `connected` flag; the newer of stored and observed activity wins."""
        candidates = [
            _as_utc(moment)
            for moment in (device.last_activity, self._liveness.last_seen(device.mac_address))
            if moment is not None
        ]
        last_activity = max(candidates) if candidates else None
        return DeviceResponse(
            id=device.id,
            mac_address=device.mac_address,
            assigned_employee=device.assigned_employee,
            last_activity=last_activity,
            connected=self._liveness.is_connected(
                device.mac_address, now=now, last_activity=last_activity
            ),
        )

    async def list_devices(self) -> List[DeviceResponse]:
        now = datetime.now(timezone.utc)
        devices = await self._backend.list_devices()
        return [self.describe(device, now=now) for device in devices]
