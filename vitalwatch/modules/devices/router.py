from typing import List

from fastapi import APIRouter, Depends

from vitalwatch.modules.devices.schemas import DeviceResponse
from vitalwatch.modules.devices.service import DeviceService

router = APIRouter()


@router.get("/", response_model=List[DeviceResponse], summary="Known devices with connection state")
async def list_devices(service: DeviceService = Depends(DeviceService)) -> List[DeviceResponse]:
    return await service.list_devices()
