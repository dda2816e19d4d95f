"""HTTP endpoints for storing and reading back device readings."""

from typing import List

from fastapi import APIRouter, Depends, Query

from vitalwatch.modules.vitals.schemas import ReadingBulkCreate, ReadingCreate, VitalReading
from vitalwatch.modules.vitals.service import ReadingService

router = APIRouter()


@router.post("/", response_model=VitalReading, summary="Store a device reading", status_code=201)
async def create_reading(
    reading_in: ReadingCreate,
    service: ReadingService = Depends(ReadingService),
) -> VitalReading:
    """Persist one reading and notify every subscriber of the device."""
    return await service.ingest(reading_in)


@router.post(
    "/bulk",
    response_model=List[VitalReading],
    summary="Store several device readings",
    status_code=201,
)
async def create_readings_bulk(
    bulk_in: ReadingBulkCreate,
    service: ReadingService = Depends(ReadingService),
) -> List[VitalReading]:
    return await service.ingest_bulk(bulk_in)


@router.get(
    "/{device_id}/recent",
    response_model=List[VitalReading],
    summary="Most recent readings for a device, newest first",
)
async def read_recent(
    device_id: str,
    limit: int = Query(10, ge=1, le=100),
    service: ReadingService = Depends(ReadingService),
) -> List[VitalReading]:
    return await service.recent(device_id, limit)
