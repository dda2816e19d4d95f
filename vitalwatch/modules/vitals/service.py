from datetime import datetime, timezone
from typing import List

import structlog
from fastapi import Depends

from vitalwatch.core.backend import BackendClient
from vitalwatch.modules.vitals.schemas import ReadingBulkCreate, ReadingCreate, VitalReading
from vitalwatch.shared import deps

log = structlog.get_logger()


class ReadingService:
    """Write side of the reading source, plus the recent-readings query."""

    def __init__(self, backend: BackendClient = Depends(deps.get_backend)) -> None:
        self._backend = backend

    async def ingest(self, reading_in: ReadingCreate) -> VitalReading:
        reading = await self._backend.insert_reading(reading_in)
        log.debug("reading stored", device_id=reading.device_id)
        return reading

    async def ingest_bulk(self, bulk_in: ReadingBulkCreate) -> List[VitalReading]:
        # Oldest first so subscribers see them in order; unstamped ones are stamped now
        now = datetime.now(timezone.utc)
        ordered = sorted(bulk_in.readings, key=lambda item: item.timestamp or now)
        stored: List[VitalReading] = []
        for reading_in in ordered:
            stored.append(await self._backend.insert_reading(reading_in))
        log.info("readings stored", count=len(stored))
        return stored

    async def recent(self, device_id: str, limit: int = 10) -> List[VitalReading]:
        return await self._backend.fetch_recent(device_id.strip().upper(), limit)
