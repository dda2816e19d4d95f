import asyncio
import json
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from vitalwatch.core.backend import EMPLOYEES_TABLE
from vitalwatch.core.changefeed import ChangeEventType
from vitalwatch.core.services import Services
from vitalwatch.modules.employees.schemas import EmployeeCreate, EmployeeResponse
from vitalwatch.modules.employees.service import EmployeeService
from vitalwatch.shared import deps

router = APIRouter()
log = structlog.get_logger()

KEEPALIVE_SECONDS = 30.0


@router.post(
    "/",
    response_model=EmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an employee to the roster",
)
async def create_employee(
    employee_in: EmployeeCreate,
    service: EmployeeService = Depends(EmployeeService),
) -> EmployeeResponse:
    return await service.create(employee_in)


@router.get("/", response_model=List[EmployeeResponse], summary="List or search the roster")
async def list_employees(
    search: Optional[str] = None,
    service: EmployeeService = Depends(EmployeeService),
) -> List[EmployeeResponse]:
    """Filter by a case-insensitive substring of the name or id."""
    return await service.list(search)


@router.get("/stream")
async def stream_roster(
    request: Request,
    services: Services = Depends(deps.get_services),
) -> StreamingResponse:
    """
    Server-Sent Events stream of roster additions.

    Each new employee arrives as an `employee_created` event carrying its id,
    name and assigned device. A keepalive comment is sent every 30 seconds while idle.
    """
    backend = services.backend

    async def event_generator():
        subscription = backend.subscribe(EMPLOYEES_TABLE, event=ChangeEventType.INSERT)
        log.info("sse roster stream connected")

        try:
            while True:
                if await request.is_disconnected():
                    log.info("sse client disconnected")
                    break

                try:
                    change = await asyncio.wait_for(
                        subscription.queue.get(), timeout=KEEPALIVE_SECONDS
                    )
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if change is None:
                    break
                yield f"event: employee_created\ndata: {json.dumps(change.record)}\n\n"

        except Exception as exc:
            log.error("sse stream error", error=str(exc))
        finally:
            backend.unsubscribe(subscription)
            log.info("sse roster stream closed")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{employee_id}", response_model=EmployeeResponse)
async def read_employee(
    employee_id: str,
    service: EmployeeService = Depends(EmployeeService),
) -> EmployeeResponse:
    employee = await service.get(employee_id)
    if employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return employee
