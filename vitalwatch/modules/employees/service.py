from typing import List

import structlog
from fastapi import Depends
from pydantic import TypeAdapter

from vitalwatch.core.services import Services
from vitalwatch.modules.employees.models import Employee
from vitalwatch.modules.employees.schemas import EmployeeCreate, EmployeeResponse
from vitalwatch.shared import deps

log = structlog.get_logger()

ROSTER_SCOPE = "employees"
_roster_adapter = TypeAdapter(List[EmployeeResponse])


def matches_search(employee: EmployeeResponse, term: str) -> bool:
    """Case-insensitive substring match on name or id."""
    needle = term.strip().lower()
    if not needle:
        return True
    return needle in employee.name.lower() or needle in employee.id.lower()


class EmployeeService:
    def __init__(self, services: Services = Depends(deps.get_services)) -> None:
        self._backend = services.backend
        self._cache = services.cache

    async def create(self, employee_in: EmployeeCreate) -> EmployeeResponse:
        employee = Employee(**employee_in.model_dump())
        await self._backend.insert_employee(employee)
        if employee.device_mac:
            await self._backend.assign_device(employee.device_mac, employee.name)
        await self._cache.bump_version(ROSTER_SCOPE)
        log.info("employee created", employee_id=str(employee.id), device_mac=employee.device_mac)
        return EmployeeResponse.model_validate(employee, from_attributes=True)

    async def list(self, search: str | None = None) -> List[EmployeeResponse]:
        version = await self._cache.get_version(ROSTER_SCOPE)
        roster = await self._cache.cached_json(
            f"vitalwatch:employees:v{version}",
            self._load_roster,
            _roster_adapter,
        )
        if search:
            return [employee for employee in roster if matches_search(employee, search)]
        return roster

    async def get(self, employee_id: str) -> EmployeeResponse | None:
        employee = await self._backend.get_employee(employee_id)
        if employee is None:
            return None
        return EmployeeResponse.model_validate(employee, from_attributes=True)

    async def _load_roster(self) -> List[EmployeeResponse]:
        employees = await self._backend.list_employees()
        return [EmployeeResponse.model_validate(employee, from_attributes=True) for employee in employees]
