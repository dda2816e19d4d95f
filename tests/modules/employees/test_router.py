"""Tests for the employee roster endpoints and the roster change stream."""

import asyncio
import json
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import status
from httpx import AsyncClient

from vitalwatch.core.services import Services
from vitalwatch.modules.employees.router import stream_roster
from vitalwatch.modules.employees.schemas import EmployeeResponse
from vitalwatch.modules.employees.service import matches_search


@pytest.mark.asyncio
class TestCreateEmployee:
    async def test_name_derived_from_first_and_last(self, client: AsyncClient, db: dict[str, Any]) -> None:
        response = await client.post(
            "/api/v1/employees/",
            json={"firstName": " Maria ", "lastName": "Lopez", "bloodGroup": "o+", "age": 41},
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["name"] == "Maria Lopez"
        assert body["bloodGroup"] == "O+"
        assert body["id"] in db["employees"]

    async def test_explicit_name_wins(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/employees/", json={"name": "Dr. Kim", "firstName": "Ji", "lastName": "Kim"}
        )

        assert response.json()["name"] == "Dr. Kim"

    async def test_device_is_assigned(self, client: AsyncClient, db: dict[str, Any]) -> None:
        response = await client.post(
            "/api/v1/employees/", json={"name": "Ravi Patel", "deviceMac": "aa-bb-cc-dd-ee-09"}
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["deviceMac"] == "AA-BB-CC-DD-EE-09"
        assert db["devices"]["AA-BB-CC-DD-EE-09"].assigned_employee == "Ravi Patel"

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"firstName": "  "},
            {"name": "Sam", "bloodGroup": "C+"},
            {"name": "Sam", "deviceMac": "not-a-mac"},
            {"name": "Sam", "age": -1},
        ],
    )
    async def test_invalid_payload_is_422(self, client: AsyncClient, payload: dict[str, Any]) -> None:
        response = await client.post("/api/v1/employees/", json=payload)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.asyncio
class TestReadEmployees:
    async def test_list_and_search(self, client: AsyncClient) -> None:
        for name in ("Maria Lopez", "Mario Rossi", "Ana Silva"):
            await client.post("/api/v1/employees/", json={"name": name})

        everyone = await client.get("/api/v1/employees/")
        assert [item["name"] for item in everyone.json()] == ["Ana Silva", "Maria Lopez", "Mario Rossi"]

        found = await client.get("/api/v1/employees/", params={"search": "MARI"})
        assert [item["name"] for item in found.json()] == ["Maria Lopez", "Mario Rossi"]

        none = await client.get("/api/v1/employees/", params={"search": "zed"})
        assert none.json() == []

    async def test_new_employee_shows_up_in_list(self, client: AsyncClient) -> None:
        await client.post("/api/v1/employees/", json={"name": "First"})
        assert len((await client.get("/api/v1/employees/")).json()) == 1

        await client.post("/api/v1/employees/", json={"name": "Second"})
        assert len((await client.get("/api/v1/employees/")).json()) == 2

    async def test_get_by_id(self, client: AsyncClient) -> None:
        created = (await client.post("/api/v1/employees/", json={"name": "Lee"})).json()

        response = await client.get(f"/api/v1/employees/{created['id']}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name"] == "Lee"

    @pytest.mark.parametrize("employee_id", ["not-an-object-id", "65f000000000000000000000"])
    async def test_get_missing_is_404(self, client: AsyncClient, employee_id: str) -> None:
        response = await client.get(f"/api/v1/employees/{employee_id}")

        assert response.status_code == status.HTTP_404_NOT_FOUND


def test_matches_search_on_id_and_name() -> None:
    employee = EmployeeResponse.model_validate(
        {
            "id": "65f0aa",
            "name": "Maria Lopez",
            "createdAt": "2024-05-01T12:00:00Z",
            "updatedAt": "2024-05-01T12:00:00Z",
        }
    )

    assert matches_search(employee, "lopez")
    assert matches_search(employee, "F0AA")
    assert matches_search(employee, "  ")
    assert not matches_search(employee, "kim")


@pytest.mark.asyncio
class TestRosterStream:
    """The generator is driven directly; ASGI transports buffer streaming bodies."""

    async def test_new_employee_is_streamed(self, client: AsyncClient, services: Services) -> None:
        baseline = services.backend.feed.subscriber_count
        request: Any = SimpleNamespace(is_disconnected=AsyncMock(return_value=False))
        response = await stream_roster(request=request, services=services)
        assert response.media_type == "text/event-stream"
        frames = response.body_iterator

        pending = asyncio.ensure_future(frames.__anext__())  # type: ignore[union-attr]
        await asyncio.sleep(0.01)
        assert services.backend.feed.subscriber_count == baseline + 1

        created = await client.post(
            "/api/v1/employees/", json={"name": "Ana Silva", "deviceMac": "AA:BB:CC:DD:EE:07"}
        )
        frame = await asyncio.wait_for(pending, timeout=1.0)

        event_line, data_line, *_ = frame.split("\n")
        assert event_line == "event: employee_created"
        payload = json.loads(data_line.removeprefix("data: "))
        assert payload == {
            "id": created.json()["id"],
            "name": "Ana Silva",
            "device_mac": "AA:BB:CC:DD:EE:07",
        }

        await frames.aclose()  # type: ignore[union-attr]
        assert services.backend.feed.subscriber_count == baseline

    async def test_stream_stops_when_client_disconnects(self, services: Services) -> None:
        baseline = services.backend.feed.subscriber_count
        request: Any = SimpleNamespace(is_disconnected=AsyncMock(return_value=True))
        response = await stream_roster(request=request, services=services)

        frames = [frame async for frame in response.body_iterator]

        assert frames == []
        assert services.backend.feed.subscriber_count == baseline
