from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Callable

import pytest
from beanie import PydanticObjectId
from httpx import ASGITransport, AsyncClient
from pymongo.errors import DuplicateKeyError

from vitalwatch.core.config import Settings, settings
from vitalwatch.core.services import Services, build_services
from vitalwatch.main import app
from vitalwatch.modules.devices.models import Device
from vitalwatch.modules.employees.models import Employee
from vitalwatch.modules.vitals.models import HealthStatus


class _FieldProxy:
    """Minimal stand-in for Beanie field proxies used in query expressions."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __eq__(self, other: object) -> tuple[str, str, object]:  # type: ignore[override]
        return ("eq", self.name, other)

    def __ge__(self, other: object) -> tuple[str, str, object]:  # type: ignore[override]
        return ("ge", self.name, other)

    def __le__(self, other: object) -> tuple[str, str, object]:  # type: ignore[override]
        return ("le", self.name, other)


def _install_field_proxies() -> None:
    # Lets code build expressions like HealthStatus.mac_address == mac without init_beanie
    HealthStatus.mac_address = _FieldProxy("mac_address")  # type: ignore[assignment]
    Device.mac_address = _FieldProxy("mac_address")  # type: ignore[assignment]
    _dummy_settings = SimpleNamespace(
        pymongo_collection=None, motor_collection=None, use_state_management=False
    )
    for model in (HealthStatus, Device, Employee):
        if getattr(model, "_document_settings", None) is None:
            model._document_settings = _dummy_settings  # type: ignore[attr-defined]


def _extract_filters(exprs: tuple[object, ...]) -> list[tuple[str, str, object]]:
    filters: list[tuple[str, str, object]] = []
    for expr in exprs:
        if isinstance(expr, tuple) and len(expr) == 3 and expr[0] in {"eq", "ge", "le"}:
            filters.append(expr)  # type: ignore[arg-type]
    return filters


def _ensure_id(document: Any) -> None:
    if getattr(document, "id", None) is None:
        document.id = PydanticObjectId()


class _FakeQuery:
    """find/sort/skip/limit chain over an in-memory list."""

    def __init__(
        self,
        source: Callable[[], list[Any]],
        filters: list[tuple[str, str, object]] | None = None,
    ) -> None:
        self._source = source
        self.filters = filters or []
        self._sort_field: str | None = None
        self._descending = False
        self._skip = 0
        self._limit: int | None = None

    def find(self, *exprs: object) -> "_FakeQuery":
        return _FakeQuery(self._source, [*self.filters, *_extract_filters(exprs)])

    def sort(self, sort_spec: str) -> "_FakeQuery":
        self._descending = sort_spec.startswith("-")
        self._sort_field = sort_spec[1:] if self._descending else sort_spec
        return self

    def skip(self, count: int) -> "_FakeQuery":
        self._skip = count
        return self

    def limit(self, count: int) -> "_FakeQuery":
        self._limit = count
        return self

    def _matches(self, document: Any) -> bool:
        for op, field, value in self.filters:
            attr = getattr(document, field, None)
            if op == "eq" and attr != value:
                return False
            if attr is None:
                return False
            if op == "ge" and not (attr >= value):
                return False
            if op == "le" and not (attr <= value):
                return False
        return True

    async def to_list(self) -> list[Any]:
        items = [document for document in self._source() if self._matches(document)]
        if self._sort_field:
            items.sort(key=lambda d: getattr(d, self._sort_field), reverse=self._descending)
        if self._skip:
            items = items[self._skip :]
        if self._limit is not None:
            items = items[: self._limit]
        return items

    async def first_or_none(self) -> Any:
        items = await self.to_list()
        return items[0] if items else None


def _patch_health_status_model(monkeypatch: pytest.MonkeyPatch, store: dict[str, Any]) -> None:
    async def _insert(self: HealthStatus) -> HealthStatus:
        _ensure_id(self)
        # Mongo keeps millisecond precision; the caller's object is left as is
        stored_at = self.updated_at.replace(microsecond=self.updated_at.microsecond // 1000 * 1000)
        store["health_status"].append(self.model_copy(update={"updated_at": stored_at}))
        return self

    def _find(*exprs: object) -> _FakeQuery:
        return _FakeQuery(lambda: store["health_status"], _extract_filters(exprs))

    monkeypatch.setattr(HealthStatus, "insert", _insert, raising=False)
    monkeypatch.setattr(HealthStatus, "find", staticmethod(_find), raising=False)


def _patch_device_model(monkeypatch: pytest.MonkeyPatch, store: dict[str, Any]) -> None:
    async def _insert(self: Device) -> Device:
        if self.mac_address in store["devices"]:
            raise DuplicateKeyError("duplicate mac_address")
        _ensure_id(self)
        store["devices"][self.mac_address] = self
        return self

    async def _save(self: Device) -> Device:
        _ensure_id(self)
        store["devices"][self.mac_address] = self
        return self

    def _find(*exprs: object) -> _FakeQuery:
        return _FakeQuery(lambda: list(store["devices"].values()), _extract_filters(exprs))

    async def _find_one(*exprs: object) -> Device | None:
        return await _find(*exprs).first_or_none()

    monkeypatch.setattr(Device, "insert", _insert, raising=False)
    monkeypatch.setattr(Device, "save", _save, raising=False)
    monkeypatch.setattr(Device, "find", staticmethod(_find), raising=False)
    monkeypatch.setattr(Device, "find_one", staticmethod(_find_one), raising=False)


def _patch_employee_model(monkeypatch: pytest.MonkeyPatch, store: dict[str, Any]) -> None:
    async def _insert(self: Employee) -> Employee:
        _ensure_id(self)
        store["employees"][str(self.id)] = self
        return self

    async def _get(employee_id: object) -> Employee | None:
        return store["employees"].get(str(employee_id))

    def _find(*exprs: object) -> _FakeQuery:
        return _FakeQuery(lambda: list(store["employees"].values()), _extract_filters(exprs))

    monkeypatch.setattr(Employee, "insert", _insert, raising=False)
    monkeypatch.setattr(Employee, "get", staticmethod(_get), raising=False)
    monkeypatch.setattr(Employee, "find", staticmethod(_find), raising=False)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def db(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    """
    Provide an in-memory stand-in for Mongo to keep tests hermetic without a running DB.
    """
    store: dict[str, Any] = {"health_status": [], "devices": {}, "employees": {}}

    _install_field_proxies()
    _patch_health_status_model(monkeypatch, store)
    _patch_device_model(monkeypatch, store)
    _patch_employee_model(monkeypatch, store)

    # Stub init_db so BackendClient.connect() never opens a real connection
    async def _init_db_stub(config: Settings) -> object:
        return SimpleNamespace(close=lambda: None)

    monkeypatch.setattr("vitalwatch.core.backend.init_db", _init_db_stub)

    # The lifespan builds services from the global settings
    monkeypatch.setattr(settings, "HEARTBEAT_POLL_SECONDS", 3600.0)
    monkeypatch.setattr(settings, "REDIS_URL", None)
    return store


@pytest.fixture
def test_settings() -> Settings:
    return settings.model_copy(
        update={"HEARTBEAT_POLL_SECONDS": 3600.0, "REDIS_URL": None, "MONGODB_DB_NAME": "test_vitalwatch"}
    )


@pytest.fixture
async def services(db: dict[str, Any], test_settings: Settings) -> AsyncGenerator[Services, None]:
    services = build_services(test_settings)
    await services.start()
    app.state.services = services
    yield services
    await services.close()


@pytest.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def base_time() -> datetime:
    return datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def at(base_time: datetime) -> Callable[[float], datetime]:
    def _at(seconds: float) -> datetime:
        return base_time + timedelta(seconds=seconds)

    return _at
