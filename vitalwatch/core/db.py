from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from vitalwatch.core.config import Settings
from vitalwatch.modules.devices.models import Device
from vitalwatch.modules.employees.models import Employee
from vitalwatch.modules.vitals.models import HealthStatus


async def init_db(config: Settings) -> AsyncIOMotorClient:
    """
    Create a Motor client, initialize Beanie for every document model, and return the client.

    Called once by `BackendClient.connect()` at startup.
    """
    client = AsyncIOMotorClient(
        config.MONGODB_URL,
        uuidRepresentation="standard",
        serverSelectionTimeoutMS=5000,
    )

    db: AsyncIOMotorDatabase = client[config.MONGODB_DB_NAME]

    await init_beanie(
        database=db,
        document_models=[
            HealthStatus,
            Device,
            Employee,
        ],
    )
    return client
