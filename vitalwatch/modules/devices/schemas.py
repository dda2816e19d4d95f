from datetime import datetime
from typing import Optional

from vitalwatch.shared.schemas import CamelModel, PyObjectId


class DeviceResponse(CamelModel):
    id: Optional[PyObjectId] = None
    mac_address: str
    assigned_employee: Optional[str] = None
    last_activity: Optional[datetime] = None
    connected: bool = False
