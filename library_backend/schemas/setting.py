from typing import Any
from library_backend.schemas.common import CamelModel

class UpdateSettingRequest(CamelModel):
    value: Any
