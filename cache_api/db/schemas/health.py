from typing import Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "healthy"
    service: Optional[str] = None
    timestamp: str
