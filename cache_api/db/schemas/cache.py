from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class CacheRecord(BaseModel):
    """One cached contract-call result, as stored and read back."""

    key: str
    value: Any = None
    expire_at: int  # seconds since epoch
    created_at: int  # milliseconds since epoch
    contract_address: str
    function_name: str
    parameters: Optional[list[str]] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    def is_fresh(self, now: float) -> bool:
        """False once ``now`` (seconds) reaches ``expire_at``."""
        return now < self.expire_at

    @property
    def cached_at(self) -> str:
        created = datetime.fromtimestamp(self.created_at / 1000, tz=timezone.utc)
        return created.isoformat(timespec="milliseconds").replace("+00:00", "Z")
