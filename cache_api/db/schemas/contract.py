from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ContractCallResponse(BaseModel):
    result: Any = None
    cached: bool
    cached_at: Optional[str] = Field(default=None, alias="cachedAt")
    stale: Optional[bool] = None
    updated: Optional[bool] = None
    error: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

