from typing import Any

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from cache_api.core.config import settings
from cache_api.db.base import Base


class CacheEntry(Base):
    __tablename__ = settings.CACHE_TABLE_NAME

    key: Mapped[str] = mapped_column(String(1024), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    expire_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)
    function_name: Mapped[str] = mapped_column(String(64), nullable=False)
    parameters: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index(
            f"ix_{settings.CACHE_TABLE_NAME}_contract_function",
            "contract_address",
            "function_name",
        ),
    )
