from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from cache_api.db.base import Base


class MonitorCursor(Base):
    """Last block processed by an event monitor, keyed by cursor name."""

    __tablename__ = "monitor_cursors"

    name: Mapped[str] = mapped_column(String(128), primary_key=True)
    last_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
