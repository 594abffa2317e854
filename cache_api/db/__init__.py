from .base import Base
from .models.cache import CacheEntry  # Registers the contract cache table
from .models.monitor import MonitorCursor  # Registers the monitor cursor table
