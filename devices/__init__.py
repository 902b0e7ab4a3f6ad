"""Samsung TV discovery and connection."""

from .connection import ConnectionManager
from .discovery import TVDiscovery
from .models import Device, SavedConnection
from .storage import TokenStore

__all__ = ["ConnectionManager", "Device", "SavedConnection", "TokenStore", "TVDiscovery"]
