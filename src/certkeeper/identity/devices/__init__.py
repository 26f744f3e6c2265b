from .base import DeviceSyncClient, SyncResult
from .routeros import RouterOSDeviceClient

__all__ = ["DeviceSyncClient", "SyncResult", "RouterOSDeviceClient"]
