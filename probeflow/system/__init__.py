"""
Local machine helpers used by host nodes.
"""

from .processes import DeviceInfo, ProcessInfo, list_devices, list_processes

__all__ = ["DeviceInfo", "ProcessInfo", "list_devices", "list_processes"]
