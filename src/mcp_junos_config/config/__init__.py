"""Inventory configuration."""
from .inventory import DeviceInventory

__all__ = ["DeviceInventory"]
