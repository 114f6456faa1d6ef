"""BLE transport layer."""

from .connection import EslSession, find_vendor_service, is_vendor_service

__all__ = ["EslSession", "find_vendor_service", "is_vendor_service"]
