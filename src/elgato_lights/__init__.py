"""Elgato Key Light discovery and control library."""

from elgato_lights.models import AppConfig, DeviceInfo, DiscoveredLight, LightState
from elgato_lights.client import KeyLight
from elgato_lights.config import get_lights, load_config
from elgato_lights.discovery import discover_lights, is_avahi_available
from elgato_lights.errors import DirectoryError, DiscoveryError, ElgatoError

__all__ = [
    "AppConfig",
    "DeviceInfo",
    "DiscoveredLight",
    "LightState",
    "KeyLight",
    "load_config",
    "get_lights",
    "discover_lights",
    "is_avahi_available",
    "ElgatoError",
    "DirectoryError",
    "DiscoveryError",
]
