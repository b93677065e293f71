"""Data models for Elgato Key Lights and their discovery."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

DEFAULT_PORT = 9123


@dataclass
class LightState:
    """State of a single light, matching the Elgato API JSON shape."""

    on: bool = False
    brightness: int = 50
    temperature: int = 200  # 143 (7000K cool) to 344 (2900K warm)

    def to_api(self) -> dict:
        return {
            "on": 1 if self.on else 0,
            "brightness": round(self.brightness),
            "temperature": round(self.temperature),
        }

    @classmethod
    def from_api(cls, data: dict) -> LightState:
        return cls(
            on=bool(data.get("on", 0)),
            brightness=data.get("brightness", 50),
            temperature=data.get("temperature", 200),
        )

    @property
    def temperature_kelvin(self) -> int:
        """Convert Elgato temperature value to Kelvin (approximate)."""
        return int(1_000_000 / self.temperature)


@dataclass
class DeviceInfo:
    """Device information from the /elgato/accessory-info endpoint."""

    product_name: str = ""
    firmware_version: str = ""
    serial_number: str = ""
    display_name: str = ""

    @classmethod
    def from_api(cls, data: dict) -> DeviceInfo:
        return cls(
            product_name=data.get("productName", ""),
            firmware_version=data.get("firmwareVersion", ""),
            serial_number=data.get("serialNumber", ""),
            display_name=data.get("displayName", ""),
        )


@dataclass(frozen=True)
class DiscoveredLight:
    """A light found through mDNS, identified by its ``host:port``."""

    name: str
    host: str
    port: int = DEFAULT_PORT

    @property
    def key(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DiscoverySettings:
    timeout_ms: int = 5000


@dataclass
class AppConfig:
    """Top-level application configuration."""

    lights: list[DiscoveredLight] = field(default_factory=list)
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)
