"""Configuration loader with cache and mDNS discovery fallback."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from elgato_lights.cache import load_cached_lights, save_cached_lights
from elgato_lights.models import DEFAULT_PORT, AppConfig, DiscoveredLight, DiscoverySettings

log = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".config" / "elgato-lights" / "config.toml"


def load_config(path: Path | None = None) -> AppConfig:
    """Load config from the TOML file; a missing file means defaults."""
    path = path or CONFIG_PATH
    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return _parse_config(data)
    return AppConfig()


def _parse_config(data: dict) -> AppConfig:
    lights = []
    for light_data in data.get("lights", []):
        lights.append(
            DiscoveredLight(
                name=light_data["name"],
                host=light_data["host"],
                port=light_data.get("port", DEFAULT_PORT),
            )
        )

    discovery = DiscoverySettings()
    discovery_data = data.get("discovery", {})
    if "timeout_ms" in discovery_data:
        discovery.timeout_ms = int(discovery_data["timeout_ms"])

    return AppConfig(lights=lights, discovery=discovery)


async def _discover_fallback(config: AppConfig) -> list[DiscoveredLight]:
    """Run mDNS discovery and cache what it finds."""
    from elgato_lights.discovery import discover_lights

    lights = await discover_lights(timeout_ms=config.discovery.timeout_ms)
    if lights:
        save_cached_lights(lights)
    else:
        log.warning(
            "no lights found; configure them in %s or ensure they are "
            "on the local network",
            CONFIG_PATH,
        )
    return lights


async def get_lights(names: list[str] | None = None) -> list[DiscoveredLight]:
    """Get lights, optionally filtered by name (case-insensitive).

    Configured lights win; otherwise the discovery cache is used, and only
    when that is empty too does discovery run.
    """
    config = load_config()
    lights = config.lights or load_cached_lights()
    if not lights:
        lights = await _discover_fallback(config)
    if not names:
        return lights
    wanted = {n.casefold() for n in names}
    return [l for l in lights if l.name.casefold() in wanted]
