"""Cache of previously discovered lights, for a fast start without mDNS."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from elgato_lights.models import DiscoveredLight

log = logging.getLogger(__name__)

CACHE_PATH = Path.home() / ".cache" / "elgato-lights" / "lights.json"


def is_valid_light(data: object) -> bool:
    if not isinstance(data, dict):
        return False
    name, host, port = data.get("name"), data.get("host"), data.get("port")
    if not isinstance(name, str) or not name:
        return False
    if not isinstance(host, str) or not host:
        return False
    # bool is an int subclass; reject it explicitly
    if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
        return False
    return True


def parse_cached_lights(text: str) -> list[DiscoveredLight]:
    """Parse cache JSON, silently skipping anything malformed."""
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []
    return [
        DiscoveredLight(name=item["name"], host=item["host"], port=item["port"])
        for item in data
        if is_valid_light(item)
    ]


def load_cached_lights(path: Path | None = None) -> list[DiscoveredLight]:
    path = path or CACHE_PATH
    try:
        text = path.read_text()
    except FileNotFoundError:
        return []
    except OSError as e:
        log.error("Failed to load cached lights from %s: %s", path, e)
        return []
    return parse_cached_lights(text)


def save_cached_lights(lights: list[DiscoveredLight], path: Path | None = None) -> None:
    path = path or CACHE_PATH
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps([light.to_dict() for light in lights], indent=2))
    except OSError as e:
        log.error("Failed to save cached lights to %s: %s", path, e)
