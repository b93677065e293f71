"""Async HTTP client for Elgato Key Light API."""

from __future__ import annotations

import httpx

from elgato_lights.models import DeviceInfo, DiscoveredLight, LightState

MIN_BRIGHTNESS = 3
MAX_BRIGHTNESS = 100
MIN_TEMPERATURE = 143
MAX_TEMPERATURE = 344


class KeyLight:
    """Async client for a single Elgato Key Light.

    Remembers the last state read from or written to the device in
    ``state``, so a UI can render without another round trip.
    """

    def __init__(
        self,
        light: DiscoveredLight,
        timeout: float = 5.0,
        retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.light = light
        self.name = light.name
        self.display_name = light.name
        self.state: LightState | None = None
        self._client = httpx.AsyncClient(
            base_url=light.base_url,
            timeout=timeout,
            transport=transport or httpx.AsyncHTTPTransport(retries=retries),
        )

    async def __aenter__(self) -> KeyLight:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_state(self) -> LightState:
        """Get current light state."""
        resp = await self._client.get("/elgato/lights")
        resp.raise_for_status()
        lights = resp.json().get("lights") or []
        if not lights:
            raise ValueError(f"{self.name}: no lights in response")
        self.state = LightState.from_api(lights[0])
        return self.state

    async def set_state(self, state: LightState) -> LightState:
        """Set light state, returns the new state."""
        payload = {"numberOfLights": 1, "lights": [state.to_api()]}
        resp = await self._client.put("/elgato/lights", json=payload)
        resp.raise_for_status()
        lights = resp.json().get("lights") or []
        self.state = LightState.from_api(lights[0]) if lights else state
        return self.state

    async def set_on(self, on: bool) -> LightState:
        """Switch power, keeping the brightness and temperature the device reports."""
        state = await self.fetch_state()
        state.on = on
        return await self.set_state(state)

    async def turn_on(self) -> LightState:
        return await self.set_on(True)

    async def turn_off(self) -> LightState:
        return await self.set_on(False)

    async def toggle(self) -> LightState:
        state = await self.fetch_state()
        state.on = not state.on
        return await self.set_state(state)

    async def set_brightness(self, brightness: int) -> LightState:
        """Set brightness (3-100)."""
        state = self.state or await self.fetch_state()
        brightness = max(MIN_BRIGHTNESS, min(MAX_BRIGHTNESS, brightness))
        return await self.set_state(
            LightState(on=state.on, brightness=brightness, temperature=state.temperature)
        )

    async def set_temperature(self, temperature: int) -> LightState:
        """Set color temperature (143-344 in Elgato units)."""
        state = self.state or await self.fetch_state()
        temperature = max(MIN_TEMPERATURE, min(MAX_TEMPERATURE, temperature))
        return await self.set_state(
            LightState(on=state.on, brightness=state.brightness, temperature=temperature)
        )

    async def fetch_info(self) -> DeviceInfo:
        """Get device information, adopting its display name if set."""
        resp = await self._client.get("/elgato/accessory-info")
        resp.raise_for_status()
        info = DeviceInfo.from_api(resp.json())
        if info.display_name:
            self.display_name = info.display_name
        return info
