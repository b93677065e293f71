"""mDNS discovery of Elgato Key Lights through Avahi's D-Bus API."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from elgato_lights.directory import (
    AVAHI_SERVER_IFACE,
    AVAHI_SERVER_PATH,
    Directory,
    connect_system_bus,
)
from elgato_lights.errors import DirectoryError, DiscoveryError
from elgato_lights.models import DiscoveredLight
from elgato_lights.session import DISCOVERY_TIMEOUT_MS, BrowseSession
from elgato_lights.timer import Timer

log = logging.getLogger(__name__)

PROBE_TIMEOUT_MS = 1000

Connector = Callable[[], Awaitable[Directory]]


async def discover_lights(
    directory: Directory | None = None,
    *,
    connect: Connector = connect_system_bus,
    timer: Timer | None = None,
    timeout_ms: int = DISCOVERY_TIMEOUT_MS,
) -> list[DiscoveredLight]:
    """Discover Elgato lights on the local network via mDNS.

    Browses Avahi for ``_elg._tcp`` services and resolves each one.  Lights
    that fail to resolve are left out, and hitting the timeout returns
    whatever was resolved so far.  A failure to reach the bus, to create
    the service browser, or a browser failure raises
    :class:`DiscoveryError`; so does an unexpected error inside the
    session, rather than waiting out the timeout.

    ``directory`` is an already-connected bus wrapper; when omitted one is
    obtained from ``connect`` and the connection stays open afterwards.
    """
    if directory is None:
        try:
            directory = await connect()
        except DirectoryError as e:
            raise DiscoveryError(f"Failed to connect to system D-Bus: {e}") from e

    session = BrowseSession(directory, timer=timer, timeout_ms=timeout_ms)
    return await session.run()


async def is_avahi_available(
    directory: Directory | None = None,
    *,
    connect: Connector = connect_system_bus,
) -> bool:
    """Return True when the Avahi daemon answers on the system bus.

    Never raises: a missing bus, a missing daemon and a slow daemon all
    read as unavailable.
    """
    try:
        if directory is None:
            directory = await connect()
        version = await asyncio.wait_for(
            directory.call(
                AVAHI_SERVER_PATH,
                AVAHI_SERVER_IFACE,
                "GetVersionString",
                timeout_ms=PROBE_TIMEOUT_MS,
            ),
            timeout=PROBE_TIMEOUT_MS / 1000 + 0.5,
        )
    except (DirectoryError, asyncio.TimeoutError) as e:
        log.debug("Avahi not available: %s", e)
        return False
    log.debug("Avahi available: %s", version[0] if version else "unknown version")
    return True
