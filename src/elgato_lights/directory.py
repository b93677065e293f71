"""Thin async wrapper around the Avahi daemon on the system D-Bus.

The discovery engine only needs three things from the bus: method calls,
signal subscriptions, and unsubscribing.  :class:`Directory` names that
surface so tests can hand in a fake; :class:`GioDirectory` implements it on
top of a ``Gio.DBusConnection``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Protocol

from elgato_lights.errors import DirectoryError

log = logging.getLogger(__name__)

AVAHI_BUS_NAME = "org.freedesktop.Avahi"
AVAHI_SERVER_PATH = "/"
AVAHI_SERVER_IFACE = "org.freedesktop.Avahi.Server"
AVAHI_SERVICE_BROWSER_IFACE = "org.freedesktop.Avahi.ServiceBrowser"
AVAHI_SERVICE_RESOLVER_IFACE = "org.freedesktop.Avahi.ServiceResolver"

AVAHI_IF_UNSPEC = -1
AVAHI_PROTO_UNSPEC = -1

ELGATO_SERVICE_TYPE = "_elg._tcp"

SignalHandler = Callable[[str, tuple], None]

_GI_HELP = """\
GObject bindings (PyGObject >= 3.50) not found; mDNS discovery talks to
Avahi through Gio and needs them.

Install with the dbus extra:

  uv tool install 'elgato-lights[dbus]'

PyGObject builds from source and needs GObject Introspection headers:

  Fedora:  sudo dnf install gobject-introspection-devel cairo-gobject-devel
  Ubuntu:  sudo apt install libgirepository-2.0-dev libcairo2-dev pkg-config
  Arch:    sudo pacman -S gobject-introspection

Alternatively list your lights in ~/.config/elgato-lights/config.toml."""


class Directory(Protocol):
    """The slice of the Avahi D-Bus API the discovery engine consumes."""

    async def call(
        self,
        object_path: str,
        interface: str,
        method: str,
        args: tuple = (),
        signature: str | None = None,
        timeout_ms: int = -1,
    ) -> tuple: ...

    def subscribe(self, interface: str, member: str, handler: SignalHandler) -> int: ...

    def unsubscribe(self, subscription_id: int) -> None: ...


def _gio():
    try:
        import gi

        gi.require_version("Gio", "2.0")
        from gi.repository import Gio, GLib
    except (ImportError, ValueError) as e:
        raise DirectoryError(_GI_HELP) from e
    return Gio, GLib


class GioDirectory:
    """:class:`Directory` over an already-connected ``Gio.DBusConnection``.

    Replies and signals are dispatched by the GLib main context, so the
    asyncio loop awaiting them must be GLib-backed (see
    :func:`install_glib_loop_policy`).  The connection is borrowed; this
    class never closes it.
    """

    def __init__(self, connection: Any):
        self._connection = connection
        self._Gio, self._GLib = _gio()

    async def call(
        self,
        object_path: str,
        interface: str,
        method: str,
        args: tuple = (),
        signature: str | None = None,
        timeout_ms: int = -1,
    ) -> tuple:
        GLib = self._GLib
        future = asyncio.get_running_loop().create_future()

        def _on_reply(connection, result):
            if future.done():
                return
            try:
                reply = connection.call_finish(result)
            except GLib.Error as e:
                future.set_exception(DirectoryError(f"{method}: {e.message}"))
                return
            future.set_result(reply.unpack() if reply is not None else ())

        params = GLib.Variant(signature, args) if signature else None
        self._connection.call(
            AVAHI_BUS_NAME, object_path, interface, method, params,
            None, self._Gio.DBusCallFlags.NONE, timeout_ms, None, _on_reply,
        )
        return await future

    def subscribe(self, interface: str, member: str, handler: SignalHandler) -> int:
        # No object path filter: browser and resolver paths are not known
        # until their creation replies arrive, and signals can beat them.
        def _on_signal(connection, sender, path, iface, signal, params):
            handler(path, params.unpack())

        return self._connection.signal_subscribe(
            AVAHI_BUS_NAME, interface, member, None, None,
            self._Gio.DBusSignalFlags.NONE, _on_signal,
        )

    def unsubscribe(self, subscription_id: int) -> None:
        self._connection.signal_unsubscribe(subscription_id)


async def connect_system_bus() -> GioDirectory:
    """Connect to the system bus and wrap it as a :class:`GioDirectory`."""
    Gio, GLib = _gio()
    future = asyncio.get_running_loop().create_future()

    def _on_bus(source, result):
        if future.done():
            return
        try:
            future.set_result(Gio.bus_get_finish(result))
        except GLib.Error as e:
            future.set_exception(DirectoryError(e.message))

    Gio.bus_get(Gio.BusType.SYSTEM, None, _on_bus)
    return GioDirectory(await future)


def install_glib_loop_policy() -> None:
    """Make asyncio run on the GLib main loop so Gio callbacks are dispatched."""
    _gio()
    try:
        from gi.events import GLibEventLoopPolicy
    except ImportError as e:
        raise DirectoryError(_GI_HELP) from e
    asyncio.set_event_loop_policy(GLibEventLoopPolicy())


_releases: set[asyncio.Task] = set()


def release(directory: Directory, object_path: str, interface: str) -> None:
    """Free a browser or resolver object, best effort.

    The ``Free()`` call is not awaited and its failure never propagates;
    it is only logged at debug level.
    """
    task = asyncio.ensure_future(_free(directory, object_path, interface))
    _releases.add(task)
    task.add_done_callback(_releases.discard)


async def _free(directory: Directory, object_path: str, interface: str) -> None:
    try:
        await directory.call(object_path, interface, "Free")
    except DirectoryError as e:
        log.debug("Free() on %s failed: %s", object_path, e)
    else:
        log.debug("freed %s", object_path)
