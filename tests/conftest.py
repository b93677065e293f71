"""Shared fakes for the Avahi directory and the timer."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest

from elgato_lights.directory import (
    AVAHI_SERVICE_BROWSER_IFACE,
    AVAHI_SERVICE_RESOLVER_IFACE,
    ELGATO_SERVICE_TYPE,
)
from elgato_lights.errors import DirectoryError

BROWSER = AVAHI_SERVICE_BROWSER_IFACE
RESOLVER = AVAHI_SERVICE_RESOLVER_IFACE


@dataclass(frozen=True)
class Call:
    path: str
    interface: str
    method: str
    args: tuple
    timeout_ms: int = -1


class FakeDirectory:
    """In-memory stand-in for Avahi on the system bus.

    ``browser_gate`` and ``resolver_gate`` hold back creation replies while
    cleared, so tests can deliver signals before the caller learns the
    object path.  Resolver paths (``/r/1``, ``/r/2``, ...) are allocated
    when the call is made, not when it is answered.
    """

    def __init__(
        self,
        browser_path: str = "/b/1",
        browser_error: str | None = None,
        failing_resolvers: tuple[str, ...] = (),
        unavailable: bool = False,
    ):
        self.browser_path = browser_path
        self.browser_error = browser_error
        self.failing_resolvers = failing_resolvers
        self.unavailable = unavailable
        self.browser_gate = asyncio.Event()
        self.browser_gate.set()
        self.resolver_gate = asyncio.Event()
        self.resolver_gate.set()

        self.calls: list[Call] = []
        self.resolver_paths: list[str] = []
        self.freed: list[str] = []
        self.handlers: dict[int, tuple[str, str, object]] = {}
        self.unsubscribed: list[int] = []
        self._next_id = 1

    def calls_to(self, method: str) -> list[Call]:
        return [c for c in self.calls if c.method == method]

    async def call(self, object_path, interface, method, args=(), signature=None, timeout_ms=-1):
        self.calls.append(Call(object_path, interface, method, tuple(args), timeout_ms))
        if method == "Free":
            self.freed.append(object_path)
            return ()
        if method == "GetVersionString":
            await asyncio.sleep(0)
            if self.unavailable:
                raise DirectoryError("GetVersionString: Service not available")
            return ("avahi 0.8",)
        if method == "ServiceBrowserNew":
            await self.browser_gate.wait()
            if self.browser_error:
                raise DirectoryError(f"ServiceBrowserNew: {self.browser_error}")
            return (self.browser_path,)
        if method == "ServiceResolverNew":
            name = args[2]
            if name in self.failing_resolvers:
                await asyncio.sleep(0)
                raise DirectoryError("ServiceResolverNew: Timeout reached")
            path = f"/r/{len(self.resolver_paths) + 1}"
            self.resolver_paths.append(path)
            await self.resolver_gate.wait()
            return (path,)
        raise DirectoryError(f"unexpected method {method}")

    def subscribe(self, interface, member, handler):
        subscription_id = self._next_id
        self._next_id += 1
        self.handlers[subscription_id] = (interface, member, handler)
        return subscription_id

    def unsubscribe(self, subscription_id):
        self.unsubscribed.append(subscription_id)
        self.handlers.pop(subscription_id, None)

    def emit(self, interface: str, member: str, path: str, args: tuple = ()) -> None:
        for iface, name, handler in list(self.handlers.values()):
            if iface == interface and name == member:
                handler(path, args)


class FakeTimer:
    """Timer that only fires when the test says so."""

    def __init__(self):
        self.scheduled: dict[int, tuple[int, object]] = {}
        self.cancelled: set[int] = set()
        self._next = 1

    def schedule(self, delay_ms, callback):
        handle = self._next
        self._next += 1
        self.scheduled[handle] = (delay_ms, callback)
        return handle

    def cancel(self, handle):
        self.cancelled.add(handle)

    @property
    def armed(self) -> list[int]:
        return [h for h in self.scheduled if h not in self.cancelled]

    def fire(self) -> None:
        for handle in self.armed:
            _delay, callback = self.scheduled[handle]
            self.cancelled.add(handle)
            callback()


def item_new(name: str, interface: int = 1, protocol: int = 0) -> tuple:
    return (interface, protocol, name, ELGATO_SERVICE_TYPE, "local", 0)


def found(name: str, address: str, port: int = 9123, interface: int = 1) -> tuple:
    return (
        interface, 0, name, ELGATO_SERVICE_TYPE, "local",
        "elgato-key-light.local", 0, address, port, [], 0,
    )


async def drain(rounds: int = 20) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def timer():
    return FakeTimer()
