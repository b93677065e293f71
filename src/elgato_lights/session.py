"""One Avahi browse for Elgato lights, from browser creation to cleanup.

A :class:`BrowseSession` subscribes to browser and resolver signals before
creating the browser, spins up one resolver per ``ItemNew``, and settles
once the browser has reported ``AllForNow`` and no resolution is pending,
once the browser reports ``Failure``, or once the timeout fires, whichever
comes first.  Whatever settles it first also performs cleanup; everything
after that is a no-op.
"""

from __future__ import annotations

import asyncio
import enum
import logging

from elgato_lights.directory import (
    AVAHI_IF_UNSPEC,
    AVAHI_PROTO_UNSPEC,
    AVAHI_SERVER_IFACE,
    AVAHI_SERVER_PATH,
    AVAHI_SERVICE_BROWSER_IFACE,
    AVAHI_SERVICE_RESOLVER_IFACE,
    ELGATO_SERVICE_TYPE,
    Directory,
    release,
)
from elgato_lights.errors import DirectoryError, DiscoveryError
from elgato_lights.models import DiscoveredLight
from elgato_lights.resolver import ResolverTracker
from elgato_lights.signals import SignalRouter
from elgato_lights.timer import LoopTimer, Timer

log = logging.getLogger(__name__)

DISCOVERY_TIMEOUT_MS = 5000


def _object_path(method: str, reply: tuple) -> str:
    """Unpack the single object path a creation call replies with."""
    try:
        (path,) = reply
    except (TypeError, ValueError) as e:
        raise DirectoryError(f"{method}: unexpected reply {reply!r}") from e
    return path


class State(enum.Enum):
    INIT = "init"
    BROWSING = "browsing"
    COMPLETING = "completing"
    DONE = "done"


class BrowseSession:
    def __init__(
        self,
        directory: Directory,
        timer: Timer | None = None,
        timeout_ms: int = DISCOVERY_TIMEOUT_MS,
        service_type: str = ELGATO_SERVICE_TYPE,
    ):
        self._directory = directory
        self._timer = timer or LoopTimer()
        self._timeout_ms = timeout_ms
        self._service_type = service_type

        self.state = State.INIT
        self.browser_path: str | None = None
        self.lights: dict[str, DiscoveredLight] = {}
        self.resolvers = ResolverTracker(directory)
        self.all_browsing_finished = False
        self.completed = False
        self.subscriptions: set[int] = set()

        self._browser_freed = False
        self._timeout_handle: object | None = None
        self._result: asyncio.Future | None = None
        self._tasks: set[asyncio.Task] = set()

        self.browser_signals = SignalRouter(
            "browser",
            {
                "ItemNew": self._on_item_new,
                "AllForNow": self._on_all_for_now,
                "Failure": self._on_browser_failure,
            },
        )
        self.resolver_signals = SignalRouter(
            "resolver",
            {
                "Found": self._on_found,
                "Failure": self._on_resolver_failure,
            },
        )

    @property
    def pending_resolvers(self) -> int:
        return self.resolvers.pending

    async def run(self) -> list[DiscoveredLight]:
        """Browse until settled and return the deduplicated lights.

        Raises :class:`DiscoveryError` when the browser cannot be created
        or reports a failure.  If the caller is cancelled, the session is
        cleaned up before the cancellation propagates.
        """
        if self._result is not None:
            raise RuntimeError("a BrowseSession can only run once")
        self._result = asyncio.get_running_loop().create_future()

        try:
            self._subscribe()
            self._timeout_handle = self._timer.schedule(self._timeout_ms, self._on_timeout)
            self.browser_signals.expect()
            log.info("browsing for %s (timeout %d ms)", self._service_type, self._timeout_ms)
            self._spawn(self._create_browser())
            return await self._result
        finally:
            if not self.completed:
                self.complete(asyncio.CancelledError())

    async def _create_browser(self) -> None:
        try:
            reply = await self._directory.call(
                AVAHI_SERVER_PATH,
                AVAHI_SERVER_IFACE,
                "ServiceBrowserNew",
                (AVAHI_IF_UNSPEC, AVAHI_PROTO_UNSPEC, self._service_type, "", 0),
                "(iissu)",
            )
            path = _object_path("ServiceBrowserNew", reply)
        except DirectoryError as e:
            self.complete(DiscoveryError(f"Failed to create service browser: {e}"))
            return
        self.on_browser_created(path)

    def on_browser_created(self, path: str) -> None:
        self.browser_path = path
        if self.completed:
            # The timeout beat the reply; nobody else will free this browser.
            self._release_browser()
            return
        log.debug("service browser at %s", path)
        self.state = State.BROWSING
        self.browser_signals.claim(path)

    def complete(self, error: BaseException | None = None) -> None:
        """Settle the session once; later calls do nothing."""
        if self.completed:
            return
        self.completed = True
        self.state = State.COMPLETING
        self._cleanup()
        self.state = State.DONE

        if self._result is None or self._result.done():
            return
        if isinstance(error, asyncio.CancelledError):
            self._result.cancel()
        elif error is not None:
            log.info("discovery failed: %s", error)
            self._result.set_exception(error)
        else:
            log.info("discovery finished with %d light(s)", len(self.lights))
            self._result.set_result(list(self.lights.values()))

    def check_complete(self) -> None:
        if self.completed:
            return
        if self.all_browsing_finished and self.resolvers.pending == 0:
            self.complete()

    # --- Signal handlers ---

    def _on_item_new(self, path: str, args: tuple) -> None:
        interface, protocol, name, service_type, domain, _flags = args
        log.debug("ItemNew %r on interface %d protocol %d", name, interface, protocol)
        self.resolvers.begin()
        self.resolver_signals.expect()
        self._spawn(self._create_resolver(interface, protocol, name, service_type, domain))

    def _on_all_for_now(self, path: str, args: tuple) -> None:
        log.debug("AllForNow from %s with %d resolution(s) pending", path, self.resolvers.pending)
        self.all_browsing_finished = True
        self.check_complete()

    def _on_browser_failure(self, path: str, args: tuple) -> None:
        message = args[0] if args else "unknown error"
        self.complete(DiscoveryError(f"Service browser failed: {message}"))

    def _on_found(self, path: str, args: tuple) -> None:
        if not self.resolvers.settle(path):
            return
        (_interface, _protocol, name, _type, _domain, host_name,
         _aprotocol, address, port, _txt, _flags) = args
        light = DiscoveredLight(name=name, host=address, port=int(port))
        if light.key in self.lights:
            log.debug("%s (%s) already known, keeping first", light.key, name)
        else:
            log.debug("found %r at %s (%s)", name, light.key, host_name)
            self.lights[light.key] = light
        self.resolvers.release(path)
        self.check_complete()

    def _on_resolver_failure(self, path: str, args: tuple) -> None:
        if not self.resolvers.settle(path):
            return
        message = args[0] if args else "unknown error"
        log.warning("could not resolve %s: %s", path, message)
        self.resolvers.release(path)
        self.check_complete()

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        if self.completed:
            return
        log.warning(
            "discovery timed out after %d ms (%d resolution(s) pending)",
            self._timeout_ms, self.resolvers.pending,
        )
        self.complete()

    # --- Resolver creation ---

    async def _create_resolver(
        self, interface: int, protocol: int, name: str, service_type: str, domain: str
    ) -> None:
        try:
            reply = await self._directory.call(
                AVAHI_SERVER_PATH,
                AVAHI_SERVER_IFACE,
                "ServiceResolverNew",
                (interface, protocol, name, service_type, domain, AVAHI_PROTO_UNSPEC, 0),
                "(iisssiu)",
            )
            path = _object_path("ServiceResolverNew", reply)
        except DirectoryError as e:
            log.warning("could not create resolver for %r: %s", name, e)
            self.resolver_signals.abandon()
            self.resolvers.create_failed()
            self.check_complete()
            return

        self.resolvers.created(path)
        if self.completed:
            self.resolvers.release(path)
            return
        self.resolver_signals.claim(path)

    def _spawn(self, coro) -> None:
        # Creation calls are never cancelled: a reply that lands after
        # completion still carries a path that has to be freed.
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        log.error("discovery task failed: %r", error)
        self.complete(DiscoveryError(f"Discovery failed: {error}"))

    # --- Cleanup ---

    def _subscribe(self) -> None:
        for member in ("ItemNew", "AllForNow", "Failure"):
            self.subscriptions.add(self._directory.subscribe(
                AVAHI_SERVICE_BROWSER_IFACE, member, self._browser_handler(member),
            ))
        for member in ("Found", "Failure"):
            self.subscriptions.add(self._directory.subscribe(
                AVAHI_SERVICE_RESOLVER_IFACE, member, self._resolver_handler(member),
            ))

    def _browser_handler(self, member: str):
        return lambda path, args: self.browser_signals.dispatch(path, member, args)

    def _resolver_handler(self, member: str):
        return lambda path, args: self.resolver_signals.dispatch(path, member, args)

    def _cleanup(self) -> None:
        if self._timeout_handle is not None:
            self._timer.cancel(self._timeout_handle)
            self._timeout_handle = None

        for subscription_id in list(self.subscriptions):
            self._directory.unsubscribe(subscription_id)
        self.subscriptions.clear()

        self.browser_signals.close()
        self.resolver_signals.close()
        self.resolvers.release_all()
        self._release_browser()

    def _release_browser(self) -> None:
        if self.browser_path is None or self._browser_freed:
            return
        self._browser_freed = True
        release(self._directory, self.browser_path, AVAHI_SERVICE_BROWSER_IFACE)
