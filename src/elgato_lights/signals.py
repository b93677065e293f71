"""Routing of directory signals to handlers, with buffering for early arrivals.

Signals are subscribed without a path filter, so a signal can arrive for an
object whose creation reply has not been processed yet.  The router holds
such signals until the path is claimed and then replays them in order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Signal:
    path: str
    member: str
    args: tuple


class SignalRouter:
    """Demultiplex one kind of directory object's signals by member name.

    ``handlers`` maps a signal member (``"Found"``, ``"Failure"``, ...) to a
    callable taking ``(path, args)``.

    A signal from a claimed path is handled immediately.  A signal from an
    unclaimed path is buffered while at least one creation is outstanding
    (:meth:`expect` called more often than :meth:`claim` / :meth:`abandon`),
    and ignored otherwise: it belongs to some other client of the daemon.
    """

    def __init__(self, kind: str, handlers: dict[str, Callable[[str, tuple], None]]):
        self.kind = kind
        self._handlers = handlers
        self._paths: set[str] = set()
        self._outstanding = 0
        self._buffer: list[Signal] = []
        self.closed = False

    @property
    def buffered(self) -> list[Signal]:
        return list(self._buffer)

    def knows(self, path: str) -> bool:
        return path in self._paths

    def expect(self) -> None:
        """Note that a creation call is in flight and its path is unknown."""
        self._outstanding += 1

    def abandon(self) -> None:
        """An expected creation failed; no path will be claimed for it."""
        self._outstanding = max(0, self._outstanding - 1)
        self._drop_orphans()

    def claim(self, path: str) -> None:
        """Adopt ``path`` and replay everything buffered for it."""
        if self.closed:
            return
        self._paths.add(path)
        self._outstanding = max(0, self._outstanding - 1)

        replay = [s for s in self._buffer if s.path == path]
        self._buffer = [s for s in self._buffer if s.path != path]
        if replay:
            log.debug("replaying %d buffered %s signal(s) for %s", len(replay), self.kind, path)
        for signal in replay:
            if self.closed:
                break
            self._deliver(signal)
        self._drop_orphans()

    def dispatch(self, path: str, member: str, args: tuple) -> None:
        if self.closed or member not in self._handlers:
            return
        signal = Signal(path, member, tuple(args))
        if path in self._paths:
            self._deliver(signal)
        elif self._outstanding:
            log.debug("buffering %s %s from unclaimed %s", self.kind, member, path)
            self._buffer.append(signal)
        else:
            log.debug("ignoring %s %s from foreign %s", self.kind, member, path)

    def close(self) -> None:
        """Stop handling and buffering; pending buffered signals are dropped."""
        self.closed = True
        self._buffer.clear()

    def _deliver(self, signal: Signal) -> None:
        self._handlers[signal.member](signal.path, signal.args)

    def _drop_orphans(self) -> None:
        # With nothing outstanding, whatever is left can never be claimed.
        if not self._outstanding and self._buffer:
            log.debug("dropping %d unclaimed %s signal(s)", len(self._buffer), self.kind)
            self._buffer.clear()
