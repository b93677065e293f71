"""Bookkeeping for the per-advertisement Avahi resolvers of one browse."""

from __future__ import annotations

import logging

from elgato_lights.directory import AVAHI_SERVICE_RESOLVER_IFACE, Directory, release

log = logging.getLogger(__name__)


class ResolverTracker:
    """Count in-flight resolutions and free each resolver exactly once.

    ``pending`` goes up by one per advertisement (:meth:`begin`) and down
    by one when that resolution concludes: a first Found or Failure signal
    (:meth:`settle`) or a failed creation call (:meth:`create_failed`).
    Repeated terminal signals for the same path are ignored, so ``pending``
    never drops below zero.
    """

    def __init__(self, directory: Directory):
        self._directory = directory
        self.pending = 0
        self.known: set[str] = set()
        self.completed: set[str] = set()
        self.freed: set[str] = set()

    def begin(self) -> None:
        self.pending += 1

    def created(self, path: str) -> None:
        self.known.add(path)

    def create_failed(self) -> None:
        self._conclude()

    def settle(self, path: str) -> bool:
        """Record the terminal signal for ``path``.

        Returns False when ``path`` was already settled; the caller must
        then leave session state alone.
        """
        if path in self.completed:
            log.debug("duplicate terminal signal for resolver %s", path)
            return False
        self.completed.add(path)
        self._conclude()
        return True

    def release(self, path: str) -> None:
        if path in self.freed:
            return
        self.freed.add(path)
        release(self._directory, path, AVAHI_SERVICE_RESOLVER_IFACE)

    def release_all(self) -> None:
        for path in sorted(self.known - self.freed):
            self.release(path)

    def _conclude(self) -> None:
        if self.pending > 0:
            self.pending -= 1
