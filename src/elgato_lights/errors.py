"""Exceptions raised by elgato-lights."""

from __future__ import annotations


class ElgatoError(Exception):
    """Base class for elgato-lights errors."""


class DirectoryError(ElgatoError):
    """A call to the Avahi service directory failed."""


class DiscoveryError(ElgatoError):
    """Discovery could not run to completion.

    The message names the phase that failed: connecting to the bus,
    creating the service browser, or the browser itself reporting failure.
    """
