"""Click CLI for Elgato Key Light discovery and control."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click

from elgato_lights.cache import load_cached_lights, save_cached_lights
from elgato_lights.client import KeyLight
from elgato_lights.config import get_lights, load_config
from elgato_lights.directory import install_glib_loop_policy
from elgato_lights.discovery import discover_lights, is_avahi_available
from elgato_lights.errors import DirectoryError, ElgatoError


def _run(coro, dbus: bool = True):
    """Run an async coroutine synchronously.

    Coroutines that talk to D-Bus run on a GLib-backed loop; the rest only
    speak HTTP and get a plain asyncio loop, so they work without PyGObject.
    """
    if dbus:
        try:
            install_glib_loop_policy()
        except DirectoryError as e:
            coro.close()
            raise click.ClickException(str(e)) from e
    return asyncio.run(coro)


def _needs_discovery() -> bool:
    """Whether control commands have to browse for lights first."""
    return not (load_config().lights or load_cached_lights())


async def _get_clients(names: tuple[str, ...] | None = None) -> list[KeyLight]:
    """Create KeyLight clients for the requested lights."""
    lights = await get_lights(list(names) if names else None)
    return [KeyLight(l) for l in lights]


async def _close_all(clients: list[KeyLight]) -> None:
    for c in clients:
        await c.close()


async def _with_clients(names, body) -> None:
    try:
        clients = await _get_clients(names)
    except ElgatoError as e:
        raise click.ClickException(str(e)) from e
    if not clients:
        raise click.ClickException("no lights found")
    try:
        await body(clients)
    finally:
        await _close_all(clients)


async def _for_each(names, action) -> None:
    async def _each(clients: list[KeyLight]):
        for c in clients:
            try:
                await action(c)
            except Exception as e:
                click.echo(f"{c.name}: error — {e}", err=True)

    await _with_clients(names, _each)


def _control(names, action) -> None:
    _run(_for_each(names, action), dbus=_needs_discovery())


@click.group()
@click.option("--light", "-l", multiple=True, help="Target specific light(s) by name.")
@click.option("--verbose", "-v", is_flag=True, help="Log discovery details to stderr.")
@click.pass_context
def cli(ctx, light, verbose):
    """Discover and control Elgato Key Lights."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["lights"] = light if light else None


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON.")
@click.option(
    "--timeout", type=click.IntRange(min=1), default=None,
    help="Discovery timeout in milliseconds.",
)
def discover(as_json, timeout):
    """Browse the network for lights and cache the results."""
    timeout_ms = timeout if timeout is not None else load_config().discovery.timeout_ms
    try:
        lights = _run(discover_lights(timeout_ms=timeout_ms))
    except ElgatoError as e:
        click.echo(f"elgato-lights: {e}", err=True)
        sys.exit(1)

    if lights:
        save_cached_lights(lights)
    if as_json:
        click.echo(json.dumps([l.to_dict() for l in lights], indent=2))
        return
    if not lights:
        click.echo("No lights found.")
    for l in lights:
        click.echo(f"{l.name}: {l.host}:{l.port}")


@cli.command()
def check():
    """Check whether the Avahi daemon is reachable."""
    if _run(is_avahi_available()):
        click.echo("Avahi is available.")
    else:
        click.echo("Avahi is not available.", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx):
    """Show status of all lights."""

    async def _status(c: KeyLight):
        state = await c.fetch_state()
        info = await c.fetch_info()
        click.echo(
            f"{c.name} ({info.display_name or info.product_name}): "
            f"{'on' if state.on else 'off'}, brightness={state.brightness}%, "
            f"temp={state.temperature} (~{state.temperature_kelvin}K)"
        )

    _control(ctx.obj["lights"], _status)


@cli.command()
@click.pass_context
def on(ctx):
    """Turn lights on."""

    async def _on(c: KeyLight):
        await c.turn_on()
        click.echo(f"{c.name}: on")

    _control(ctx.obj["lights"], _on)


@cli.command()
@click.pass_context
def off(ctx):
    """Turn lights off."""

    async def _off(c: KeyLight):
        await c.turn_off()
        click.echo(f"{c.name}: off")

    _control(ctx.obj["lights"], _off)


@cli.command()
@click.pass_context
def toggle(ctx):
    """Toggle lights as a group: all off if any is on, otherwise all on."""

    async def _toggle(clients: list[KeyLight]):
        reachable = []
        for c in clients:
            try:
                await c.fetch_state()
                reachable.append(c)
            except Exception as e:
                click.echo(f"{c.name}: error — {e}", err=True)

        turn_on = not any(c.state.on for c in reachable)
        for c in reachable:
            try:
                await c.set_on(turn_on)
                click.echo(f"{c.name}: {'on' if turn_on else 'off'}")
            except Exception as e:
                click.echo(f"{c.name}: error — {e}", err=True)

    _run(_with_clients(ctx.obj["lights"], _toggle), dbus=_needs_discovery())


@cli.command()
@click.argument("value", type=int)
@click.pass_context
def brightness(ctx, value):
    """Set brightness (3-100)."""

    async def _brightness(c: KeyLight):
        state = await c.set_brightness(value)
        click.echo(f"{c.name}: brightness={state.brightness}%")

    _control(ctx.obj["lights"], _brightness)


@cli.command()
@click.argument("value", type=int)
@click.pass_context
def temperature(ctx, value):
    """Set color temperature (143=cool/7000K, 344=warm/2900K)."""

    async def _temp(c: KeyLight):
        state = await c.set_temperature(value)
        click.echo(f"{c.name}: temp={state.temperature} (~{state.temperature_kelvin}K)")

    _control(ctx.obj["lights"], _temp)
