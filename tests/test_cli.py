"""Tests for the elgato-lights command line."""

import json
import sys

import httpx
import pytest
from click.testing import CliRunner
from test_client import FakeLight

from elgato_lights import cli as cli_module
from elgato_lights import directory as directory_module
from elgato_lights.cache import load_cached_lights
from elgato_lights.client import KeyLight
from elgato_lights.errors import DiscoveryError
from elgato_lights.models import DiscoveredLight

FOUND = [
    DiscoveredLight("Key Light A", "192.168.1.100", 9123),
    DiscoveredLight("Key Light B", "192.168.1.101", 9123),
]


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.setattr("elgato_lights.config.CONFIG_PATH", tmp_path / "config.toml")
    monkeypatch.setattr("elgato_lights.cache.CACHE_PATH", tmp_path / "lights.json")


@pytest.fixture(autouse=True)
def glib_installs(monkeypatch):
    """Record GLib loop policy installs instead of performing them."""
    installs = []
    monkeypatch.setattr(cli_module, "install_glib_loop_policy", lambda: installs.append(True))
    return installs


@pytest.fixture
def without_gobject(monkeypatch):
    """Make ``import gi`` fail, as on a system without PyGObject."""
    monkeypatch.setitem(sys.modules, "gi", None)
    monkeypatch.setattr(
        cli_module, "install_glib_loop_policy", directory_module.install_glib_loop_policy,
    )


@pytest.fixture
def runner():
    return CliRunner()


def use_discovery(monkeypatch, result=None, error=None):
    calls = []

    async def fake_discover(**kwargs):
        calls.append(kwargs)
        if error:
            raise error
        return list(result or [])

    monkeypatch.setattr(cli_module, "discover_lights", fake_discover)
    return calls


def use_devices(monkeypatch, devices: dict[str, FakeLight]) -> None:
    """Route each light's HTTP traffic to the fake device for its host."""
    monkeypatch.setattr(
        cli_module, "KeyLight",
        lambda light: KeyLight(light, transport=httpx.MockTransport(devices[light.host])),
    )


def cache(tmp_path, lights) -> None:
    (tmp_path / "lights.json").write_text(json.dumps([l.to_dict() for l in lights]))


class TestDiscover:
    def test_prints_and_caches(self, runner, monkeypatch, glib_installs) -> None:
        calls = use_discovery(monkeypatch, FOUND)

        result = runner.invoke(cli_module.cli, ["discover"])

        assert result.exit_code == 0
        assert "Key Light A: 192.168.1.100:9123" in result.output
        assert calls == [{"timeout_ms": 5000}]
        assert load_cached_lights() == FOUND
        assert glib_installs == [True]

    def test_json_output(self, runner, monkeypatch) -> None:
        use_discovery(monkeypatch, FOUND[:1])

        result = runner.invoke(cli_module.cli, ["discover", "--json", "--timeout", "1500"])

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"name": "Key Light A", "host": "192.168.1.100", "port": 9123},
        ]

    def test_timeout_from_config(self, runner, monkeypatch, tmp_path) -> None:
        (tmp_path / "config.toml").write_text("[discovery]\ntimeout_ms = 2500\n")
        calls = use_discovery(monkeypatch, [])

        runner.invoke(cli_module.cli, ["discover"])

        assert calls == [{"timeout_ms": 2500}]

    def test_zero_timeout_rejected(self, runner, monkeypatch) -> None:
        calls = use_discovery(monkeypatch, FOUND)

        result = runner.invoke(cli_module.cli, ["discover", "--timeout", "0"])

        assert result.exit_code == 2
        assert calls == []

    def test_nothing_found(self, runner, monkeypatch) -> None:
        use_discovery(monkeypatch, [])
        result = runner.invoke(cli_module.cli, ["discover"])
        assert result.exit_code == 0
        assert "No lights found." in result.output
        assert load_cached_lights() == []

    def test_failure_exits_nonzero(self, runner, monkeypatch) -> None:
        use_discovery(monkeypatch, error=DiscoveryError("Service browser failed: Network unreachable"))
        result = runner.invoke(cli_module.cli, ["discover"])
        assert result.exit_code == 1
        assert "Network unreachable" in result.output

    def test_needs_gobject(self, runner, without_gobject) -> None:
        result = runner.invoke(cli_module.cli, ["discover"])
        assert result.exit_code == 1
        assert "PyGObject" in result.output


class TestCheck:
    def test_available(self, runner, monkeypatch) -> None:
        async def yes():
            return True

        monkeypatch.setattr(cli_module, "is_avahi_available", yes)
        result = runner.invoke(cli_module.cli, ["check"])
        assert result.exit_code == 0

    def test_unavailable(self, runner, monkeypatch) -> None:
        async def no():
            return False

        monkeypatch.setattr(cli_module, "is_avahi_available", no)
        result = runner.invoke(cli_module.cli, ["check"])
        assert result.exit_code == 1


class TestControl:
    def test_on_uses_cached_lights(self, runner, monkeypatch, tmp_path, glib_installs) -> None:
        cache(tmp_path, FOUND[:1])
        device = FakeLight()
        use_devices(monkeypatch, {"192.168.1.100": device})

        result = runner.invoke(cli_module.cli, ["on"])

        assert result.exit_code == 0
        assert "Key Light A: on" in result.output
        assert device.light["on"] == 1
        assert glib_installs == []

    def test_configured_lights_work_without_gobject(
        self, runner, monkeypatch, tmp_path, without_gobject
    ) -> None:
        """Test that HTTP-only commands do not need the D-Bus bindings."""
        (tmp_path / "config.toml").write_text(
            '[[lights]]\nname = "Desk"\nhost = "192.168.1.50"\n'
        )
        device = FakeLight()
        use_devices(monkeypatch, {"192.168.1.50": device})

        result = runner.invoke(cli_module.cli, ["on"])

        assert result.exit_code == 0, result.output
        assert "Desk: on" in result.output
        assert device.light["on"] == 1

    def test_discovery_fallback_needs_gobject(self, runner, without_gobject) -> None:
        result = runner.invoke(cli_module.cli, ["off"])
        assert result.exit_code == 1
        assert "config.toml" in result.output

    def test_no_lights(self, runner, monkeypatch, glib_installs) -> None:
        use_discovery(monkeypatch, [])
        monkeypatch.setattr("elgato_lights.discovery.discover_lights", cli_module.discover_lights)

        result = runner.invoke(cli_module.cli, ["off"])

        assert result.exit_code == 1
        assert "no lights found" in result.output
        assert glib_installs == [True]

    def test_toggle_mixed_turns_all_off(self, runner, monkeypatch, tmp_path) -> None:
        """Test that one light on is enough to switch the group off."""
        cache(tmp_path, FOUND)
        a, b = FakeLight(on=1), FakeLight(on=0)
        use_devices(monkeypatch, {"192.168.1.100": a, "192.168.1.101": b})

        result = runner.invoke(cli_module.cli, ["toggle"])

        assert result.exit_code == 0
        assert (a.light["on"], b.light["on"]) == (0, 0)
        assert "Key Light A: off" in result.output
        assert "Key Light B: off" in result.output

    def test_toggle_all_off_turns_all_on(self, runner, monkeypatch, tmp_path) -> None:
        cache(tmp_path, FOUND)
        a, b = FakeLight(on=0, brightness=70), FakeLight(on=0)
        use_devices(monkeypatch, {"192.168.1.100": a, "192.168.1.101": b})

        result = runner.invoke(cli_module.cli, ["toggle"])

        assert result.exit_code == 0
        assert (a.light["on"], b.light["on"]) == (1, 1)
        assert a.light["brightness"] == 70

    def test_toggle_skips_unreachable_light(self, runner, monkeypatch, tmp_path) -> None:
        cache(tmp_path, FOUND)
        a, b = FakeLight(on=0), FakeLight(on=1)
        b.status = 503
        use_devices(monkeypatch, {"192.168.1.100": a, "192.168.1.101": b})

        result = runner.invoke(cli_module.cli, ["toggle"])

        assert result.exit_code == 0
        assert a.light["on"] == 1
        assert "Key Light B: error" in result.output

    def test_status_shows_display_name(self, runner, monkeypatch, tmp_path) -> None:
        cache(tmp_path, FOUND[:1])
        use_devices(monkeypatch, {"192.168.1.100": FakeLight(display_name="Desk Left")})

        result = runner.invoke(cli_module.cli, ["status"])

        assert result.exit_code == 0
        assert "Key Light A (Desk Left): off, brightness=40%" in result.output

    def test_status_falls_back_to_product_name(self, runner, monkeypatch, tmp_path) -> None:
        cache(tmp_path, FOUND[:1])
        use_devices(monkeypatch, {"192.168.1.100": FakeLight(display_name="")})

        result = runner.invoke(cli_module.cli, ["status"])

        assert "Key Light A (Elgato Key Light): off" in result.output
