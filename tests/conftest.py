"""Shared test fixtures for btb."""

from __future__ import annotations

from pathlib import Path

import pytest

from btb.config import LoggingConfig, RuntimeConfig, SessionConfig, Settings
from btb.types import Invocation

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures, importable by test files)
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    """Create a Settings object from pure defaults, without config.toml or env.

    Usage::

        s = make_settings(session=SessionConfig(timeout_ms=50))
    """
    defaults = {
        "session": SessionConfig(),
        "runtime": RuntimeConfig(),
        "logging": LoggingConfig(),
    }
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


def make_invocation(bin_path: Path | str = "/home/user/.local/bin", **overrides) -> Invocation:
    fields = {
        "bin_path": Path(bin_path),
        "prefix": "myprefix",
        "container": "mycontainer",
        "in_container": False,
    }
    fields.update(overrides)
    return Invocation(**fields)


def make_exe(directory: Path, name: str, mode: int = 0o755) -> Path:
    """Write a tiny script into ``directory`` with the given mode."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text("#!/bin/sh\n")
    path.chmod(mode)
    return path


def read_tree(directory: Path) -> dict[str, bytes]:
    """File name -> contents for every file directly inside ``directory``."""
    return {p.name: p.read_bytes() for p in sorted(directory.iterdir()) if p.is_file()}


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep the real ~/.config/btb/config.toml and BTB_* env out of tests."""
    import os

    for var in [v for v in os.environ if v.startswith("BTB_")]:
        monkeypatch.delenv(var)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setattr("btb.config._settings", None)
