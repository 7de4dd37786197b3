import logging
import os
from pathlib import Path

import pytest
import structlog

from envswitch.config import ConfigStore


@pytest.fixture(autouse=True)
def restore_environ():
    """Keep global environment stable across CLI invocations."""
    original = os.environ.copy()
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(original)


@pytest.fixture(autouse=True)
def reset_logging():
    """CLI invocations install a stderr handler bound to the runner's stream."""
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


@pytest.fixture()
def temp_config_dir(tmp_path, monkeypatch):
    """Put envswitch config and home directories in a temp location."""
    home_dir = tmp_path / "home"
    config_dir = tmp_path / "envswitch"
    home_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setenv("ENVSWITCH_HOME", str(config_dir))
    monkeypatch.setattr(Path, "home", lambda: home_dir)

    monkeypatch.delenv("JAVA_HOME", raising=False)
    for var in list(os.environ):
        if var.startswith("ENVSWITCH_CURRENT_") or var.startswith("ENVSWITCH_SCOPE_"):
            monkeypatch.delenv(var)

    return config_dir


@pytest.fixture()
def store(temp_config_dir):
    return ConfigStore(temp_config_dir / "config.yaml")


@pytest.fixture()
def make_jdk():
    """Create a fake JDK directory layout."""
    def _make(root: Path, name: str, version=None, implementor=None, with_java=True) -> Path:
        home = root / name
        (home / "bin").mkdir(parents=True, exist_ok=True)
        if with_java:
            (home / "bin" / "java").write_text("#!/bin/sh\n", encoding="utf-8")
        if version is not None:
            lines = [f'JAVA_VERSION="{version}"']
            if implementor:
                lines.append(f'IMPLEMENTOR="{implementor}"')
            (home / "release").write_text("\n".join(lines) + "\n", encoding="utf-8")
        return home

    return _make
