from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from metric_ratchet.config import RatchetSettings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("RUNNER_TEMP", "GITHUB_BASE_REF", "RATCHET_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = RatchetSettings()

    assert settings.temp_root == Path(tempfile.gettempdir())
    assert settings.github_base_ref is None
    assert settings.log_level == "WARNING"


def test_ci_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RUNNER_TEMP", str(tmp_path))
    monkeypatch.setenv("GITHUB_BASE_REF", " release ")
    monkeypatch.setenv("RATCHET_LOG_LEVEL", "debug")

    settings = RatchetSettings()

    assert settings.temp_root == tmp_path
    assert settings.github_base_ref == "release"
    assert settings.log_level == "DEBUG"


def test_blank_values_count_as_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RUNNER_TEMP", "")
    monkeypatch.setenv("GITHUB_BASE_REF", "")

    settings = RatchetSettings()

    assert settings.runner_temp is None
    assert settings.github_base_ref is None


def test_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATCHET_LOG_LEVEL", "LOUD")

    with pytest.raises(ValidationError):
        RatchetSettings()
