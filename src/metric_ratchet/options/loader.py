"""Config loading from YAML or JSON files and strings."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import RatchetConfig

DEFAULT_CONFIG_NAME = ".ratchet"


class ConfigLoadError(RuntimeError):
    """Raised when a config file or string cannot be read or parsed."""


def _from_document(document: Any) -> RatchetConfig:
    if document is None:
        return RatchetConfig()
    if not isinstance(document, dict):
        raise ValueError("config must be a mapping")
    return RatchetConfig.model_validate(document)


def _parse_yaml(text: str) -> RatchetConfig:
    try:
        return _from_document(yaml.safe_load(text))
    except (yaml.YAMLError, ValidationError, ValueError) as exc:
        raise ConfigLoadError(f"invalid config was supplied:\n{text}") from exc


def _parse_json(text: str) -> RatchetConfig:
    try:
        return _from_document(json.loads(text))
    except (ValidationError, ValueError) as exc:
        raise ConfigLoadError(f"invalid JSON config was supplied:\n{text}") from exc


def load_config_file(path: Path) -> RatchetConfig:
    """Load a config file, picking the format from its extension.

    Files without a ``.json``, ``.yaml`` or ``.yml`` extension (such as
    ``.ratchet``) are tried as YAML first and then as JSON.
    """

    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"failed to read config file {path}") from exc

    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            return _parse_json(text)
        if suffix in {".yaml", ".yml"}:
            return _parse_yaml(text)
        try:
            return _parse_yaml(text)
        except ConfigLoadError:
            return _parse_json(text)
    except ConfigLoadError as exc:
        raise ConfigLoadError(f"failed to parse config file {path}") from exc


def load_config_string(text: str) -> RatchetConfig:
    """Load config from inline text, detecting JSON by its surrounding braces."""

    trimmed = text.strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        return _parse_json(text)
    try:
        return _parse_yaml(text)
    except ConfigLoadError:
        try:
            return _parse_json(text)
        except ConfigLoadError as exc:
            raise ConfigLoadError(
                f"invalid config string (tried both YAML and JSON):\n{text}"
            ) from exc


def load_default(directory: Path | None = None) -> RatchetConfig:
    """Load ``.ratchet`` from ``directory`` (the cwd by default) if it exists."""

    candidate = Path(directory or Path.cwd()) / DEFAULT_CONFIG_NAME
    if candidate.is_file():
        return load_config_file(candidate)
    return RatchetConfig()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_NAME",
    "load_config_file",
    "load_config_string",
    "load_default",
]
