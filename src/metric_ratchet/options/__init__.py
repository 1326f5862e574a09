"""Run options, config models and config loading."""

from .loader import ConfigLoadError, load_config_file, load_config_string, load_default
from .models import ComparisonType, Options, OptionsValidationError, RatchetConfig

__all__ = [
    "ComparisonType",
    "ConfigLoadError",
    "Options",
    "OptionsValidationError",
    "RatchetConfig",
    "load_config_file",
    "load_config_string",
    "load_default",
]
