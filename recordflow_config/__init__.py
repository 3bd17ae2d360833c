"""
recordflow_config -- YAML-backed engine settings.

Public API::

    from recordflow_config import load_settings
    settings = load_settings("batch.yaml", overrides={"grid_size": 8})
"""

from recordflow_config.loader import (
    load_settings,
    load_yaml_file,
    merge_overrides,
    settings_from_dict,
)
from recordflow_config.schema import BatchSettings, DatabaseSettings, RetrySettings

__all__ = [
    "BatchSettings",
    "DatabaseSettings",
    "RetrySettings",
    "load_settings",
    "load_yaml_file",
    "merge_overrides",
    "settings_from_dict",
]
