"""
Configuration resolution for embedprep.
"""

from .config_manager import PreprocessingConfigManager, StaticConfigSource, parse_override_document
from .environment_manager import EnvironmentManager
from .yaml_config import ConfigFileWatcher, YAMLConfigSource

__all__ = [
    "PreprocessingConfigManager",
    "StaticConfigSource",
    "parse_override_document",
    "EnvironmentManager",
    "YAMLConfigSource",
    "ConfigFileWatcher",
]
