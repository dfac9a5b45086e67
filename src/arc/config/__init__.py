"""Configuration model and loading."""

from ._loader import build_config, load_config, read_toml_file
from ._models import (
    ArcConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    ProcessSpec,
    ServiceSite,
    Site,
    SshConfig,
    StaticSite,
    TunnelConfig,
    WatchConfig,
    expand_path,
)

__all__ = [
    "ArcConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "ProcessSpec",
    "ServiceSite",
    "Site",
    "SshConfig",
    "StaticSite",
    "TunnelConfig",
    "WatchConfig",
    "build_config",
    "expand_path",
    "load_config",
    "read_toml_file",
]
