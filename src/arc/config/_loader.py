# pyright: reportAny=false, reportExplicitAny=false
"""TOML configuration file loading and validation."""

import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from arc.config._models import ArcConfig
from arc.exceptions import ConfigLoadError, ConfigurationError


def read_toml_file(path: Path) -> dict[str, Any]:
    """Read and parse a TOML file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed TOML content as dictionary.

    Raises:
        ConfigLoadError: If the file cannot be read or parsed.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        msg = f"Configuration file not found: {path}"
        raise ConfigLoadError(msg, path=path) from e
    except OSError as e:
        msg = f"Failed to read configuration file {path}: {e}"
        raise ConfigLoadError(msg, path=path) from e
    except tomllib.TOMLDecodeError as e:
        msg = f"Failed to parse TOML file: {e}"
        raise ConfigLoadError(
            msg,
            path=path,
            line=getattr(e, "lineno", None),
            column=getattr(e, "colno", None),
        ) from e


def _error_key(error: Mapping[str, Any]) -> str:
    return ".".join(str(part) for part in error.get("loc", ()))


def build_config(data: Mapping[str, Any]) -> ArcConfig:
    """Validate a configuration mapping.

    Args:
        data: Raw configuration values.

    Returns:
        The validated configuration.

    Raises:
        ConfigurationError: If validation fails. `key` names the first
            offending field.
    """
    try:
        return ArcConfig.model_validate(dict(data))
    except ValidationError as e:
        errors = e.errors()
        first = errors[0] if errors else {}
        key = _error_key(first) or None
        detail = "; ".join(
            f"{_error_key(err) or 'config'}: {err.get('msg', 'invalid value')}"
            for err in errors
        )
        msg = f"Invalid configuration: {detail}"
        raise ConfigurationError(msg, key=key, value=first.get("input")) from e


def load_config(path: Path | str) -> ArcConfig:
    """Load and validate a configuration file.

    Relative paths inside the file resolve against `base_dir`, which
    defaults to the directory containing the file.

    Args:
        path: Path to a TOML configuration file.

    Returns:
        The validated configuration, with `config_path` set.

    Raises:
        ConfigLoadError: If the file cannot be read or parsed.
        ConfigurationError: If the configuration is invalid.
    """
    config_file = Path(path).expanduser().resolve()
    data = read_toml_file(config_file)

    base_dir = data.get("base_dir")
    if base_dir is None:
        data["base_dir"] = config_file.parent
    else:
        base = Path(str(base_dir)).expanduser()
        data["base_dir"] = base if base.is_absolute() else config_file.parent / base
    data["config_path"] = config_file

    return build_config(data)
